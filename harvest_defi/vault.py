"""Harvest Finance vaults.

- A vault mints shares (fTokens) for deposited underlying tokens

- Single asset vaults take one ERC-20, Uniswap v3 range vaults take both tokens of a pair.
  The difference is hidden in the deposit and withdrawal strategies, see :py:mod:`harvest_defi.strategies`

- Harvest vaults are not ERC-4626: the share price is ``getPricePerFullShare()`` with 18 decimals
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Iterator

from eth_typing import HexAddress
from web3 import Web3
from web3.contract import Contract
from web3.types import TxReceipt

from harvest_defi.connection import Connection
from harvest_defi.constants import PRICE_PER_FULL_SHARE_DECIMALS
from harvest_defi.errors import InvalidVaultAddressError, InvalidVaultNameError, InvalidVaultPoolError, InvalidVaultTokensError
from harvest_defi.strategies import create_strategies
from harvest_defi.strategies.deposit import DepositAmount, DepositStrategy
from harvest_defi.strategies.withdrawal import WithdrawalStrategy
from harvest_defi.token import Token, fetch_balance_or_zero

if TYPE_CHECKING:
    from harvest_defi.pool import HarvestPool

logger = logging.getLogger(__name__)

#: ABI of plain fToken vaults
VAULT_ABI = "harvest/Vault.json"

#: ABI of Uniswap v3 range vaults
RANGE_VAULT_ABI = "harvest/UniV3Vault.json"


class HarvestVault:
    """One Harvest vault.

    Example:

    .. code-block:: python

        vault = sdk.vaults().find_by_symbol("fWETH")
        sdk.approve(vault, amount)
        sdk.deposit(vault, amount)
        shares = vault.balance_of(sdk.connection.address)
    """

    def __init__(
        self,
        connection: Connection,
        chain_id: int,
        address: HexAddress | str,
        tokens: list[Token],
        decimals: int,
        symbol: str | None = None,
    ):
        """
        :param address:
            Vault contract address as the catalog gives it

        :param tokens:
            Underlying tokens in the order of the catalog.
            More than one token makes this a range vault.

        :param symbol:
            Catalog entry name, e.g. ``WETH``
        """
        assert len(tokens) > 0, f"Vault {address} needs at least one underlying token"
        self.connection = connection
        self.chain_id = chain_id
        self.catalog_address = address
        self.tokens = tokens
        self.decimals = int(decimals)
        self.symbol = symbol
        self.contract: Contract = connection.get_contract(
            RANGE_VAULT_ABI if len(tokens) > 1 else VAULT_ABI,
            address,
        )
        strategies = create_strategies(self.contract, connection, tokens)
        self.deposit_strategy: DepositStrategy = strategies[0]
        self.withdrawal_strategy: WithdrawalStrategy = strategies[1]

    def __repr__(self):
        return f"<HarvestVault {self.symbol} at {self.address} on chain {self.chain_id}, tokens {[t.symbol for t in self.tokens]}>"

    def __eq__(self, other):
        if not isinstance(other, HarvestVault):
            return False
        return self.chain_id == other.chain_id and self.address.lower() == other.address.lower()

    def __hash__(self):
        return hash((self.chain_id, self.address.lower()))

    @property
    def address(self) -> HexAddress:
        """Checksummed vault address, also the share token address."""
        return self.contract.address

    @property
    def name(self) -> str | None:
        return self.symbol

    def is_range_vault(self) -> bool:
        """Does this vault hold a Uniswap v3 position of two tokens."""
        return len(self.tokens) > 1

    def underlying(self) -> Token:
        """The first underlying token."""
        return self.tokens[0]

    def balance_of(self, address: HexAddress | str) -> int:
        """Raw share balance of an address, zero if the read fails."""
        return fetch_balance_or_zero(self.contract, address)

    def approve(self, spender: HexAddress | str, amount: int) -> TxReceipt:
        """Approve ``spender`` to move our vault shares, e.g. a reward pool for staking."""
        assert type(amount) == int, f"Raw amount expected, got {type(amount)}"
        logger.info("Approving %s to spend %d shares of vault %s", spender, amount, self.symbol)
        bound_call = self.contract.functions.approve(Web3.to_checksum_address(spender), amount)
        return self.connection.transact(bound_call)

    def deposit(self, amount: DepositAmount) -> TxReceipt:
        """Deposit underlying tokens.

        The vault must already be approved to spend them, see :py:meth:`harvest_defi.sdk.HarvestSDK.deposit`
        for the checked version.

        :param amount:
            Raw amount for a single asset vault, :py:class:`~harvest_defi.strategies.deposit.TokenAmount` list
            for a range vault.
        """
        return self.deposit_strategy.deposit(amount)

    def withdraw(self, shares: int) -> list[Token]:
        """Burn shares.

        :return:
            The underlying tokens we received
        """
        self.withdrawal_strategy.withdraw(shares)
        return self.tokens

    def get_price_per_full_share(self) -> int:
        """Underlying value of one share as 18 decimals fixed point."""
        return self.contract.functions.getPricePerFullShare().call()

    def fetch_redeemable(self, address: HexAddress | str) -> int:
        """How much of the underlying the shares of ``address`` are worth, in raw units."""
        shares = self.balance_of(address)
        return shares * self.get_price_per_full_share() // 10**PRICE_PER_FULL_SHARE_DECIMALS

    def convert_to_decimals(self, raw_amount: int) -> Decimal:
        """Convert raw share units to decimals."""
        return Decimal(raw_amount) / Decimal(10**self.decimals)


class Vaults:
    """All Harvest vaults on one chain.

    - Symbol lookups are case-insensitive, the first listed vault wins

    - Address lookups are exact: use the address as the catalog or :py:attr:`HarvestVault.address` gives it
    """

    def __init__(self, vaults: Iterable[HarvestVault]):
        self.vaults: list[HarvestVault] = list(vaults)
        self.by_symbol: dict[str, HarvestVault] = {}
        self.by_address: dict[str, HarvestVault] = {}
        for vault in self.vaults:
            if vault.symbol:
                self.by_symbol.setdefault(vault.symbol.lower(), vault)
            self.by_address.setdefault(vault.catalog_address, vault)
            self.by_address.setdefault(vault.address, vault)

    def __repr__(self):
        return f"<Vaults {len(self.vaults)} vaults>"

    def __len__(self):
        return len(self.vaults)

    def __iter__(self) -> Iterator[HarvestVault]:
        return iter(self.vaults)

    def find_by_symbol(self, symbol: str) -> HarvestVault:
        """Get a vault by its catalog name, any case.

        :raise InvalidVaultNameError:
            No such vault
        """
        vault = self.by_symbol.get(symbol.lower())
        if vault is None:
            raise InvalidVaultNameError(symbol, f"Could not find vault by name {symbol}")
        return vault

    find_by_name = find_by_symbol

    def find_by_address(self, address: HexAddress | str) -> HarvestVault:
        """Get a vault by its address.

        :raise InvalidVaultAddressError:
            No such vault
        """
        vault = self.by_address.get(address)
        if vault is None:
            raise InvalidVaultAddressError(address, f"Could not find vault by address {address}")
        return vault

    def find_by_tokens(self, *tokens: Token) -> list[HarvestVault]:
        """Get all vaults with exactly these underlying tokens, in any order.

        .. code-block:: python

            weth = sdk.tokens().find_by_symbol("WETH")
            usdc = sdk.tokens().find_by_symbol("USDC")
            range_vaults = sdk.vaults().find_by_tokens(weth, usdc)

        :raise InvalidVaultTokensError:
            No vault matches
        """
        wanted = {t.address_lower for t in tokens}
        matches = [v for v in self.vaults if len(v.tokens) == len(tokens) and {t.address_lower for t in v.tokens} == wanted]
        if not matches:
            raise InvalidVaultTokensError(tokens, f"Could not find vaults for tokens {[t.symbol for t in tokens]}")
        return matches

    def find_by_pool(self, pool: "HarvestPool") -> HarvestVault:
        """Get the vault whose shares a pool accepts.

        :raise InvalidVaultPoolError:
            The pool collateral is not a vault we know
        """
        collateral = pool.collateral_address.lower()
        for vault in self.vaults:
            if vault.address.lower() == collateral:
                return vault
        raise InvalidVaultPoolError(pool.name, f"Could not find vault for pool {pool.name}, collateral {pool.collateral_address}")
