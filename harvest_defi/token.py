"""ERC-20 tokens.

- :py:class:`Token` wraps an ERC-20 contract with the balance, allowance and approve primitives

- Balance reads never fail: Harvest token lists contain placeholder and stale addresses,
  and we rather show zero balance than blow up a portfolio listing
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

import cachetools
from eth_typing import HexAddress
from web3 import Web3
from web3.contract import Contract
from web3.types import TxReceipt

from harvest_defi.connection import Connection

logger = logging.getLogger(__name__)

#: By default we cache 1024 token details using LRU in the process memory.
#:
#: Maps ``{chain_id}-{address lower}`` to ``(symbol, decimals)``.
DEFAULT_TOKEN_CACHE = cachetools.LRUCache(1024)

#: ERC-20 ABI we bind tokens with
ERC20_ABI = "ERC20.json"


def fetch_balance_or_zero(contract: Contract, address: HexAddress | str) -> int:
    """Read ``balanceOf()`` and treat any failure as zero balance.

    - Contract not deployed at the address, a non-contract address or a broken node response
      all give zero

    :return:
        Raw balance
    """
    try:
        return contract.functions.balanceOf(Web3.to_checksum_address(address)).call()
    except Exception as e:
        logger.warning("balanceOf(%s) failed on %s, assuming zero balance: %s", address, contract.address, e)
        return 0


@dataclass(eq=False)
class Token:
    """ERC-20 token Python presentation.

    - Token is the same if it's on the same chain and has the same contract address,
      in any letter case

    - Amounts are raw token units, use :py:meth:`convert_to_decimals` for human readable values
    """

    #: The underlying ERC-20 contract proxy class instance
    contract: Contract

    #: Connection used to send approvals
    connection: Connection

    #: The EVM chain id where this token lives
    chain_id: int

    #: Number of decimals
    decimals: int

    #: Token symbol e.g. ``USDC``.
    #:
    #: Not unique.
    symbol: str | None = None

    #: Name of the token in Harvest data API, e.g. ``WETH`` or ``crvTricrypto``
    name: str | None = None

    def __eq__(self, other):
        if not isinstance(other, Token):
            return False
        return self.chain_id == other.chain_id and self.address_lower == other.address_lower

    def __hash__(self):
        return hash((self.chain_id, self.address_lower))

    def __repr__(self):
        return f"<Token {self.symbol or self.name} at {self.address}, {self.decimals} decimals, on chain {self.chain_id}>"

    @property
    def address(self) -> HexAddress:
        """Checksummed address of this token."""
        return self.contract.address

    @property
    def address_lower(self) -> str:
        """The address of this token, always lowercase."""
        return self.contract.address.lower()

    def convert_to_decimals(self, raw_amount: int) -> Decimal:
        """Convert raw token units to decimals.

        .. code-block:: python

            assert usdc.convert_to_decimals(1_000_000) == Decimal(1)
        """
        assert type(raw_amount) == int, f"Got {type(raw_amount)}, expected int: {raw_amount}"
        return Decimal(raw_amount) / Decimal(10**self.decimals)

    def convert_to_raw(self, decimal_amount: Decimal) -> int:
        """Convert decimalised token amount to raw uint256."""
        return int(decimal_amount * 10**self.decimals)

    def balance_of(self, address: HexAddress | str) -> int:
        """Get raw token balance of an address.

        Never raises, see :py:func:`fetch_balance_or_zero`.
        """
        return fetch_balance_or_zero(self.contract, address)

    def allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        """How much ``spender`` may move from ``owner``.

        Errors propagate.
        """
        return self.contract.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender),
        ).call()

    def approve(self, spender: HexAddress | str, amount: int) -> TxReceipt:
        """Approve ``spender`` to move ``amount`` raw units of this token and wait for the receipt."""
        assert type(amount) == int, f"Raw amount expected, got {type(amount)}"
        logger.info("Approving %s to spend %d %s", spender, amount, self.symbol or self.name)
        bound_call = self.contract.functions.approve(Web3.to_checksum_address(spender), amount)
        return self.connection.transact(bound_call)


def create_token(
    connection: Connection,
    chain_id: int,
    address: HexAddress | str,
    decimals: int,
    symbol: str | None = None,
    name: str | None = None,
) -> Token:
    """Wrap a token with known details, no RPC calls made."""
    contract = connection.get_contract(ERC20_ABI, address)
    return Token(
        contract=contract,
        connection=connection,
        chain_id=chain_id,
        decimals=int(decimals),
        symbol=symbol,
        name=name,
    )


def fetch_token(
    connection: Connection,
    address: HexAddress | str,
    chain_id: int | None = None,
    cache: cachetools.Cache | None = DEFAULT_TOKEN_CACHE,
) -> Token:
    """Read token details from on-chain data.

    - Used for tokens not listed in the Harvest data API, e.g. reward tokens and Uniswap v3 pair tokens

    - ``symbol()`` and ``decimals()`` are cached per chain and address

    :param chain_id:
        Give to avoid an extra RPC call
    """
    if chain_id is None:
        chain_id = connection.chain_id

    contract = connection.get_contract(ERC20_ABI, address)
    key = f"{chain_id}-{address.lower()}"

    if cache is not None and key in cache:
        symbol, decimals = cache[key]
    else:
        symbol = contract.functions.symbol().call()
        decimals = contract.functions.decimals().call()
        logger.debug("Fetched token details %s: %s, %d decimals", key, symbol, decimals)
        if cache is not None:
            cache[key] = (symbol, decimals)

    return Token(
        contract=contract,
        connection=connection,
        chain_id=chain_id,
        decimals=decimals,
        symbol=symbol,
        name=symbol,
    )


def reset_default_token_cache():
    """Purge the cached token details.

    Needed in tests where the same address is redeployed.
    """
    DEFAULT_TOKEN_CACHE.clear()
