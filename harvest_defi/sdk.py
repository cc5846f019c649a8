"""Harvest Finance SDK.

:py:class:`HarvestSDK` ties the catalogs and the vault and pool contracts together
and checks balances and allowances before any transaction is sent.

Example:

.. code-block:: python

    from harvest_defi.chain import create_web3_for_chain, Chain
    from harvest_defi.connection import Connection
    from harvest_defi.sdk import HarvestSDK

    web3 = create_web3_for_chain(Chain.ethereum)
    sdk = HarvestSDK(Connection.from_private_key(web3, os.environ["PRIVATE_KEY"]))

    vault = sdk.vaults().find_by_symbol("WETH")
    pool = sdk.deposit_and_stake(vault, 10**18)

    # Later
    underlying_tokens, reward_token = sdk.unstake_and_withdraw(pool, pool.balance_of(sdk.connection.address))

A multi-step workflow has no rollback: if a later step fails, the earlier transactions stay.
"""

import datetime
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from decimal import Decimal
from typing import Callable, Iterable, NamedTuple, TypeVar

from eth_typing import HexAddress
from web3.types import TxReceipt

from harvest_defi.chain import create_web3_for_chain
from harvest_defi.connection import Connection
from harvest_defi.constants import DEFAULT_HTTP_TIMEOUT, DEFAULT_MAX_WORKERS, HARVEST_POOLS_URL, HARVEST_TOKENS_URL
from harvest_defi.errors import (
    HarvestConfigurationError,
    InsufficientApprovalError,
    InsufficientBalanceError,
    InsufficientPoolBalanceError,
    InsufficientVaultBalanceError,
    InvalidAmountError,
    InvalidTokenAmountsError,
    ReadOnlyConnection,
)
from harvest_defi.metadata import build_pools, build_tokens, build_vaults, fetch_harvest_pools, fetch_harvest_tokens
from harvest_defi.pool import EarnedAmount, HarvestPool, Pools
from harvest_defi.strategies.deposit import DepositAmount, get_token_portion
from harvest_defi.token import Token
from harvest_defi.tokens import Tokens
from harvest_defi.vault import HarvestVault, Vaults

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class TokenBalance(NamedTuple):
    token: Token

    #: Raw balance
    balance: int

    #: Balance in token decimals
    amount: Decimal


class VaultBalance(NamedTuple):
    vault: HarvestVault

    #: Raw share balance
    balance: int

    #: Share balance in vault decimals
    amount: Decimal


class PoolBalance(NamedTuple):
    pool: HarvestPool

    #: Raw staked balance
    balance: int


def has_enough(balance: int, amount: int) -> bool:
    """The balance check used before every transaction."""
    return balance >= amount and amount > 0


class HarvestSDK:
    """Discover Harvest vaults and pools and move funds in and out of them.

    - Catalogs are downloaded on the first access and kept until :py:meth:`clear_cache`

    - Per-token checks and approvals, and portfolio balance reads, run in a thread pool.
      All of them finish before the first failure is raised.
    """

    def __init__(
        self,
        connection: Connection | None = None,
        chain_id: int | None = None,
        tokens_url: str = HARVEST_TOKENS_URL,
        pools_url: str = HARVEST_POOLS_URL,
        http_timeout: datetime.timedelta = DEFAULT_HTTP_TIMEOUT,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        """
        :param connection:
            Web3 connection and the account we act as.
            If not given, a read-only connection to ``chain_id`` is created.

        :param chain_id:
            The chain whose vaults and pools we use.
            If not given, read from ``connection``.

        :raise HarvestConfigurationError:
            Neither given
        """
        if connection is None and chain_id is None:
            raise HarvestConfigurationError("Give a connection or a chain id")

        if connection is None:
            connection = Connection(create_web3_for_chain(chain_id))

        self.connection = connection
        self.chain_id = int(chain_id) if chain_id is not None else connection.chain_id
        self.tokens_url = tokens_url
        self.pools_url = pools_url
        self.http_timeout = http_timeout
        self.max_workers = max_workers

        self._token_data: dict | None = None
        self._tokens: Tokens | None = None
        self._vaults: Vaults | None = None
        self._pools: Pools | None = None

    def __repr__(self):
        return f"<HarvestSDK chain {self.chain_id} {self.connection}>"

    #
    # Catalogs
    #

    def _fetch_token_data(self) -> dict:
        if self._token_data is None:
            self._token_data = fetch_harvest_tokens(self.tokens_url, self.http_timeout)
        return self._token_data

    def tokens(self) -> Tokens:
        """All tokens Harvest lists on our chain."""
        if self._tokens is None:
            self._tokens = build_tokens(self._fetch_token_data(), self.chain_id, self.connection)
        return self._tokens

    def vaults(self) -> Vaults:
        """All vaults on our chain."""
        if self._vaults is None:
            self._vaults = build_vaults(self._fetch_token_data(), self.chain_id, self.connection, self.tokens())
        return self._vaults

    def pools(self) -> Pools:
        """All reward pools on our chain."""
        if self._pools is None:
            data = fetch_harvest_pools(self.pools_url, self.http_timeout)
            self._pools = build_pools(data, self.chain_id, self.connection)
        return self._pools

    def clear_cache(self):
        """Forget the catalogs, next access downloads them again."""
        self._token_data = None
        self._tokens = None
        self._vaults = None
        self._pools = None

    #
    # Portfolio
    #

    def my_tokens(self, address: HexAddress | str | None = None) -> list[TokenBalance]:
        """Listed tokens ``address`` holds.

        :param address:
            Defaults to our own address

        :raise MissingAddressError:
            No address given on a read-only connection
        """
        address = self.connection.resolve_address(address)
        tokens = list(self.tokens())
        balances = self._run_concurrently(lambda t: t.balance_of(address), tokens)
        return [TokenBalance(t, b, t.convert_to_decimals(b)) for t, b in zip(tokens, balances) if b > 0]

    def my_vaults(self, address: HexAddress | str | None = None) -> list[VaultBalance]:
        """Vaults ``address`` holds shares of."""
        address = self.connection.resolve_address(address)
        vaults = list(self.vaults())
        balances = self._run_concurrently(lambda v: v.balance_of(address), vaults)
        return [VaultBalance(v, b, v.convert_to_decimals(b)) for v, b in zip(vaults, balances) if b > 0]

    def my_pools(self, address: HexAddress | str | None = None) -> list[PoolBalance]:
        """Pools ``address`` has staked in."""
        address = self.connection.resolve_address(address)
        pools = list(self.pools())
        balances = self._run_concurrently(lambda p: p.balance_of(address), pools)
        return [PoolBalance(p, b) for p, b in zip(pools, balances) if b > 0]

    #
    # Vault workflows
    #

    def approve(self, vault: HarvestVault, amount: DepositAmount) -> list[TxReceipt]:
        """Approve a vault to take our underlying tokens.

        :param amount:
            A raw amount approves every underlying token for the same amount.
            A :py:class:`~harvest_defi.strategies.deposit.TokenAmount` list gives each token its own amount.

        :raise InsufficientBalanceError:
            We do not hold the amount of some token, or its amount is zero.
            Approvals of the other tokens may already have been sent.

        :return:
            Approval receipts in the order of the vault tokens
        """
        owner = self._get_signer_address()

        def _approve(token: Token) -> TxReceipt:
            portion = get_token_portion(amount, token)
            balance = token.balance_of(owner)
            if not has_enough(balance, portion):
                raise InsufficientBalanceError(f"You do not own enough {token.symbol}. You have {balance} and want to approve {portion} for vault {vault.symbol}")
            return token.approve(vault.address, portion)

        return self._run_concurrently(_approve, vault.tokens)

    def deposit(self, vault: HarvestVault, amount: DepositAmount) -> TxReceipt:
        """Deposit into a vault we have approved.

        Allowance and balance of every underlying token are checked before the deposit transaction.

        :raise InvalidAmountError:
            Zero or negative amount

        :raise InvalidTokenAmountsError:
            A range vault did not get an amount for both of its tokens

        :raise InsufficientApprovalError:
            Vault is not approved for the amount

        :raise InsufficientBalanceError:
            We do not hold the amount
        """
        owner = self._get_signer_address()
        self._check_deposit_amount(vault, amount)

        def _check(token: Token):
            portion = get_token_portion(amount, token)
            allowance = token.allowance(owner, vault.address)
            if allowance < portion:
                raise InsufficientApprovalError(f"Vault {vault.symbol} is approved for {allowance} {token.symbol}, you want to deposit {portion}")
            balance = token.balance_of(owner)
            if not has_enough(balance, portion):
                raise InsufficientBalanceError(f"You do not own enough {token.symbol}. You have {balance} and want to deposit {portion}")

        self._run_concurrently(_check, vault.tokens)
        return vault.deposit(amount)

    def withdraw(self, vault: HarvestVault, amount: int) -> list[Token]:
        """Burn vault shares for underlying tokens.

        :raise InvalidAmountError:
            Zero amount or more than our share balance

        :return:
            The underlying tokens we received
        """
        owner = self._get_signer_address()
        balance = vault.balance_of(owner)
        if not has_enough(balance, amount):
            raise InvalidAmountError(f"Cannot withdraw {amount} shares of vault {vault.symbol}, balance is {balance}")
        return vault.withdraw(amount)

    #
    # Pool workflows
    #

    def stake(self, pool: HarvestPool, amount: int) -> TxReceipt:
        """Stake vault shares in a pool we have approved.

        :raise InvalidVaultPoolError:
            The pool collateral is not a listed vault

        :raise InsufficientVaultBalanceError:
            Not enough shares
        """
        owner = self._get_signer_address()
        vault = self.vaults().find_by_pool(pool)
        balance = vault.balance_of(owner)
        if not has_enough(balance, amount):
            raise InsufficientVaultBalanceError(f"You don't hold enough balance in the vault {vault.symbol} at {vault.address}: have {balance}, want to stake {amount}")
        return pool.stake(amount)

    def unstake(self, pool: HarvestPool, amount: int) -> HarvestVault:
        """Unstake vault shares from a pool.

        :raise InsufficientPoolBalanceError:
            Not enough staked

        :return:
            The vault whose shares we got back
        """
        owner = self._get_signer_address()
        vault = self.vaults().find_by_pool(pool)
        balance = pool.balance_of(owner)
        if not has_enough(balance, amount):
            raise InsufficientPoolBalanceError(f"You don't hold enough balance in the pool {pool.name} at {pool.address}: have {balance}, want to unstake {amount}")
        pool.withdraw(amount)
        return vault

    def earned(self, pool: HarvestPool, address: HexAddress | str | None = None) -> EarnedAmount:
        """Unclaimed rewards in a pool."""
        return pool.earned(self.connection.resolve_address(address))

    def claim_rewards(self, pool: HarvestPool) -> Token:
        """Claim rewards from a pool.

        :return:
            The reward token
        """
        self._get_signer_address()
        return pool.claim_rewards()

    #
    # Multi-step workflows
    #

    def deposit_and_stake(self, vault: HarvestVault, amount: DepositAmount) -> HarvestPool:
        """Go from underlying tokens to staked vault shares.

        Approve the vault, deposit, approve the pool for all of our shares and stake them.
        Shares we held before the deposit get staked too.

        :raise InvalidPoolVaultError:
            The vault has no reward pool. Raised before any transaction.

        :return:
            The pool we staked in
        """
        owner = self._get_signer_address()
        pool = self.pools().find_by_vault(vault)

        self.approve(vault, amount)
        self.deposit(vault, amount)

        shares = vault.balance_of(owner)
        logger.info("Deposited to %s, staking all %d shares to pool %s", vault.symbol, shares, pool.name)
        vault.approve(pool.address, shares)
        self.stake(pool, shares)
        return pool

    def unstake_and_withdraw(self, pool: HarvestPool, amount: int) -> tuple[list[Token], Token]:
        """Go from staked vault shares to underlying tokens.

        Unstake, claim rewards and withdraw. All of our vault shares are withdrawn,
        including the ones we held before unstaking.

        :return:
            Tuple (underlying tokens, reward token)
        """
        owner = self._get_signer_address()
        vault = self.unstake(pool, amount)
        reward_token = pool.claim_rewards()

        shares = vault.balance_of(owner)
        logger.info("Unstaked from %s, withdrawing all %d shares of vault %s", pool.name, shares, vault.symbol)
        underlying = self.withdraw(vault, shares)
        return underlying, reward_token

    #
    # Internals
    #

    def _get_signer_address(self) -> HexAddress:
        if not self.connection.can_sign():
            raise ReadOnlyConnection("The connection has no account to send transactions from")
        return self.connection.address

    def _check_deposit_amount(self, vault: HarvestVault, amount: DepositAmount):
        if isinstance(amount, int):
            if amount <= 0:
                raise InvalidAmountError(f"Deposit amount must be positive, got {amount}")
            if vault.is_range_vault():
                raise InvalidTokenAmountsError(f"Range vault {vault.symbol} needs a TokenAmount for both of its tokens")
            return

        if not amount or any(a.amount <= 0 for a in amount):
            raise InvalidAmountError(f"Deposit amounts must be positive, got {amount}")

        given = {a.token for a in amount}
        missing = [t for t in vault.tokens if t not in given]
        if missing:
            raise InvalidTokenAmountsError(f"Vault {vault.symbol} needs amounts for {[t.symbol for t in missing]}, got {amount}")

    def _run_concurrently(self, func: Callable[[T], R], items: Iterable[T]) -> list[R]:
        """Run ``func`` for every item in a thread pool.

        Wait all calls to finish, then raise the first exception in the order of ``items``.
        """
        items = list(items)
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            futures = [executor.submit(func, item) for item in items]
            wait(futures)
        return [f.result() for f in futures]
