"""Harvest reward pools.

Vault shares are staked in a reward pool to earn FARM or other reward tokens.
Each pool accepts the shares of exactly one vault, its collateral.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator

from eth_typing import HexAddress
from web3.contract import Contract
from web3.types import TxReceipt

from harvest_defi.connection import Connection
from harvest_defi.errors import InvalidPoolNameError, InvalidPoolVaultError
from harvest_defi.token import Token, fetch_balance_or_zero, fetch_token

if TYPE_CHECKING:
    from harvest_defi.vault import HarvestVault

logger = logging.getLogger(__name__)

#: ABI of NoMintRewardPool
POOL_ABI = "harvest/Pool.json"


@dataclass(slots=True, frozen=True)
class EarnedAmount:
    """Unclaimed rewards in a pool."""

    token: Token

    #: Raw amount
    amount: int


class HarvestPool:
    """One Harvest reward pool."""

    def __init__(
        self,
        connection: Connection,
        chain_id: int,
        address: HexAddress | str,
        collateral_address: HexAddress | str,
        name: str | None = None,
        rewards: list[str] | None = None,
    ):
        self.connection = connection
        self.chain_id = chain_id
        self.collateral_address = collateral_address
        self.name = name
        #: Reward token addresses, as the catalog lists them
        self.rewards = rewards or []
        self.contract: Contract = connection.get_contract(POOL_ABI, address)

    def __repr__(self):
        return f"<HarvestPool {self.name} at {self.address} on chain {self.chain_id}>"

    def __eq__(self, other):
        if not isinstance(other, HarvestPool):
            return False
        return self.chain_id == other.chain_id and self.address.lower() == other.address.lower()

    def __hash__(self):
        return hash((self.chain_id, self.address.lower()))

    @property
    def address(self) -> HexAddress:
        return self.contract.address

    def balance_of(self, address: HexAddress | str) -> int:
        """Raw staked balance of an address, zero if the read fails."""
        return fetch_balance_or_zero(self.contract, address)

    def stake(self, amount: int) -> TxReceipt:
        """Stake vault shares. The pool must be approved to move them."""
        logger.info("Staking %d to pool %s", amount, self.name)
        return self.connection.transact(self.contract.functions.stake(amount))

    def withdraw(self, amount: int) -> TxReceipt:
        """Unstake vault shares, rewards stay in the pool."""
        logger.info("Unstaking %d from pool %s", amount, self.name)
        return self.connection.transact(self.contract.functions.withdraw(amount))

    def exit(self) -> TxReceipt:
        """Unstake everything and claim rewards in one transaction."""
        logger.info("Exiting pool %s", self.name)
        return self.connection.transact(self.contract.functions.exit())

    def get_reward_token(self) -> Token:
        """Resolve the reward token from on-chain data."""
        reward_address = self.contract.functions.rewardToken().call()
        return fetch_token(self.connection, reward_address, chain_id=self.chain_id)

    def claim_rewards(self) -> Token:
        """Claim all rewards earned so far.

        :return:
            The reward token we received
        """
        logger.info("Claiming rewards from pool %s", self.name)
        self.connection.transact(self.contract.functions.getReward())
        return self.get_reward_token()

    def earned(self, address: HexAddress | str | None = None) -> EarnedAmount:
        """Unclaimed rewards of an address.

        :param address:
            Defaults to our own address
        """
        address = self.connection.resolve_address(address)
        amount = self.contract.functions.earned(address).call()
        return EarnedAmount(token=self.get_reward_token(), amount=amount)


class Pools:
    """All Harvest reward pools on one chain."""

    def __init__(self, pools: Iterable[HarvestPool]):
        self.pools: list[HarvestPool] = list(pools)
        self.by_name: dict[str, HarvestPool] = {}
        self.by_collateral: dict[str, HarvestPool] = {}
        for pool in self.pools:
            if pool.name:
                self.by_name.setdefault(pool.name.lower(), pool)
            self.by_collateral.setdefault(pool.collateral_address.lower(), pool)

    def __repr__(self):
        return f"<Pools {len(self.pools)} pools>"

    def __len__(self):
        return len(self.pools)

    def __iter__(self) -> Iterator[HarvestPool]:
        return iter(self.pools)

    def find_by_name(self, name: str) -> HarvestPool:
        """Get a pool by its catalog id, any case.

        :raise InvalidPoolNameError:
            No such pool
        """
        pool = self.by_name.get(name.lower())
        if pool is None:
            raise InvalidPoolNameError(name, f"Could not find pool by name {name}")
        return pool

    def find_by_vault(self, vault: "HarvestVault") -> HarvestPool:
        """Get the pool that accepts the shares of a vault.

        :raise InvalidPoolVaultError:
            The vault has no reward pool
        """
        pool = self.by_collateral.get(vault.address.lower())
        if pool is None:
            raise InvalidPoolVaultError(vault.symbol, f"Could not find pool for vault {vault.symbol} at {vault.address}")
        return pool
