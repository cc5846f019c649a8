"""Vault withdrawal strategies."""

import logging
from abc import ABC, abstractmethod

from web3.contract import Contract
from web3.types import TxReceipt

from harvest_defi.connection import Connection
from harvest_defi.constants import RANGE_WITHDRAW_TOLERANCE

logger = logging.getLogger(__name__)


class WithdrawalStrategy(ABC):
    """How a vault burns shares and gives back its underlying tokens."""

    def __init__(self, contract: Contract, connection: Connection):
        self.contract = contract
        self.connection = connection

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.contract.address}>"

    @abstractmethod
    def withdraw(self, shares: int) -> TxReceipt:
        """Burn raw ``shares``, wait for the receipt."""


class SingleAssetWithdrawal(WithdrawalStrategy):
    """Withdraw with ``withdraw(uint256)``."""

    def withdraw(self, shares: int) -> TxReceipt:
        logger.info("Withdrawing %d shares from vault %s", shares, self.contract.address)
        return self.connection.transact(self.contract.functions.withdraw(shares))


class RangeWithdrawal(WithdrawalStrategy):
    """Withdraw both tokens of a Uniswap v3 range vault at the current pool price."""

    signature = "withdraw(uint256,bool,bool,uint256,uint256)"

    def withdraw(self, shares: int) -> TxReceipt:
        sqrt_price = self.contract.functions.getSqrtPriceX96().call()
        logger.info("Withdrawing %d shares from range vault %s at sqrt price %d", shares, self.contract.address, sqrt_price)
        func = self.contract.get_function_by_signature(self.signature)
        bound_call = func(shares, True, True, sqrt_price, RANGE_WITHDRAW_TOLERANCE)
        return self.connection.transact(bound_call)
