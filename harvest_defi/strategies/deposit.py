"""Vault deposit strategies.

- Single asset vaults (fTokens) take one raw amount of their underlying token

- Uniswap v3 range vaults take an amount of both pair tokens, see :py:class:`RangeDeposit`
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TypeAlias

from web3.contract import Contract
from web3.types import TxReceipt

from harvest_defi.connection import Connection
from harvest_defi.constants import RANGE_DEPOSIT_PRECISION
from harvest_defi.errors import InvalidTokenAmountsError
from harvest_defi.token import Token

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TokenAmount:
    """Raw amount of a specific token.

    Used to give per-token amounts for vaults with more than one underlying token.
    """

    token: Token

    #: Raw token units
    amount: int

    def __repr__(self):
        return f"<TokenAmount {self.amount} {self.token.symbol or self.token.address}>"


#: A raw amount, or an amount per token
DepositAmount: TypeAlias = int | list[TokenAmount]


def get_token_portion(amount: DepositAmount, token: Token) -> int:
    """How much of ``token`` a deposit amount asks for.

    - A bare raw amount applies to every token

    - In a list, the matching entry applies and unlisted tokens get zero
    """
    if isinstance(amount, int):
        return amount
    for token_amount in amount:
        if token_amount.token == token:
            return token_amount.amount
    return 0


class DepositStrategy(ABC):
    """How a vault takes in its underlying tokens."""

    def __init__(self, contract: Contract, connection: Connection):
        self.contract = contract
        self.connection = connection

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.contract.address}>"

    @abstractmethod
    def deposit(self, amount: DepositAmount) -> TxReceipt:
        """Send the deposit transaction and wait for the receipt."""


class SingleAssetDeposit(DepositStrategy):
    """Deposit with ``deposit(uint256)``."""

    def __init__(self, contract: Contract, connection: Connection, token: Token):
        super().__init__(contract, connection)
        self.token = token

    def deposit(self, amount: DepositAmount) -> TxReceipt:
        if not isinstance(amount, int):
            matching = [a for a in amount if a.token == self.token]
            if not matching:
                raise InvalidTokenAmountsError(f"No amount given for {self.token.symbol} at {self.token.address}")
            amount = matching[0].amount

        logger.info("Depositing %d to vault %s", amount, self.contract.address)
        return self.connection.transact(self.contract.functions.deposit(amount))


class RangeDeposit(DepositStrategy):
    """Deposit both tokens of a Uniswap v3 range vault.

    - The vault tells its pair tokens with ``token0()`` and ``token1()``

    - An amount for both must be given: a one-sided deposit into a two-sided position is not defined

    - The current pool price ``getSqrtPriceX96()`` is passed along with a fixed precision placeholder
    """

    signature = "deposit(uint256,uint256,bool,bool,uint256,uint256)"

    def deposit(self, amount: DepositAmount) -> TxReceipt:
        if isinstance(amount, int):
            raise InvalidTokenAmountsError(f"Vault {self.contract.address} needs a TokenAmount for both of its tokens, got a single amount {amount}")

        token0 = self.contract.functions.token0().call().lower()
        token1 = self.contract.functions.token1().call().lower()
        amounts = {a.token.address_lower: a.amount for a in amount}
        if not (token0 in amounts and token1 in amounts):
            raise InvalidTokenAmountsError(f"Vault {self.contract.address} needs amounts for both {token0} and {token1}, got {amount}")

        sqrt_price = self.contract.functions.getSqrtPriceX96().call()

        logger.info(
            "Depositing %d token0 and %d token1 to range vault %s at sqrt price %d",
            amounts[token0],
            amounts[token1],
            self.contract.address,
            sqrt_price,
        )

        func = self.contract.get_function_by_signature(self.signature)
        bound_call = func(amounts[token0], amounts[token1], False, False, sqrt_price, RANGE_DEPOSIT_PRECISION)
        return self.connection.transact(bound_call)
