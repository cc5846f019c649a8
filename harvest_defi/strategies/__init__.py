"""Deposit and withdrawal mechanics of different Harvest vault kinds.

A vault gets its strategy pair once when it is created, see :py:func:`create_strategies`.
"""

from web3.contract import Contract

from harvest_defi.connection import Connection
from harvest_defi.strategies.deposit import DepositStrategy, RangeDeposit, SingleAssetDeposit
from harvest_defi.strategies.withdrawal import RangeWithdrawal, SingleAssetWithdrawal, WithdrawalStrategy
from harvest_defi.token import Token


def create_strategies(
    contract: Contract,
    connection: Connection,
    tokens: list[Token],
) -> tuple[DepositStrategy, WithdrawalStrategy]:
    """Pick deposit and withdrawal strategies for a vault.

    - One underlying token: plain fToken vault

    - More underlying tokens: Uniswap v3 range vault
    """
    assert len(tokens) > 0, f"Vault {contract.address} has no underlying tokens"
    if len(tokens) == 1:
        return SingleAssetDeposit(contract, connection, tokens[0]), SingleAssetWithdrawal(contract, connection)
    return RangeDeposit(contract, connection), RangeWithdrawal(contract, connection)
