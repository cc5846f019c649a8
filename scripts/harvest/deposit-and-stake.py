"""Deposit to a Harvest vault and stake the shares.

- Approves the vault, deposits, approves the reward pool and stakes all shares

- Asks for confirmation before sending anything

Usage:

.. code-block:: shell

    export JSON_RPC_POLYGON=...
    export PRIVATE_KEY=0x...
    python scripts/harvest/deposit-and-stake.py WETH 0.01
"""

import os
import sys
from decimal import Decimal

from harvest_defi.chain import Chain, create_web3_for_chain
from harvest_defi.connection import Connection
from harvest_defi.sdk import HarvestSDK
from harvest_defi.utils import setup_console_logging

setup_console_logging(default_log_level="info")

assert len(sys.argv) == 3, f"Usage: {sys.argv[0]} <vault name> <amount>"
vault_name = sys.argv[1]
decimal_amount = Decimal(sys.argv[2])

private_key = os.environ.get("PRIVATE_KEY")
assert private_key is not None, "You must set PRIVATE_KEY environment variable"
assert private_key.startswith("0x"), "Private key must start with 0x hex prefix"

chain_id = int(os.environ.get("CHAIN_ID", Chain.polygon))
web3 = create_web3_for_chain(chain_id)
connection = Connection.from_private_key(web3, private_key)
sdk = HarvestSDK(connection, chain_id=chain_id)

vault = sdk.vaults().find_by_symbol(vault_name)
assert not vault.is_range_vault(), f"{vault.symbol} takes two tokens, this script deposits one"
underlying = vault.underlying()
raw_amount = underlying.convert_to_raw(decimal_amount)

print(f"Your balance is {underlying.convert_to_decimals(underlying.balance_of(connection.address))} {underlying.symbol}")
print(f"Confirm depositing {decimal_amount} {underlying.symbol} to {vault.symbol} at {vault.address} and staking the shares")
confirm = input("Ok [y/n]?")
if not confirm.lower().startswith("y"):
    print("Aborted")
    sys.exit(1)

pool = sdk.deposit_and_stake(vault, raw_amount)
print(f"Staked {pool.balance_of(connection.address):,} shares in pool {pool.name}")
