"""List Harvest vault and pool positions of an address.

- Reads the Harvest data API and the balance of every vault and pool on the chain

- Address is the one of ``PRIVATE_KEY``, or ``ADDRESS`` for a read-only listing

Usage:

.. code-block:: shell

    export JSON_RPC_ETHEREUM=...
    export ADDRESS=0x...
    python scripts/harvest/my-vaults.py
"""

import os

from harvest_defi.chain import Chain, create_web3_for_chain
from harvest_defi.connection import Connection
from harvest_defi.sdk import HarvestSDK
from harvest_defi.utils import setup_console_logging, shorten_address

setup_console_logging(default_log_level="info")

chain_id = int(os.environ.get("CHAIN_ID", Chain.ethereum))
web3 = create_web3_for_chain(chain_id)
print(f"Connected to chain {web3.eth.chain_id}, the latest block is {web3.eth.block_number:,}")

private_key = os.environ.get("PRIVATE_KEY")
if private_key:
    connection = Connection.from_private_key(web3, private_key)
    address = connection.address
else:
    address = os.environ.get("ADDRESS")
    assert address, "Set PRIVATE_KEY or ADDRESS environment variable"
    connection = Connection(web3)

sdk = HarvestSDK(connection, chain_id=chain_id)

print(f"Harvest has {len(sdk.vaults())} vaults and {len(sdk.pools())} pools on chain {chain_id}")

print(f"Vault shares of {address}:")
for vault, raw_balance, amount in sdk.my_vaults(address):
    redeemable = vault.fetch_redeemable(address)
    underlying = vault.underlying()
    print(f"  {vault.symbol:<30} {shorten_address(vault.address)} {amount:,.6f} shares, redeemable {underlying.convert_to_decimals(redeemable):,.6f} {underlying.symbol}")

print(f"Staked in pools:")
for pool, raw_balance in sdk.my_pools(address):
    earned = pool.earned(address)
    print(f"  {pool.name:<30} {shorten_address(pool.address)} {raw_balance:,} staked, earned {earned.token.convert_to_decimals(earned.amount):,.6f} {earned.token.symbol}")
