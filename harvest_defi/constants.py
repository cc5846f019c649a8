"""Harvest Finance API endpoints and protocol constants."""

import datetime

#: Harvest data API, token and vault descriptions.
#:
#: Payload is ``{"data": {<name>: {"chain": ..., "tokenAddress": ..., "vaultAddress": ..., "decimals": ...}}}``.
HARVEST_TOKENS_URL = "https://harvest.finance/data/tokens.json"

#: Harvest data API, reward pool descriptions.
#:
#: Payload is ``{"data": [{"chain": ..., "contractAddress": ..., "collateralAddress": ..., "id": ..., "rewardTokens": [...]}]}``.
HARVEST_POOLS_URL = "https://harvest.finance/data/pools.json"

#: ``getPricePerFullShare()`` is a fixed point number with this many decimals
PRICE_PER_FULL_SHARE_DECIMALS = 18

#: The last argument of the Uniswap v3 vault ``deposit(uint256,uint256,bool,bool,uint256,uint256)``.
#:
#: Fixed placeholder, we do not tune this.
RANGE_DEPOSIT_PRECISION = 10

#: The last argument of the Uniswap v3 vault ``withdraw(uint256,bool,bool,uint256,uint256)``.
#:
#: TODO: Bound this tolerance against the pool price so withdrawals neither revert nor take excessive slippage.
RANGE_WITHDRAW_TOLERANCE = 1

#: How long we wait for Harvest data API
DEFAULT_HTTP_TIMEOUT = datetime.timedelta(seconds=30)

#: How long we wait for a transaction receipt
DEFAULT_CONFIRMATION_TIMEOUT = datetime.timedelta(minutes=5)

#: Thread pool size for per-token and per-vault fan out reads
DEFAULT_MAX_WORKERS = 8
