"""Chain specific configuration.

- Chains where Harvest Finance has deployments

- Where to find a JSON-RPC endpoint for a chain
"""

import enum
import logging
import os

from web3 import HTTPProvider, Web3

logger = logging.getLogger(__name__)


class Chain(enum.IntEnum):
    """EVM chain ids Harvest data API uses in its ``chain`` field."""

    ethereum = 1
    binance = 56
    polygon = 137
    base = 8453
    arbitrum = 42161
    zksync = 324


#: Manually maintained shorthand names for different EVM chains
#:
#: Used to map chain to ``JSON_RPC_<NAME>`` environment variables.
CHAIN_NAMES = {
    1: "Ethereum",
    56: "Binance",
    137: "Polygon",
    8453: "Base",
    42161: "Arbitrum",
    324: "ZKsync",
}

#: Public JSON-RPC endpoints we fall back to when no environment variable is set.
#:
#: Ethereum has no reliable public endpoint and always needs ``JSON_RPC_ETHEREUM``.
DEFAULT_JSON_RPC_URLS = {
    56: "https://bsc-dataseed.binance.org",
    137: "https://polygon-rpc.com/",
    8453: "https://mainnet.base.org",
    42161: "https://arb1.arbitrum.io/rpc",
}


def get_chain_name(chain_id: int) -> str:
    """Get chain name for a chain id.

    :return:
        Human readable name, or ``Unknown chain <id>``
    """
    return CHAIN_NAMES.get(chain_id, f"Unknown chain {chain_id}")


def get_json_rpc_env(chain_id: int) -> str:
    """Get the JSON-RPC URL environment variable based on the chain id.

    - Map chain id to a name and from there to environment variables.
    """
    chain_name = CHAIN_NAMES.get(chain_id)
    assert chain_name, f"CHAIN_NAMES not configured for chain {chain_id}"
    return f"JSON_RPC_{chain_name.upper()}"


def read_json_rpc_url(chain_id: int) -> str:
    """Read JSON-RPC URL for a chain.

    - Environment variable ``JSON_RPC_<CHAIN NAME>`` wins

    - Otherwise use a public endpoint from :py:data:`DEFAULT_JSON_RPC_URLS`

    :raise ValueError:
        If the environment variable is not set and we have no default for the chain.
    """
    assert isinstance(chain_id, int), f"Chain ID must be an integer: {type(chain_id)}"
    env_var = get_json_rpc_env(chain_id)
    json_rpc_url = os.environ.get(env_var)
    if json_rpc_url:
        return json_rpc_url

    json_rpc_url = DEFAULT_JSON_RPC_URLS.get(chain_id)
    if not json_rpc_url:
        raise ValueError(f"Environment variable {env_var} is not set for chain {chain_id}")
    return json_rpc_url


def create_web3_for_chain(chain_id: int, request_timeout: float = 30.0) -> Web3:
    """Create a read-only Web3 connection for a chain.

    - Connection is lazy; no RPC request is made here

    :param request_timeout:
        HTTP request timeout in seconds
    """
    json_rpc_url = read_json_rpc_url(chain_id)
    logger.info("Creating Web3 connection for chain %s (%d)", get_chain_name(chain_id), chain_id)
    return Web3(HTTPProvider(json_rpc_url, request_kwargs={"timeout": request_timeout}))
