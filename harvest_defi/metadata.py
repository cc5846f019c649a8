"""Harvest data API.

Harvest publishes its tokens, vaults and reward pools as JSON files:

- ``tokens.json``: ``{"data": {name: {chain, tokenAddress, decimals, symbol, vaultAddress}}}``.
  An entry with ``vaultAddress`` is a vault, ``tokenAddress`` is then its underlying.
  ``tokenAddress`` is a list for Uniswap v3 range vaults.

- ``pools.json``: ``{"data": [{chain, contractAddress, collateralAddress, id, rewardTokens}]}``

The files cover all chains. The ``build_*`` functions here take the entries of one chain
and turn them to catalog objects. Broken entries are skipped, never raised.
"""

import datetime
import logging
from typing import Iterable, TypedDict

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from harvest_defi.connection import Connection
from harvest_defi.constants import DEFAULT_HTTP_TIMEOUT, HARVEST_POOLS_URL, HARVEST_TOKENS_URL
from harvest_defi.pool import HarvestPool, Pools
from harvest_defi.token import Token, create_token, fetch_token
from harvest_defi.tokens import Tokens
from harvest_defi.vault import HarvestVault, Vaults

logger = logging.getLogger(__name__)


class HarvestTokenEntry(TypedDict, total=False):
    """One entry in ``tokens.json``."""

    #: Chain id as a string, e.g. ``"1"``
    chain: str
    tokenAddress: str | list[str]
    decimals: str | int
    symbol: str
    vaultAddress: str


class HarvestPoolEntry(TypedDict, total=False):
    """One entry in ``pools.json``."""

    chain: str
    contractAddress: str
    collateralAddress: str
    id: str
    rewardTokens: list[str]


def _fetch_data(url: str, timeout: datetime.timedelta) -> dict | list:
    logger.info("Fetching Harvest metadata from %s", url)
    response = requests.get(url, timeout=timeout.total_seconds())
    response.raise_for_status()
    data = response.json()["data"]
    logger.info("Got %d Harvest metadata entries from %s", len(data), url)
    return data


def fetch_harvest_tokens(
    url: str = HARVEST_TOKENS_URL,
    timeout: datetime.timedelta = DEFAULT_HTTP_TIMEOUT,
) -> dict[str, HarvestTokenEntry]:
    """Download the token and vault entries of all chains.

    :raise requests.RequestException:
        HTTP errors propagate
    """
    return _fetch_data(url, timeout)


def fetch_harvest_pools(
    url: str = HARVEST_POOLS_URL,
    timeout: datetime.timedelta = DEFAULT_HTTP_TIMEOUT,
) -> list[HarvestPoolEntry] | dict[str, HarvestPoolEntry]:
    """Download the reward pool entries of all chains.

    :raise requests.RequestException:
        HTTP errors propagate
    """
    return _fetch_data(url, timeout)


def is_on_chain(entry: dict, chain_id: int) -> bool:
    """Does a metadata entry belong to a chain.

    ``chain`` may be a string or an int.
    """
    try:
        return int(entry["chain"]) == chain_id
    except (KeyError, TypeError, ValueError):
        return False


def _iterate_pool_entries(data: list | dict) -> Iterable[tuple[str | None, dict]]:
    if isinstance(data, dict):
        return data.items()
    return ((None, entry) for entry in data)


def build_tokens(
    data: dict[str, HarvestTokenEntry],
    chain_id: int,
    connection: Connection,
) -> Tokens:
    """Create the token catalog of one chain.

    - Entries without ``tokenAddress`` or ``decimals`` are skipped

    - Entries with a list of addresses are Uniswap v3 positions and skipped
    """
    tokens = []
    for name, entry in data.items():
        if not is_on_chain(entry, chain_id):
            continue

        address = entry.get("tokenAddress")
        if not address or "decimals" not in entry:
            logger.debug("Skipping token %s, no address or decimals", name)
            continue

        if isinstance(address, list):
            logger.debug("Skipping token %s, multi-address position %s", name, address)
            continue

        if not Web3.is_address(address):
            logger.debug("Skipping token %s, bad address %s", name, address)
            continue

        token = create_token(
            connection,
            chain_id,
            address,
            decimals=int(entry["decimals"]),
            symbol=entry.get("symbol") or name,
            name=name,
        )
        tokens.append(token)

    logger.info("Built %d tokens for chain %d", len(tokens), chain_id)
    return Tokens(tokens)


def _resolve_token(tokens: Tokens, connection: Connection, chain_id: int, address: str) -> Token:
    token = tokens.get_by_address(address)
    if token is None:
        token = fetch_token(connection, address, chain_id=chain_id)
    return token


def build_vaults(
    data: dict[str, HarvestTokenEntry],
    chain_id: int,
    connection: Connection,
    tokens: Tokens,
) -> Vaults:
    """Create the vault catalog of one chain.

    - Entries without ``vaultAddress`` are plain tokens and skipped

    - Underlying tokens are looked up from ``tokens``, the rest are read from the chain.
      A vault whose underlying cannot be read is skipped.
    """
    vaults = []
    for name, entry in data.items():
        if not is_on_chain(entry, chain_id):
            continue

        vault_address = entry.get("vaultAddress")
        token_addresses = entry.get("tokenAddress")
        if not vault_address or not token_addresses:
            logger.debug("Skipping %s, not a vault", name)
            continue

        if isinstance(token_addresses, str):
            token_addresses = [token_addresses]

        if not all(Web3.is_address(a) for a in [vault_address, *token_addresses]):
            logger.debug("Skipping vault %s, bad address in %s %s", name, vault_address, token_addresses)
            continue

        try:
            underlying = [_resolve_token(tokens, connection, chain_id, a) for a in token_addresses]
        except (Web3Exception, ValueError) as e:
            logger.warning("Skipping vault %s at %s, could not read underlying tokens %s: %s", name, vault_address, token_addresses, e)
            continue

        vault = HarvestVault(
            connection,
            chain_id,
            vault_address,
            tokens=underlying,
            decimals=int(entry.get("decimals", 18)),
            symbol=name,
        )
        vaults.append(vault)

    logger.info("Built %d vaults for chain %d", len(vaults), chain_id)
    return Vaults(vaults)


def build_pools(
    data: list[HarvestPoolEntry] | dict[str, HarvestPoolEntry],
    chain_id: int,
    connection: Connection,
) -> Pools:
    """Create the reward pool catalog of one chain.

    ``pools.json`` has been served both as a list and as a map, both are accepted.
    """
    pools = []
    for key, entry in _iterate_pool_entries(data):
        if not is_on_chain(entry, chain_id):
            continue

        address = entry.get("contractAddress")
        collateral = entry.get("collateralAddress")
        name = entry.get("id") or key
        if not address or not collateral:
            logger.debug("Skipping pool %s, no contract or collateral address", name)
            continue

        if not (Web3.is_address(address) and Web3.is_address(collateral)):
            logger.debug("Skipping pool %s, bad address %s %s", name, address, collateral)
            continue

        pool = HarvestPool(
            connection,
            chain_id,
            address,
            collateral_address=collateral,
            name=name,
            rewards=entry.get("rewardTokens") or [],
        )
        pools.append(pool)

    logger.info("Built %d pools for chain %d", len(pools), chain_id)
    return Pools(pools)
