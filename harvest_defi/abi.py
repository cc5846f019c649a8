"""ABI loading from the bundled ABI files.

Provides functions to load ABI files and construct :py:class:`web3.contract.Contract` types.
The results are cached for the speedup.

Bundled files live in ``harvest_defi/abi``:

- ``ERC20.json``: minimal ERC-20 interface
- ``harvest/Vault.json``: single-asset Harvest vault (fToken)
- ``harvest/UniV3Vault.json``: Harvest Uniswap v3 range vault
- ``harvest/Pool.json``: Harvest reward pool (NoMintRewardPool)
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Type, Union

from eth_typing import HexAddress
from web3 import Web3
from web3.contract.contract import Contract

# How big are our ABI and contract caches
_CACHE_SIZE = 512


@lru_cache(maxsize=_CACHE_SIZE)
def get_abi_by_filename(fname: str) -> list | dict:
    """Reads a bundled ABI file and returns it.

    Example::

        abi = get_abi_by_filename("harvest/Vault.json")

    Loaded ABI files are cached in in-process memory.

    :param fname:
        Path relative to ``harvest_defi/abi``
    """
    here = Path(__file__).resolve().parent
    abi_path = here / "abi" / Path(fname)
    with open(abi_path, "rt", encoding="utf-8") as f:
        abi = json.load(f)
    return abi


@lru_cache(maxsize=_CACHE_SIZE)
def get_contract(web3: Web3, fname: str) -> Type[Contract]:
    """Get Contract proxy class from an ABI JSON file.

    - ABI file can be a solc compiling artifact or Etherscan copy-pasted ABI list

    - Any results are cached. Web3 connection is part of the cache key.

    Example:

    .. code-block:: python

        Vault = get_contract(web3, "harvest/Vault.json")

    :return:
        Contract proxy class
    """
    contract_interface = get_abi_by_filename(fname)

    if type(contract_interface) == list:
        # Etherscan
        abi = contract_interface
    else:
        # Solc output
        abi = contract_interface["abi"]

    return web3.eth.contract(abi=abi)


def get_deployed_contract(
    web3: Web3,
    fname: str,
    address: Union[HexAddress, str],
) -> Contract:
    """Get a Contract proxy object for a contract deployed at a specific address.

    :param web3:
        Web3 instance

    :param fname:
        Bundled ABI file name, e.g. ``harvest/Pool.json``

    :param address:
        Ethereum address of the deployed contract. Any case.

    :return:
        `web3.contract.Contract` proxy
    """
    assert address, "get_deployed_contract() address was None"
    address = Web3.to_checksum_address(address)
    Contract = get_contract(web3, fname)
    return Contract(address)
