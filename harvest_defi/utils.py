"""Logging setup for scripts and address helpers."""

import logging
import os

from eth_typing import HexAddress
from web3 import Web3

#: Loggers that flood script output at ``info`` level
NOISY_LOGGERS = {
    "web3.providers.HTTPProvider": logging.WARNING,
    "web3.RequestManager": logging.WARNING,
    "urllib3.connectionpool": logging.WARNING,
    # Zero balance fallback warns once per stale catalog entry
    "harvest_defi.token": logging.ERROR,
}


def setup_console_logging(default_log_level="warning", simplified_logging=False) -> logging.Logger:
    """Set up log output for the example scripts.

    - ``LOG_LEVEL`` environment variable overrides ``default_log_level``

    - Coloured when ``coloredlogs`` is installed

    :return:
        Root logger
    """
    level_name = os.environ.get("LOG_LEVEL", default_log_level).upper()
    level = getattr(logging, level_name, None)
    assert isinstance(level, int), f"Unknown log level: {level_name}"

    fmt = "%(message)s" if simplified_logging else "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

    try:
        import coloredlogs

        coloredlogs.install(level=level, fmt=fmt)
    except ImportError:
        logging.basicConfig(level=level, format=fmt)

    for name, muted_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(muted_level)
    return logging.getLogger()


def addr(address: str) -> HexAddress:
    """Checksum an address given in any case."""
    return HexAddress(Web3.to_checksum_address(address))


def shorten_address(address: str) -> str:
    """Format an address for log and table output, e.g. ``0x1234…abcd``."""
    return f"{address[0:6]}…{address[-4:]}"
