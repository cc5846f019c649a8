"""Chain configuration."""

import pytest
from web3 import HTTPProvider, Web3

from harvest_defi.chain import Chain, DEFAULT_JSON_RPC_URLS, create_web3_for_chain, get_chain_name, get_json_rpc_env, read_json_rpc_url


def test_chain_names():
    assert get_chain_name(Chain.polygon) == "Polygon"
    assert get_chain_name(999_999) == "Unknown chain 999999"
    assert get_json_rpc_env(1) == "JSON_RPC_ETHEREUM"
    assert get_json_rpc_env(Chain.arbitrum) == "JSON_RPC_ARBITRUM"


def test_read_json_rpc_url_env_wins(monkeypatch):
    monkeypatch.setenv("JSON_RPC_POLYGON", "http://localhost:8545")
    assert read_json_rpc_url(Chain.polygon) == "http://localhost:8545"


def test_read_json_rpc_url_fallback(monkeypatch):
    """Public endpoint when no env var, error when neither."""
    monkeypatch.delenv("JSON_RPC_BASE", raising=False)
    monkeypatch.delenv("JSON_RPC_ETHEREUM", raising=False)
    assert read_json_rpc_url(8453) == DEFAULT_JSON_RPC_URLS[8453]

    with pytest.raises(ValueError):
        read_json_rpc_url(1)


def test_create_web3_for_chain(monkeypatch):
    """No RPC call is made when creating the connection."""
    monkeypatch.setenv("JSON_RPC_ARBITRUM", "http://localhost:8545")
    web3 = create_web3_for_chain(Chain.arbitrum, request_timeout=5.0)
    assert isinstance(web3, Web3)
    assert isinstance(web3.provider, HTTPProvider)
    assert web3.provider.endpoint_uri == "http://localhost:8545"
