"""In-memory chain for Harvest SDK tests.

The fakes mimic the parts of web3.py the SDK touches:

- ``web3.eth.contract(abi=...)`` gives a factory, calling it with an address binds a fake contract

- ``contract.functions.foo(*args)`` gives a bound call with ``call()`` and ``transact({"from": ...})``

- Every state changing call is recorded in :py:attr:`FakeChain.transactions`

Contracts at addresses nobody deployed fail every call like a real node
returning empty data for a non-contract address.
"""

import threading
from dataclasses import dataclass
from unittest.mock import patch

import pytest
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ABIFunctionNotFound, BadFunctionCallOutput, ContractLogicError

from harvest_defi.connection import Connection
from harvest_defi.sdk import HarvestSDK
from harvest_defi.token import reset_default_token_cache


def mutating(func):
    """Mark a fake contract method as a transaction, the sender is passed as the first argument."""
    func.mutating = True
    return func


@dataclass
class SentTransaction:
    address: str
    fn_name: str
    args: tuple
    sender: str


class FakeBoundCall:
    def __init__(self, contract: "FakeContract", fn_name: str, args: tuple):
        self.contract = contract
        self.fn_name = fn_name
        self.args = args
        self.address = contract.address

    def call(self):
        return self.contract.dispatch(self.fn_name, None, self.args)

    def transact(self, tx: dict) -> HexBytes:
        return self.contract.chain.execute(self, tx["from"])

    def build_transaction(self, tx: dict) -> dict:
        self.contract.chain.dispatch_on_broadcast.append((self, tx["from"]))
        return {
            "from": tx["from"],
            "to": self.address,
            "data": "0x",
            "value": 0,
            "gas": 100_000,
            "gasPrice": 1_000_000_000,
            "chainId": self.contract.chain.chain_id,
        }


class FakeFunctions:
    def __init__(self, contract: "FakeContract"):
        self._contract = contract

    def __getattr__(self, name: str):
        return lambda *args: FakeBoundCall(self._contract, name, args)


class FakeContract:
    """Base for fake contracts, public methods are the contract functions."""

    def __init__(self, chain: "FakeChain", address: str):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self.functions = FakeFunctions(self)

    def get_function_by_signature(self, signature: str):
        fn_name = signature.split("(")[0]
        return lambda *args: FakeBoundCall(self, fn_name, args)

    def dispatch(self, fn_name: str, sender: str | None, args: tuple):
        method = getattr(self, fn_name, None)
        if fn_name.startswith("_") or not callable(method):
            raise ABIFunctionNotFound(f"{fn_name} not in {self.__class__.__name__}")
        if getattr(method, "mutating", False):
            if sender is None:
                raise ContractLogicError(f"{fn_name} needs a transaction")
            return method(sender.lower(), *args)
        return method(*args)


class MissingContract(FakeContract):
    """Nothing deployed here."""

    def dispatch(self, fn_name: str, sender: str | None, args: tuple):
        raise BadFunctionCallOutput(f"Could not decode contract function call to {fn_name}() at {self.address}, no contract code")


class FakeERC20(FakeContract):
    def __init__(self, chain, address, symbol: str, decimals: int = 18):
        super().__init__(chain, address)
        self._symbol = symbol
        self._decimals = decimals
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}

    def symbol(self):
        return self._symbol

    def name(self):
        return self._symbol

    def decimals(self):
        return self._decimals

    def totalSupply(self):
        return sum(self._balances.values())

    def balanceOf(self, address):
        assert Web3.is_checksum_address(address), f"Not checksummed: {address}"
        return self._balances.get(address.lower(), 0)

    def allowance(self, owner, spender):
        return self._allowances.get((owner.lower(), spender.lower()), 0)

    @mutating
    def approve(self, sender, spender, amount):
        self._allowances[(sender, spender.lower())] = amount
        return True

    @mutating
    def transfer(self, sender, to, amount):
        self._move(sender, to.lower(), amount)
        return True

    @mutating
    def transferFrom(self, sender, owner, to, amount):
        self._spend(sender, owner.lower(), to.lower(), amount)
        return True

    def _mint(self, to: str, amount: int):
        self._balances[to.lower()] = self._balances.get(to.lower(), 0) + amount

    def _burn(self, owner: str, amount: int):
        if self._balances.get(owner, 0) < amount:
            raise ContractLogicError("execution reverted: ERC20: burn amount exceeds balance")
        self._balances[owner] -= amount

    def _move(self, owner: str, to: str, amount: int):
        if self._balances.get(owner, 0) < amount:
            raise ContractLogicError("execution reverted: ERC20: transfer amount exceeds balance")
        self._balances[owner] -= amount
        self._mint(to, amount)

    def _spend(self, spender: str, owner: str, to: str, amount: int):
        allowance = self._allowances.get((owner, spender), 0)
        if allowance < amount:
            raise ContractLogicError("execution reverted: ERC20: insufficient allowance")
        self._move(owner, to, amount)
        self._allowances[(owner, spender)] = allowance - amount


class FakeVault(FakeERC20):
    """Single asset fToken vault."""

    def __init__(self, chain, address, symbol: str, underlying: FakeERC20, decimals: int = 18, price_per_full_share: int = 10**18):
        super().__init__(chain, address, symbol, decimals)
        self._underlying = underlying
        self._price_per_full_share = price_per_full_share

    def underlying(self):
        return self._underlying.address

    def getPricePerFullShare(self):
        return self._price_per_full_share

    @mutating
    def deposit(self, sender, amount):
        me = self.address.lower()
        self._underlying._spend(me, sender, me, amount)
        self._mint(sender, amount * 10**18 // self._price_per_full_share)

    @mutating
    def withdraw(self, sender, shares):
        self._burn(sender, shares)
        self._underlying._move(self.address.lower(), sender, shares * self._price_per_full_share // 10**18)


class FakeRangeVault(FakeERC20):
    """Uniswap v3 range vault, one share per deposited unit of either token."""

    def __init__(self, chain, address, symbol: str, token0: FakeERC20, token1: FakeERC20, sqrt_price: int = 2**96):
        super().__init__(chain, address, symbol, 18)
        self._token0 = token0
        self._token1 = token1
        self._sqrt_price = sqrt_price
        self.deposit_args = []
        self.withdraw_args = []

    def token0(self):
        return self._token0.address

    def token1(self):
        return self._token1.address

    def getSqrtPriceX96(self):
        return self._sqrt_price

    def getPricePerFullShare(self):
        return 10**18

    @mutating
    def deposit(self, sender, amount0, amount1, zap_funds0, zap_funds1, sqrt_price, tolerance):
        me = self.address.lower()
        self._token0._spend(me, sender, me, amount0)
        self._token1._spend(me, sender, me, amount1)
        self._mint(sender, amount0 + amount1)
        self.deposit_args.append((amount0, amount1, zap_funds0, zap_funds1, sqrt_price, tolerance))

    @mutating
    def withdraw(self, sender, shares, token0_out, token1_out, sqrt_price, tolerance):
        supply = self.totalSupply()
        me = self.address.lower()
        amount0 = self._token0._balances.get(me, 0) * shares // supply
        amount1 = self._token1._balances.get(me, 0) * shares // supply
        self._burn(sender, shares)
        self._token0._move(me, sender, amount0)
        self._token1._move(me, sender, amount1)
        self.withdraw_args.append((shares, token0_out, token1_out, sqrt_price, tolerance))


class FakePool(FakeContract):
    """Reward pool paying a fixed reward per stake transaction."""

    def __init__(self, chain, address, lp_token: FakeERC20, reward_token: FakeERC20, reward_per_stake: int = 10**18):
        super().__init__(chain, address)
        self._lp_token = lp_token
        self._reward_token = reward_token
        self._reward_per_stake = reward_per_stake
        self._balances: dict[str, int] = {}
        self._earned: dict[str, int] = {}

    def lpToken(self):
        return self._lp_token.address

    def rewardToken(self):
        return self._reward_token.address

    def totalSupply(self):
        return sum(self._balances.values())

    def balanceOf(self, address):
        return self._balances.get(address.lower(), 0)

    def earned(self, address):
        return self._earned.get(address.lower(), 0)

    @mutating
    def stake(self, sender, amount):
        me = self.address.lower()
        self._lp_token._spend(me, sender, me, amount)
        self._balances[sender] = self._balances.get(sender, 0) + amount
        self._earned[sender] = self._earned.get(sender, 0) + self._reward_per_stake

    @mutating
    def withdraw(self, sender, amount):
        if self._balances.get(sender, 0) < amount:
            raise ContractLogicError("execution reverted: Cannot withdraw more than staked")
        self._balances[sender] -= amount
        self._lp_token._move(self.address.lower(), sender, amount)

    @mutating
    def getReward(self, sender):
        self._reward_token._mint(sender, self._earned.pop(sender, 0))

    @mutating
    def exit(self, sender):
        self.withdraw(sender, self._balances.get(sender, 0))
        self.getReward(sender)


class FakeChain:
    """Contract state and sent transactions."""

    def __init__(self, chain_id: int = 1):
        self.chain_id = chain_id
        self.contracts: dict[str, FakeContract] = {}
        self.transactions: list[SentTransaction] = []
        self.raw_transactions: list[bytes] = []
        self.dispatch_on_broadcast: list[tuple[FakeBoundCall, str]] = []
        self.receipt_status = 1
        self.transaction_count = 0
        self.lock = threading.Lock()
        self._next_address = 1

    def deploy(self, contract_class: type, *args, **kwargs):
        address = Web3.to_checksum_address(f"0x{self._next_address:04x}" + "cafe" * 9)
        self._next_address += 1
        contract = contract_class(self, address, *args, **kwargs)
        self.contracts[address.lower()] = contract
        return contract

    def execute(self, bound_call: FakeBoundCall, sender: str) -> HexBytes:
        with self.lock:
            bound_call.contract.dispatch(bound_call.fn_name, sender, bound_call.args)
            self.transactions.append(SentTransaction(bound_call.address, bound_call.fn_name, bound_call.args, sender))
            return HexBytes(len(self.transactions).to_bytes(32, "big"))

    def get_sent(self, fn_name: str) -> list[SentTransaction]:
        return [tx for tx in self.transactions if tx.fn_name == fn_name]


class FakeContractFactory:
    def __init__(self, chain: FakeChain):
        self.chain = chain

    def __call__(self, address: str) -> FakeContract:
        return self.chain.contracts.get(address.lower()) or MissingContract(self.chain, address)


class FakeEth:
    def __init__(self, chain: FakeChain):
        self._chain = chain

    @property
    def chain_id(self) -> int:
        return self._chain.chain_id

    def contract(self, abi):
        return FakeContractFactory(self._chain)

    def get_transaction_count(self, address):
        return self._chain.transaction_count

    def send_raw_transaction(self, raw_transaction: bytes) -> HexBytes:
        with self._chain.lock:
            self._chain.raw_transactions.append(raw_transaction)
            bound_call, sender = self._chain.dispatch_on_broadcast.pop(0)
        return self._chain.execute(bound_call, sender)

    def wait_for_transaction_receipt(self, tx_hash, timeout=None) -> dict:
        return {"status": self._chain.receipt_status, "transactionHash": tx_hash}


class FakeWeb3:
    def __init__(self, chain: FakeChain):
        self.eth = FakeEth(chain)


@pytest.fixture(autouse=True)
def clean_token_cache():
    reset_default_token_cache()
    yield
    reset_default_token_cache()


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain(chain_id=1)


@pytest.fixture()
def web3(chain) -> FakeWeb3:
    return FakeWeb3(chain)


@pytest.fixture()
def user_address() -> str:
    return Web3.to_checksum_address("0x" + "7e57" * 10)


@pytest.fixture()
def connection(web3, user_address) -> Connection:
    """Connection sending as a node-unlocked address."""
    return Connection(web3, user_address)


@pytest.fixture()
def weth(chain, user_address) -> FakeERC20:
    token = chain.deploy(FakeERC20, "WETH", 18)
    token._mint(user_address, 100 * 10**18)
    return token


@pytest.fixture()
def usdc(chain, user_address) -> FakeERC20:
    token = chain.deploy(FakeERC20, "USDC", 6)
    token._mint(user_address, 10_000 * 10**6)
    return token


@pytest.fixture()
def farm(chain) -> FakeERC20:
    return chain.deploy(FakeERC20, "FARM", 18)


@pytest.fixture()
def weth_vault(chain, weth) -> FakeVault:
    return chain.deploy(FakeVault, "fWETH", weth)


@pytest.fixture()
def usdc_vault(chain, usdc) -> FakeVault:
    return chain.deploy(FakeVault, "fUSDC", usdc, decimals=6)


@pytest.fixture()
def range_vault(chain, weth, usdc) -> FakeRangeVault:
    return chain.deploy(FakeRangeVault, "fUniV3_WETH_USDC", weth, usdc)


@pytest.fixture()
def weth_pool(chain, weth_vault, farm) -> FakePool:
    return chain.deploy(FakePool, weth_vault, farm)


@pytest.fixture()
def token_data(weth, usdc, weth_vault, usdc_vault, range_vault) -> dict:
    """tokens.json payload for the fake chain."""
    return {
        "WETH": {
            "chain": "1",
            "tokenAddress": weth.address,
            "decimals": "18",
            "symbol": "WETH",
            "vaultAddress": weth_vault.address,
        },
        "USDC": {
            "chain": "1",
            "tokenAddress": usdc.address.lower(),
            "decimals": "6",
            "symbol": "USDC",
            "vaultAddress": usdc_vault.address,
        },
        "UniV3_WETH_USDC": {
            "chain": "1",
            "tokenAddress": [weth.address, usdc.address],
            "decimals": "18",
            "vaultAddress": range_vault.address,
        },
        "WMATIC": {
            "chain": "137",
            "tokenAddress": "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",
            "decimals": "18",
            "symbol": "WMATIC",
            "vaultAddress": "0xab0b2ddB9C7e440fAc8E140A89c0dbCBf2d7Bbff",
        },
        "broken": {
            "chain": "1",
            "decimals": "18",
        },
    }


@pytest.fixture()
def pool_data(weth_pool, weth_vault, farm) -> list:
    """pools.json payload for the fake chain."""
    return [
        {
            "chain": "1",
            "contractAddress": weth_pool.address,
            "collateralAddress": weth_vault.address,
            "id": "fWETH-farm",
            "rewardTokens": [farm.address],
        },
        {
            "chain": "137",
            "contractAddress": "0x3DA9D911301f8144bdF5c3c67886e5373DCdff8e",
            "collateralAddress": "0xab0b2ddB9C7e440fAc8E140A89c0dbCBf2d7Bbff",
            "id": "fWMATIC",
            "rewardTokens": [],
        },
    ]


@pytest.fixture()
def sdk(connection, token_data, pool_data) -> HarvestSDK:
    """SDK with the data API answered from the fake chain."""
    with (
        patch("harvest_defi.sdk.fetch_harvest_tokens", return_value=token_data),
        patch("harvest_defi.sdk.fetch_harvest_pools", return_value=pool_data),
    ):
        yield HarvestSDK(connection)
