"""Web3 connection and the account we act as.

- A :py:class:`Connection` bundles a :py:class:`web3.Web3` instance with an optional account

- The account is either a local private key (:py:class:`eth_account.signers.local.LocalAccount`)
  or an address unlocked in the node (Anvil, Ethereum Tester)

- Without an account the connection is read-only: portfolio queries need an explicit address
  and transactions raise :py:class:`harvest_defi.errors.ReadOnlyConnection`
"""

import datetime
import logging
import threading
from functools import cached_property
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import Contract, ContractFunction
from web3.types import TxReceipt

from harvest_defi.abi import get_deployed_contract
from harvest_defi.constants import DEFAULT_CONFIRMATION_TIMEOUT
from harvest_defi.errors import MissingAddressError, ReadOnlyConnection

logger = logging.getLogger(__name__)


class TransactionReverted(Exception):
    """Transaction was mined, but reverted on-chain."""

    def __init__(self, message: str, receipt: TxReceipt):
        super().__init__(message)
        self.receipt = receipt


class Connection:
    """Web3 connection plus the account transactions are sent from.

    Example with a private key:

    .. code-block:: python

        web3 = create_web3_for_chain(Chain.polygon)
        connection = Connection.from_private_key(web3, os.environ["PRIVATE_KEY"])
        sdk = HarvestSDK(connection)

    Example with an account unlocked in Anvil:

    .. code-block:: python

        connection = Connection(web3, web3.eth.accounts[0])

    .. note ::

        Nonces of a local account are allocated under a lock,
        so the SDK can send per-token approvals from a thread pool.
    """

    def __init__(
        self,
        web3: Web3,
        account: LocalAccount | HexAddress | str | None = None,
        confirmation_timeout: datetime.timedelta = DEFAULT_CONFIRMATION_TIMEOUT,
    ):
        """
        :param web3:
            Web3 instance

        :param account:
            Local account to sign with, or a node-unlocked address, or ``None`` for read-only.

        :param confirmation_timeout:
            How long we wait for each transaction receipt
        """
        self.web3 = web3
        self.confirmation_timeout = confirmation_timeout

        if account is None:
            self.account = None
            self._address = None
        elif isinstance(account, str):
            assert account.startswith("0x"), f"Not an address: {account}"
            self.account = None
            self._address = Web3.to_checksum_address(account)
        else:
            self.account = account
            self._address = account.address

        self.current_nonce: Optional[int] = None
        self._nonce_lock = threading.Lock()

    def __repr__(self):
        return f"<Connection {self._address or 'read-only'}>"

    @staticmethod
    def from_private_key(web3: Web3, key: str) -> "Connection":
        """Create a signing connection from a 0x prefixed hex private key."""
        assert type(key) == str, f"Expected private key as string, got {type(key)}"
        assert key.startswith("0x"), f"This system assumes private keys are prefixed with 0x, your key starts with {key[0:8]}..."
        return Connection(web3, Account.from_key(key))

    @property
    def address(self) -> HexAddress | None:
        """Our address, or ``None`` for a read-only connection."""
        return self._address

    @cached_property
    def chain_id(self) -> int:
        """Chain id of the connected node."""
        return self.web3.eth.chain_id

    def can_sign(self) -> bool:
        """Can we send transactions."""
        return self._address is not None

    def resolve_address(self, address: HexAddress | str | None = None) -> HexAddress:
        """Use the given address, or fall back to our own.

        :raise MissingAddressError:
            Neither given nor an account bound
        """
        if address:
            return Web3.to_checksum_address(address)
        if self._address is None:
            raise MissingAddressError("No address given and the connection has no account")
        return self._address

    def get_contract(self, fname: str, address: HexAddress | str) -> Contract:
        """Bind a bundled ABI to an address."""
        return get_deployed_contract(self.web3, fname, address)

    def sync_nonce(self):
        """Initialise the current nonce from the on-chain data."""
        self.current_nonce = self.web3.eth.get_transaction_count(self._address)
        logger.info("Synced nonce for %s to %d", self._address, self.current_nonce)

    def allocate_nonce(self) -> int:
        """Get the next free nonce and increase the counter."""
        assert self.current_nonce is not None, f"Nonce is not yet synced from the blockchain: {self}"
        nonce = self.current_nonce
        self.current_nonce += 1
        return nonce

    def transact(self, bound_call: ContractFunction) -> TxReceipt:
        """Send a contract call as a transaction and wait until it is mined.

        - Local accounts sign here and broadcast with ``eth_sendRawTransaction``

        - Node-unlocked addresses use ``eth_sendTransaction``

        :param bound_call:
            E.g. ``contract.functions.approve(spender, amount)``

        :raise TransactionReverted:
            The receipt has status 0

        :return:
            Transaction receipt
        """
        if not self.can_sign():
            raise ReadOnlyConnection(f"Cannot send {bound_call.fn_name}(): connection is read-only")

        if self.account is None:
            tx_hash = bound_call.transact({"from": self._address})
        else:
            tx_hash = self._sign_and_broadcast(bound_call)

        tx_hash = HexBytes(tx_hash)
        logger.info("Sent %s() to %s from %s, tx %s", bound_call.fn_name, bound_call.address, self._address, tx_hash.hex())

        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout.total_seconds())
        if receipt["status"] == 0:
            raise TransactionReverted(f"Transaction {tx_hash.hex()} {bound_call.fn_name}() reverted", receipt)
        return receipt

    def _sign_and_broadcast(self, bound_call: ContractFunction) -> HexBytes:
        tx_data = bound_call.build_transaction({"from": self._address})
        with self._nonce_lock:
            if self.current_nonce is None:
                self.sync_nonce()
            tx_data["nonce"] = self.allocate_nonce()
            signed_tx = self.account.sign_transaction(tx_data)
            return self.web3.eth.send_raw_transaction(signed_tx.raw_transaction)
