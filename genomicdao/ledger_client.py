"""
Ledger client capability.

The commit orchestrator is built from four primitives: submit a
state-changing call, wait for its finality, read decoded events from the
receipt, and read contract state. LedgerClient names those primitives;
Web3LedgerClient talks to an Ethereum JSON-RPC endpoint and
InMemoryLedgerClient simulates the controller contract in process.
"""

import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from .abi import CONTROLLER_ABI, REWARD_SCHEDULE, TOKEN_ABI
from .errors import FinalityTimeout, LedgerUnavailable, TransactionRejected
from .keys import KeyMaterial

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class TransactionReceipt:
    """A finalized transaction as seen by the orchestrator."""
    tx_hash: str
    block_number: int
    status: int
    raw: Any = None


@dataclass
class LedgerEvent:
    """A decoded contract event from a receipt."""
    name: str
    args: Dict[str, Any]
    transaction_hash: str
    log_index: int = 0


class LedgerClient(ABC):
    """Abstract interface to the controller contract."""

    @property
    @abstractmethod
    def account(self) -> str:
        """Address of the account that signs submitted transactions."""
        pass

    @abstractmethod
    def submit_transaction(self, function: str, *args: Any) -> str:
        """
        Submit a state-changing contract call.

        Returns:
            The transaction hash (0x-prefixed hex)

        Raises:
            LedgerUnavailable: endpoint unreachable
            TransactionRejected: the call reverted or the node refused it
        """
        pass

    @abstractmethod
    def wait_for_finality(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        """
        Block until the transaction is final or timeout seconds elapse.

        Raises:
            FinalityTimeout: not final within timeout
            TransactionRejected: final with a failed status
        """
        pass

    @abstractmethod
    def read_receipt_events(self, receipt: TransactionReceipt, event_name: str) -> List[LedgerEvent]:
        """Decode all events named event_name emitted in receipt."""
        pass

    @abstractmethod
    def call(self, function: str, *args: Any) -> Any:
        """Read-only contract call; no transaction is submitted."""
        pass

    @abstractmethod
    def token_balance(self, address: str) -> int:
        """Reward token balance of address."""
        pass


class Web3LedgerClient(LedgerClient):
    """
    JSON-RPC ledger client.

    Transactions are signed locally with the configured account key and sent
    raw, so nonce assignment happens here; callers must serialize submissions
    per account (see ledger.SubmissionQueue).

    Without key_material the client is read-only: call() and token_balance()
    work, submit_transaction() is refused.
    """

    def __init__(
        self,
        rpc_url: str,
        controller_address: str,
        key_material: Optional[KeyMaterial] = None,
        chain_id: Optional[int] = None,
        request_timeout: float = 30,
        poll_interval: float = 0.5,
        confirmations: int = 0,
    ):
        self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        try:
            self._chain_id = chain_id or self._w3.eth.chain_id
        except RequestException as e:
            raise LedgerUnavailable(f"failed to dial {rpc_url}") from e

        self._signer = None
        if key_material is not None:
            self._signer = self._w3.eth.account.from_key(key_material.private_key_hex())
        self._controller = self._w3.eth.contract(
            address=Web3.to_checksum_address(controller_address),
            abi=CONTROLLER_ABI,
        )
        self._token = None
        self._poll_interval = poll_interval
        self._confirmations = confirmations

    @property
    def account(self) -> str:
        if self._signer is None:
            return ZERO_ADDRESS
        return self._signer.address

    @property
    def read_only(self) -> bool:
        return self._signer is None

    def submit_transaction(self, function: str, *args: Any) -> str:
        if self.read_only:
            raise TransactionRejected(f"{function} refused: client has no signing key")
        try:
            fn = getattr(self._controller.functions, function)(*args)
            tx = fn.build_transaction({
                "from": self.account,
                "nonce": self._w3.eth.get_transaction_count(self.account, "pending"),
                "chainId": self._chain_id,
            })
            signed = self._signer.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise TransactionRejected(f"{function} reverted: {e}") from e
        except RequestException as e:
            raise LedgerUnavailable(f"{function} submission failed: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise TransactionRejected(f"{function} refused: {e}") from e
        return Web3.to_hex(tx_hash)

    def wait_for_finality(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        deadline = time.monotonic() + timeout
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self._poll_interval
            )
            if self._confirmations:
                self._await_confirmations(tx_hash, receipt["blockNumber"], deadline, timeout)
        except TimeExhausted as e:
            raise FinalityTimeout(tx_hash, timeout) from e
        except RequestException as e:
            raise LedgerUnavailable(f"waiting for {tx_hash} failed: {e}") from e

        if receipt["status"] != 1:
            raise TransactionRejected(f"transaction {tx_hash} reverted")

        return TransactionReceipt(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=receipt["blockNumber"],
            status=receipt["status"],
            raw=receipt,
        )

    def _await_confirmations(self, tx_hash: str, block_number: int, deadline: float, timeout: float) -> None:
        while self._w3.eth.block_number < block_number + self._confirmations:
            if time.monotonic() >= deadline:
                raise FinalityTimeout(tx_hash, timeout)
            time.sleep(self._poll_interval)

    def read_receipt_events(self, receipt: TransactionReceipt, event_name: str) -> List[LedgerEvent]:
        event = getattr(self._controller.events, event_name)()
        return [
            LedgerEvent(
                name=event_name,
                args=dict(log["args"]),
                transaction_hash=Web3.to_hex(log["transactionHash"]),
                log_index=log["logIndex"],
            )
            for log in event.process_receipt(receipt.raw, errors=DISCARD)
        ]

    def call(self, function: str, *args: Any) -> Any:
        try:
            return getattr(self._controller.functions, function)(*args).call()
        except ContractLogicError as e:
            raise TransactionRejected(f"{function} reverted: {e}") from e
        except RequestException as e:
            raise LedgerUnavailable(f"{function} call failed: {e}") from e

    def token_balance(self, address: str) -> int:
        if self._token is None:
            self._token = self._w3.eth.contract(address=self.call("pcspToken"), abi=TOKEN_ABI)
        try:
            return self._token.functions.balanceOf(Web3.to_checksum_address(address)).call()
        except RequestException as e:
            raise LedgerUnavailable(f"balanceOf call failed: {e}") from e


# ============================================================
# In-process controller simulation
# ============================================================

@dataclass
class SubmittedTransaction:
    nonce: int
    function: str
    args: Tuple[Any, ...]
    tx_hash: str


@dataclass
class _Session:
    id: int
    user: str
    doc_id: str
    proof: str = ""
    confirmed: bool = False


class InMemoryLedgerClient(LedgerClient):
    """
    In-process stand-in for the controller contract, for development/testing.

    WARNING: Not suitable for production.
    - State lives in memory only
    - Finality is simulated

    Transactions are applied on submission. They become final immediately
    unless auto_finalize is False, in which case finalize() releases them.
    Test knobs: suppressed_events, reject_functions, unavailable and
    submit_latency (widens the window between reading and consuming the
    account nonce, so unserialized submitters collide).
    """

    GENE_NFT_ADDRESS = "0x00000000000000000000000000000000000000a1"
    PCSP_TOKEN_ADDRESS = "0x00000000000000000000000000000000000000a2"

    def __init__(
        self,
        account: str = "0x62f563A2e09c7987dECBFF61fdcC89cd74717721",
        next_session_id: int = 1,
        auto_finalize: bool = True,
        submit_latency: float = 0.0,
    ):
        self._account = account
        self._lock = threading.Lock()
        self._next_session_id = next_session_id
        self._next_token_id = 1
        self._nonce = 0
        self._block_number = 0
        self._sessions: Dict[int, _Session] = {}
        self._docs: Dict[str, str] = {}
        self._balances: Dict[str, int] = {}
        self._receipts: Dict[str, TransactionReceipt] = {}
        self._final: Dict[str, threading.Event] = {}
        self._handlers: Dict[str, Callable[..., List[Tuple[str, Dict[str, Any]]]]] = {
            "uploadData": self._apply_upload_data,
            "confirm": self._apply_confirm,
        }

        self.submitted: List[SubmittedTransaction] = []
        self.suppressed_events: Set[str] = set()
        self.reject_functions: Set[str] = set()
        self.unavailable = False
        self.auto_finalize = auto_finalize
        self.submit_latency = submit_latency

    @property
    def account(self) -> str:
        return self._account

    def submit_transaction(self, function: str, *args: Any) -> str:
        if self.unavailable:
            raise LedgerUnavailable("ledger endpoint unreachable")
        if function in self.reject_functions:
            raise TransactionRejected(f"{function} reverted")
        handler = self._handlers.get(function)
        if handler is None:
            raise TransactionRejected(f"unknown function {function}")

        tx_hash = "0x" + secrets.token_hex(32)
        with self._lock:
            emitted = handler(*args)

        # Unlocked read-then-write of the account nonce, as a node client would do it.
        nonce = self._nonce
        if self.submit_latency:
            time.sleep(self.submit_latency)
        self._nonce = nonce + 1

        with self._lock:
            self._block_number += 1
            logs = [
                LedgerEvent(name=name, args=args_, transaction_hash=tx_hash, log_index=i)
                for i, (name, args_) in enumerate(emitted)
                if name not in self.suppressed_events
            ]
            self._receipts[tx_hash] = TransactionReceipt(
                tx_hash=tx_hash,
                block_number=self._block_number,
                status=1,
                raw={"logs": logs},
            )
            final = threading.Event()
            if self.auto_finalize:
                final.set()
            self._final[tx_hash] = final
            self.submitted.append(SubmittedTransaction(nonce, function, tuple(args), tx_hash))
        return tx_hash

    def finalize(self, tx_hash: Optional[str] = None) -> None:
        """Release one pending transaction, or all of them."""
        with self._lock:
            targets = [tx_hash] if tx_hash else list(self._final)
            for h in targets:
                self._final[h].set()

    def wait_for_finality(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        final = self._final.get(tx_hash)
        if final is None:
            raise TransactionRejected(f"unknown transaction {tx_hash}")
        if not final.wait(timeout):
            raise FinalityTimeout(tx_hash, timeout)
        return self._receipts[tx_hash]

    def read_receipt_events(self, receipt: TransactionReceipt, event_name: str) -> List[LedgerEvent]:
        return [e for e in receipt.raw["logs"] if e.name == event_name]

    def call(self, function: str, *args: Any) -> Any:
        with self._lock:
            if function == "getSession":
                s = self._sessions.get(int(args[0]))
                if s is None:
                    return (0, ZERO_ADDRESS, "", False)
                return (s.id, s.user, s.proof, s.confirmed)
            if function == "geneNFT":
                return self.GENE_NFT_ADDRESS
            if function == "pcspToken":
                return self.PCSP_TOKEN_ADDRESS
        raise TransactionRejected(f"unknown view {function}")

    def token_balance(self, address: str) -> int:
        with self._lock:
            return self._balances.get(address.lower(), 0)

    def document_hash(self, doc_id: str) -> Optional[str]:
        with self._lock:
            return self._docs.get(doc_id)

    # ------------------------------------------------------------
    # Contract semantics (called with the lock held)
    # ------------------------------------------------------------

    def _apply_upload_data(self, doc_id: str):
        session_id = self._next_session_id
        self._next_session_id += 1
        self._sessions[session_id] = _Session(id=session_id, user=self._account, doc_id=doc_id)
        return [("UploadData", {"docId": doc_id, "sessionId": session_id})]

    def _apply_confirm(self, doc_id: str, content_hash: str, proof: str, session_id: int, risk_score: int):
        session = self._sessions.get(int(session_id))
        if session is None:
            raise TransactionRejected("confirm reverted: session not found")
        if session.confirmed:
            raise TransactionRejected("confirm reverted: session already confirmed")
        if session.user.lower() != self._account.lower():
            raise TransactionRejected("confirm reverted: invalid session owner")
        if int(risk_score) not in REWARD_SCHEDULE:
            raise TransactionRejected("confirm reverted: invalid risk score")

        session.confirmed = True
        session.proof = proof
        self._docs[doc_id] = content_hash

        token_id = self._next_token_id
        self._next_token_id += 1
        amount = REWARD_SCHEDULE[int(risk_score)]
        owner = session.user.lower()
        self._balances[owner] = self._balances.get(owner, 0) + amount

        return [
            ("GeneNFTMinted", {"owner": session.user, "tokenId": token_id}),
            ("PCSPRewarded", {"user": session.user, "amount": amount}),
        ]
