"""
Ledger Commit Orchestrator

Records a custody event on the controller contract in two phases:

    Initiated --uploadData--> PendingMine1 --receipt--> Mined(session id)
              --confirm-->    PendingMine2 --receipt--> Confirmed
              (--> Minted / Rewarded when those events appear)

Each finality wait blocks the calling thread and is bounded by its own
timeout. Submissions for one signing account go through a single-writer
SubmissionQueue so concurrent pipeline runs never race for the account nonce.
"""

import logging
import queue
import re
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import InvalidSessionID, LedgerError, SessionIDNotFound
from .ledger_client import ZERO_ADDRESS, LedgerClient, TransactionReceipt
from .logging_config import audit_log

logger = logging.getLogger(__name__)

PHASE_BEGIN = "begin_upload"
PHASE_CONFIRM = "confirm_upload"
PHASE_GET_SESSION = "get_session"
PHASE_BALANCE = "reward_balance"

_SESSION_ID_RE = re.compile(r"^[0-9]+$")


@dataclass
class SessionRecord:
    """Ledger-side view of an upload session."""
    session_id: int
    owner: str
    proof: str
    confirmed: bool

    @property
    def exists(self) -> bool:
        return self.owner.lower() != ZERO_ADDRESS

    @classmethod
    def from_tuple(cls, data) -> "SessionRecord":
        session_id, owner, proof, confirmed = data
        return cls(session_id=int(session_id), owner=owner, proof=proof, confirmed=bool(confirmed))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": str(self.session_id),
            "owner": self.owner,
            "proof": self.proof,
            "confirmed": self.confirmed,
        }


@dataclass
class ConfirmationOutcome:
    """What the confirmation receipt showed. Side-effect fields stay None if absent."""
    tx_hash: str
    block_number: int
    token_id: Optional[int] = None
    token_owner: Optional[str] = None
    reward_amount: Optional[int] = None
    reward_recipient: Optional[str] = None

    @property
    def minted(self) -> bool:
        return self.token_id is not None

    @property
    def rewarded(self) -> bool:
        return self.reward_amount is not None


def parse_session_id(session_id: Any) -> int:
    """Parse a decimal session id into the ledger's uint256."""
    if isinstance(session_id, bool):
        raise InvalidSessionID(session_id)
    if isinstance(session_id, int):
        value = session_id
    else:
        text = str(session_id).strip()
        if not _SESSION_ID_RE.match(text):
            raise InvalidSessionID(session_id)
        value = int(text)
    if value < 0 or value >= 2 ** 256:
        raise InvalidSessionID(session_id)
    return value


# ============================================================
# Per-account submission serialization
# ============================================================

class SubmissionQueue:
    """
    Single-writer queue for one signing account.

    Callers hand a submission callable to the queue and block on its result;
    one worker thread executes submissions strictly in arrival order.
    Closing lets queued submissions finish and refuses new ones.
    """

    def __init__(self, account: str):
        self.account = account
        self._queue: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._worker = threading.Thread(
            target=self._run,
            name=f"ledger-submit-{account[:10]}",
            daemon=True,
        )
        self._worker.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run fn(*args) on the worker thread and return its result (or raise its error)."""
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError(f"submission queue for {self.account} is closed")
            self._queue.put((fn, args, future))
        return future.result()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(None)
        self._worker.join()
        _forget_queue(self)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                self._fail_pending()
                return
            fn, args, future = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(fn(*args))
            except Exception as exc:
                future.set_exception(exc)

    def _fail_pending(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is not None and item[2].set_running_or_notify_cancel():
                item[2].set_exception(RuntimeError(f"submission queue for {self.account} is closed"))


_queues: Dict[str, SubmissionQueue] = {}
_queues_lock = threading.Lock()


def submission_queue_for(account: str) -> SubmissionQueue:
    """The process-wide queue for an account, created on first use or after a close."""
    key = account.lower()
    with _queues_lock:
        q = _queues.get(key)
        if q is None or q.closed:
            q = SubmissionQueue(account)
            _queues[key] = q
        return q


def _forget_queue(q: SubmissionQueue) -> None:
    key = q.account.lower()
    with _queues_lock:
        if _queues.get(key) is q:
            del _queues[key]


# ============================================================
# Orchestrator
# ============================================================

class LedgerCommitOrchestrator:
    """
    Drives the two-phase upload commit against a LedgerClient.

    Usage:
        orchestrator = LedgerCommitOrchestrator(client, finality_timeout=120)
        session_id = orchestrator.begin_upload(file_id)
        outcome = orchestrator.confirm_upload(doc_id, content_hash_hex, proof, session_id, risk_level)
    """

    def __init__(
        self,
        client: LedgerClient,
        finality_timeout: float = 120.0,
        submission_queue: Optional[SubmissionQueue] = None,
    ):
        self.client = client
        self.finality_timeout = finality_timeout
        self._queue = submission_queue

    @property
    def _submissions(self) -> SubmissionQueue:
        if self._queue is not None:
            return self._queue
        return submission_queue_for(self.client.account)

    def _submit(self, phase: str, function: str, *args: Any) -> str:
        try:
            return self._submissions.submit(self.client.submit_transaction, function, *args)
        except LedgerError as e:
            e.with_phase(phase)
            raise

    def _await_finality(self, phase: str, tx_hash: str, timeout: Optional[float]) -> TransactionReceipt:
        wait = self.finality_timeout if timeout is None else timeout
        try:
            return self.client.wait_for_finality(tx_hash, wait)
        except LedgerError as e:
            e.with_phase(phase)
            raise

    def begin_upload(self, doc_id: str, timeout: Optional[float] = None) -> str:
        """
        Phase 1: open an upload session for doc_id and return its session id.

        Blocks until the uploadData transaction is final.

        Raises:
            SessionIDNotFound: the transaction is final but emitted no matching
                UploadData event
        """
        tx_hash = self._submit(PHASE_BEGIN, "uploadData", doc_id)
        logger.info("uploadData submitted: doc_id=%s tx=%s", doc_id, tx_hash)

        receipt = self._await_finality(PHASE_BEGIN, tx_hash, timeout)

        for event in self.client.read_receipt_events(receipt, "UploadData"):
            if event.transaction_hash.lower() != receipt.tx_hash.lower():
                continue
            if "docId" in event.args and event.args["docId"] != doc_id:
                continue
            session_id = str(event.args["sessionId"])
            audit_log.session_mined(doc_id, session_id, receipt.tx_hash, receipt.block_number)
            return session_id

        raise SessionIDNotFound(receipt.tx_hash)

    def confirm_upload(
        self,
        doc_id: str,
        content_hash: str,
        proof: str,
        session_id: Any,
        risk_level: int,
        timeout: Optional[float] = None,
    ) -> ConfirmationOutcome:
        """
        Phase 2: confirm a mined session with the content hash and risk level.

        Blocks until the confirm transaction is final. Minted and rewarded
        events are reported when present; their absence is not an error.
        """
        sid = parse_session_id(session_id)

        tx_hash = self._submit(PHASE_CONFIRM, "confirm", doc_id, content_hash, proof, sid, int(risk_level))
        logger.info("confirm submitted: session=%s tx=%s", sid, tx_hash)

        receipt = self._await_finality(PHASE_CONFIRM, tx_hash, timeout)
        outcome = ConfirmationOutcome(tx_hash=receipt.tx_hash, block_number=receipt.block_number)
        audit_log.upload_confirmed(str(sid), doc_id, receipt.tx_hash, int(risk_level))

        for event in self.client.read_receipt_events(receipt, "GeneNFTMinted"):
            outcome.token_id = int(event.args["tokenId"])
            outcome.token_owner = event.args.get("owner")
            audit_log.side_effect_observed(str(sid), "GENE_NFT_MINTED", token_id=outcome.token_id)

        for event in self.client.read_receipt_events(receipt, "PCSPRewarded"):
            outcome.reward_amount = int(event.args["amount"])
            outcome.reward_recipient = event.args.get("user")
            audit_log.side_effect_observed(str(sid), "PCSP_REWARDED", amount=outcome.reward_amount)

        return outcome

    def get_session(self, session_id: Any) -> SessionRecord:
        """Read-only lookup of a session; nothing is submitted."""
        sid = parse_session_id(session_id)
        try:
            data = self.client.call("getSession", sid)
        except LedgerError as e:
            e.with_phase(PHASE_GET_SESSION)
            raise
        return SessionRecord.from_tuple(data)

    def reward_balance(self, address: str) -> int:
        try:
            return self.client.token_balance(address)
        except LedgerError as e:
            e.with_phase(PHASE_BALANCE)
            raise
