"""
Custody Pipeline Coordinator

Runs one upload as a linear sequence of stages:

    authenticate -> validate -> seal -> score -> sign -> persist
                 -> begin_upload -> confirm_upload

Each run is recorded as an UploadSaga. A failing stage aborts the run and the
original typed error is re-raised with `stage` and `saga` attached, so a
caller can tell "artifact stored but ledger not committed" (persist in
saga.completed) from "nothing stored". Completed stages are not rolled back.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .auth import AuthProvider
from .envelope import open_envelope, seal
from .errors import (
    CustodyError,
    EmptyPayload,
    IntegrityViolation,
    SignatureMismatch,
    StageFailure,
)
from .keys import KeyMaterial
from .ledger import ConfirmationOutcome, LedgerCommitOrchestrator, SessionRecord
from .logging_config import audit_log
from .scoring import RiskLevel, markers_from_bytes, score
from .signing import content_hash, recover_signer, sign_artifact
from .storage import RecordStore, SignedRecord
from .util import constant_time_compare, generate_doc_id

logger = logging.getLogger(__name__)

DEFAULT_PROOF = "0x1234"
SUCCESS_MESSAGE = "Genomic data uploaded successfully"


class Stage(str, Enum):
    AUTHENTICATE = "authenticate"
    VALIDATE = "validate"
    SEAL = "seal"
    SCORE = "score"
    SIGN = "sign"
    PERSIST = "persist"
    BEGIN_UPLOAD = "begin_upload"
    CONFIRM_UPLOAD = "confirm_upload"


class SessionStatus(str, Enum):
    INITIATED = "initiated"
    MINED = "mined"
    CONFIRMED = "confirmed"
    REWARDED = "rewarded"
    MINTED = "minted"


@dataclass
class StageOutcome:
    stage: Stage
    succeeded: bool
    duration_ms: int
    error: Optional[str] = None


@dataclass
class UploadSaga:
    """Ordered record of what one pipeline run has done so far."""
    outcomes: List[StageOutcome] = field(default_factory=list)
    session: Optional["UploadSession"] = None

    @property
    def completed(self) -> List[Stage]:
        return [o.stage for o in self.outcomes if o.succeeded]

    @property
    def failed_stage(self) -> Optional[Stage]:
        for o in self.outcomes:
            if not o.succeeded:
                return o.stage
        return None

    def has_completed(self, stage: Stage) -> bool:
        return stage in self.completed

    def run(self, stage: Stage, fn: Callable[..., Any], *args: Any) -> Any:
        """Execute one stage, recording its outcome."""
        start = time.perf_counter()
        try:
            result = fn(*args)
        except CustodyError as e:
            self._fail(stage, start, e)
            raise
        except Exception as e:
            wrapped = StageFailure(e)
            self._fail(stage, start, wrapped)
            raise wrapped from e

        duration_ms = int((time.perf_counter() - start) * 1000)
        self.outcomes.append(StageOutcome(stage, True, duration_ms))
        audit_log.stage_completed(stage.value, duration_ms)
        return result

    def _fail(self, stage: Stage, start: float, error: CustodyError) -> None:
        duration_ms = int((time.perf_counter() - start) * 1000)
        error.stage = stage.value
        error.saga = self
        self.outcomes.append(StageOutcome(stage, False, duration_ms, type(error).__name__))
        audit_log.stage_failed(
            stage.value,
            type(error).__name__,
            error.reason,
            [s.value for s in self.completed],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed": [s.value for s in self.completed],
            "failed": self.failed_stage.value if self.failed_stage else None,
        }


@dataclass
class UploadSession:
    """Progress of one upload through the ledger state machine."""
    file_id: Optional[str] = None
    session_id: Optional[str] = None
    doc_id: Optional[str] = None
    content_hash: Optional[str] = None
    proof: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    status: SessionStatus = SessionStatus.INITIATED
    confirmation: Optional[ConfirmationOutcome] = None


@dataclass
class UploadResult:
    session_id: str
    file_id: str
    doc_id: str
    risk_level: RiskLevel
    content_hash: bytes
    signature: bytes
    status: SessionStatus
    confirmation: ConfirmationOutcome
    saga: UploadSaga
    message: str = SUCCESS_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "file_id": self.file_id,
            "doc_id": self.doc_id,
            "risk_level": int(self.risk_level),
            "content_hash": "0x" + self.content_hash.hex(),
            "status": self.status.value,
            "token_id": self.confirmation.token_id,
            "reward_amount": self.confirmation.reward_amount,
            "message": self.message,
        }


class CustodyPipeline:
    """
    Wires identity, sealing, scoring, signing, persistence and the ledger
    commit into one upload operation.

    Usage:
        pipeline = CustodyPipeline(auth, store, orchestrator)
        result = pipeline.upload(payload, address, key_material)
    """

    def __init__(
        self,
        auth: AuthProvider,
        store: RecordStore,
        orchestrator: LedgerCommitOrchestrator,
        placeholder_proof: str = DEFAULT_PROOF,
    ):
        self.auth = auth
        self.store = store
        self.orchestrator = orchestrator
        self.placeholder_proof = placeholder_proof

    def upload(
        self,
        payload: bytes,
        address: str,
        key_material: KeyMaterial,
        finality_timeout: Optional[float] = None,
    ) -> UploadResult:
        """
        Run the whole custody pipeline for one payload.

        finality_timeout bounds each of the two ledger waits individually;
        None uses the orchestrator's default.

        Raises:
            CustodyError subclass with .stage and .saga set
        """
        session = UploadSession(proof=self.placeholder_proof)
        saga = UploadSaga(session=session)
        audit_log.upload_started(address, len(payload))

        owner_id = saga.run(Stage.AUTHENTICATE, self.auth.authenticate, address)
        markers = saga.run(Stage.VALIDATE, _validate_markers, payload)
        sealed = saga.run(Stage.SEAL, seal, payload, key_material)
        risk_level = saga.run(Stage.SCORE, score, markers)
        digest, signature = saga.run(Stage.SIGN, sign_artifact, sealed, key_material)
        session.content_hash = digest.hex()
        session.risk_level = risk_level

        session.file_id = saga.run(Stage.PERSIST, self.store.put, owner_id, sealed, digest, signature)

        session.session_id = saga.run(
            Stage.BEGIN_UPLOAD, self.orchestrator.begin_upload, session.file_id, finality_timeout
        )
        session.status = SessionStatus.MINED

        session.doc_id = generate_doc_id()
        session.confirmation = saga.run(
            Stage.CONFIRM_UPLOAD,
            self.orchestrator.confirm_upload,
            session.doc_id,
            session.content_hash,
            session.proof,
            session.session_id,
            int(risk_level),
            finality_timeout,
        )
        session.status = _final_status(session.confirmation)

        logger.info(
            "upload complete: file_id=%s session_id=%s risk=%d",
            session.file_id, session.session_id, int(risk_level),
        )
        return UploadResult(
            session_id=session.session_id,
            file_id=session.file_id,
            doc_id=session.doc_id,
            risk_level=risk_level,
            content_hash=digest,
            signature=signature,
            status=session.status,
            confirmation=session.confirmation,
            saga=saga,
        )

    def retrieve(self, file_id: str, key_material: KeyMaterial) -> bytes:
        """Load a sealed artifact and open it."""
        sealed = self.store.get(file_id)
        plaintext = open_envelope(sealed, key_material)
        audit_log.record_retrieved(file_id, verified=False)
        return plaintext

    def verify(self, file_id: str, expected_address: Optional[str] = None) -> SignedRecord:
        """
        Check a stored record against its hash and signature.

        Raises:
            IntegrityViolation: stored bytes no longer hash to the stored hash
            SignatureMismatch: signer differs from expected_address
        """
        record = self.store.get_record(file_id)
        if not constant_time_compare(content_hash(record.sealed), record.content_hash):
            audit_log.security_event("RECORD_HASH_MISMATCH", severity="high", file_id=file_id)
            raise IntegrityViolation(f"record {file_id} does not match its content hash")

        signer = recover_signer(record.content_hash, record.signature)
        if expected_address is not None and signer.lower() != expected_address.lower():
            audit_log.security_event("RECORD_SIGNER_MISMATCH", severity="high", file_id=file_id)
            raise SignatureMismatch()

        audit_log.record_retrieved(file_id, verified=True)
        return record

    def get_session(self, session_id: Any) -> SessionRecord:
        return self.orchestrator.get_session(session_id)

    def reward_balance(self, address: str) -> int:
        return self.orchestrator.reward_balance(address)


def _validate_markers(payload: bytes) -> List[float]:
    markers = markers_from_bytes(payload)
    if not markers:
        raise EmptyPayload()
    return markers


def _final_status(outcome: ConfirmationOutcome) -> SessionStatus:
    if outcome.minted:
        return SessionStatus.MINTED
    if outcome.rewarded:
        return SessionStatus.REWARDED
    return SessionStatus.CONFIRMED
