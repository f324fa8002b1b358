"""
GenomicDAO Data Custody & Ledger-Commit Pipeline

Version: 0.1.0

Seals a genomic marker stream under the caller's key, scores it into a
discrete risk level, signs the sealed artifact, stores it, and records the
custody event on the controller contract in two phases (open session,
confirm with content hash and risk level).

Usage:
    from genomicdao import (
        CustodyPipeline,
        InMemoryAuthProvider,
        InMemoryRecordStore,
        InMemoryLedgerClient,
        LedgerCommitOrchestrator,
        KeyMaterial,
    )

    auth = InMemoryAuthProvider()
    key = KeyMaterial.generate()
    auth.register(key.address)

    pipeline = CustodyPipeline(
        auth,
        InMemoryRecordStore(),
        LedgerCommitOrchestrator(InMemoryLedgerClient()),
    )
    result = pipeline.upload(payload, key.address, key)
    print(result.session_id, result.file_id, result.risk_level)
"""

__version__ = "0.1.0"

from .auth import AuthProvider, InMemoryAuthProvider, SqliteAuthProvider, validate_address
from .envelope import SealedArtifact, derive_key, open_envelope, seal
from .errors import (
    AuthenticationFailure,
    AuthError,
    CipherError,
    CryptoError,
    CustodyError,
    EmptyPayload,
    FinalityTimeout,
    InputError,
    IntegrityViolation,
    InvalidAddress,
    InvalidKeyMaterial,
    InvalidMarkerLength,
    InvalidMarkerValue,
    InvalidSessionID,
    LedgerError,
    LedgerUnavailable,
    MalformedArtifact,
    RecordNotFound,
    SessionIDNotFound,
    SignatureMismatch,
    SigningFailure,
    StageFailure,
    StorageError,
    TransactionRejected,
    UserExists,
    UserNotFound,
)
from .keys import KeyMaterial, public_key_to_address
from .ledger import (
    ConfirmationOutcome,
    LedgerCommitOrchestrator,
    SessionRecord,
    SubmissionQueue,
    parse_session_id,
)
from .ledger_client import InMemoryLedgerClient, LedgerClient, Web3LedgerClient
from .pipeline import (
    CustodyPipeline,
    SessionStatus,
    Stage,
    StageOutcome,
    UploadResult,
    UploadSaga,
)
from .scoring import RiskLevel, bucket, markers_from_bytes, score, score_payload
from .signing import content_hash, recover_signer, sign_artifact, verify_signature
from .storage import (
    InMemoryRecordStore,
    RecordStore,
    S3RecordStore,
    SignedRecord,
    SqliteRecordStore,
)


__all__ = [
    "__version__",

    # Keys
    "KeyMaterial",
    "public_key_to_address",

    # Envelope
    "SealedArtifact",
    "derive_key",
    "seal",
    "open_envelope",

    # Scoring
    "RiskLevel",
    "markers_from_bytes",
    "bucket",
    "score",
    "score_payload",

    # Signing
    "content_hash",
    "sign_artifact",
    "recover_signer",
    "verify_signature",

    # Ledger
    "LedgerClient",
    "Web3LedgerClient",
    "InMemoryLedgerClient",
    "LedgerCommitOrchestrator",
    "SubmissionQueue",
    "SessionRecord",
    "ConfirmationOutcome",
    "parse_session_id",

    # Collaborators
    "AuthProvider",
    "InMemoryAuthProvider",
    "SqliteAuthProvider",
    "validate_address",
    "RecordStore",
    "InMemoryRecordStore",
    "SqliteRecordStore",
    "S3RecordStore",
    "SignedRecord",

    # Pipeline
    "CustodyPipeline",
    "Stage",
    "StageOutcome",
    "UploadSaga",
    "UploadResult",
    "SessionStatus",

    # Errors
    "CustodyError",
    "InputError",
    "InvalidAddress",
    "EmptyPayload",
    "InvalidMarkerLength",
    "InvalidMarkerValue",
    "MalformedArtifact",
    "InvalidSessionID",
    "InvalidKeyMaterial",
    "AuthError",
    "UserNotFound",
    "UserExists",
    "CryptoError",
    "CipherError",
    "IntegrityViolation",
    "AuthenticationFailure",
    "SigningFailure",
    "SignatureMismatch",
    "StorageError",
    "RecordNotFound",
    "LedgerError",
    "LedgerUnavailable",
    "TransactionRejected",
    "FinalityTimeout",
    "SessionIDNotFound",
    "StageFailure",
]
