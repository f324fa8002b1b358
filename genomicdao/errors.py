"""
Error taxonomy for the custody pipeline.

Every failure raised by this package is a CustodyError. The pipeline
coordinator attaches the stage that failed before re-raising, so callers can
match on the concrete type and still report where the run stopped.

Reason strings never contain key material or plaintext.
"""

from typing import Any, Optional


class CustodyError(Exception):
    """Base class for all custody pipeline failures."""

    def __init__(self, reason: str, stage: Optional[str] = None):
        self.reason = reason
        self.stage = stage
        self.saga: Any = None
        super().__init__(reason)

    def __str__(self) -> str:
        if self.stage:
            return f"{self.stage}: {self.reason}"
        return self.reason

    def to_dict(self):
        return {
            "stage": self.stage,
            "error": type(self).__name__,
            "reason": self.reason,
        }


# ============================================================
# Input errors: rejected before any cryptographic work
# ============================================================

class InputError(CustodyError):
    """Malformed caller input."""


class InvalidAddress(InputError):
    def __init__(self, reason: str = "invalid address"):
        super().__init__(reason)


class EmptyPayload(InputError):
    def __init__(self, reason: str = "no markers provided"):
        super().__init__(reason)


class InvalidMarkerLength(InputError):
    def __init__(self, length: int):
        self.length = length
        super().__init__(f"payload length {length} is not a multiple of 8")


class InvalidMarkerValue(InputError):
    def __init__(self, value: float):
        self.value = value
        super().__init__(f"marker {value!r} outside [0, 2)")


class MalformedArtifact(InputError):
    def __init__(self, length: int, minimum: int):
        self.length = length
        super().__init__(f"sealed artifact too short: {length} < {minimum} bytes")


class InvalidSessionID(InputError):
    def __init__(self, session_id: Any):
        self.session_id = session_id
        super().__init__(f"failed to parse session ID {session_id!r}")


class InvalidKeyMaterial(InputError):
    def __init__(self, reason: str = "invalid key material"):
        super().__init__(reason)


# ============================================================
# Identity errors
# ============================================================

class AuthError(CustodyError):
    """Identity lookup failures."""


class UserNotFound(AuthError):
    def __init__(self, reason: str = "user not found"):
        super().__init__(reason)


class UserExists(AuthError):
    def __init__(self, reason: str = "user exists"):
        super().__init__(reason)


# ============================================================
# Cryptographic errors: never retried
# ============================================================

class CryptoError(CustodyError):
    """Cipher, integrity or signature failures."""


class CipherError(CryptoError):
    pass


class IntegrityViolation(CryptoError):
    def __init__(self, reason: str = "data integrity check failed"):
        super().__init__(reason)


class AuthenticationFailure(IntegrityViolation):
    """AEAD tag rejected: ciphertext or associated data was altered."""

    def __init__(self, reason: str = "authenticated decryption failed"):
        super().__init__(reason)


class SigningFailure(CryptoError):
    pass


class SignatureMismatch(CryptoError):
    def __init__(self, reason: str = "signature does not match expected signer"):
        super().__init__(reason)


# ============================================================
# Storage errors
# ============================================================

class StorageError(CustodyError):
    pass


class RecordNotFound(StorageError):
    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"record {file_id} not found")


# ============================================================
# Ledger errors: carry the commit phase that failed
# ============================================================

class LedgerError(CustodyError):
    """Failures talking to the ledger contract."""

    def __init__(self, reason: str, phase: Optional[str] = None):
        self.phase = phase
        super().__init__(reason)

    def __str__(self) -> str:
        text = f"{self.phase}: {self.reason}" if self.phase else self.reason
        if self.stage and self.stage != self.phase:
            return f"{self.stage}: {text}"
        return text

    def with_phase(self, phase: str) -> "LedgerError":
        """Attach the commit phase if the client that raised did not know it."""
        if self.phase is None:
            self.phase = phase
        return self

    def to_dict(self):
        detail = super().to_dict()
        detail["phase"] = self.phase
        return detail


class LedgerUnavailable(LedgerError):
    pass


class TransactionRejected(LedgerError):
    pass


class FinalityTimeout(LedgerError):
    def __init__(self, tx_hash: str, timeout: float, phase: Optional[str] = None):
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"transaction {tx_hash} not final after {timeout:g}s", phase)


class SessionIDNotFound(LedgerError):
    def __init__(self, tx_hash: str, phase: Optional[str] = "begin_upload"):
        self.tx_hash = tx_hash
        super().__init__(f"no UploadData event in receipt of {tx_hash}", phase)


# ============================================================
# Wrapped collaborator failures
# ============================================================

class StageFailure(CustodyError):
    """A collaborator raised something outside this taxonomy."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"{type(cause).__name__}: {cause}")
