"""
Record persistence for sealed artifacts.

A RecordStore keeps each SignedRecord under an opaque file id that it assigns
on put. Records are immutable: there is no update or delete.

Backends:
- InMemoryRecordStore: development/testing
- SqliteRecordStore: gene_records table (see db.py)
- S3RecordStore: one immutable object per record in a bucket with Object Lock
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from . import db
from .errors import RecordNotFound, StorageError
from .util import generate_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedRecord:
    """A sealed artifact with its content hash and detached signature."""
    file_id: str
    owner_id: int
    content_hash: bytes
    signature: bytes
    sealed: bytes

    def to_dict(self) -> Dict[str, Any]:
        """Public summary; the sealed bytes are left out."""
        return {
            "file_id": self.file_id,
            "owner_id": self.owner_id,
            "content_hash": "0x" + self.content_hash.hex(),
            "signature": "0x" + self.signature.hex(),
            "size": len(self.sealed),
        }


class RecordStore(ABC):
    """Abstract interface for sealed artifact persistence."""

    @abstractmethod
    def put(self, owner_id: int, sealed: bytes, content_hash: bytes, signature: bytes) -> str:
        """Persist a record and return its new file id."""
        pass

    @abstractmethod
    def get_record(self, file_id: str) -> SignedRecord:
        """
        Raises:
            RecordNotFound: no record under file_id
        """
        pass

    def get(self, file_id: str) -> bytes:
        """Return only the sealed artifact."""
        return self.get_record(file_id).sealed


class InMemoryRecordStore(RecordStore):
    """
    In-memory record store for development/testing.

    WARNING: Not suitable for production.
    - Not persistent across restarts
    """

    def __init__(self):
        self._records: Dict[str, SignedRecord] = {}
        self._lock = threading.Lock()

    def put(self, owner_id: int, sealed: bytes, content_hash: bytes, signature: bytes) -> str:
        with self._lock:
            file_id = generate_id()
            while file_id in self._records:
                file_id = generate_id()
            self._records[file_id] = SignedRecord(
                file_id=file_id,
                owner_id=owner_id,
                content_hash=bytes(content_hash),
                signature=bytes(signature),
                sealed=bytes(sealed),
            )
            return file_id

    def get_record(self, file_id: str) -> SignedRecord:
        with self._lock:
            record = self._records.get(file_id)
        if record is None:
            raise RecordNotFound(file_id)
        return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SqliteRecordStore(RecordStore):
    """Record store backed by the gene_records table."""

    def __init__(self):
        db.init_db()

    def put(self, owner_id: int, sealed: bytes, content_hash: bytes, signature: bytes) -> str:
        file_id = generate_id()
        db.insert_record(file_id, owner_id, bytes(content_hash), bytes(signature), bytes(sealed))
        return file_id

    def get_record(self, file_id: str) -> SignedRecord:
        row = db.get_record(file_id)
        if row is None:
            raise RecordNotFound(file_id)
        return SignedRecord(
            file_id=row["file_id"],
            owner_id=row["owner_id"],
            content_hash=bytes(row["content_hash"]),
            signature=bytes(row["signature"]),
            sealed=bytes(row["sealed_data"]),
        )


class S3RecordStore(RecordStore):
    """
    Writes each sealed artifact as a separate immutable object to an S3
    bucket with Object Lock. Hash, signature and owner travel as object
    metadata.

    Requires bucket with Object Lock enabled.
    Docs: https://docs.aws.amazon.com/AmazonS3/latest/userguide/object-lock.html
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "genomicdao/records/",
        retention_days: int = 365,
        legal_hold: str = "OFF",
        client: Optional[Any] = None,
    ):
        self.bucket = bucket
        self.prefix = prefix.rstrip("/") + "/"
        self.retention_days = retention_days
        self.legal_hold = legal_hold
        self._s3 = client or boto3.client("s3")

    def _key(self, file_id: str) -> str:
        return f"{self.prefix}{file_id}.sealed"

    def put(self, owner_id: int, sealed: bytes, content_hash: bytes, signature: bytes) -> str:
        file_id = generate_id()
        retain_until = datetime.now(timezone.utc) + timedelta(days=int(self.retention_days))
        try:
            self._s3.put_object(
                Bucket=self.bucket,
                Key=self._key(file_id),
                Body=bytes(sealed),
                ContentType="application/octet-stream",
                Metadata={
                    "owner-id": str(owner_id),
                    "content-hash": content_hash.hex(),
                    "signature": signature.hex(),
                },
                ObjectLockMode="COMPLIANCE",
                ObjectLockRetainUntilDate=retain_until,
                ObjectLockLegalHoldStatus=self.legal_hold,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 put failed for %s: %s", file_id, e)
            raise StorageError(f"writing record {file_id} failed") from e
        return file_id

    def get_record(self, file_id: str) -> SignedRecord:
        try:
            obj = self._s3.get_object(Bucket=self.bucket, Key=self._key(file_id))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise RecordNotFound(file_id) from e
            raise StorageError(f"reading record {file_id} failed") from e
        except BotoCoreError as e:
            raise StorageError(f"reading record {file_id} failed") from e

        meta = obj.get("Metadata", {})
        return SignedRecord(
            file_id=file_id,
            owner_id=int(meta["owner-id"]),
            content_hash=bytes.fromhex(meta["content-hash"]),
            signature=bytes.fromhex(meta["signature"]),
            sealed=obj["Body"].read(),
        )
