"""
Custody Pipeline Test Suite

Scenarios run end to end against in-memory collaborators.

Critical invariant tested:
    A failed run reports the failing stage, and callers can tell whether
    the artifact was stored before the ledger commit failed.
"""

import os
import unittest

from genomicdao.auth import InMemoryAuthProvider
from genomicdao.errors import (
    EmptyPayload,
    FinalityTimeout,
    IntegrityViolation,
    InvalidAddress,
    InvalidMarkerLength,
    RecordNotFound,
    SessionIDNotFound,
    SignatureMismatch,
    SigningFailure,
    StageFailure,
    UserNotFound,
)
from genomicdao.keys import KeyMaterial
from genomicdao.ledger import LedgerCommitOrchestrator
from genomicdao.ledger_client import InMemoryLedgerClient
from genomicdao.pipeline import (
    SUCCESS_MESSAGE,
    CustodyPipeline,
    SessionStatus,
    Stage,
)
from genomicdao.scoring import RiskLevel, markers_to_bytes
from genomicdao.signing import content_hash
from genomicdao.storage import RecordStore, SignedRecord

ZERO_PAYLOAD = bytes(8 * 40)


class FixedIdRecordStore(RecordStore):
    """Records every put and hands out a fixed file id."""

    def __init__(self, file_id: str = "abc123"):
        self.file_id = file_id
        self.puts = []
        self.records = {}

    def put(self, owner_id, sealed, content_hash, signature):
        self.puts.append((owner_id, sealed, content_hash, signature))
        self.records[self.file_id] = SignedRecord(self.file_id, owner_id, content_hash, signature, sealed)
        return self.file_id

    def get_record(self, file_id):
        try:
            return self.records[file_id]
        except KeyError:
            raise RecordNotFound(file_id)


class BrokenRecordStore(FixedIdRecordStore):
    def put(self, owner_id, sealed, content_hash, signature):
        raise RuntimeError("disk full")


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.key = KeyMaterial.generate()
        self.auth = InMemoryAuthProvider()
        self.owner_id = self.auth.register(self.key.address)
        self.store = FixedIdRecordStore()
        self.client = InMemoryLedgerClient(next_session_id=42)
        self.pipeline = self._pipeline(self.store)

    def _pipeline(self, store):
        orchestrator = LedgerCommitOrchestrator(self.client, finality_timeout=1.0)
        return CustodyPipeline(self.auth, store, orchestrator)

    def _functions(self):
        return [tx.function for tx in self.client.submitted]


class TestUploadScenarios(PipelineTestCase):

    def test_happy_path(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)

        self.assertEqual(result.session_id, "42")
        self.assertEqual(result.file_id, "abc123")
        self.assertEqual(result.risk_level, RiskLevel.LOW)
        self.assertEqual(result.message, SUCCESS_MESSAGE)
        self.assertEqual(result.status, SessionStatus.MINTED)
        self.assertEqual(result.saga.completed, list(Stage))
        self.assertIsNone(result.saga.failed_stage)

    def test_ledger_receives_file_id_then_fresh_doc_id(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)

        begin, confirm = self.client.submitted
        self.assertEqual(begin.function, "uploadData")
        self.assertEqual(begin.args, ("abc123",))
        self.assertEqual(confirm.function, "confirm")
        self.assertEqual(confirm.args, (result.doc_id, result.content_hash.hex(), "0x1234", 42, 1))
        self.assertNotEqual(result.doc_id, result.file_id)

    def test_stored_record_matches_signature(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)

        owner_id, sealed, digest, signature = self.store.puts[0]
        self.assertEqual(owner_id, self.owner_id)
        self.assertEqual(digest, content_hash(sealed))
        self.assertEqual(digest, result.content_hash)
        self.assertEqual(signature, result.signature)

    def test_high_risk_payload(self):
        payload = markers_to_bytes([1.0, 1.0, 1.0, 1.0]) + bytes(8 * 36)
        result = self.pipeline.upload(payload, self.key.address, self.key)
        self.assertEqual(result.risk_level, RiskLevel.HIGH)
        self.assertEqual(result.confirmation.reward_amount, 30)
        self.assertEqual(self.client.submitted[1].args[4], 4)

    def test_missing_session_event_still_stores(self):
        self.client.suppressed_events.add("UploadData")

        with self.assertRaises(SessionIDNotFound) as ctx:
            self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)

        err = ctx.exception
        self.assertEqual(err.stage, "begin_upload")
        self.assertEqual(len(self.store.puts), 1)
        self.assertTrue(err.saga.has_completed(Stage.PERSIST))
        self.assertEqual(err.saga.failed_stage, Stage.BEGIN_UPLOAD)
        self.assertEqual(err.saga.session.file_id, "abc123")
        self.assertIsNone(err.saga.session.session_id)
        self.assertEqual(self._functions(), ["uploadData"])

    def test_finality_timeout_aborts_before_confirm(self):
        self.client.auto_finalize = False

        with self.assertRaises(FinalityTimeout) as ctx:
            self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key, finality_timeout=0.05)

        self.assertEqual(ctx.exception.stage, "begin_upload")
        self.assertNotIn("confirm", self._functions())
        self.assertEqual(len(self.store.puts), 1)

    def test_saga_outcomes_are_ordered(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)
        self.assertEqual([o.stage for o in result.saga.outcomes], list(Stage))
        self.assertTrue(all(o.succeeded for o in result.saga.outcomes))
        self.assertEqual(result.saga.to_dict()["failed"], None)


class TestStageFailures(PipelineTestCase):

    def test_unregistered_address(self):
        stranger = KeyMaterial.generate()
        with self.assertRaises(UserNotFound) as ctx:
            self.pipeline.upload(ZERO_PAYLOAD, stranger.address, stranger)
        self.assertEqual(ctx.exception.stage, "authenticate")
        self.assertEqual(self.store.puts, [])
        self.assertEqual(self.client.submitted, [])

    def test_invalid_address(self):
        with self.assertRaises(InvalidAddress) as ctx:
            self.pipeline.upload(ZERO_PAYLOAD, "not-an-address", self.key)
        self.assertEqual(str(ctx.exception), "authenticate: invalid address")

    def test_invalid_marker_length_rejected_before_sealing(self):
        with self.assertRaises(InvalidMarkerLength) as ctx:
            self.pipeline.upload(bytes(17), self.key.address, self.key)
        self.assertEqual(ctx.exception.stage, "validate")
        self.assertEqual(ctx.exception.saga.completed, [Stage.AUTHENTICATE])
        self.assertEqual(self.store.puts, [])

    def test_empty_payload(self):
        with self.assertRaises(EmptyPayload) as ctx:
            self.pipeline.upload(b"", self.key.address, self.key)
        self.assertEqual(ctx.exception.stage, "validate")

    def test_public_only_key_fails_at_sign(self):
        with self.assertRaises(SigningFailure) as ctx:
            self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key.public_only())
        self.assertEqual(ctx.exception.stage, "sign")
        self.assertTrue(ctx.exception.saga.has_completed(Stage.SEAL))
        self.assertEqual(self.store.puts, [])

    def test_foreign_exception_is_wrapped(self):
        pipeline = self._pipeline(BrokenRecordStore())
        with self.assertRaises(StageFailure) as ctx:
            pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)
        err = ctx.exception
        self.assertEqual(err.stage, "persist")
        self.assertIsInstance(err.__cause__, RuntimeError)
        self.assertIn("disk full", err.reason)
        self.assertEqual(self.client.submitted, [])

    def test_error_detail(self):
        self.client.suppressed_events.add("UploadData")
        with self.assertRaises(SessionIDNotFound) as ctx:
            self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)
        detail = ctx.exception.to_dict()
        self.assertEqual(detail["stage"], "begin_upload")
        self.assertEqual(detail["error"], "SessionIDNotFound")
        self.assertEqual(detail["phase"], "begin_upload")


class TestRetrieveAndVerify(PipelineTestCase):

    def test_retrieve_round_trip(self):
        payload = os.urandom(8 * 12)
        result = self.pipeline.upload(payload, self.key.address, self.key)
        self.assertEqual(self.pipeline.retrieve(result.file_id, self.key), payload)

    def test_verify(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)
        record = self.pipeline.verify(result.file_id, expected_address=self.key.address)
        self.assertEqual(record.content_hash, result.content_hash)
        self.assertEqual(record.owner_id, self.owner_id)

    def test_verify_wrong_signer(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)
        with self.assertRaises(SignatureMismatch):
            self.pipeline.verify(result.file_id, expected_address=KeyMaterial.generate().address)

    def test_verify_detects_altered_artifact(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)
        record = self.store.records[result.file_id]
        altered = bytearray(record.sealed)
        altered[-1] ^= 0x80
        self.store.records[result.file_id] = SignedRecord(
            record.file_id, record.owner_id, record.content_hash, record.signature, bytes(altered)
        )
        with self.assertRaises(IntegrityViolation):
            self.pipeline.verify(result.file_id)

    def test_unknown_record(self):
        with self.assertRaises(RecordNotFound):
            self.pipeline.retrieve("missing", self.key)

    def test_session_and_balance_after_upload(self):
        result = self.pipeline.upload(ZERO_PAYLOAD, self.key.address, self.key)
        session = self.pipeline.get_session(result.session_id)
        self.assertTrue(session.confirmed)
        self.assertEqual(self.pipeline.reward_balance(self.client.account), 15000)


if __name__ == "__main__":
    unittest.main()
