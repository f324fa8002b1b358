#!/usr/bin/env python3
"""
GenomicDAO Custody Example - Complete End-to-End Flow

Registers a user, uploads a marker stream through the custody pipeline,
verifies and reopens the stored record, then shows what happens when the
ledger never reports the upload session.

Everything runs against in-memory collaborators; no node or database needed.

Run with: python examples/upload_example.py
"""

import json
import os

from genomicdao import (
    CustodyPipeline,
    InMemoryAuthProvider,
    InMemoryLedgerClient,
    InMemoryRecordStore,
    KeyMaterial,
    LedgerCommitOrchestrator,
    SessionIDNotFound,
    Stage,
)
from genomicdao.logging_config import configure_logging
from genomicdao.scoring import markers_to_bytes


def sample_payload() -> bytes:
    """Four scored markers followed by 36 unscored ones."""
    return markers_to_bytes([0.2, 0.4, 0.3, 0.5]) + os.urandom(8 * 36)


def main():
    configure_logging("WARNING", json_format=False)

    key = KeyMaterial.generate()
    auth = InMemoryAuthProvider()
    store = InMemoryRecordStore()
    ledger = InMemoryLedgerClient(next_session_id=1)
    pipeline = CustodyPipeline(auth, store, LedgerCommitOrchestrator(ledger, finality_timeout=5))

    print("=" * 60)
    print("GenomicDAO Custody Demonstration")
    print("=" * 60)

    user_id = auth.register(key.address)
    print(f"\nRegistered {key.address} as user {user_id}")

    # ------------------------------------------------------------
    print("\n" + "-" * 60)
    print("Scenario 1: Upload")
    print("-" * 60)

    payload = sample_payload()
    result = pipeline.upload(payload, key.address, key)
    print(json.dumps(result.to_dict(), indent=2))
    print(f"Reward balance: {pipeline.reward_balance(ledger.account)}")

    # ------------------------------------------------------------
    print("\n" + "-" * 60)
    print("Scenario 2: Verify and retrieve")
    print("-" * 60)

    record = pipeline.verify(result.file_id, expected_address=key.address)
    print(f"Signature OK, content hash 0x{record.content_hash.hex()[:16]}...")
    assert pipeline.retrieve(result.file_id, key) == payload
    print("Retrieved payload matches the upload")

    # ------------------------------------------------------------
    print("\n" + "-" * 60)
    print("Scenario 3: Ledger omits the UploadData event")
    print("-" * 60)

    ledger.suppressed_events.add("UploadData")
    try:
        pipeline.upload(sample_payload(), key.address, key)
    except SessionIDNotFound as e:
        print(f"Failed: {e}")
        print(f"Stored before failure: {e.saga.has_completed(Stage.PERSIST)}")
        print(f"Records in store: {len(store)}")

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
