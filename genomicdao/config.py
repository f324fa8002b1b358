"""
Configuration module for the custody service.

Centralizes all configuration with environment variable support,
validation, and component factories.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from . import db
from .auth import AuthProvider, InMemoryAuthProvider, SqliteAuthProvider
from .errors import InvalidKeyMaterial
from .keys import KeyMaterial
from .ledger import LedgerCommitOrchestrator
from .ledger_client import InMemoryLedgerClient, LedgerClient, Web3LedgerClient
from .pipeline import CustodyPipeline
from .storage import InMemoryRecordStore, RecordStore, S3RecordStore, SqliteRecordStore

logger = logging.getLogger(__name__)

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("GENOMICDAO_ENV", "dev")  # dev|stage|prod

# Ledger
RPC_URL = os.getenv("RPC_URL", "http://127.0.0.1:8545")
CONTROLLER_ADDRESS = os.getenv("CONTROLLER_ADDRESS", "")
PRIVATE_KEY = os.getenv("PRIVATE_KEY", "")
CHAIN_ID = int(os.environ["CHAIN_ID"]) if os.getenv("CHAIN_ID") else None
LEDGER_BACKEND = os.getenv("LEDGER_BACKEND", "web3")  # web3|memory

# Finality
FINALITY_TIMEOUT_SECONDS = float(os.getenv("FINALITY_TIMEOUT_SECONDS", "120"))
FINALITY_POLL_SECONDS = float(os.getenv("FINALITY_POLL_SECONDS", "0.5"))
FINALITY_CONFIRMATIONS = int(os.getenv("FINALITY_CONFIRMATIONS", "0"))
RPC_REQUEST_TIMEOUT = float(os.getenv("RPC_REQUEST_TIMEOUT", "30"))

# Persistence
RECORD_STORE_BACKEND = os.getenv("RECORD_STORE_BACKEND", "sqlite")  # sqlite|s3|memory
AUTH_BACKEND = os.getenv("AUTH_BACKEND", "sqlite")  # sqlite|memory
DB_PATH = os.getenv("DB_PATH", "data/genomicdao.db")
S3_BUCKET = os.getenv("S3_BUCKET", "")
S3_PREFIX = os.getenv("S3_PREFIX", "genomicdao/records/")
S3_RETENTION_DAYS = int(os.getenv("S3_RETENTION_DAYS", "365"))
S3_LEGAL_HOLD = os.getenv("S3_LEGAL_HOLD", "OFF")

# Pipeline
PLACEHOLDER_PROOF = os.getenv("PLACEHOLDER_PROOF", "0x1234")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes")


# ============================================================
# Component Factories
# ============================================================

def get_custody_key() -> KeyMaterial:
    """The service's own key pair, used to seal, sign and submit."""
    if not PRIVATE_KEY:
        raise InvalidKeyMaterial("PRIVATE_KEY is not set")
    return KeyMaterial.from_private_hex(PRIVATE_KEY)


def get_ledger_client(read_only: bool = False) -> LedgerClient:
    """
    Ledger client for the configured backend. With read_only, a missing
    PRIVATE_KEY yields a client that can only query the controller.
    """
    if LEDGER_BACKEND == "memory":
        logger.warning("Using in-memory ledger; nothing is committed on chain")
        return InMemoryLedgerClient()
    key_material = None
    if PRIVATE_KEY or not read_only:
        key_material = get_custody_key()
    return Web3LedgerClient(
        rpc_url=RPC_URL,
        controller_address=CONTROLLER_ADDRESS,
        key_material=key_material,
        chain_id=CHAIN_ID,
        request_timeout=RPC_REQUEST_TIMEOUT,
        poll_interval=FINALITY_POLL_SECONDS,
        confirmations=FINALITY_CONFIRMATIONS,
    )


def get_record_store() -> RecordStore:
    if RECORD_STORE_BACKEND == "s3":
        return S3RecordStore(
            bucket=S3_BUCKET,
            prefix=S3_PREFIX,
            retention_days=S3_RETENTION_DAYS,
            legal_hold=S3_LEGAL_HOLD,
        )
    if RECORD_STORE_BACKEND == "memory":
        return InMemoryRecordStore()
    db.configure(DB_PATH)
    return SqliteRecordStore()


def get_auth_provider() -> AuthProvider:
    if AUTH_BACKEND == "memory":
        return InMemoryAuthProvider()
    db.configure(DB_PATH)
    return SqliteAuthProvider()


def build_pipeline(ledger_client: Optional[LedgerClient] = None) -> CustodyPipeline:
    """Assemble a pipeline from the configured backends."""
    client = ledger_client or get_ledger_client()
    orchestrator = LedgerCommitOrchestrator(client, finality_timeout=FINALITY_TIMEOUT_SECONDS)
    return CustodyPipeline(
        auth=get_auth_provider(),
        store=get_record_store(),
        orchestrator=orchestrator,
        placeholder_proof=PLACEHOLDER_PROOF,
    )


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate that required settings are present for the chosen backends.
    Returns dict of setting -> ok.
    """
    checks = {"private_key": bool(PRIVATE_KEY)}

    if LEDGER_BACKEND == "web3":
        checks["rpc_url"] = bool(RPC_URL)
        checks["controller_address"] = bool(CONTROLLER_ADDRESS)

    if RECORD_STORE_BACKEND == "s3":
        checks["s3_bucket"] = bool(S3_BUCKET)

    if "sqlite" in (RECORD_STORE_BACKEND, AUTH_BACKEND):
        checks["db_path"] = not Path(DB_PATH).is_dir()

    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("GENOMICDAO_DEBUG", "").lower() in ("1", "true", "yes")
