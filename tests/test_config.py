import pytest

from genomicdao import config
from genomicdao.auth import InMemoryAuthProvider, SqliteAuthProvider
from genomicdao.errors import InvalidKeyMaterial
from genomicdao.ledger_client import InMemoryLedgerClient, Web3LedgerClient
from genomicdao.storage import InMemoryRecordStore, SqliteRecordStore

KEY_ONE = "00" * 31 + "01"


@pytest.fixture
def memory_backends(monkeypatch):
    monkeypatch.setattr(config, "LEDGER_BACKEND", "memory")
    monkeypatch.setattr(config, "RECORD_STORE_BACKEND", "memory")
    monkeypatch.setattr(config, "AUTH_BACKEND", "memory")
    monkeypatch.setattr(config, "PRIVATE_KEY", KEY_ONE)


def test_custody_key_required(monkeypatch):
    monkeypatch.setattr(config, "PRIVATE_KEY", "")
    with pytest.raises(InvalidKeyMaterial):
        config.get_custody_key()


def test_custody_key_from_env_value(memory_backends):
    assert config.get_custody_key().address == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"


def test_memory_backends(memory_backends):
    assert isinstance(config.get_ledger_client(), InMemoryLedgerClient)
    assert isinstance(config.get_record_store(), InMemoryRecordStore)
    assert isinstance(config.get_auth_provider(), InMemoryAuthProvider)


def test_sqlite_backends(monkeypatch, tmp_path):
    from genomicdao import db

    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "custody.db"))
    monkeypatch.setattr(config, "RECORD_STORE_BACKEND", "sqlite")
    monkeypatch.setattr(config, "AUTH_BACKEND", "sqlite")
    try:
        assert isinstance(config.get_record_store(), SqliteRecordStore)
        assert isinstance(config.get_auth_provider(), SqliteAuthProvider)
        assert (tmp_path / "custody.db").exists()
    finally:
        db.close_connection()


def test_build_pipeline_uploads(memory_backends):
    pipeline = config.build_pipeline()
    key = config.get_custody_key()
    pipeline.auth.register(key.address)

    result = pipeline.upload(bytes(8 * 40), key.address, key)
    assert result.risk_level == 1
    assert pipeline.orchestrator.finality_timeout == config.FINALITY_TIMEOUT_SECONDS


def test_validate_config_flags_missing_settings(monkeypatch):
    monkeypatch.setattr(config, "PRIVATE_KEY", "")
    monkeypatch.setattr(config, "LEDGER_BACKEND", "web3")
    monkeypatch.setattr(config, "CONTROLLER_ADDRESS", "")
    monkeypatch.setattr(config, "RECORD_STORE_BACKEND", "s3")
    monkeypatch.setattr(config, "S3_BUCKET", "")
    checks = config.validate_config()
    assert checks["private_key"] is False
    assert checks["controller_address"] is False
    assert checks["s3_bucket"] is False


def test_validate_config_memory_only(memory_backends):
    assert all(config.validate_config().values())


def test_environment_flags(monkeypatch):
    monkeypatch.setattr(config, "ENV", "prod")
    assert config.is_production()
    monkeypatch.setenv("GENOMICDAO_DEBUG", "true")
    assert config.is_debug()


def test_read_only_ledger_client_needs_no_private_key(monkeypatch):
    monkeypatch.setattr(config, "LEDGER_BACKEND", "web3")
    monkeypatch.setattr(config, "PRIVATE_KEY", "")
    monkeypatch.setattr(config, "RPC_URL", "http://127.0.0.1:8545")
    monkeypatch.setattr(config, "CONTROLLER_ADDRESS", "0x" + "c0" * 20)
    monkeypatch.setattr(config, "CHAIN_ID", 1337)

    client = config.get_ledger_client(read_only=True)
    assert isinstance(client, Web3LedgerClient)
    assert client.read_only

    with pytest.raises(InvalidKeyMaterial):
        config.get_ledger_client()


def test_read_only_ledger_client_keeps_configured_key(monkeypatch, memory_backends):
    monkeypatch.setattr(config, "LEDGER_BACKEND", "web3")
    monkeypatch.setattr(config, "RPC_URL", "http://127.0.0.1:8545")
    monkeypatch.setattr(config, "CONTROLLER_ADDRESS", "0x" + "c0" * 20)
    monkeypatch.setattr(config, "CHAIN_ID", 1337)

    client = config.get_ledger_client(read_only=True)
    assert client.account == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
