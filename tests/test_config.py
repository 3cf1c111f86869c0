"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from clo_core.config import Settings


ENV_VARS = (
    "CLO_DATA_DIR", "CLO_VAULT_DB", "CLO_INTEGRATIONS_DB", "CLO_BLOB_DIR",
    "CLO_BLOB_BASE_URL", "CLO_SECURE_STORAGE", "CLO_AUDIT_LOG_DIR", "CLO_HOST",
    "CLO_PORT", "CLO_HTTP_TIMEOUT", "CLO_PASSCODE_ITERATIONS", "CLO_BOOTSTRAP_TOKEN",
    "OPENWEATHERMAP_API_KEY", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET",
    "OURA_CLIENT_ID", "OURA_CLIENT_SECRET", "OPENAI_API_KEY", "OPENAI_MODEL",
    "OPENAI_BASE_URL",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Run from an empty directory so no stray .env is picked up
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def test_paths_derive_from_data_dir(tmp_path):
    settings = Settings(data_dir=tmp_path)
    assert settings.vault_db_path == tmp_path / "vault.db"
    assert settings.integrations_db_path == tmp_path / "integrations.db"
    assert settings.blob_dir == tmp_path / "vault-files"
    assert settings.secure_storage_path == tmp_path / "secure_store.json"
    assert settings.audit_log_dir == tmp_path / "audit_logs"


def test_explicit_paths_win(tmp_path):
    settings = Settings(data_dir=tmp_path, vault_db_path=tmp_path / "other.db")
    assert settings.vault_db_path == tmp_path / "other.db"


def test_from_env(clean_env, tmp_path):
    clean_env.setenv("CLO_DATA_DIR", str(tmp_path / "clo"))
    clean_env.setenv("CLO_PORT", "9001")
    clean_env.setenv("CLO_HTTP_TIMEOUT", "2.5")
    clean_env.setenv("OPENWEATHERMAP_API_KEY", "owm")
    clean_env.setenv("OPENAI_MODEL", "gpt-4o-mini")

    settings = Settings.from_env(env_file=str(tmp_path / "missing.env"))
    assert settings.data_dir == tmp_path / "clo"
    assert settings.vault_db_path == tmp_path / "clo" / "vault.db"
    assert settings.port == 9001
    assert settings.http_timeout == 2.5
    assert settings.openweathermap_api_key == "owm"
    assert settings.google_client_id is None
    assert settings.openai_model == "gpt-4o-mini"


def test_from_env_reads_dotenv_without_overriding(clean_env, tmp_path):
    env_file = tmp_path / "test.env"
    env_file.write_text("CLO_PORT=7000\nOURA_CLIENT_ID=from-file\n")
    clean_env.setenv("CLO_PORT", "7100")

    settings = Settings.from_env(env_file=str(env_file))
    assert settings.port == 7100
    assert settings.oura_client_id == "from-file"
    clean_env.delenv("OURA_CLIENT_ID", raising=False)


def test_empty_credentials_are_none(clean_env, tmp_path):
    clean_env.setenv("OPENAI_API_KEY", "")
    assert Settings.from_env(env_file=str(tmp_path / "missing.env")).openai_api_key is None


def test_bad_int(clean_env, tmp_path):
    clean_env.setenv("CLO_PORT", "eighty")
    with pytest.raises(ValueError, match="CLO_PORT"):
        Settings.from_env(env_file=str(tmp_path / "missing.env"))


def test_defaults(clean_env, tmp_path):
    settings = Settings.from_env(env_file=str(tmp_path / "missing.env"))
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.data_dir == Path.home() / ".clo"


def test_bootstrap_token(clean_env, tmp_path):
    assert Settings.from_env(env_file=str(tmp_path / "missing.env")).bootstrap_token is None
    clean_env.setenv("CLO_BOOTSTRAP_TOKEN", "local-secret")
    assert Settings.from_env(env_file=str(tmp_path / "missing.env")).bootstrap_token == "local-secret"
