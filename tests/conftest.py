"""
Shared pytest fixtures for the CLO Core test suite.

The autouse fixture below isolates tests from the live application data:
  - Audit logger -> temp directory (prevents test events in real audit logs)

Everything else (stores, caches, blob directories) is built per test on
``:memory:`` databases or ``tmp_path``.
"""

from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into ``./audit_logs/``.
    """
    import clo_core.core.audit_log as audit_mod

    # Reset the singleton so the next call to get_audit_logger() creates
    # a fresh instance pointing at the temp directory.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger


class FakeClock:
    """Controllable UTC clock for cache expiry tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


# ── Vault fixtures ───────────────────────────────────────────────────


@pytest.fixture
def vault_store():
    from clo_core.vault import VaultStore

    store = VaultStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def blob_store(tmp_path):
    from clo_core.vault import LocalBlobStore

    return LocalBlobStore(tmp_path / "blobs", "http://localhost:8000/files")


@pytest.fixture
def capsule(vault_store):
    """A capsule shared by alice (user A) and bob (user B)."""
    return vault_store.create_capsule("alice", "bob", capsule_id="cap-1")


@pytest.fixture
def vault_manager(vault_store, blob_store):
    from clo_core.vault import VaultManager

    return VaultManager(vault_store, blob_store)


@pytest.fixture
def fast_hasher():
    """PBKDF2 with few iterations so tests stay quick."""
    from clo_core.vault import PasscodeHasher

    return PasscodeHasher(iterations=1000)


@pytest.fixture
def secure_storage(tmp_path):
    from clo_core.vault import FileSecureStorage

    return FileSecureStorage(tmp_path / "secure_store.json")


@pytest.fixture
def passcodes(secure_storage, fast_hasher, vault_store):
    from clo_core.vault import PasscodeManager

    return PasscodeManager(
        secure_storage,
        hasher=fast_hasher,
        record_setup=vault_store.record_setup,
    )


# ── Integration fixtures ─────────────────────────────────────────────


@pytest.fixture
def cache(clock):
    from clo_core.integrations import IntegrationCache

    c = IntegrationCache(":memory:", clock=clock)
    yield c
    c.close()


@pytest.fixture
def integration_store():
    from clo_core.integrations import IntegrationStore

    s = IntegrationStore(":memory:")
    yield s
    s.close()


# ── API fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def api_http():
    """Mocked outbound HTTP client shared by every fetcher and the LLM client."""
    from unittest.mock import MagicMock

    import httpx

    return MagicMock(spec=httpx.Client)


@pytest.fixture
def api_services(tmp_path, api_http):
    from clo_core.api import build_services
    from clo_core.config import Settings

    settings = Settings(
        data_dir=tmp_path / "data",
        passcode_iterations=1000,
        openweathermap_api_key="env-key",
        openai_api_key="sk-test",
    )
    services = build_services(settings, http_client=api_http)
    services.vault_store.create_capsule("alice", "bob", capsule_id="cap-1")
    yield services
    services.vault_store.close()


@pytest.fixture
def client(api_services):
    from fastapi.testclient import TestClient

    from clo_core.api import create_app

    return TestClient(create_app(services=api_services))


@pytest.fixture
def alice(api_services):
    """Authorization headers for alice."""
    return {"Authorization": f"Bearer {api_services.sessions.issue('alice')}"}


@pytest.fixture
def bob(api_services):
    return {"Authorization": f"Bearer {api_services.sessions.issue('bob')}"}
