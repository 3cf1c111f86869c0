# CLO Core - Configuration
#
# Settings are read from the environment (optionally seeded from a .env
# file). Provider credentials live here as fallbacks; per-user credentials
# are stored in the integrations table and take precedence.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DATA_DIR = Path.home() / ".clo"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class Settings:
    """Runtime configuration for the CLO backend.

    Paths default to locations under ``data_dir``; every other value has
    a usable default except provider credentials, which are optional and
    checked at fetch time.
    """

    data_dir: Path = DEFAULT_DATA_DIR
    vault_db_path: Optional[Path] = None
    integrations_db_path: Optional[Path] = None
    blob_dir: Optional[Path] = None
    blob_base_url: str = "http://127.0.0.1:8000/files"
    secure_storage_path: Optional[Path] = None
    audit_log_dir: Optional[Path] = None

    host: str = "127.0.0.1"
    port: int = 8000

    http_timeout: float = 15.0
    passcode_iterations: int = 600_000

    # Shared secret the embedding app presents to obtain session tokens
    bootstrap_token: Optional[str] = None

    openweathermap_api_key: Optional[str] = None
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    oura_client_id: Optional[str] = None
    oura_client_secret: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"

    cors_origins: list = field(default_factory=lambda: [
        "http://localhost:8081", "http://127.0.0.1:8081",
        "http://localhost:19006", "http://127.0.0.1:19006",
    ])

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.vault_db_path is None:
            self.vault_db_path = self.data_dir / "vault.db"
        if self.integrations_db_path is None:
            self.integrations_db_path = self.data_dir / "integrations.db"
        if self.blob_dir is None:
            self.blob_dir = self.data_dir / "vault-files"
        if self.secure_storage_path is None:
            self.secure_storage_path = self.data_dir / "secure_store.json"
        if self.audit_log_dir is None:
            self.audit_log_dir = self.data_dir / "audit_logs"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from ``CLO_*`` and provider environment variables.

        A ``.env`` file (``env_file`` or the nearest one found) is loaded
        first without overriding variables already set.
        """
        load_dotenv(env_file, override=False)

        def _path(name: str) -> Optional[Path]:
            value = os.getenv(name)
            return Path(value) if value else None

        return cls(
            data_dir=_path("CLO_DATA_DIR") or DEFAULT_DATA_DIR,
            vault_db_path=_path("CLO_VAULT_DB"),
            integrations_db_path=_path("CLO_INTEGRATIONS_DB"),
            blob_dir=_path("CLO_BLOB_DIR"),
            blob_base_url=os.getenv("CLO_BLOB_BASE_URL", "http://127.0.0.1:8000/files"),
            secure_storage_path=_path("CLO_SECURE_STORAGE"),
            audit_log_dir=_path("CLO_AUDIT_LOG_DIR"),
            host=os.getenv("CLO_HOST", "127.0.0.1"),
            port=_env_int("CLO_PORT", 8000),
            http_timeout=_env_float("CLO_HTTP_TIMEOUT", 15.0),
            passcode_iterations=_env_int("CLO_PASSCODE_ITERATIONS", 600_000),
            bootstrap_token=os.getenv("CLO_BOOTSTRAP_TOKEN") or None,
            openweathermap_api_key=os.getenv("OPENWEATHERMAP_API_KEY") or None,
            google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET") or None,
            oura_client_id=os.getenv("OURA_CLIENT_ID") or None,
            oura_client_secret=os.getenv("OURA_CLIENT_SECRET") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        )
