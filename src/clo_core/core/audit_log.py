# CLO Core - Audit Logging
#
# Append-only structured audit log for vault and integration events.
# Every passcode setup, unlock attempt, upload, approval and deletion is
# recorded with a timestamp and the acting party. Passcodes, hashes,
# tokens and item content are never written to the log: detail keys that
# could carry them are masked before the event is rendered.

import logging
import os
import socket
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "clo_core.audit"

# Detail keys whose values must never reach the audit file
SENSITIVE_DETAIL_KEYS = frozenset({
    "passcode",
    "passcode_hash",
    "content",
    "encrypted_content",
    "access_token",
    "refresh_token",
    "api_key",
    "client_secret",
    "invite_token",
    "token",
})
REDACTED = "[redacted]"


class EventType(str, Enum):
    """Audit event types, dotted by subsystem."""
    # Vault
    VAULT_PASSCODE_SET = "vault.passcode.set"
    VAULT_UNLOCKED = "vault.unlocked"
    VAULT_LOCKED = "vault.locked"
    VAULT_UNLOCK_FAILED = "vault.unlock.failed"
    VAULT_ITEM_UPLOADED = "vault.item.uploaded"
    VAULT_ITEM_APPROVED = "vault.item.approved"
    VAULT_ITEM_REVEALED = "vault.item.revealed"
    VAULT_ITEM_DELETED = "vault.item.deleted"
    VAULT_FILE_UPLOADED = "vault.file.uploaded"
    VAULT_ACCESS_DENIED = "vault.access.denied"
    VAULT_CAPSULE_CREATED = "vault.capsule.created"
    VAULT_CAPSULE_JOINED = "vault.capsule.joined"
    VAULT_ERROR = "vault.error"

    # Integrations
    INTEGRATION_FETCHED = "integration.fetched"
    INTEGRATION_CACHE_HIT = "integration.cache.hit"
    INTEGRATION_TOKEN_REFRESHED = "integration.token.refreshed"
    INTEGRATION_RECONNECT_REQUIRED = "integration.reconnect.required"
    INTEGRATION_CONNECTED = "integration.connected"
    INTEGRATION_DISCONNECTED = "integration.disconnected"
    INTEGRATION_ERROR = "integration.error"

    # Sessions
    SESSION_ISSUED = "session.issued"
    SESSION_REVOKED = "session.revoked"
    SESSION_DENIED = "session.denied"

    # Process lifecycle
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"


class EventSeverity(str, Enum):
    """
    Severity levels for audit events.

    - INFO: Normal activity
    - INVESTIGATE: Something unusual (failed unlock, reconnect required)
    - ALERT: An operation failed and the user should know
    - CRITICAL: Unexpected internal failure
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


def _scrub(details: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``details`` with sensitive values masked (one level deep)."""
    scrubbed = {}
    for key, value in details.items():
        if key.lower() in SENSITIVE_DETAIL_KEYS and value is not None:
            scrubbed[key] = REDACTED
        else:
            scrubbed[key] = value
    return scrubbed


class AuditLogger:
    """
    Append-only audit logger for vault and integration events.

    Each event is one JSON line in ``<log_dir>/audit_<YYYY-MM-DD>.log``
    carrying an event id, type, severity, UTC timestamp, details and the
    acting context.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self.log_file = self.log_dir / f"audit_{datetime.now().strftime('%Y-%m-%d')}.log"
        self._attach_file_handler()
        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)
        self._process_context = {
            "os_user": os.getenv("USER") or os.getenv("USERNAME"),
            "hostname": socket.gethostname(),
            "pid": os.getpid(),
        }

    def _attach_file_handler(self) -> None:
        """Route the audit logger to this instance's file only."""
        handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(message)s"))

        stdlib_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for old in list(stdlib_logger.handlers):
            stdlib_logger.removeHandler(old)
            old.close()
        stdlib_logger.addHandler(handler)
        stdlib_logger.setLevel(logging.INFO)
        stdlib_logger.propagate = False

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Append one audit event.

        Args:
            event_type: Type of event
            severity: Severity level
            message: Human-readable description
            details: Extra fields; sensitive keys are masked
            user_context: Acting party (defaults to the OS process context)

        Returns:
            str: Event ID (UUID)
        """
        event_id = str(uuid4())
        self.logger.info(
            "audit_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            details=_scrub(details or {}),
            user_context=user_context or self._process_context,
        )
        return event_id

    def log_vault_event(
        self,
        event_type: EventType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> str:
        """Log a vault event. ``details`` should carry ids, never content."""
        return self.log_event(event_type, severity, f"Vault: {message}", details=details)

    def log_integration_event(
        self,
        event_type: EventType,
        provider: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> str:
        event_details = dict(details or {})
        event_details["provider"] = provider
        return self.log_event(
            event_type, severity, f"Integration[{provider}]: {message}", details=event_details
        )


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Process-wide audit logger, created on first use."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(log_dir: Path) -> AuditLogger:
    """Replace the process-wide audit logger with one writing to ``log_dir``."""
    global _audit_logger
    _audit_logger = AuditLogger(log_dir=log_dir)
    return _audit_logger
