# CLO Core - Main Package
#
# Local backend for the CLO life-management app:
#   - Vault: passcode-gated, mutually-approved shared items per capsule
#   - Integrations: read-through cached weather, calendar and wearable data
#   - LLM helpers: product enrichment and cancellation letters

__version__ = "0.3.0"
__author__ = "CLO Team"
__description__ = "Vault approval engine and integration cache for the CLO app"

from .core import (
    EventType,
    EventSeverity,
    get_audit_logger,
)
from .exceptions import (
    CloError,
    NotConfiguredError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
    VaultLockedError,
)

__all__ = [
    "__version__",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "CloError",
    "NotConfiguredError",
    "NotFoundError",
    "UnauthorizedError",
    "UpstreamError",
    "ValidationError",
    "VaultLockedError",
]
