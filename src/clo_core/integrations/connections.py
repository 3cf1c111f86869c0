# Integrations - Provider Connections
#
# Connect, disconnect and list a user's providers. OpenWeatherMap takes an
# API key; Google Calendar and Oura take OAuth tokens the app obtained
# from the provider's consent flow. Reconnecting replaces the stored
# credentials; cached data still expires only by TTL.

from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..core import EventType, get_audit_logger
from ..exceptions import NotFoundError, ValidationError
from .cache import Clock, utc_now
from .models import IntegrationProvider, StoredIntegration
from .store import IntegrationStore

API_KEY_PROVIDERS = frozenset({IntegrationProvider.OPENWEATHERMAP})


def parse_provider(provider: str) -> IntegrationProvider:
    try:
        return IntegrationProvider(provider)
    except ValueError as e:
        raise ValidationError(f"Unknown provider: {provider}") from e


def connection_summary(integration: StoredIntegration) -> Dict[str, Any]:
    """Client-safe view of a stored connection. Credentials never leave."""
    expires = integration.token_expires_at
    return {
        "provider": integration.provider,
        "is_active": integration.is_active,
        "has_api_key": bool(integration.api_key),
        "has_refresh_token": bool(integration.refresh_token),
        "token_expires_at": expires.isoformat() if expires else None,
        "last_synced_at": integration.last_synced_at,
        "last_error": integration.last_error,
        "config": integration.config,
    }


class IntegrationConnections:
    """
    Manage which providers a user has connected.

    Args:
        store: Credential storage.
        clock: UTC clock used to turn ``expires_in`` into an expiry.
        audit: Audit logger (defaults to the process-wide one).
    """

    def __init__(self, store: IntegrationStore, clock: Optional[Clock] = None, audit=None):
        self.store = store
        self.clock = clock or utc_now
        self.audit = audit or get_audit_logger()

    def list(self, user_id: str) -> List[Dict[str, Any]]:
        return [connection_summary(i) for i in self.store.list_for_user(user_id)]

    def connect(
        self,
        user_id: str,
        provider: str,
        *,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> StoredIntegration:
        """
        Store credentials for ``provider`` and mark it active.

        Raises:
            ValidationError: unknown provider, or the credential the
                provider needs is missing
        """
        kind = parse_provider(provider)
        if kind in API_KEY_PROVIDERS:
            if not api_key:
                raise ValidationError(f"{kind.value} requires an api_key")
            access_token = refresh_token = None
            expires_in = None
        else:
            if not access_token:
                raise ValidationError(f"{kind.value} requires an access_token")
            api_key = None
        if expires_in is not None and expires_in <= 0:
            raise ValidationError("expires_in must be positive")

        token_expires_at = None
        if expires_in is not None:
            token_expires_at = self.clock() + timedelta(seconds=expires_in)

        integration = self.store.upsert(
            user_id,
            kind.value,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=token_expires_at,
            api_key=api_key,
            config=config,
        )
        self.audit.log_integration_event(
            EventType.INTEGRATION_CONNECTED,
            kind.value,
            "Provider connected",
            details={"user_id": user_id},
        )
        return integration

    def disconnect(self, user_id: str, provider: str) -> None:
        """
        Deactivate a provider for the user. Stored credentials stay until
        the next connect overwrites them.

        Raises:
            ValidationError: unknown provider
            NotFoundError: the user never connected this provider
        """
        kind = parse_provider(provider)
        if not self.store.deactivate(user_id, kind.value):
            raise NotFoundError(f"{kind.value} is not connected")
        self.audit.log_integration_event(
            EventType.INTEGRATION_DISCONNECTED,
            kind.value,
            "Provider disconnected",
            details={"user_id": user_id},
        )
