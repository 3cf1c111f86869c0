# Integrations - Read-Through Fetcher Base
#
# Defines the IntegrationFetcher abstract base class shared by the
# weather, calendar and health providers. The read-through protocol
# lives here once:
#
#   1. build the provider cache key
#   2. fresh cache entry -> return it (cached=True), no remote call
#   3. resolve the user's credential (NotConfiguredError if none)
#   4. refresh an expired OAuth token (UnauthorizedError on failure)
#   5. call the remote API (UpstreamError on non-2xx, nothing cached)
#   6. store the transformed result with the provider TTL
#   7. update last_synced_at and return it (cached=False)

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx

from ..core import EventSeverity, EventType, get_audit_logger
from ..exceptions import (
    CloError,
    NotConfiguredError,
    UnauthorizedError,
    UpstreamError,
)
from .cache import IntegrationCache
from .models import IntegrationProvider, IntegrationResult, StoredIntegration
from .store import IntegrationStore

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SEC = 15.0
USER_AGENT = "CLO-Core/0.3"

# Fallback token lifetime when a token endpoint omits ``expires_in``
DEFAULT_TOKEN_LIFETIME_SEC = 3600


class IntegrationFetcher(ABC):
    """Abstract base class for cached third-party data fetchers.

    Concrete fetchers set ``provider``, ``ttl_minutes`` and
    ``display_name`` and implement ``build_cache_key`` and
    ``fetch_remote``. Everything else (cache lookup, credential
    resolution, token refresh, sync bookkeeping, audit) is shared.

    Args:
        cache: External-data cache.
        store: Per-user credential storage.
        settings: Optional ``Settings`` providing fallback credentials.
        http_client: ``httpx.Client`` used for every remote call.
        audit: Audit logger (defaults to the process-wide one).
    """

    provider: IntegrationProvider
    ttl_minutes: int
    display_name: str = "Integration"

    # OAuth providers set these
    token_url: Optional[str] = None

    def __init__(
        self,
        cache: IntegrationCache,
        store: IntegrationStore,
        settings=None,
        http_client: Optional[httpx.Client] = None,
        audit=None,
    ):
        self.cache = cache
        self.store = store
        self.settings = settings
        timeout = getattr(settings, "http_timeout", REQUEST_TIMEOUT_SEC)
        # A client passed in belongs to the caller and is not closed here
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            timeout=timeout, headers={"User-Agent": USER_AGENT}
        )
        self.audit = audit or get_audit_logger()
        self._last_fetch: Optional[str] = None
        self._fetch_count: int = 0
        self._cache_hits: int = 0
        self._error_count: int = 0

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    def build_cache_key(self, now: datetime, **params) -> str:
        """Return the cache key for this request."""

    @abstractmethod
    def fetch_remote(
        self,
        integration: Optional[StoredIntegration],
        now: datetime,
        **params,
    ) -> Any:
        """Call the provider and return the JSON-ready transformed result."""

    def validate_params(self, **params) -> Dict[str, Any]:
        """Check and normalise request parameters. Override per provider."""
        return params

    def resolve_integration(self, user_id: str) -> Optional[StoredIntegration]:
        """Return the user's active connection, or raise NotConfiguredError."""
        integration = self.store.get_active(user_id, self.provider.value)
        if integration is None:
            raise NotConfiguredError(
                f"{self.display_name} not connected. Please connect in Settings."
            )
        return integration

    # ------------------------------------------------------------------
    # Read-through
    # ------------------------------------------------------------------

    def fetch(self, user_id: str, **params) -> IntegrationResult:
        """Return provider data for ``user_id``, from cache when fresh."""
        params = self.validate_params(**params)
        now = self.cache.clock()
        cache_key = self.build_cache_key(now, **params)

        entry = self.cache.get_entry(user_id, self.provider.value, cache_key)
        if entry is not None:
            self._cache_hits += 1
            logger.debug("Cache hit for %s/%s", self.provider.value, cache_key)
            self.audit.log_integration_event(
                EventType.INTEGRATION_CACHE_HIT,
                self.provider.value,
                "Returning cached data",
                details={"cache_key": cache_key},
            )
            return IntegrationResult(
                success=True,
                data=entry.value,
                cached=True,
                cached_at=entry.created_at.isoformat(),
            )

        integration = self.resolve_integration(user_id)
        try:
            data = self.fetch_remote(integration, now, **params)
        except UnauthorizedError as e:
            self.record_error(integration, str(e))
            self.audit.log_integration_event(
                EventType.INTEGRATION_RECONNECT_REQUIRED,
                self.provider.value,
                str(e),
                details={"user_id": user_id},
                severity=EventSeverity.INVESTIGATE,
            )
            raise
        except CloError as e:
            self.record_error(integration, str(e))
            self.audit.log_integration_event(
                EventType.INTEGRATION_ERROR,
                self.provider.value,
                str(e),
                details={"user_id": user_id},
                severity=EventSeverity.ALERT,
            )
            raise

        self.cache.set_cached(user_id, self.provider.value, cache_key, data, self.ttl_minutes)
        if integration is not None and integration.id is not None:
            self.store.mark_synced(integration.id, now)

        self.record_fetch()
        self.audit.log_integration_event(
            EventType.INTEGRATION_FETCHED,
            self.provider.value,
            "Fetched fresh data",
            details={"cache_key": cache_key, "ttl_minutes": self.ttl_minutes},
        )
        return IntegrationResult(success=True, data=data, cached=False)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        what: str = "data",
    ) -> Dict[str, Any]:
        """GET ``url`` and decode JSON. Any non-2xx raises UpstreamError."""
        try:
            resp = self._http.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("%s request failed: %s", self.display_name, exc)
            raise UpstreamError(f"Failed to fetch {what}") from exc

        if not 200 <= resp.status_code < 300:
            logger.warning(
                "%s returned %d for %s", self.display_name, resp.status_code, what
            )
            raise UpstreamError(f"Failed to fetch {what}", status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamError(f"Unreadable {what} response") from exc

    @staticmethod
    def _bearer(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def oauth_client_credentials(self):
        """Return ``(client_id, client_secret)`` for token refresh."""
        return None, None

    def _ensure_access_token(self, integration: StoredIntegration, now: datetime) -> str:
        """Return a usable access token, refreshing it first if expired."""
        if not integration.access_token:
            raise NotConfiguredError(
                f"{self.display_name} not connected. Please connect in Settings."
            )
        if integration.token_expired(now):
            self._refresh_token(integration, now)
        return integration.access_token

    def _refresh_token(self, integration: StoredIntegration, now: datetime) -> None:
        """Exchange the refresh token for a new access token and persist it.

        No retry: any failure means the user has to reconnect.
        """
        reconnect = f"{self.display_name} session expired. Please reconnect."
        if not integration.refresh_token:
            raise UnauthorizedError(reconnect)

        client_id, client_secret = self.oauth_client_credentials()
        if not client_id or not client_secret or not self.token_url:
            raise NotConfiguredError(f"{self.display_name} OAuth client is not configured")

        try:
            resp = self._http.post(
                self.token_url,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": integration.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("%s token refresh failed: %s", self.display_name, exc)
            raise UnauthorizedError(
                f"Failed to refresh {self.display_name} access. Please reconnect."
            ) from exc

        if not 200 <= resp.status_code < 300:
            logger.warning(
                "%s token refresh returned %d", self.display_name, resp.status_code
            )
            raise UnauthorizedError(
                f"Failed to refresh {self.display_name} access. Please reconnect."
            )

        try:
            token_data = resp.json()
        except ValueError:
            token_data = {}
        access_token = token_data.get("access_token")
        if not access_token:
            raise UnauthorizedError(
                f"Failed to refresh {self.display_name} access. Please reconnect."
            )

        expires_in = int(token_data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SEC)
        expires_at = now + timedelta(seconds=expires_in)
        rotated = token_data.get("refresh_token")

        self.store.update_tokens(integration.id, access_token, expires_at, rotated)
        integration.access_token = access_token
        integration.token_expires_at = expires_at
        if rotated:
            integration.refresh_token = rotated

        logger.info("Refreshed %s access token", self.display_name)
        self.audit.log_integration_event(
            EventType.INTEGRATION_TOKEN_REFRESHED,
            self.provider.value,
            "Access token refreshed",
            details={"integration_id": integration.id, "expires_at": expires_at.isoformat()},
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def record_fetch(self) -> None:
        """Record a successful remote fetch for stats tracking."""
        self._last_fetch = self.cache.clock().isoformat()
        self._fetch_count += 1

    def record_error(self, integration: Optional[StoredIntegration], error: str) -> None:
        """Record a fetch error locally and on the stored integration."""
        self._error_count += 1
        if integration is not None and integration.id is not None:
            self.store.record_error(integration.id, error)

    def get_stats(self) -> Dict[str, object]:
        """Return fetcher statistics."""
        return {
            "provider": self.provider.value,
            "last_fetch": self._last_fetch,
            "total_fetched": self._fetch_count,
            "cache_hits": self._cache_hits,
            "total_errors": self._error_count,
        }

    def close(self) -> None:
        if self._owns_http:
            self._http.close()
