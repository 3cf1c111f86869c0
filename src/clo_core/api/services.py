# API - Service container
#
# Builds every store, manager and fetcher once per app from Settings and
# hands them to routes through the ``get_services`` dependency.

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx
from fastapi import Request

from ..config import Settings
from ..integrations import (
    CalendarFetcher,
    HealthFetcher,
    IntegrationCache,
    IntegrationConnections,
    IntegrationFetcher,
    IntegrationStore,
    LLMClient,
    WeatherFetcher,
)
from ..vault import (
    FileSecureStorage,
    LocalBlobStore,
    PasscodeHasher,
    PasscodeManager,
    VaultManager,
    VaultStore,
)
from .security import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    sessions: SessionRegistry
    vault_store: VaultStore
    blobs: LocalBlobStore
    vault: VaultManager
    passcodes: PasscodeManager
    cache: IntegrationCache
    integrations: IntegrationStore
    connections: IntegrationConnections
    weather: WeatherFetcher
    calendar: CalendarFetcher
    health: HealthFetcher
    llm: LLMClient
    http: httpx.Client
    owns_http: bool = False

    @property
    def fetchers(self) -> Tuple[IntegrationFetcher, ...]:
        return (self.weather, self.calendar, self.health)

    def close(self) -> None:
        # Fetchers and the LLM client share ``http`` and never close it
        if self.owns_http:
            self.http.close()
        self.cache.close()
        self.integrations.close()
        self.vault_store.close()


def build_services(
    settings: Settings,
    http_client: Optional[httpx.Client] = None,
) -> Services:
    """Wire up the backend from ``settings``.

    A shared ``http_client`` may be passed (tests inject a mock) and stays
    owned by the caller; otherwise one client is created, shared by all
    fetchers, and closed by ``Services.close``.
    """
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    vault_store = VaultStore(settings.vault_db_path)
    blobs = LocalBlobStore(settings.blob_dir, settings.blob_base_url)
    passcodes = PasscodeManager(
        storage=FileSecureStorage(settings.secure_storage_path),
        hasher=PasscodeHasher(settings.passcode_iterations),
        record_setup=vault_store.record_setup,
    )

    owns_http = http_client is None
    http = http_client or httpx.Client(timeout=settings.http_timeout)
    cache = IntegrationCache(settings.integrations_db_path)
    integrations = IntegrationStore(settings.integrations_db_path)

    logger.info("Services initialised (data dir %s)", settings.data_dir)
    return Services(
        settings=settings,
        sessions=SessionRegistry(),
        vault_store=vault_store,
        blobs=blobs,
        vault=VaultManager(vault_store, blobs),
        passcodes=passcodes,
        cache=cache,
        integrations=integrations,
        connections=IntegrationConnections(integrations, clock=cache.clock),
        weather=WeatherFetcher(cache, integrations, settings, http_client=http),
        calendar=CalendarFetcher(cache, integrations, settings, http_client=http),
        health=HealthFetcher(cache, integrations, settings, http_client=http),
        llm=LLMClient.from_settings(settings, http_client=http),
        http=http,
        owns_http=owns_http,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's service container."""
    return request.app.state.services
