"""
Third-party integrations: cached weather, calendar and health fetchers,
per-user credential storage, and LLM helpers.
"""

from .cache import IntegrationCache, utc_now
from .calendar import CalendarFetcher
from .connections import IntegrationConnections
from .fetcher import IntegrationFetcher
from .health import HealthFetcher
from .llm import (
    CancellationLetter,
    CancellationRequest,
    LLMClient,
    ProductEnrichment,
)
from .models import (
    CacheEntry,
    CalendarEvent,
    HealthData,
    IntegrationProvider,
    IntegrationResult,
    SleepQuality,
    StoredIntegration,
    WeatherCondition,
    WeatherData,
)
from .store import IntegrationStore
from .weather import WeatherFetcher

__all__ = [
    "IntegrationCache",
    "utc_now",
    "IntegrationFetcher",
    "WeatherFetcher",
    "CalendarFetcher",
    "HealthFetcher",
    "LLMClient",
    "ProductEnrichment",
    "CancellationRequest",
    "CancellationLetter",
    "IntegrationStore",
    "IntegrationConnections",
    "CacheEntry",
    "CalendarEvent",
    "HealthData",
    "IntegrationProvider",
    "IntegrationResult",
    "SleepQuality",
    "StoredIntegration",
    "WeatherCondition",
    "WeatherData",
]
