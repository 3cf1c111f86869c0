# Integrations API - Cached third-party data and LLM helpers
#
# Endpoints:
# - POST /api/integrations/weather             (OpenWeatherMap, 15 min cache)
# - POST /api/integrations/calendar            (Google Calendar, 5 min cache)
# - POST /api/integrations/health              (Oura, 30 min cache)
# - POST /api/integrations/enrich-item         (LLM product enrichment)
# - POST /api/integrations/cancellation-letter (LLM cancellation letter)
# - GET|POST|DELETE /api/integrations/connections[/{provider}]
#                                              (connect/disconnect providers)
# - GET  /api/integrations/stats               (per-provider fetch stats)
#
# Handlers are plain ``def`` so blocking HTTP calls run in the threadpool.

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..integrations import CancellationRequest
from ..integrations.connections import connection_summary
from .security import get_current_user
from .services import Services, get_services

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


# Request Models
class WeatherRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    units: str = Field("imperial", pattern="^(imperial|metric|standard)$")


class CalendarRequest(BaseModel):
    max_results: int = Field(10, ge=1, le=250)
    time_min: Optional[str] = None
    time_max: Optional[str] = None


class EnrichItemRequest(BaseModel):
    barcode: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None


class ConnectRequest(BaseModel):
    api_key: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(None, gt=0)
    config: Dict[str, Any] = Field(default_factory=dict)


class CancellationLetterRequest(BaseModel):
    subscription_name: str
    user_name: str
    user_email: Optional[str] = None
    account_number: Optional[str] = None
    subscription_cost: Optional[float] = Field(None, ge=0)
    billing_frequency: Optional[str] = None
    reason: Optional[str] = None
    state: Optional[str] = None


# Endpoints

@router.post("/weather")
def get_weather(
    request: WeatherRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    result = services.weather.fetch(user_id, lat=request.lat, lon=request.lon, units=request.units)
    return result.to_dict()


@router.post("/calendar")
def get_calendar(
    request: Optional[CalendarRequest] = None,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    request = request or CalendarRequest()
    result = services.calendar.fetch(
        user_id,
        max_results=request.max_results,
        time_min=request.time_min,
        time_max=request.time_max,
    )
    return result.to_dict()


@router.post("/health")
def get_health(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.health.fetch(user_id).to_dict()


@router.post("/enrich-item")
def enrich_item(
    request: EnrichItemRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Warranty, support and maintenance suggestions for an inventory item."""
    enrichment = services.llm.enrich_product(
        barcode=request.barcode,
        name=request.name,
        category=request.category,
        brand=request.brand,
    )
    return {"success": True, "data": enrichment.to_dict()}


@router.post("/cancellation-letter")
def cancellation_letter(
    request: CancellationLetterRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Draft a subscription cancellation letter."""
    letter = services.llm.generate_cancellation(
        CancellationRequest(**request.model_dump())
    )
    return {"success": True, "data": letter.to_dict()}


@router.get("/connections")
def list_connections(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """The caller's providers and sync status. Credentials are never returned."""
    return {"success": True, "data": services.connections.list(user_id)}


@router.post("/connections/{provider}")
def connect_provider(
    provider: str,
    request: ConnectRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Connect (or reconnect) a provider.

    OpenWeatherMap takes ``api_key``; Google Calendar and Oura take the
    OAuth ``access_token`` (plus ``refresh_token`` and ``expires_in``)
    from the provider's consent flow.
    """
    integration = services.connections.connect(
        user_id,
        provider,
        api_key=request.api_key,
        access_token=request.access_token,
        refresh_token=request.refresh_token,
        expires_in=request.expires_in,
        config=request.config,
    )
    return {"success": True, "data": connection_summary(integration)}


@router.delete("/connections/{provider}")
def disconnect_provider(
    provider: str,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.connections.disconnect(user_id, provider)
    return {"success": True}


@router.get("/stats")
def integration_stats(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Fetch counters for each provider since startup, and the cache size."""
    return {
        "success": True,
        "data": {
            "providers": [fetcher.get_stats() for fetcher in services.fetchers],
            "cache_entries": services.cache.count(),
        },
    }
