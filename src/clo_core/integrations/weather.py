# Integrations - OpenWeatherMap Current Conditions
#
# Current weather for a coordinate pair. Uses the user's own API key when
# one is stored, otherwise the configured OPENWEATHERMAP_API_KEY.
#
# Cache key: weather_<lat:.2f>_<lon:.2f>_<units>   TTL: 15 minutes

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..exceptions import NotConfiguredError, UpstreamError, ValidationError
from .fetcher import IntegrationFetcher
from .models import IntegrationProvider, StoredIntegration, WeatherCondition, WeatherData

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openweathermap.org/data/2.5/weather"
VALID_UNITS = ("imperial", "metric", "standard")
DEFAULT_VISIBILITY_M = 10000


def _epoch_to_iso(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class WeatherFetcher(IntegrationFetcher):
    """OpenWeatherMap current-conditions fetcher.

    Usage::

        fetcher = WeatherFetcher(cache, store, settings)
        result = fetcher.fetch(user_id, lat=40.71, lon=-74.00)
    """

    provider = IntegrationProvider.OPENWEATHERMAP
    ttl_minutes = 15
    display_name = "Weather"

    base_url = DEFAULT_BASE_URL

    def validate_params(self, lat=None, lon=None, units: str = "imperial", **_) -> Dict[str, Any]:
        if lat is None or lon is None:
            raise ValidationError("Missing lat/lon coordinates")
        try:
            lat, lon = float(lat), float(lon)
        except (TypeError, ValueError) as e:
            raise ValidationError("lat/lon must be numbers") from e
        if not -90 <= lat <= 90 or not -180 <= lon <= 180:
            raise ValidationError("lat/lon out of range")
        units = units or "imperial"
        if units not in VALID_UNITS:
            raise ValidationError(f"units must be one of {', '.join(VALID_UNITS)}")
        return {"lat": lat, "lon": lon, "units": units}

    def build_cache_key(self, now: datetime, lat: float, lon: float, units: str) -> str:
        return f"weather_{lat:.2f}_{lon:.2f}_{units}"

    def resolve_integration(self, user_id: str) -> Optional[StoredIntegration]:
        # A stored connection is optional; the configured key is the fallback.
        return self.store.get_active(user_id, self.provider.value)

    def _api_key(self, integration: Optional[StoredIntegration]) -> str:
        if integration is not None and integration.api_key:
            return integration.api_key
        fallback = getattr(self.settings, "openweathermap_api_key", None)
        if fallback:
            return fallback
        raise NotConfiguredError(
            "Weather API not configured. Please add your OpenWeatherMap API key."
        )

    def fetch_remote(
        self,
        integration: Optional[StoredIntegration],
        now: datetime,
        lat: float,
        lon: float,
        units: str,
    ) -> Dict[str, Any]:
        api_key = self._api_key(integration)
        payload = self._get_json(
            self.base_url,
            params={"lat": lat, "lon": lon, "units": units, "appid": api_key},
            what="weather data",
        )
        return self.transform(payload).to_dict()

    @staticmethod
    def transform(payload: Dict[str, Any]) -> WeatherData:
        """Map an OpenWeatherMap response to ``WeatherData``."""
        try:
            main = payload["main"]
            weather = (payload.get("weather") or [{}])[0]
            sys_info = payload.get("sys") or {}
            return WeatherData(
                temperature=round(main["temp"]),
                feels_like=round(main["feels_like"]),
                humidity=main["humidity"],
                condition=WeatherCondition.from_owm(weather.get("main")),
                icon=weather.get("icon", ""),
                description=weather.get("description", ""),
                location=payload.get("name", ""),
                sunrise=_epoch_to_iso(sys_info.get("sunrise")),
                sunset=_epoch_to_iso(sys_info.get("sunset")),
                wind_speed=round((payload.get("wind") or {}).get("speed", 0)),
                visibility=round((payload.get("visibility") or DEFAULT_VISIBILITY_M) / 1000),
            )
        except (KeyError, TypeError) as e:
            logger.warning("Unexpected OpenWeatherMap payload: %s", e)
            raise UpstreamError("Unexpected weather data format") from e
