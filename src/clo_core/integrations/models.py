# Integrations - Data Models
#
# Provider-agnostic shapes returned by every integration fetch:
#   WeatherData   - current conditions (OpenWeatherMap)
#   CalendarEvent - upcoming events (Google Calendar)
#   HealthData    - sleep/readiness/activity summary (Oura)
#
# Cached values are the ``to_dict()`` form of these models, so a cache hit
# and a fresh fetch return the same shape.

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class IntegrationProvider(str, Enum):
    """Third-party data sources."""

    OPENWEATHERMAP = "openweathermap"
    GOOGLE_CALENDAR = "google_calendar"
    OURA = "oura"


class WeatherCondition(str, Enum):
    CLEAR = "Clear"
    CLOUDY = "Cloudy"
    RAIN = "Rain"
    DRIZZLE = "Drizzle"
    THUNDERSTORM = "Thunderstorm"
    SNOW = "Snow"
    MIST = "Mist"

    @classmethod
    def from_owm(cls, owm_main: Optional[str]) -> "WeatherCondition":
        """Map an OpenWeatherMap ``weather[0].main`` value; unknown → Clear."""
        mapping = {
            "Clear": cls.CLEAR,
            "Clouds": cls.CLOUDY,
            "Rain": cls.RAIN,
            "Drizzle": cls.DRIZZLE,
            "Thunderstorm": cls.THUNDERSTORM,
            "Snow": cls.SNOW,
            "Mist": cls.MIST,
            "Fog": cls.MIST,
            "Haze": cls.MIST,
            "Smoke": cls.MIST,
            "Dust": cls.MIST,
        }
        return mapping.get(owm_main or "", cls.CLEAR)


class SleepQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @classmethod
    def from_score(cls, score: float) -> "SleepQuality":
        if score >= 85:
            return cls.EXCELLENT
        if score >= 70:
            return cls.GOOD
        if score >= 50:
            return cls.FAIR
        return cls.POOR


# ---------------------------------------------------------------------------
# Data Models
# ---------------------------------------------------------------------------


@dataclass
class WeatherData:
    temperature: int
    feels_like: int
    humidity: int
    condition: WeatherCondition
    icon: str
    description: str
    location: str
    sunrise: str  # ISO 8601 UTC
    sunset: str  # ISO 8601 UTC
    wind_speed: int
    visibility: int  # km

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["condition"] = self.condition.value
        return data


@dataclass
class CalendarEvent:
    id: str
    title: str
    start_time: str
    end_time: str
    description: Optional[str] = None
    location: Optional[str] = None
    attendees: List[str] = field(default_factory=list)
    is_all_day: bool = False
    calendar_name: str = "Primary"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HealthData:
    recovery_score: int
    readiness_score: int
    sleep_hours: float
    sleep_quality: SleepQuality
    heart_rate_resting: int
    heart_rate_variability: int
    steps_today: int
    active_calories: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sleep_quality"] = self.sleep_quality.value
        return data


@dataclass
class StoredIntegration:
    """A user's connection to one provider (tokens or API key)."""

    user_id: str
    provider: str
    id: Optional[int] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    api_key: Optional[str] = None
    is_active: bool = True
    last_synced_at: Optional[str] = None
    last_error: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)

    def token_expired(self, now: datetime) -> bool:
        """True if an expiry is recorded and has passed."""
        return self.token_expires_at is not None and self.token_expires_at < now


@dataclass(frozen=True)
class CacheEntry:
    """One row of the integration cache."""

    user_id: str
    provider: str
    cache_key: str
    value: Any
    expires_at: datetime
    created_at: datetime


@dataclass
class IntegrationResult:
    """Uniform fetch result; ``cached`` tells whether the API was skipped."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    cached: bool = False
    cached_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
