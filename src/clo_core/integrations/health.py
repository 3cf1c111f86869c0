# Integrations - Oura Ring Daily Health Summary
#
# Combines today's readiness, sleep, activity and heart-rate collections
# into one HealthData record. Readiness, sleep and activity must succeed;
# heart rate is optional and falls back to a default resting rate.
#
# Cache key: health_<YYYY-MM-DD>   TTL: 30 minutes

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..exceptions import UpstreamError
from .fetcher import IntegrationFetcher
from .models import HealthData, IntegrationProvider, SleepQuality, StoredIntegration

logger = logging.getLogger(__name__)

API_BASE = "https://api.ouraring.com/v2/usercollection"
TOKEN_URL = "https://api.ouraring.com/oauth/token"

# Values used when Oura has no data for today
DEFAULT_READINESS = 70
DEFAULT_SLEEP_HOURS = 7.0
DEFAULT_SLEEP_SCORE = 70
DEFAULT_RESTING_HR = 60
DEFAULT_HRV = 50


def _first(payload: Dict[str, Any]) -> Dict[str, Any]:
    data = payload.get("data") or []
    return data[0] if data else {}


class HealthFetcher(IntegrationFetcher):
    """Oura API v2 daily summary fetcher."""

    provider = IntegrationProvider.OURA
    ttl_minutes = 30
    display_name = "Oura Ring"
    token_url = TOKEN_URL

    def oauth_client_credentials(self):
        return (
            getattr(self.settings, "oura_client_id", None),
            getattr(self.settings, "oura_client_secret", None),
        )

    def validate_params(self, **_) -> Dict[str, Any]:
        return {}

    def build_cache_key(self, now: datetime, **_) -> str:
        return f"health_{now.date().isoformat()}"

    def fetch_remote(
        self,
        integration: Optional[StoredIntegration],
        now: datetime,
    ) -> Dict[str, Any]:
        access_token = self._ensure_access_token(integration, now)
        headers = self._bearer(access_token)
        today = now.date().isoformat()
        day_range = {"start_date": today, "end_date": today}

        readiness = self._get_json(
            f"{API_BASE}/daily_readiness", params=day_range, headers=headers,
            what="health data from Oura",
        )
        sleep = self._get_json(
            f"{API_BASE}/daily_sleep", params=day_range, headers=headers,
            what="health data from Oura",
        )
        activity = self._get_json(
            f"{API_BASE}/daily_activity", params=day_range, headers=headers,
            what="health data from Oura",
        )

        try:
            heartrate = self._get_json(
                f"{API_BASE}/heartrate",
                params={
                    "start_datetime": f"{today}T00:00:00Z",
                    "end_datetime": f"{today}T23:59:59Z",
                },
                headers=headers,
                what="heart rate",
            )
        except UpstreamError as e:
            logger.info("Oura heart rate unavailable, using default: %s", e)
            heartrate = {"data": []}

        return self.transform(readiness, sleep, activity, heartrate).to_dict()

    @staticmethod
    def transform(
        readiness: Dict[str, Any],
        sleep: Dict[str, Any],
        activity: Dict[str, Any],
        heartrate: Dict[str, Any],
    ) -> HealthData:
        """Combine the four Oura collections into ``HealthData``."""
        latest_readiness = _first(readiness)
        latest_sleep = _first(sleep)
        latest_activity = _first(activity)

        readings = heartrate.get("data") or []
        if readings:
            resting_hr = round(sum(r.get("bpm") or 0 for r in readings) / len(readings))
        else:
            resting_hr = DEFAULT_RESTING_HR

        readiness_score = latest_readiness.get("score") or DEFAULT_READINESS
        total_sleep = (latest_sleep.get("contributors") or {}).get("total_sleep")
        sleep_hours = round(total_sleep / 3600, 1) if total_sleep else DEFAULT_SLEEP_HOURS
        hrv = (latest_readiness.get("contributors") or {}).get("hrv_balance") or DEFAULT_HRV

        return HealthData(
            recovery_score=readiness_score,
            readiness_score=readiness_score,
            sleep_hours=sleep_hours,
            sleep_quality=SleepQuality.from_score(latest_sleep.get("score") or DEFAULT_SLEEP_SCORE),
            heart_rate_resting=resting_hr,
            heart_rate_variability=hrv,
            steps_today=latest_activity.get("steps") or 0,
            active_calories=latest_activity.get("active_calories") or 0,
        )
