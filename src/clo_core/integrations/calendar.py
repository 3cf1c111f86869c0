# Integrations - Google Calendar Upcoming Events
#
# Lists events from the user's primary calendar. Requires a stored OAuth
# connection; an expired access token is refreshed once through Google's
# token endpoint before the events call.
#
# Cache key: calendar_<YYYY-MM-DD>_<max_results>[_<window hash>]   TTL: 5 minutes

import hashlib
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import ValidationError
from .fetcher import IntegrationFetcher
from .models import CalendarEvent, IntegrationProvider, StoredIntegration

logger = logging.getLogger(__name__)

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
TOKEN_URL = "https://oauth2.googleapis.com/token"

DEFAULT_MAX_RESULTS = 10
MAX_RESULTS_LIMIT = 250


def _rfc3339(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


class CalendarFetcher(IntegrationFetcher):
    """Google Calendar events fetcher."""

    provider = IntegrationProvider.GOOGLE_CALENDAR
    ttl_minutes = 5
    display_name = "Google Calendar"
    token_url = TOKEN_URL

    def oauth_client_credentials(self):
        return (
            getattr(self.settings, "google_client_id", None),
            getattr(self.settings, "google_client_secret", None),
        )

    def validate_params(
        self,
        max_results: int = DEFAULT_MAX_RESULTS,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        **_,
    ) -> Dict[str, Any]:
        if max_results is None:
            max_results = DEFAULT_MAX_RESULTS
        if isinstance(max_results, bool) or not isinstance(max_results, int):
            raise ValidationError("max_results must be an integer")
        if not 1 <= max_results <= MAX_RESULTS_LIMIT:
            raise ValidationError(f"max_results must be between 1 and {MAX_RESULTS_LIMIT}")
        return {"max_results": max_results, "time_min": time_min, "time_max": time_max}

    def build_cache_key(
        self,
        now: datetime,
        max_results: int,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        **_,
    ) -> str:
        key = f"calendar_{now.date().isoformat()}_{max_results}"
        if time_min or time_max:
            window = f"{time_min or ''}|{time_max or ''}"
            key += "_" + hashlib.sha256(window.encode("utf-8")).hexdigest()[:16]
        return key

    def fetch_remote(
        self,
        integration: Optional[StoredIntegration],
        now: datetime,
        max_results: int,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        access_token = self._ensure_access_token(integration, now)

        params = {
            "maxResults": str(max_results),
            "timeMin": time_min or _rfc3339(now),
            "orderBy": "startTime",
            "singleEvents": "true",
        }
        if time_max:
            params["timeMax"] = time_max

        payload = self._get_json(
            EVENTS_URL,
            params=params,
            headers=self._bearer(access_token),
            what="calendar events",
        )
        return [event.to_dict() for event in self.transform(payload)]

    @staticmethod
    def transform(payload: Dict[str, Any]) -> List[CalendarEvent]:
        """Map a Google events list to ``CalendarEvent`` objects."""
        events = []
        for raw in payload.get("items") or []:
            start = raw.get("start") or {}
            end = raw.get("end") or {}
            events.append(
                CalendarEvent(
                    id=raw.get("id", ""),
                    title=raw.get("summary") or "Untitled Event",
                    description=raw.get("description") or None,
                    start_time=start.get("dateTime") or start.get("date"),
                    end_time=end.get("dateTime") or end.get("date"),
                    location=raw.get("location") or None,
                    attendees=[a["email"] for a in raw.get("attendees") or [] if a.get("email")],
                    is_all_day=bool(start.get("date")),
                )
            )
        return events
