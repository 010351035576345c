"""Google Calendar review reminders.

Two ways to put a review on a calendar: a prefilled "add event" link that
needs no credentials, or an event inserted through the Calendar v3 API with
a bearer token.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import quote, urlencode

import requests
import structlog

from spaced_recall.config.app_config import load_app_config
from spaced_recall.db import subjects_repository
from spaced_recall.utils.dates import ensure_aware, to_iso

logger = structlog.get_logger(__name__)

CALENDAR_RENDER_URL = "https://calendar.google.com/calendar/render"
CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"
DEFAULT_DURATION_MINUTES = 30
REQUEST_TIMEOUT = 30


class CalendarError(Exception):
    """Error creating a calendar event."""

    pass


def _gcal_stamp(value: datetime) -> str:
    return ensure_aware(value).strftime("%Y%m%dT%H%M%SZ")


def generate_calendar_link(
    title: str,
    start: datetime,
    description: str = "",
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
    location: str = "",
) -> str:
    """Google Calendar template URL for a new event."""
    start = ensure_aware(start)
    end = start + timedelta(minutes=duration_minutes)
    params = {
        "action": "TEMPLATE",
        "text": title,
        "details": description,
        "location": location,
        "dates": f"{_gcal_stamp(start)}/{_gcal_stamp(end)}",
    }
    return f"{CALENDAR_RENDER_URL}?{urlencode(params)}"


def review_description(concept_name: str, topic_name: str, details: str = "") -> str:
    return f"Review session for concept: {concept_name}\nTopic: {topic_name}\n{details}".rstrip()


@dataclass
class CalendarEvent:
    event_id: str
    html_link: str | None

    def to_dict(self) -> dict:
        return {"event_id": self.event_id, "html_link": self.html_link}


def add_review_event(
    access_token: str | None,
    title: str,
    start: datetime,
    description: str = "",
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
    calendar_id: str | None = None,
    review_log_id: int | None = None,
    session: requests.Session | None = None,
) -> CalendarEvent:
    """Insert an event in the user's Google Calendar.

    Args:
        access_token: OAuth bearer token, defaults to the configured env var
        title: Event summary
        start: Event start
        description: Event body
        duration_minutes: Event length
        calendar_id: Target calendar, defaults to the configured one
        review_log_id: Review log entry to mark as added to the calendar
        session: Optional requests session (for testing)

    Raises:
        CalendarError: Missing token, network failure or a non-2xx answer
    """
    config = load_app_config().integrations
    token = access_token or config.get_calendar_token()
    if not token:
        raise CalendarError("No Google Calendar access token")
    if not title:
        raise CalendarError("Event title is required")

    start = ensure_aware(start)
    end = start + timedelta(minutes=duration_minutes)
    url = CALENDAR_EVENTS_URL.format(calendar_id=quote(calendar_id or config.calendar_id, safe=""))
    body = {
        "summary": title,
        "description": description,
        "start": {"dateTime": to_iso(start), "timeZone": "UTC"},
        "end": {"dateTime": to_iso(end), "timeZone": "UTC"},
        "reminders": {"useDefault": True},
    }

    http = session or requests
    try:
        response = http.post(
            url,
            json=body,
            headers={"Authorization": f"Bearer {token}"},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise CalendarError(f"Calendar request failed: {e}") from e

    if not 200 <= response.status_code < 300:
        logger.error("calendar.event_rejected", status=response.status_code)
        raise CalendarError(
            f"Calendar API returned {response.status_code}: {response.text[:200]}"
        )

    data = response.json()
    if review_log_id is not None:
        subjects_repository.mark_review_in_calendar(review_log_id)

    logger.info("calendar.event_added", event_id=data.get("id"))
    return CalendarEvent(event_id=data.get("id", ""), html_link=data.get("htmlLink"))
