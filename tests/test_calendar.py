"""Tests for Google Calendar links and event creation."""

from datetime import datetime, timezone
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from spaced_recall.core import study
from spaced_recall.db import subjects_repository
from spaced_recall.integrations import calendar
from spaced_recall.integrations.calendar import CalendarError

START = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def make_session(status_code: int = 200, payload: dict | None = None) -> MagicMock:
    session = MagicMock()
    response = session.post.return_value
    response.status_code = status_code
    response.json.return_value = payload or {"id": "evt-1", "htmlLink": "https://cal/evt-1"}
    response.text = "error body"
    return session


class TestCalendarLink:
    def test_link_parameters(self):
        url = calendar.generate_calendar_link("Review: Limits", START, "Details", 45, "Library")
        query = parse_qs(urlparse(url).query)

        assert url.startswith(calendar.CALENDAR_RENDER_URL)
        assert query["action"] == ["TEMPLATE"]
        assert query["text"] == ["Review: Limits"]
        assert query["location"] == ["Library"]
        assert query["dates"] == ["20260302T100000Z/20260302T104500Z"]

    def test_naive_start_is_utc(self):
        url = calendar.generate_calendar_link("Review", datetime(2026, 3, 2, 10, 0))
        assert "20260302T100000Z%2F20260302T103000Z" in url

    def test_review_description(self):
        text = calendar.review_description("Epsilon-delta", "Limits")
        assert text == "Review session for concept: Epsilon-delta\nTopic: Limits"


class TestAddReviewEvent:
    """Tests for add_review_event."""

    def test_requires_token(self):
        with pytest.raises(CalendarError, match="access token"):
            calendar.add_review_event(None, "Review", START, session=make_session())

    def test_requires_title(self):
        with pytest.raises(CalendarError, match="title"):
            calendar.add_review_event("tok", "", START, session=make_session())

    def test_posts_event(self):
        session = make_session()
        event = calendar.add_review_event("tok", "Review", START, duration_minutes=60, session=session)

        assert event.event_id == "evt-1"
        assert event.html_link == "https://cal/evt-1"
        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url.endswith("/calendars/primary/events")
        assert kwargs["headers"] == {"Authorization": "Bearer tok"}
        assert kwargs["json"]["end"]["dateTime"] == "2026-03-02T11:00:00+00:00"

    def test_token_from_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CALENDAR_TOKEN", "env-tok")
        session = make_session()
        calendar.add_review_event(None, "Review", START, calendar_id="me@x.org", session=session)

        assert session.post.call_args.kwargs["headers"] == {"Authorization": "Bearer env-tok"}
        assert "/calendars/me%40x.org/events" in session.post.call_args.args[0]

    def test_rejected_request(self):
        with pytest.raises(CalendarError, match="401"):
            calendar.add_review_event("tok", "Review", START, session=make_session(401))

    def test_network_failure(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(CalendarError, match="failed"):
            calendar.add_review_event("tok", "Review", START, session=session)

    def test_marks_review_log(self, user, subject, concept):
        study.review_item(user.user_id, "concept", concept.concept_id, rating=4)
        log = subjects_repository.list_review_logs("concept", concept.concept_id)[0]

        calendar.add_review_event(
            "tok", "Review", START, review_log_id=log.log_id, session=make_session()
        )

        log = subjects_repository.list_review_logs("concept", concept.concept_id)[0]
        assert log.added_to_calendar is True
