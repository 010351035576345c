"""Tests for ID, validation and timestamp helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from spaced_recall.utils.dates import days_between, ensure_aware, parse_iso, to_iso
from spaced_recall.utils.validators import (
    AmbiguousIdError,
    IdNotFoundError,
    new_id,
    resolve_id,
    safe_filename,
    validate_email,
)


class TestIds:
    def test_new_id_format(self):
        value = new_id("subject")
        assert value.startswith("sub-")
        assert len(value) == len("sub-") + 8

    def test_bare_prefix(self):
        assert new_id("xyz").startswith("xyz-")

    def test_resolve_exact_and_prefix(self):
        ids = ["sub-1a2b3c4d", "sub-1a9f0000", "sub-77777777"]
        assert resolve_id("sub-77777777", ids) == "sub-77777777"
        assert resolve_id("sub-7", ids) == "sub-77777777"

    def test_resolve_ambiguous(self):
        with pytest.raises(AmbiguousIdError) as exc:
            resolve_id("sub-1a", ["sub-1a2b3c4d", "sub-1a9f0000"])
        assert exc.value.candidates == ["sub-1a2b3c4d", "sub-1a9f0000"]

    def test_resolve_missing(self):
        with pytest.raises(IdNotFoundError):
            resolve_id("top-", ["sub-1a2b3c4d"])


class TestValidators:
    @pytest.mark.parametrize(
        "email,valid",
        [("ana@example.com", True), ("a.b+c@uni.edu.ar", True), ("nope", False), ("a@b", False)],
    )
    def test_email(self, email, valid):
        assert validate_email(email) is valid

    def test_safe_filename(self):
        assert safe_filename('What is "x"? / part 1') == "What is x  part 1"
        assert safe_filename("...") == "untitled"


class TestDates:
    def test_to_iso_is_utc_seconds(self):
        value = datetime(2026, 3, 2, 12, 30, 15, 999, tzinfo=timezone(timedelta(hours=2)))
        assert to_iso(value) == "2026-03-02T10:30:15+00:00"

    def test_naive_is_utc(self):
        assert ensure_aware(datetime(2026, 3, 2)).tzinfo is timezone.utc
        assert to_iso(datetime(2026, 3, 2, 10, 0)) == "2026-03-02T10:00:00+00:00"

    def test_parse_z_and_date_only(self):
        assert parse_iso("2026-03-02T10:00:00Z") == datetime(2026, 3, 2, 10, tzinfo=timezone.utc)
        assert parse_iso("2026-03-02") == datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert parse_iso(None) is None

    def test_days_between_counts_calendar_days(self):
        late = datetime(2026, 3, 2, 23, 0, tzinfo=timezone.utc)
        early = datetime(2026, 3, 3, 1, 0, tzinfo=timezone.utc)
        assert days_between(late, early) == 1
        assert days_between(early, late) == -1
