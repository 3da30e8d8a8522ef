"""
SalesOps - Fenêtres de dates (fuseaux, presets, buckets)
Run: cd backend && pytest tests/test_date_windows.py -v
"""

from datetime import date, datetime, timezone

import pytest

from services.date_windows import (
    bucket_key,
    custom_window,
    date_window_for,
    in_window,
    last_days,
    local_date,
    parse_datetime,
    same_calendar_month,
)

# Mercredi 12 mars 2025, 23:30 UTC = jeudi 13 mars 00:30 à Madrid
NOW = datetime(2025, 3, 12, 23, 30, tzinfo=timezone.utc)


class TestPresets:

    def test_today_utc(self):
        window = date_window_for("today", "UTC", NOW)
        assert window.start_utc == datetime(2025, 3, 12, tzinfo=timezone.utc)
        assert window.end_utc.date() == date(2025, 3, 12)
        assert window.end_utc.hour == 23 and window.end_utc.microsecond == 999999

    def test_today_madrid_crosses_midnight(self):
        """Madrid (UTC+1 en mars): la journée locale du 13 commence le 12 à 23:00 UTC"""
        window = date_window_for("today", "Europe/Madrid", NOW)
        assert window.start_utc == datetime(2025, 3, 12, 23, 0, tzinfo=timezone.utc)

    def test_yesterday(self):
        window = date_window_for("yesterday", "UTC", NOW)
        assert window.start_utc.date() == date(2025, 3, 11)

    def test_this_week_starts_monday(self):
        window = date_window_for("this_week", "UTC", NOW)
        assert window.start_utc.date() == date(2025, 3, 10)
        assert window.end_utc.date() == date(2025, 3, 16)

    def test_last_week(self):
        window = date_window_for("last_week", "UTC", NOW)
        assert window.start_utc.date() == date(2025, 3, 3)
        assert window.end_utc.date() == date(2025, 3, 9)

    def test_last_month_in_january(self):
        window = date_window_for("last_month", "UTC", datetime(2025, 1, 15, tzinfo=timezone.utc))
        assert window.start_utc.date() == date(2024, 12, 1)
        assert window.end_utc.date() == date(2024, 12, 31)

    def test_last_7_days_includes_today(self):
        window = date_window_for("last_7_days", "UTC", NOW)
        assert window.start_utc.date() == date(2025, 3, 6)
        assert window.end_utc.date() == date(2025, 3, 12)

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            date_window_for("fortnight", "UTC", NOW)


class TestCustomWindow:

    def test_inclusive_days(self):
        window = custom_window("2025-03-01", "2025-03-31", "UTC")
        assert in_window("2025-03-31T23:59:00Z", window)
        assert not in_window("2025-04-01T00:00:00Z", window)

    def test_reversed_range(self):
        with pytest.raises(ValueError):
            custom_window("2025-03-10", "2025-03-01")

    def test_dst_change(self):
        """30 mars 2025: passage à l'heure d'été à Madrid (journée de 23h)"""
        window = custom_window("2025-03-30", "2025-03-30", "Europe/Madrid")
        assert window.start_utc == datetime(2025, 3, 29, 23, 0, tzinfo=timezone.utc)
        assert window.end_utc.hour == 21 and window.end_utc.minute == 59


class TestBuckets:

    def test_day_in_timezone(self):
        assert bucket_key("2025-03-12T23:30:00Z", "Europe/Madrid", "day") == "2025-03-13"

    def test_week_is_monday(self):
        assert bucket_key("2025-03-16", "UTC", "week") == "2025-03-10"

    @pytest.mark.parametrize("value,expected", [
        ("2025-03-15", "2025-03-A"),
        ("2025-03-16", "2025-03-B"),
        ("2025-02-28T12:00:00Z", "2025-02-B"),
    ])
    def test_fortnight(self, value, expected):
        assert bucket_key(value, "UTC", "fortnight") == expected

    def test_month(self):
        assert bucket_key("2025-12-31T23:30:00Z", "Europe/Madrid", "month") == "2026-01"

    def test_unknown_granularity(self):
        with pytest.raises(ValueError):
            bucket_key("2025-03-01", "UTC", "year")

    def test_date_only_not_shifted(self):
        assert local_date("2025-03-01", "America/New_York") == date(2025, 3, 1)


class TestHelpers:

    def test_last_days_end_yesterday(self):
        assert last_days(2, "UTC", NOW) == [date(2025, 3, 10), date(2025, 3, 11)]

    def test_same_calendar_month(self):
        assert same_calendar_month("2025-03-01", "2025-03-31T10:00:00Z")
        assert not same_calendar_month("2025-03-01", "2024-03-01")
        assert not same_calendar_month(None, "2025-03-01")

    def test_in_window_bad_value(self):
        window = custom_window("2025-03-01", "2025-03-31")
        assert not in_window("not a date", window)
        assert not in_window(None, window)

    def test_postgres_timestamp_fraction(self):
        """Timestamps Supabase: fraction de 5 chiffres"""
        window = custom_window("2025-03-01", "2025-03-31")
        assert parse_datetime("2025-03-12T10:00:00.12345+00:00") == datetime(
            2025, 3, 12, 10, 0, 0, 123450, tzinfo=timezone.utc
        )
        assert in_window("2025-03-12T10:00:00.12345+00:00", window)
