"""
SalesOps - Helpers des intégrations (Meta, GA4, Calendly, académique, AI setter)
Run: cd backend && pytest tests/test_integrations.py -v
"""

import hashlib

import httpx
import pytest

import config
from models import AISetterMessage, MetaConversion, TriState
from services import academic, ai_setter, calendly, google_analytics, manychat, meta_conversion
from services.upstream import UpstreamError, error_status, is_credential_error


class TestUpstreamErrors:

    def test_credential_errors_are_503(self):
        assert is_credential_error("PERMISSION_DENIED: User does not have sufficient permissions")
        assert is_credential_error("whatever", code=403)
        assert error_status(UpstreamError("boom", 401)) == 503

    def test_other_errors_are_500(self):
        assert not is_credential_error("Deadline exceeded")
        assert error_status(UpstreamError("boom", 429)) == 500

    def test_not_configured_stays_503(self):
        assert error_status(UpstreamError("Calendly token not configured", 503)) == 503


class TestMetaConversion:

    def test_email_is_normalised_before_hashing(self):
        expected = hashlib.sha256(b"ana@example.com").hexdigest()
        assert meta_conversion.hashed_email("  Ana@Example.com ") == expected
        assert meta_conversion.hashed_email("") is None

    def test_phone_hash_digits_only(self):
        assert meta_conversion.hashed_phone("+34 600 123 456") == hashlib.sha256(b"34600123456").hexdigest()

    def test_build_event(self):
        data = MetaConversion(event_name="Purchase", email="a@b.com", value=997, event_time=1700000000)
        event = meta_conversion.build_event(data, "abc")
        assert event["event_time"] == 1700000000
        assert event["user_data"]["fbc"].startswith("fb.1.")
        assert event["user_data"]["fbc"].endswith(".abc")
        assert event["custom_data"] == {"value": 997, "currency": "EUR"}

    @pytest.mark.asyncio
    async def test_fbclid_looked_up_by_calendly_uri(self, db, mock_http, monkeypatch):
        monkeypatch.setattr(config, "META_PIXEL_ID", "123")
        monkeypatch.setattr(config, "META_ACCESS_TOKEN", "tok")
        db.tables["fbclid_tracking"] = [
            {"fbclid": "old", "calendly_event_uri": "E1", "created_at": "2025-03-01T10:00:00+00:00"},
            {"fbclid": "new", "calendly_event_uri": "E1", "created_at": "2025-03-02T10:00:00+00:00"},
        ]
        seen = mock_http(lambda request: httpx.Response(200, json={"events_received": 1}))

        result = await meta_conversion.send_event(MetaConversion(calendly_event_uri="E1"))

        assert result["event"]["user_data"]["fbc"].endswith(".new")
        assert "/123/events" in str(seen[0].url)

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(config, "META_PIXEL_ID", "")
        with pytest.raises(UpstreamError) as exc_info:
            await meta_conversion.send_event(MetaConversion(email="a@b.com"))
        assert exc_info.value.status_code == 503


class TestGoogleAnalyticsRows:

    def test_booking_rate(self):
        assert google_analytics.make_row("2025-03-01", 200, 5) == {
            "date": "2025-03-01", "views": 200, "eventCount": 5, "bookingRate": 2.5,
        }

    def test_zero_views(self):
        assert google_analytics.make_row("2025-03-01", 0, 3)["bookingRate"] == 0

    def test_property_path(self):
        assert google_analytics.property_path("123") == "properties/123"
        assert google_analytics.property_path("properties/123") == "properties/123"

    def test_whole_site_has_no_page_filter(self):
        views, events = google_analytics.build_requests("1", "/pricing", "2025-03-01", "2025-03-02", whole_site=True)
        assert not views.dimension_filter
        assert events.dimension_filter.filter.field_name == "eventName"


class TestCalendly:

    def test_event_uuid_from_uri(self):
        uri = "https://api.calendly.com/scheduled_events/ABC123/"
        assert calendly.event_uuid_from(event_uri=uri) == "ABC123"
        assert calendly.event_uuid_from(event_uuid=" XYZ ") == "XYZ"
        assert calendly.event_uuid_from() is None

    def test_booking_message_without_start(self):
        assert calendly.booking_message({}) == "👤 Unknown name\n✉️ Unknown email"

    @pytest.mark.asyncio
    async def test_cancel_requires_token(self, monkeypatch):
        monkeypatch.setattr(config, "CALENDLY_TOKEN", "")
        with pytest.raises(UpstreamError):
            await calendly.cancel_event("ABC")


class TestAcademic:

    def test_customer_name_fallbacks(self):
        assert academic.customer_name({"member_name": "Ana P"}, "a@b.com") == "Ana P"
        assert academic.customer_name({"member_first_name": "Ana", "member_last_name": "P"}, "a@b.com") == "Ana P"
        assert academic.customer_name({}, "a@b.com") == "a@b.com"

    def test_map_attendance_nested_show_up(self):
        mapped = academic.map_attendance({"classCount": "4", "data": {"showUpRate": 75}})
        assert mapped["numberOfClasses"] is None
        assert mapped["showUpRate"] == 75


class TestManychatSync:

    def test_field_values(self):
        assert manychat.field_value_for("true") is True
        assert manychat.field_value_for(TriState.NO) is False
        assert manychat.field_value_for(None) is None

    @pytest.mark.asyncio
    async def test_unknown_field_is_skipped(self, mock_http):
        seen = mock_http(lambda request: httpx.Response(200, json={}))
        assert await manychat.sync_call_status("1", "cancelled", True) is None
        assert seen == []


class TestAISetter:

    def test_messages_include_state_and_history(self):
        data = AISetterMessage(
            message="Hola",
            state={"name": "Ana"},
            history=[{"role": "assistant", "content": "Hi!"}, {"role": "system", "content": "ignored"}],
        )
        messages = ai_setter.build_messages("You are a setter.", data)
        assert messages[0]["role"] == "system"
        assert "- name: Ana" in messages[0]["content"]
        assert [m["role"] for m in messages[1:]] == ["assistant", "user"]

    @pytest.mark.asyncio
    async def test_no_active_prompt(self, db, monkeypatch):
        monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")
        with pytest.raises(UpstreamError) as exc_info:
            await ai_setter.reply(AISetterMessage(message="Hola"))
        assert exc_info.value.status_code == 503
