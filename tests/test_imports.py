"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""

from datetime import date

import pytest


class TestSchemaImports:
    def test_import_booking_schema(self):
        from servicehub.schemas.booking_schema import Booking, BookingDraft, BookingStatus
        assert BookingStatus.IN_PROGRESS == "in_progress"
        assert BookingDraft().expert is None

    def test_import_tracking_schema(self):
        from servicehub.schemas.tracking_schema import TrackingSample, TrackingStatus
        assert TrackingStatus.EN_ROUTE == "en_route"

    def test_import_misc_schema(self):
        from servicehub.schemas.misc_schema import EmergencyAlert, EmergencyType
        assert EmergencyType.SOS == "sos"


class TestPackageReExports:
    def test_client_package(self):
        from servicehub.client import ApiClient, CollectingNotifier, CredentialStore
        assert CredentialStore().token is None

    def test_realtime_package(self):
        from servicehub.realtime import INBOUND_EVENTS, RealtimeChannel
        assert "expert-location-update" in INBOUND_EVENTS

    def test_wizard_package(self):
        from servicehub.wizard import QUICK_TIME_WINDOWS, TIME_SLOTS, BookingWizard, WizardStep
        assert WizardStep.SERVICE.title
        assert len(QUICK_TIME_WINDOWS) == 4
        assert TIME_SLOTS

    def test_tracking_package(self):
        from servicehub.tracking import TrackingSession, TrackingView
        assert TrackingView("bk-1").ended is False

    def test_session_package(self):
        from servicehub.session import SessionContext
        assert SessionContext is not None


class TestConfigImport:
    def test_import_config(self):
        from servicehub.config import settings
        assert settings.api.base_url.startswith("http")
        assert settings.tracking.idle_tolerance_sec > 0
        assert settings.wizard.max_days_ahead >= settings.wizard.min_days_ahead


class TestConsoleDemo:
    def test_offline_session_wiring(self):
        from console_demo import ConsoleSession
        session = ConsoleSession.offline()
        assert session.backend is not None
        assert not session.context.is_authenticated
        assert "booking" in session.SCENARIOS

    @pytest.mark.asyncio
    async def test_offline_session_logs_in(self):
        from console_demo import ConsoleSession
        session = ConsoleSession.offline()
        await session.start()
        assert session.context.is_authenticated
        assert session.context.channel.connected
        assert session.wizard is not None
        await session.context.aclose()

    def test_parse_schedule(self):
        from console_demo import parse_schedule
        today = date(2025, 3, 10)
        scheduling = parse_schedule("+2 morning", today)
        assert scheduling.preferred_date == date(2025, 3, 12)
        assert (scheduling.preferred_time.start, scheduling.preferred_time.end) == ("09:00", "12:00")

        flexible = parse_schedule("tomorrow anytime", today)
        assert flexible.flexible
        assert flexible.preferred_date == date(2025, 3, 11)

        custom = parse_schedule("2025-03-20 17:00-18:30", today)
        assert custom.preferred_time.start == "17:00"
        assert custom.preferred_time.end == "18:30"

    def test_parse_schedule_bad_date(self):
        from console_demo import parse_schedule
        with pytest.raises(ValueError):
            parse_schedule("someday morning", date(2025, 3, 10))


class TestTransportDependencies:
    def test_socketio_async_client_transport(self):
        import aiohttp
        import socketio
        assert aiohttp.ClientSession is not None
        assert socketio.AsyncClient is not None
