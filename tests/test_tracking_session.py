"""Tests for the live tracking session's push/pull merge."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from servicehub.config import TrackingConfig
from servicehub.errors import ApiError, ServiceHubError
from servicehub.realtime.channel import EXPERT_ARRIVED, EXPERT_LOCATION_UPDATE, TRACKING_STARTED
from servicehub.schemas.booking_schema import BookingStatus
from servicehub.schemas.tracking_schema import TrackingStatus
from servicehub.tracking.session import TrackingSession

from tests.conftest import make_booking, make_sample


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 12, 10, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server(backend):
    """Mutable backend state behind the booking and history routes."""
    state = {"status": "accepted", "history": [], "eta": None, "messages": []}

    def booking(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={
            "success": True,
            "booking": make_booking("bk-1", status=state["status"], messages=state["messages"]),
        })

    def history(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "tracking": {
            "history": state["history"], "estimatedArrival": state["eta"],
        }})

    def message(request: httpx.Request) -> httpx.Response:
        state["messages"].append({"sender": "user", "message": "Use the side gate", "type": "text"})
        return httpx.Response(200, json={"success": True})

    def cancel(request: httpx.Request) -> httpx.Response:
        state["status"] = "cancelled"
        return httpx.Response(200, json={"success": True})

    backend.on("GET", "/bookings/bk-1", handler=booking)
    backend.on("GET", "/tracking/history/bk-1", handler=history)
    backend.on("POST", "/bookings/bk-1/messages", handler=message)
    backend.on("PUT", "/bookings/bk-1/cancel", handler=cancel)
    return state


@pytest.fixture
def session(api, channel, notifier, tracking_config, clock, server):
    return TrackingSession("bk-1", api, channel, notifier=notifier, config=tracking_config, clock=clock)


async def _started(session, channel, identity):
    await channel.connect(identity, "tok")
    await session.start()
    return session


def _location_push(booking_id: str, lat: float, lng: float, minute=None, eta=None) -> dict:
    location = {"lat": lat, "lng": lng}
    if minute is not None:
        location["timestamp"] = make_sample(lat, lng, minute)["timestamp"]
    payload = {"bookingId": booking_id, "expertLocation": location}
    if eta is not None:
        payload["estimatedArrival"] = eta
    return payload


class TestStart:
    @pytest.mark.asyncio
    async def test_subscribes_then_fetches(self, session, channel, identity, backend):
        await _started(session, channel, identity)
        assert channel.subscriber_count(EXPERT_LOCATION_UPDATE) == 1
        assert channel.subscriber_count(EXPERT_ARRIVED) >= 1
        paths = [r.url.path for r in backend.requests]
        assert paths == ["/api/bookings/bk-1", "/api/tracking/history/bk-1"]

    @pytest.mark.asyncio
    async def test_pending_booking_is_idle(self, session, channel, identity, server):
        server["status"] = "pending"
        await _started(session, channel, identity)
        assert session.view.display_status == TrackingStatus.IDLE
        assert not session.view.ended

    @pytest.mark.asyncio
    async def test_accepted_booking_is_en_route(self, session, channel, identity):
        await _started(session, channel, identity)
        assert session.view.booking_status == BookingStatus.ACCEPTED
        assert session.view.display_status == TrackingStatus.EN_ROUTE

    @pytest.mark.asyncio
    async def test_initial_history(self, session, channel, identity, server):
        server["history"] = [make_sample(28.60, 77.20, 5), make_sample(28.61, 77.21, 9)]
        server["eta"] = "12 mins"
        await _started(session, channel, identity)
        view = session.view
        assert len(view.history) == 2
        assert view.current_location.lat == 28.61
        assert view.eta == "12 mins"

    @pytest.mark.asyncio
    async def test_failed_booking_fetch_detaches(self, session, channel, identity, backend):
        backend.on("GET", "/bookings/bk-1", status=500, json={"message": "Database unavailable"})
        await channel.connect(identity, "tok")
        with pytest.raises(ApiError):
            await session.start()
        assert not session.active
        assert channel.subscriber_count(EXPERT_LOCATION_UPDATE) == 0

    @pytest.mark.asyncio
    async def test_failed_history_fetch_detaches(self, session, channel, identity, backend):
        backend.on("GET", "/tracking/history/bk-1", status=503)
        await channel.connect(identity, "tok")
        with pytest.raises(ApiError):
            await session.start()
        assert not session.active
        assert channel.subscriber_count(EXPERT_ARRIVED) == 0

    @pytest.mark.asyncio
    async def test_ending_fires_callback(self, session, channel, identity, server):
        ended = []
        session.on_end = ended.append
        await _started(session, channel, identity)
        server["status"] = "disputed"
        await session.refresh_booking()
        assert ended == [session]

    @pytest.mark.asyncio
    async def test_ended_session_cannot_restart(self, session, channel, identity, server):
        server["status"] = "completed"
        await _started(session, channel, identity)
        with pytest.raises(ServiceHubError):
            await session.start()


class TestMergeRule:
    @pytest.mark.asyncio
    async def test_push_updates_location_and_eta(self, session, channel, identity, socket_client):
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.62, 77.22, 10, "5 mins"))
        view = session.view
        assert (view.current_location.lat, view.current_location.lng) == (28.62, 77.22)
        assert view.eta == "5 mins"

    @pytest.mark.asyncio
    async def test_older_push_does_not_replace_newer_pull(self, session, channel, identity, server, socket_client):
        server["history"] = [make_sample(28.61, 77.21, 9)]
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.50, 77.10, 5))
        assert session.view.current_location.lat == 28.61

    @pytest.mark.asyncio
    async def test_older_pull_does_not_replace_newer_push(self, session, channel, identity, server, socket_client):
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.62, 77.22, 9))
        server["history"] = [make_sample(28.50, 77.10, 5)]
        await session.refresh_history()
        assert session.view.current_location.lat == 28.62

    @pytest.mark.asyncio
    async def test_older_pull_keeps_pushed_eta(self, session, channel, identity, server, socket_client):
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.62, 77.22, 20, "2 min"))
        server["history"] = [make_sample(28.50, 77.10, 5)]
        server["eta"] = "25 min"
        await session.refresh_history()
        view = session.view
        assert view.current_location.timestamp.minute == 20
        assert view.eta == "2 min"

    @pytest.mark.asyncio
    async def test_older_push_keeps_pulled_eta(self, session, channel, identity, server, socket_client):
        server["history"] = [make_sample(28.61, 77.21, 9)]
        server["eta"] = "4 min"
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.50, 77.10, 5, "12 min"))
        assert session.view.eta == "4 min"

    @pytest.mark.asyncio
    async def test_newer_pull_replaces_eta(self, session, channel, identity, server, socket_client):
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.50, 77.10, 5, "10 min"))
        server["history"] = [make_sample(28.61, 77.21, 9)]
        server["eta"] = "4 min"
        await session.refresh_history()
        assert session.view.eta == "4 min"

    @pytest.mark.asyncio
    async def test_push_without_timestamp_uses_receive_time(self, session, channel, identity, server, socket_client, clock):
        server["history"] = [make_sample(28.61, 77.21, 9)]
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.63, 77.23))
        location = session.view.current_location
        assert location.lat == 28.63
        assert location.timestamp == clock.now

    @pytest.mark.asyncio
    async def test_history_deduplicated_and_ordered(self, session, channel, identity, server, socket_client):
        server["history"] = [make_sample(28.60, 77.20, 5), make_sample(28.62, 77.22, 9)]
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.61, 77.21, 7))
        await session.refresh_history()
        minutes = [s.timestamp.minute for s in session.view.history]
        assert minutes == [5, 7, 9]


class TestForeignEvents:
    @pytest.mark.asyncio
    async def test_foreign_location_update_ignored(self, session, channel, identity, socket_client, backend):
        await _started(session, channel, identity)
        before = session.view
        requests_before = len(backend.requests)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-other", 1.0, 2.0, 20))
        await socket_client.trigger(EXPERT_ARRIVED, {"bookingId": "bk-other"})
        await socket_client.trigger(TRACKING_STARTED, {"bookingId": "bk-other"})
        assert session.view == before
        assert len(backend.requests) == requests_before

    @pytest.mark.asyncio
    async def test_malformed_push_ignored(self, session, channel, identity, socket_client):
        await _started(session, channel, identity)
        before = session.view
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, {"expertLocation": {"lat": 1}})
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, "garbage")
        assert session.view == before


class TestDisplayStatus:
    @pytest.mark.asyncio
    async def test_arrival_push_refetches_booking(self, session, channel, identity, socket_client, backend):
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_ARRIVED, {"bookingId": "bk-1"})
        assert session.view.display_status == TrackingStatus.ARRIVED
        assert len(backend.requests_to("GET", "/bookings/bk-1")) == 2

    @pytest.mark.asyncio
    async def test_working_only_after_refetch(self, session, channel, identity, server, socket_client):
        await _started(session, channel, identity)
        server["status"] = "in_progress"
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.62, 77.22, 10))
        assert session.view.display_status == TrackingStatus.EN_ROUTE
        await session.refresh_booking()
        assert session.view.display_status == TrackingStatus.WORKING

    @pytest.mark.asyncio
    async def test_arrival_then_in_progress(self, session, channel, identity, server, socket_client):
        await _started(session, channel, identity)
        server["status"] = "in_progress"
        await socket_client.trigger(EXPERT_ARRIVED, {"bookingId": "bk-1"})
        assert session.view.display_status == TrackingStatus.WORKING

    @pytest.mark.asyncio
    async def test_tracking_started_pulls_history(self, session, channel, identity, server, socket_client):
        await _started(session, channel, identity)
        server["history"] = [make_sample(28.60, 77.20, 5)]
        await socket_client.trigger(TRACKING_STARTED, {"bookingId": "bk-1"})
        assert len(session.view.history) == 1

    @pytest.mark.asyncio
    async def test_terminal_status_ends_session(self, session, channel, identity, server):
        await _started(session, channel, identity)
        server["status"] = "completed"
        await session.refresh_booking()
        assert session.view.ended
        assert not session.active
        assert channel.subscriber_count(EXPERT_LOCATION_UPDATE) == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_detaches_listeners(self, session, channel, identity, socket_client):
        await _started(session, channel, identity)
        session.stop()
        before = session.view
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.62, 77.22, 10))
        assert session.view == before
        assert channel.subscriber_count(EXPERT_LOCATION_UPDATE) == 0

    @pytest.mark.asyncio
    async def test_response_after_stop_is_ignored(self, session, channel, identity, backend):
        await _started(session, channel, identity)

        def history(request: httpx.Request) -> httpx.Response:
            session.stop()
            return httpx.Response(200, json={"success": True, "tracking": {
                "history": [make_sample(28.60, 77.20, 5)],
            }})

        backend.on("GET", "/tracking/history/bk-1", handler=history)
        await session.refresh_history()
        assert session.view.history == ()

    @pytest.mark.asyncio
    async def test_listener_receives_views(self, session, channel, identity, socket_client):
        views = []
        session.on_update = views.append
        await _started(session, channel, identity)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.62, 77.22, 10))
        assert views
        assert views[-1].current_location.lat == 28.62


class TestReconciliation:
    @pytest.mark.asyncio
    async def test_no_pull_within_tolerance(self, session, channel, identity, backend, clock):
        await _started(session, channel, identity)
        clock.advance(10)
        assert not await session.reconcile_if_idle()
        assert len(backend.requests_to("GET", "/tracking/history/bk-1")) == 1

    @pytest.mark.asyncio
    async def test_pull_after_idle_tolerance(self, session, channel, identity, backend, clock):
        await _started(session, channel, identity)
        clock.advance(31)
        assert await session.reconcile_if_idle()
        assert len(backend.requests_to("GET", "/tracking/history/bk-1")) == 2

    @pytest.mark.asyncio
    async def test_push_resets_idle_timer(self, session, channel, identity, socket_client, clock):
        await _started(session, channel, identity)
        clock.advance(25)
        await socket_client.trigger(EXPERT_LOCATION_UPDATE, _location_push("bk-1", 28.62, 77.22, 10))
        clock.advance(25)
        assert not await session.reconcile_if_idle()

    @pytest.mark.asyncio
    async def test_loop_runs_until_stopped(self, api, channel, notifier, identity, backend, server, clock):
        config = TrackingConfig(idle_tolerance_sec=30.0, poll_interval_sec=0.01, geolocation_timeout_sec=1.0)
        session = TrackingSession("bk-1", api, channel, notifier=notifier, config=config, clock=clock)
        await _started(session, channel, identity)
        clock.advance(60)
        task = asyncio.create_task(session.run_reconciliation())
        await asyncio.sleep(0.1)
        session.stop()
        await asyncio.wait_for(task, timeout=1.0)
        assert len(backend.requests_to("GET", "/tracking/history/bk-1")) == 2


class TestBookingActions:
    @pytest.mark.asyncio
    async def test_send_message_refetches(self, session, channel, identity, backend):
        await _started(session, channel, identity)
        assert await session.send_message("Use the side gate")
        assert [m.message for m in session.view.messages] == ["Use the side gate"]
        assert len(backend.requests_to("GET", "/bookings/bk-1")) == 2

    @pytest.mark.asyncio
    async def test_blank_message_not_sent(self, session, channel, identity, backend):
        await _started(session, channel, identity)
        assert not await session.send_message("   ")
        assert backend.requests_to("POST", "/bookings/bk-1/messages") == []

    @pytest.mark.asyncio
    async def test_cancel_ends_session(self, session, channel, identity, notifier):
        await _started(session, channel, identity)
        view = await session.cancel("Plans changed")
        assert view.booking_status == BookingStatus.CANCELLED
        assert view.ended
        assert "Booking cancelled" in notifier.messages()
