"""
Console front end for the booking wizard and live tracking.

Runs the real wizard, API client, realtime channel and tracking session.
By default everything talks to an in-process demo backend (an
``httpx.MockTransport`` plus an in-memory socket), so no server or account
is needed. Designed for live demo walkthroughs.

Usage:
    python console_demo.py
    python console_demo.py --scenario booking
    python console_demo.py --scenario expert
    python console_demo.py --scenario emergency
"""

import argparse
import asyncio
import inspect
import itertools
import json
import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

import httpx

from servicehub.catalog import get_all_categories, match_category
from servicehub.client.notifications import Notification, NotificationLevel, Notifier
from servicehub.config import settings
from servicehub.geolocation import FixedPositionProvider, GeolocationProvider
from servicehub.realtime.channel import EXPERT_ARRIVED, EXPERT_LOCATION_UPDATE, TRACKING_STARTED
from servicehub.schemas.booking_schema import (
    LocationDetails,
    Scheduling,
    TimeWindow,
)
from servicehub.schemas.misc_schema import EmergencyType
from servicehub.schemas.session_schema import Identity
from servicehub.session.context import SessionContext
from servicehub.tracking.session import TrackingSession, TrackingView
from servicehub.wizard.state_machine import WizardStep
from servicehub.wizard.steps import QUICK_TIME_WINDOWS

logger = logging.getLogger(__name__)

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_IDENTITY = Identity(_id="user-demo", name="Demo Customer", email="demo@example.com")
DEMO_TOKEN = "demo-token"
DEMO_POSITION = (28.613900, 77.209000)


# ---------------------------------------------------------------------- #
# In-process demo backend
# ---------------------------------------------------------------------- #

class DemoSocketClient:
    """In-memory stand-in for ``socketio.AsyncClient`` wired to the demo backend."""

    def __init__(self) -> None:
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.connected = False

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, auth: Optional[dict] = None, wait_timeout: float = 1) -> None:
        self.connected = True
        await self.push("connect")

    async def disconnect(self) -> None:
        self.connected = False
        await self.push("disconnect")

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))
        logger.debug("demo socket <- %s %s", event, data)

    async def push(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is None:
            return
        result = handler(*args)
        if inspect.isawaitable(result):
            await result


class DemoBackend:
    """Just enough of the marketplace REST API for the console scenarios."""

    EXPERTS: list[dict[str, Any]] = [
        {
            "_id": "exp-1",
            "user": {"name": "Ravi Kumar", "phone": "+91-98100-00001"},
            "services": [{"category": "plumber", "hourlyRate": 450, "experience": 8,
                          "description": "Leaks, fittings and bathroom plumbing"}],
            "rating": {"average": 4.8, "count": 132},
            "isOnline": True,
        },
        {
            "_id": "exp-2",
            "user": {"name": "Anita Sharma"},
            "services": [{"category": "electrician", "hourlyRate": 500, "experience": 5},
                         {"category": "technician", "hourlyRate": 400}],
            "rating": {"average": 4.6, "count": 87},
            "isOnline": True,
        },
        {
            "_id": "exp-3",
            "user": {"name": "Joseph D'Souza"},
            "services": [{"category": "plumber", "hourlyRate": 380, "experience": 3}],
            "rating": {"average": 4.2, "count": 19},
            "isOnline": False,
        },
    ]

    def __init__(self) -> None:
        self.bookings: dict[str, dict[str, Any]] = {}
        self.history: dict[str, list[dict[str, Any]]] = {}
        self.alerts: list[dict[str, Any]] = []
        self._ids = itertools.count(1001)
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        body = json.loads(request.content) if request.content else {}
        method = request.method

        if method == "GET" and path == "/experts":
            category = request.url.params.get("category")
            experts = [
                e for e in self.EXPERTS
                if any(s["category"] == category for s in e["services"])
            ]
            return _ok(experts=experts)
        match = re.fullmatch(r"/experts/([\w-]+)", path)
        if method == "GET" and match:
            expert = next((e for e in self.EXPERTS if e["_id"] == match.group(1)), None)
            if expert is None:
                return httpx.Response(404, json={"success": False, "message": "Expert not found"})
            return _ok(expert=expert)

        if method == "POST" and path == "/bookings":
            booking_id = f"bk-{next(self._ids)}"
            booking = dict(body, _id=booking_id, status="pending",
                           communication={"chatMessages": []})
            self.bookings[booking_id] = booking
            self.history[booking_id] = []
            return httpx.Response(201, json={"success": True, "booking": booking})

        match = re.fullmatch(r"/bookings/([\w-]+)(/messages|/cancel)?", path)
        if match and match.group(1) in self.bookings:
            booking = self.bookings[match.group(1)]
            action = match.group(2)
            if method == "GET" and action is None:
                return _ok(booking=booking)
            if method == "POST" and action == "/messages":
                booking["communication"]["chatMessages"].append({
                    "sender": "user", "message": body.get("message", ""),
                    "type": body.get("type", "text"),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                })
                return _ok(message="Message sent")
            if method == "PUT" and action == "/cancel":
                booking["status"] = "cancelled"
                return _ok(booking=booking)

        match = re.fullmatch(r"/tracking/history/([\w-]+)", path)
        if method == "GET" and match and match.group(1) in self.history:
            samples = self.history[match.group(1)]
            return _ok(tracking={"history": samples, "estimatedArrival": "15 mins" if samples else None})

        if method == "POST" and path == "/payments/create-payment-intent":
            return _ok(clientSecret="pi_demo_secret", paymentIntentId="pi_demo", amount=body.get("amount"))

        if method == "POST" and path == "/emergency/alert":
            self.alerts.append(body)
            return httpx.Response(201, json={"success": True, "message": "Alert received"})

        return httpx.Response(404, json={"success": False, "message": f"No route for {method} {path}"})

    def set_status(self, booking_id: str, status: str) -> None:
        self.bookings[booking_id]["status"] = status

    def add_sample(self, booking_id: str, lat: float, lng: float, minutes_ago: int = 0) -> dict[str, Any]:
        stamp = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
        sample = {"lat": lat, "lng": lng, "timestamp": stamp.isoformat(), "status": "en_route"}
        self.history[booking_id].append(sample)
        return sample


def _ok(**payload: Any) -> httpx.Response:
    return httpx.Response(200, json={"success": True, **payload})


# ---------------------------------------------------------------------- #
# Console session
# ---------------------------------------------------------------------- #

class ConsoleNotifier(Notifier):
    """Prints notifications inline, coloured by level."""

    COLOURS = {
        NotificationLevel.SUCCESS: GREEN,
        NotificationLevel.ERROR: RED,
        NotificationLevel.INFO: YELLOW,
    }

    def notify(self, notification: Notification) -> None:
        colour = self.COLOURS[notification.level]
        action = ""
        if notification.action_label:
            action = f" [{notification.action_label} -> {notification.action_target}]"
        print(f"{colour}  ({notification.level.value}) {notification.message}{action}{RESET}")


def parse_schedule(text: str, today: date) -> Scheduling:
    """
    Parse ``<date> <time>`` typed at the date & time step.

    The date is ISO (``2025-03-15``), ``today``, ``tomorrow`` or ``+N`` days.
    The time is a quick window name (``morning``, ``anytime``...) or
    ``HH:MM-HH:MM``. Raises ValueError when the date cannot be read.
    """
    parts = text.split(maxsplit=1)
    if not parts:
        return Scheduling()
    day_text = parts[0].lower()
    if day_text == "today":
        preferred = today
    elif day_text == "tomorrow":
        preferred = today + timedelta(days=1)
    elif day_text.startswith("+") and day_text[1:].isdigit():
        preferred = today + timedelta(days=int(day_text[1:]))
    else:
        preferred = date.fromisoformat(day_text)

    time_text = parts[1].strip().lower() if len(parts) > 1 else ""
    for window in QUICK_TIME_WINDOWS:
        if time_text and window.label.lower().startswith(time_text):
            return Scheduling(
                preferred_date=preferred,
                preferred_time=TimeWindow(start=window.start, end=window.end),
                flexible=window.flexible,
            )
    start, _, end = time_text.partition("-")
    return Scheduling(
        preferred_date=preferred,
        preferred_time=TimeWindow(start=start.strip(), end=end.strip()),
    )


class ConsoleSession:
    """Drives one customer session in the terminal."""

    # Pre-scripted scenarios for --scenario flag. Lines starting with "!"
    # are demo backend actions, not customer input.
    SCENARIOS: dict[str, list[str]] = {
        "booking": [
            "plumber",
            "plumber: Leaking kitchen tap under the sink",
            "here",
            "today morning",
            "+2 morning",
            "list",
            "1",
            "yes",
            "!accept",
            "!move",
            "say Please use the side gate",
            "!arrive",
            "!start-work",
            "refresh",
            "status",
        ],
        "expert": [
            "expert exp-2",
            "back",
            "electrician: Replace two ceiling lights",
            "42 MG Road, Bengaluru",
            "+3 17:00-18:30",
            "",
            "back",
            "list",
            "1",
            "yes",
            "cancel",
        ],
        "emergency": [
            "sos",
            "alert medical",
            "alert medical: Elderly neighbour collapsed",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(
        self,
        context: SessionContext,
        backend: Optional[DemoBackend] = None,
        socket: Optional[DemoSocketClient] = None,
    ) -> None:
        self.context = context
        self.backend = backend
        self.socket = socket
        self.wizard = None
        self.tracker: Optional[TrackingSession] = None
        self._finished = False

    @classmethod
    def offline(cls, geolocation: Optional[GeolocationProvider] = None) -> "ConsoleSession":
        """A session wired to the in-process demo backend."""
        backend = DemoBackend()
        socket = DemoSocketClient()
        context = SessionContext(
            notifier=ConsoleNotifier(),
            transport=backend.transport,
            client_factory=lambda: socket,
            geolocation=geolocation or FixedPositionProvider(*DEMO_POSITION),
        )
        return cls(context, backend, socket)

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[servicehub]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  SERVICEHUB - {title}{RESET}")
        print(f"{BOLD}  Backend: {settings.api.base_url if self.backend is None else 'offline demo'}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    async def start(self, identity: Identity = DEMO_IDENTITY, token: str = DEMO_TOKEN) -> None:
        await self.context.login(identity, token)
        self.system_log(
            f"Logged in as {identity.name or identity.user_id} "
            f"(realtime {'connected' if self.context.channel.connected else 'offline'})"
        )
        self.wizard = self.context.new_booking_wizard()
        self._prompt_step()

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        await self.start()
        for step in steps:
            if self._finished:
                break
            print(f"\n{BLUE}[Customer] {RESET}{step}")
            await self._process_input(step)
        await self._finish(f"Scenario '{scenario}' complete.")

    async def run(self, identity: Identity = DEMO_IDENTITY, token: str = DEMO_TOKEN) -> None:
        self._banner("Console")
        print(f"{BOLD}  Type 'quit' to exit, 'back' to go back a step{RESET}")
        await self.start(identity, token)

        while not self._finished:
            user_input = (await asyncio.to_thread(input, f"\n{BLUE}[Customer] {RESET}")).strip()
            if user_input.lower() in ("quit", "exit", "q"):
                break
            if len(user_input) > self.MAX_INPUT_LENGTH:
                self.agent_say("That was quite long. Could you keep it brief?")
                continue
            await self._process_input(user_input)
        await self._finish("Session ended.")

    async def _finish(self, message: str) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {message}{RESET}")
        if self.wizard is not None:
            trace = " -> ".join(WizardStep(s).title for s in self.wizard.state_machine.get_step_trace())
            print(f"{DIM}  Step trace: {trace}{RESET}")
        if self.tracker is not None:
            print(f"{DIM}  Tracking: {self.tracker.view.display_status.value}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        await self.context.aclose()

    # ------------------------------------------------------------------ #
    # Input dispatch
    # ------------------------------------------------------------------ #

    async def _process_input(self, text: str) -> None:
        lower = text.lower()
        if lower.startswith("!"):
            await self._demo_action(lower[1:])
            return
        if lower == "sos":
            await self.context.emergency.send_sos()
            return
        if lower.startswith("alert"):
            kind, _, description = text[len("alert"):].partition(":")
            try:
                alert_type = EmergencyType(kind.strip().lower() or "general")
            except ValueError:
                types = ", ".join(t.value for t in EmergencyType)
                self.agent_say(f"Alert type must be one of: {types}")
                return
            await self.context.emergency.send_alert(alert_type, description)
            return

        if self.tracker is not None:
            await self._handle_tracking(text)
            return
        if lower == "back":
            self.wizard.prev()
            self._prompt_step()
            return

        step = self.wizard.current_step
        if step == WizardStep.SERVICE:
            await self._handle_service(text)
        elif step == WizardStep.LOCATION:
            await self._handle_location(text)
        elif step == WizardStep.DATETIME:
            self._handle_datetime(text)
        elif step == WizardStep.EXPERT:
            await self._handle_expert(text)
        elif step == WizardStep.REVIEW:
            await self._handle_review(text)

    def _prompt_step(self) -> None:
        step = self.wizard.current_step
        if step == WizardStep.SUBMITTED:
            return
        self.system_log(f"Step {step.value}: {step.title} - {step.description}")
        if step == WizardStep.SERVICE:
            names = ", ".join(c["id"] for c in get_all_categories())
            self.agent_say(f"What service do you need? ({names}) Use '<category>: <description>'.")
        elif step == WizardStep.LOCATION:
            self.agent_say("Where do you need the service? Type an address, or 'here' for your location.")
        elif step == WizardStep.DATETIME:
            earliest, latest = self.wizard.date_window()
            self.agent_say(
                f"When should we come? Pick a date from {earliest} to {latest} and a time "
                f"(morning, afternoon, evening, anytime or HH:MM-HH:MM)."
            )
        elif step == WizardStep.EXPERT:
            self.agent_say("Type 'list' to see available experts, then pick one by number.")
        elif step == WizardStep.REVIEW:
            self.agent_say(f"{self.wizard.summary()}\n\nShall I book it? (yes / back)")

    async def _handle_service(self, text: str) -> None:
        if text.lower().startswith("expert "):
            if await self.wizard.preselect_expert(text.split(maxsplit=1)[1].strip()):
                expert = self.wizard.draft.expert
                self.system_log(f"Expert preselected: {expert.name} ({expert.category.value})")
                self._prompt_step()
            return

        category_text, _, description = text.partition(":")
        category = match_category(category_text)
        if category is None:
            self.agent_say("I'm not sure which service that is. Could you pick one from the list?")
            return
        service = self.wizard.draft.service.model_copy(
            update={"category": category, "description": description.strip()}
        )
        ok, msg = self.wizard.next(service)
        self.system_log(f"Service: {'OK' if ok else 'FAILED'} - {msg}")
        if ok:
            self._prompt_step()

    async def _handle_location(self, text: str) -> None:
        if text.lower() == "here":
            ok, msg = await self.wizard.use_current_location(self.context.geolocation)
            if not ok:
                return
            self.system_log(f"Location acquired: {msg}")
            location = self.wizard.draft.location
        else:
            location = LocationDetails(address=text)
        ok, msg = self.wizard.next(location)
        if ok:
            self._prompt_step()

    def _handle_datetime(self, text: str) -> None:
        try:
            scheduling = parse_schedule(text, date.today())
        except ValueError:
            self.agent_say("Sorry, I couldn't read that date. Try YYYY-MM-DD, 'tomorrow' or '+2'.")
            return
        ok, msg = self.wizard.next(scheduling)
        self.system_log(f"Schedule: {'OK' if ok else 'FAILED'} - {msg}")
        if ok:
            self._prompt_step()

    async def _handle_expert(self, text: str) -> None:
        if text.lower() == "list":
            experts = await self.wizard.load_experts()
            if not experts:
                self.agent_say("No experts available for that service nearby.")
                return
            for i, expert in enumerate(experts, start=1):
                service = expert.primary_service
                rate = f"{service.hourly_rate:.0f}/hr" if service and service.hourly_rate else "rate on request"
                online = "online" if expert.is_online else "offline"
                print(f"    {i}. {expert.user.name} - {expert.rating.average:.1f} "
                      f"({expert.rating.count} reviews), {rate}, {online}")
            return

        experts = self.wizard.experts
        if text.isdigit() and 1 <= int(text) <= len(experts):
            ref = self.wizard.select_expert(experts[int(text) - 1])
            self.system_log(f"Expert selected: {ref.name}")
        ok, msg = self.wizard.next()
        if ok:
            self._prompt_step()

    async def _handle_review(self, text: str) -> None:
        if text.lower() not in ("yes", "y", "confirm", "book"):
            self.agent_say("Say 'yes' to book, or 'back' to change something.")
            return
        booking = await self.wizard.submit()
        if booking is None:
            return
        self.agent_say(f"Booking confirmed! Your reference is {booking.id}.")
        intent = await self.context.api.payments.create_payment_intent(
            self.wizard.draft.pricing.final_price, booking.id
        )
        self.system_log(f"Payment intent {intent.payment_intent_id} for {intent.amount}")

        self.tracker = self.context.tracking_sessions.get(booking.id)
        if self.tracker is None:
            self.tracker = await self.context.track(booking.id)
        self._attach_view_printer()
        self.agent_say("Live tracking is on. Commands: status, refresh, say <message>, cancel.")

    # ------------------------------------------------------------------ #
    # Tracking
    # ------------------------------------------------------------------ #

    def _attach_view_printer(self) -> None:
        self.tracker.on_update = self._print_view

    def _print_view(self, view: TrackingView) -> None:
        location = view.current_location
        where = f"{location.lat:.5f}, {location.lng:.5f}" if location else "unknown"
        status = view.booking_status.value if view.booking_status else "?"
        self.system_log(
            f"Tracking {view.booking_id}: {view.display_status.value} "
            f"(booking {status}), expert at {where}, ETA {view.eta or '-'}"
        )

    async def _handle_tracking(self, text: str) -> None:
        lower = text.lower()
        if lower == "status":
            view = self.tracker.view
            self._print_view(view)
            for message in view.messages:
                print(f"    [{message.sender}] {message.message}")
        elif lower == "refresh":
            await self.tracker.refresh_booking()
        elif lower.startswith("say "):
            await self.tracker.send_message(text[4:])
        elif lower == "cancel":
            await self.tracker.cancel("Changed my mind")
        else:
            self.agent_say("Commands: status, refresh, say <message>, cancel.")
        if self.tracker.view.ended:
            self.agent_say("This booking is no longer active.")
            self._finished = True

    async def track(self, booking_id: str) -> None:
        """Follow an existing booking until interrupted."""
        self._banner(f"Tracking {booking_id}")
        self.tracker = await self.context.track(booking_id, on_update=self._print_view)
        self._print_view(self.tracker.view)
        try:
            await self.tracker.run_reconciliation()
        finally:
            await self._finish("Tracking ended.")

    async def _demo_action(self, action: str) -> None:
        """Simulate the expert's side of the booking on the demo backend."""
        if self.backend is None or self.socket is None or self.tracker is None:
            self.system_log(f"Demo action '{action}' needs the offline backend and a booking")
            return
        booking_id = self.tracker.booking_id
        if action == "accept":
            self.backend.set_status(booking_id, "accepted")
            self.backend.add_sample(booking_id, 28.6010, 77.1950, minutes_ago=5)
            await self.socket.push(TRACKING_STARTED, {"bookingId": booking_id})
            await self.tracker.refresh_booking()
        elif action == "move":
            await self.socket.push(EXPERT_LOCATION_UPDATE, {
                "bookingId": booking_id,
                "expertLocation": {"lat": 28.6102, "lng": 77.2051},
                "estimatedArrival": "6 mins",
            })
        elif action == "arrive":
            await self.socket.push(EXPERT_ARRIVED, {"bookingId": booking_id})
        elif action == "start-work":
            self.backend.set_status(booking_id, "in_progress")
            self.system_log("Expert started work (visible after the next booking refresh)")
        else:
            self.system_log(f"Unknown demo action: {action}")


async def _amain(scenario: Optional[str]) -> None:
    session = ConsoleSession.offline()
    if scenario:
        await session.run_scenario(scenario)
    else:
        await session.run()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()
    asyncio.run(_amain(args.scenario))


if __name__ == "__main__":
    main()
