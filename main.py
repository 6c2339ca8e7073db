"""
servicehub client entry point.

Runs the console front end against the in-process demo backend, or against
the backend configured by ``API_BASE_URL`` / ``SERVER_URL`` using the
customer credential from the environment.

Usage:
    Offline demo:     python main.py console
    Live backend:     python main.py live
    Follow booking:   python main.py track <booking_id>
"""

import asyncio
import logging
import os
import sys

from servicehub.config import settings
from servicehub.schemas.session_schema import Identity

logger = logging.getLogger(__name__)


def _live_credentials() -> tuple[Identity, str]:
    """Identity and bearer token for live mode (``SERVICEHUB_USER_ID`` / ``SERVICEHUB_TOKEN``)."""
    user_id = os.getenv("SERVICEHUB_USER_ID", "")
    token = os.getenv("SERVICEHUB_TOKEN", "")
    if not user_id or not token:
        raise SystemExit("SERVICEHUB_USER_ID and SERVICEHUB_TOKEN must be set for live mode")
    identity = Identity(_id=user_id, name=os.getenv("SERVICEHUB_USER_NAME", ""))
    return identity, token


def _build_live_session():
    from console_demo import ConsoleNotifier, ConsoleSession
    from servicehub.session.context import SessionContext

    return ConsoleSession(SessionContext(notifier=ConsoleNotifier()))


async def _run_live_mode() -> None:
    """Interactive booking against the configured backend."""
    identity, token = _live_credentials()
    session = _build_live_session()
    await session.run(identity, token)


async def _run_track_mode(booking_id: str) -> None:
    """Follow one booking's live tracking until interrupted."""
    identity, token = _live_credentials()
    session = _build_live_session()
    await session.context.login(identity, token)
    await session.track(booking_id)


def _run_console_mode() -> None:
    """Start the offline console demo (no backend required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession.offline()
    asyncio.run(session.run())


if __name__ == "__main__":
    mode = sys.argv[1] if len(sys.argv) > 1 else "console"
    logger.info("Starting %s in %s mode", settings.app_name, mode)
    try:
        if mode == "live":
            asyncio.run(_run_live_mode())
        elif mode == "track" and len(sys.argv) > 2:
            asyncio.run(_run_track_mode(sys.argv[2]))
        else:
            _run_console_mode()
    except KeyboardInterrupt:
        logger.info("Interrupted")
