"""
Device position lookup with a bounded wait.

This is the only operation in the client with an explicit timeout: a
provider that does not answer within ``timeout`` seconds is treated as a
failure, and callers fall back to manual entry.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from servicehub.config import settings
from servicehub.errors import GeolocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None


class GeolocationProvider(Protocol):
    async def current_position(self) -> Position:
        ...


class FixedPositionProvider:
    """Provider that always reports the same position (manual entry, demos)."""

    def __init__(self, latitude: float, longitude: float) -> None:
        self._position = Position(latitude, longitude)

    async def current_position(self) -> Position:
        return self._position


async def locate(
    provider: Optional[GeolocationProvider],
    timeout: Optional[float] = None,
) -> Position:
    """Acquire the current position or raise ``GeolocationError``."""
    if provider is None:
        raise GeolocationError("Geolocation is not supported on this device")
    wait = timeout if timeout is not None else settings.tracking.geolocation_timeout_sec
    try:
        position = await asyncio.wait_for(provider.current_position(), timeout=wait)
    except asyncio.TimeoutError:
        logger.warning("Geolocation timed out after %.1fs", wait)
        raise GeolocationError(f"Timed out after {wait:.1f}s waiting for a position") from None
    except GeolocationError:
        raise
    except Exception as exc:
        logger.warning("Geolocation provider failed: %s", exc)
        raise GeolocationError(str(exc)) from exc
    logger.debug("Position acquired: %.6f, %.6f", position.latitude, position.longitude)
    return position
