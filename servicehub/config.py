"""
Centralized configuration with environment variable overrides.

Backend endpoints, realtime reconnection settings, wizard date windows and
tracking reconciliation timings are all configurable here. Nothing is
hardcoded in client, wizard or tracking logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class ApiConfig:
    """REST backend location and transport settings."""

    base_url: str = os.getenv("API_BASE_URL", "http://localhost:5000/api")
    server_url: str = os.getenv("SERVER_URL", "http://localhost:5000")
    http_timeout_sec: float = _safe_float("HTTP_TIMEOUT", "30.0")
    login_path: str = os.getenv("LOGIN_PATH", "/login")


@dataclass(frozen=True)
class RealtimeConfig:
    """Socket.IO connection settings. Reconnection is left to the transport."""

    reconnection: bool = os.getenv("SOCKET_RECONNECTION", "true").lower() != "false"
    reconnection_attempts: int = _safe_int("SOCKET_RECONNECTION_ATTEMPTS", "0")
    reconnection_delay_sec: float = _safe_float("SOCKET_RECONNECTION_DELAY", "1.0")
    reconnection_delay_max_sec: float = _safe_float("SOCKET_RECONNECTION_DELAY_MAX", "5.0")
    connect_timeout_sec: float = _safe_float("SOCKET_CONNECT_TIMEOUT", "10.0")


@dataclass(frozen=True)
class WizardConfig:
    """Booking wizard scheduling window and expert lookup paging."""

    min_days_ahead: int = _safe_int("BOOKING_MIN_DAYS_AHEAD", "1")
    max_days_ahead: int = _safe_int("BOOKING_MAX_DAYS_AHEAD", "30")
    expert_page_size: int = _safe_int("EXPERT_PAGE_SIZE", "10")


@dataclass(frozen=True)
class TrackingConfig:
    """Live tracking reconciliation timings."""

    idle_tolerance_sec: float = _safe_float("TRACKING_IDLE_TOLERANCE", "30.0")
    poll_interval_sec: float = _safe_float("TRACKING_POLL_INTERVAL", "10.0")
    geolocation_timeout_sec: float = _safe_float("GEOLOCATION_TIMEOUT", "10.0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    api: ApiConfig = field(default_factory=ApiConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    wizard: WizardConfig = field(default_factory=WizardConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "servicehub")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    for name, url in [
        ("API_BASE_URL", config.api.base_url),
        ("SERVER_URL", config.api.server_url),
    ]:
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"{name} must be an http(s) URL, got {url!r}")
    if config.api.http_timeout_sec <= 0:
        raise ValueError(
            f"HTTP_TIMEOUT must be > 0, got {config.api.http_timeout_sec}"
        )
    if config.realtime.reconnection_attempts < 0:
        raise ValueError(
            "SOCKET_RECONNECTION_ATTEMPTS must be >= 0, "
            f"got {config.realtime.reconnection_attempts}"
        )
    if config.realtime.reconnection_delay_sec <= 0:
        raise ValueError(
            "SOCKET_RECONNECTION_DELAY must be > 0, "
            f"got {config.realtime.reconnection_delay_sec}"
        )
    if config.realtime.reconnection_delay_max_sec < config.realtime.reconnection_delay_sec:
        raise ValueError(
            "SOCKET_RECONNECTION_DELAY_MAX must be >= SOCKET_RECONNECTION_DELAY, "
            f"got {config.realtime.reconnection_delay_max_sec}"
        )
    if config.wizard.min_days_ahead < 0:
        raise ValueError(
            f"BOOKING_MIN_DAYS_AHEAD must be >= 0, got {config.wizard.min_days_ahead}"
        )
    if config.wizard.max_days_ahead < config.wizard.min_days_ahead:
        raise ValueError(
            "BOOKING_MAX_DAYS_AHEAD must be >= BOOKING_MIN_DAYS_AHEAD, "
            f"got {config.wizard.max_days_ahead}"
        )
    if config.wizard.expert_page_size < 1:
        raise ValueError(
            f"EXPERT_PAGE_SIZE must be >= 1, got {config.wizard.expert_page_size}"
        )

    for name, value in [
        ("TRACKING_IDLE_TOLERANCE", config.tracking.idle_tolerance_sec),
        ("TRACKING_POLL_INTERVAL", config.tracking.poll_interval_sec),
        ("GEOLOCATION_TIMEOUT", config.tracking.geolocation_timeout_sec),
    ]:
        if value <= 0:
            raise ValueError(f"{name} must be > 0, got {value}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for backend %s", config.api.base_url)
    return config


# Singleton instance
settings = load_config()
