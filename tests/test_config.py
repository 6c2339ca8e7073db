"""Tests for configuration loading and validation."""

import pytest

from servicehub.config import (
    ApiConfig,
    AppConfig,
    RealtimeConfig,
    TrackingConfig,
    WizardConfig,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_defaults_match_booking_window(self):
        wizard = WizardConfig()
        assert wizard.min_days_ahead == 1
        assert wizard.max_days_ahead == 30
        assert wizard.expert_page_size == 10

    def test_non_http_base_url_rejected(self):
        config = AppConfig(api=ApiConfig(base_url="ftp://backend/api"))
        with pytest.raises(ValueError, match="API_BASE_URL"):
            _validate_config(config)

    def test_non_http_server_url_rejected(self):
        config = AppConfig(api=ApiConfig(server_url="backend:5000"))
        with pytest.raises(ValueError, match="SERVER_URL"):
            _validate_config(config)

    def test_zero_http_timeout_rejected(self):
        config = AppConfig(api=ApiConfig(http_timeout_sec=0))
        with pytest.raises(ValueError, match="HTTP_TIMEOUT"):
            _validate_config(config)

    def test_negative_reconnection_attempts_rejected(self):
        config = AppConfig(realtime=RealtimeConfig(reconnection_attempts=-1))
        with pytest.raises(ValueError, match="SOCKET_RECONNECTION_ATTEMPTS"):
            _validate_config(config)

    def test_delay_max_below_delay_rejected(self):
        realtime = RealtimeConfig(reconnection_delay_sec=5.0, reconnection_delay_max_sec=1.0)
        with pytest.raises(ValueError, match="SOCKET_RECONNECTION_DELAY_MAX"):
            _validate_config(AppConfig(realtime=realtime))

    def test_max_days_before_min_days_rejected(self):
        wizard = WizardConfig(min_days_ahead=5, max_days_ahead=2)
        with pytest.raises(ValueError, match="BOOKING_MAX_DAYS_AHEAD"):
            _validate_config(AppConfig(wizard=wizard))

    def test_zero_page_size_rejected(self):
        wizard = WizardConfig(expert_page_size=0)
        with pytest.raises(ValueError, match="EXPERT_PAGE_SIZE"):
            _validate_config(AppConfig(wizard=wizard))

    def test_zero_geolocation_timeout_rejected(self):
        tracking = TrackingConfig(geolocation_timeout_sec=0)
        with pytest.raises(ValueError, match="GEOLOCATION_TIMEOUT"):
            _validate_config(AppConfig(tracking=tracking))

    def test_safe_int_parsing(self):
        from servicehub.config import _safe_int

        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_bad_value_names_variable(self, monkeypatch):
        from servicehub.config import _safe_int

        monkeypatch.setenv("SERVICEHUB_TEST_INT", "ten")
        with pytest.raises(ValueError, match="SERVICEHUB_TEST_INT"):
            _safe_int("SERVICEHUB_TEST_INT", "1")

    def test_safe_float_parsing(self):
        from servicehub.config import _safe_float

        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)
