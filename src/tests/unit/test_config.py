"""Unit tests for settings."""

import pytest
from pydantic import ValidationError

from gatekeeper.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, settings):
        assert settings.rate_limit_requests == 100
        assert settings.rate_limit_window_seconds == 900
        assert settings.max_header_bytes == 8192
        assert settings.api_path_prefix == "/api/"
        assert settings.store_backend == "memory"
        assert settings.fail_mode == "closed"
        assert "/admin" in settings.blocked_paths
        assert "curl" in settings.blocked_user_agents
        assert settings.is_production is False

    def test_default_security_headers(self, settings):
        assert settings.security_headers == {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "origin-when-cross-origin",
        }

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("GATEKEEPER_ENVIRONMENT", "production")
        monkeypatch.setenv("GATEKEEPER_RATE_LIMIT_REQUESTS", "5")
        monkeypatch.setenv("GATEKEEPER_BLOCKED_IPS", '["10.0.0.1", "10.0.0.2"]')

        settings = Settings(_env_file=None)

        assert settings.is_production is True
        assert settings.rate_limit_requests == 5
        assert settings.blocked_ips == ["10.0.0.1", "10.0.0.2"]

    def test_invalid_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, rate_limit_requests=0)

    def test_invalid_fail_mode_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, fail_mode="maybe")
