"""
Tests for environment-driven configuration.
"""

import logging
from unittest.mock import patch

from src.config import Config
from src.config.config import _get_bool_env, _get_env_var, _resolve_paypal_base_url
from src.services.webhook_verification import WebhookSettings


class TestEnvHelpers:
    """Test env var parsing helpers"""

    def test_get_env_var_strips_and_defaults(self, monkeypatch):
        monkeypatch.setenv("PAYBRIDGE_TEST_VAR", "  value  ")
        assert _get_env_var("PAYBRIDGE_TEST_VAR") == "value"

        monkeypatch.setenv("PAYBRIDGE_TEST_VAR", "   ")
        assert _get_env_var("PAYBRIDGE_TEST_VAR", "fallback") == "fallback"

        monkeypatch.delenv("PAYBRIDGE_TEST_VAR")
        assert _get_env_var("PAYBRIDGE_TEST_VAR") is None

    def test_get_bool_env(self, monkeypatch):
        for raw in ("1", "true", "YES"):
            monkeypatch.setenv("PAYBRIDGE_FLAG", raw)
            assert _get_bool_env("PAYBRIDGE_FLAG") is True

        monkeypatch.setenv("PAYBRIDGE_FLAG", "off")
        assert _get_bool_env("PAYBRIDGE_FLAG") is False

    def test_paypal_base_url(self):
        assert _resolve_paypal_base_url("live") == "https://api-m.paypal.com"
        assert _resolve_paypal_base_url("sandbox") == "https://api-m.sandbox.paypal.com"

    def test_unknown_paypal_mode_warns_and_uses_sandbox(self, caplog):
        with caplog.at_level(logging.WARNING, logger="src.config.config"):
            assert _resolve_paypal_base_url("production") == "https://api-m.sandbox.paypal.com"

        assert "Unrecognised PAYPAL_MODE 'production'" in caplog.text

    def test_known_paypal_modes_do_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="src.config.config"):
            _resolve_paypal_base_url("live")
            _resolve_paypal_base_url("sandbox")

        assert caplog.records == []


class TestCriticalEnvVars:
    """Test startup validation"""

    def test_reports_missing_credentials(self):
        with patch.object(Config, "STRIPE_SECRET_KEY", None), patch.object(
            Config, "PAYPAL_CLIENT_ID", "id"
        ), patch.object(Config, "PAYPAL_CLIENT_SECRET", "secret"), patch.object(
            Config, "IS_PRODUCTION", False
        ):
            is_valid, missing = Config.validate_critical_env_vars()

        assert is_valid is False
        assert missing == ["STRIPE_SECRET_KEY"]

    def test_production_requires_webhook_secret(self):
        with patch.object(Config, "STRIPE_SECRET_KEY", "sk"), patch.object(
            Config, "PAYPAL_CLIENT_ID", "id"
        ), patch.object(Config, "PAYPAL_CLIENT_SECRET", "secret"), patch.object(
            Config, "IS_PRODUCTION", True
        ), patch.object(Config, "STRIPE_WEBHOOK_SECRET", None):
            is_valid, missing = Config.validate_critical_env_vars()

        assert is_valid is False
        assert missing == ["STRIPE_WEBHOOK_SECRET"]


class TestUnverifiedWebhooks:
    """Test the unsigned-webhook switch"""

    def test_allowed_outside_production(self):
        with patch.object(Config, "ALLOW_UNVERIFIED_WEBHOOKS", True), patch.object(
            Config, "IS_PRODUCTION", False
        ):
            assert Config.unverified_webhooks_allowed() is True

    def test_never_allowed_in_production(self):
        with patch.object(Config, "ALLOW_UNVERIFIED_WEBHOOKS", True), patch.object(
            Config, "IS_PRODUCTION", True
        ):
            assert Config.unverified_webhooks_allowed() is False

    def test_webhook_settings_from_config(self):
        with patch.object(Config, "STRIPE_WEBHOOK_SECRET", "whsec_x"), patch.object(
            Config, "ALLOW_UNVERIFIED_WEBHOOKS", False
        ):
            settings = WebhookSettings.from_config()

        assert settings.secret == "whsec_x"
        assert settings.allow_unverified is False
