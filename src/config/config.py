import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()

_TRUTHY = {"1", "true", "yes"}


def _get_env_var(name: str, default: str | None = None, *, strip: bool = True) -> str | None:
    """
    Fetch an environment variable with optional whitespace trimming.

    Args:
        name: Environment variable to look up.
        default: Value to return when the env var is unset or empty.
        strip: Whether to strip leading/trailing whitespace (default: True).

    Returns:
        The normalized string value or the provided default when empty.
    """
    value = os.environ.get(name)
    if value is None:
        return default

    if strip:
        value = value.strip()

    return value or default


def _get_bool_env(name: str, default: str = "false") -> bool:
    return (_get_env_var(name, default) or default).lower() in _TRUTHY


def _resolve_paypal_base_url(mode: str) -> str:
    """Map PAYPAL_MODE onto the PayPal REST host."""
    if mode == "live":
        return "https://api-m.paypal.com"
    if mode != "sandbox":
        logger.warning(f"Unrecognised PAYPAL_MODE {mode!r}; using the PayPal sandbox")
    return "https://api-m.sandbox.paypal.com"


class Config:
    """Configuration class for the application"""

    # Environment Detection
    APP_ENV = _get_env_var("APP_ENV", "development")  # development, staging, production
    IS_PRODUCTION = APP_ENV == "production"
    IS_STAGING = APP_ENV == "staging"
    IS_DEVELOPMENT = APP_ENV == "development"
    IS_TESTING = APP_ENV in {"testing", "test"} or _get_bool_env("TESTING")

    # Server
    PORT = int(_get_env_var("PORT", "3000"))
    BASE_URL = (_get_env_var("BASE_URL", "http://localhost:3000") or "").rstrip("/")
    LOG_LEVEL = (_get_env_var("LOG_LEVEL", "INFO") or "INFO").upper()
    APP_VERSION = _get_env_var("APP_VERSION", "1.0.0")

    # Stripe Configuration
    STRIPE_SECRET_KEY = _get_env_var("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = _get_env_var("STRIPE_WEBHOOK_SECRET")
    DEFAULT_CURRENCY = (_get_env_var("DEFAULT_CURRENCY", "usd") or "usd").lower()

    # Unsigned Stripe webhooks are a local-development escape hatch only
    ALLOW_UNVERIFIED_WEBHOOKS = _get_bool_env("ALLOW_UNVERIFIED_WEBHOOKS") and not IS_PRODUCTION

    # PayPal Configuration
    PAYPAL_CLIENT_ID = _get_env_var("PAYPAL_CLIENT_ID")
    PAYPAL_CLIENT_SECRET = _get_env_var("PAYPAL_CLIENT_SECRET")
    PAYPAL_MODE = (_get_env_var("PAYPAL_MODE", "sandbox") or "sandbox").lower()
    PAYPAL_BASE_URL = _resolve_paypal_base_url(PAYPAL_MODE)
    PAYPAL_TIMEOUT_SECONDS = float(_get_env_var("PAYPAL_TIMEOUT_SECONDS", "30"))

    # ==================== Monitoring & Observability Configuration ====================

    # Sentry Configuration
    SENTRY_DSN = _get_env_var("SENTRY_DSN")
    SENTRY_ENABLED = _get_bool_env("SENTRY_ENABLED", "true")
    SENTRY_ENVIRONMENT = _get_env_var("SENTRY_ENVIRONMENT", APP_ENV)
    SENTRY_TRACES_SAMPLE_RATE = float(_get_env_var("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # Prometheus Configuration
    PROMETHEUS_ENABLED = _get_bool_env("PROMETHEUS_ENABLED", "true")

    @classmethod
    def validate_critical_env_vars(cls) -> tuple[bool, list[str]]:
        """
        Validate that all critical environment variables are set.

        Returns:
            tuple: (is_valid, missing_vars)
                - is_valid: bool indicating if all critical vars are present
                - missing_vars: list of missing variable names
        """
        critical_vars = {
            "STRIPE_SECRET_KEY": cls.STRIPE_SECRET_KEY,
            "PAYPAL_CLIENT_ID": cls.PAYPAL_CLIENT_ID,
            "PAYPAL_CLIENT_SECRET": cls.PAYPAL_CLIENT_SECRET,
        }
        # Production must verify webhook signatures
        if cls.IS_PRODUCTION:
            critical_vars["STRIPE_WEBHOOK_SECRET"] = cls.STRIPE_WEBHOOK_SECRET

        missing = [name for name, value in critical_vars.items() if not value]
        is_valid = len(missing) == 0

        return is_valid, missing

    @classmethod
    def unverified_webhooks_allowed(cls) -> bool:
        """True when unsigned Stripe webhooks may be accepted (never in production)."""
        return cls.ALLOW_UNVERIFIED_WEBHOOKS and not cls.IS_PRODUCTION
