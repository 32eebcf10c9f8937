"""
Application lifespan: startup checks and shutdown logging.
"""

import logging
from contextlib import asynccontextmanager

from src.config import Config

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    """
    Application lifespan manager for startup and shutdown events
    """
    logger.info(f"Starting PayBridge API (environment: {Config.APP_ENV})")

    # Missing credentials only break the calls that need them, so keep serving
    is_valid, missing_vars = Config.validate_critical_env_vars()
    if not is_valid:
        logger.warning(f"Missing environment variables: {missing_vars}")
    else:
        logger.info("All critical environment variables validated")

    settings = getattr(app.state, "webhook_settings", None)
    if settings is not None and not settings.secret:
        if settings.allow_unverified:
            logger.warning("STRIPE_WEBHOOK_SECRET not set - unsigned Stripe webhooks are ACCEPTED")
        else:
            logger.warning("STRIPE_WEBHOOK_SECRET not set - Stripe webhooks will be rejected")

    yield

    store = getattr(app.state, "record_store", None)
    if store is not None:
        # In-memory records are lost from here on
        logger.info(f"Shutting down; discarding in-memory records: {store.stats()}")
