import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import REGISTRY, generate_latest

from src.config import Config
from src.config.logging_config import configure_logging
from src.db.record_store import RecordStore
from src.middleware.request_id_middleware import RequestIDMiddleware
from src.services.payments import StripeService
from src.services.paypal_client import PayPalClient
from src.services.reconciler import EventReconciler
from src.services.startup import lifespan
from src.services.webhook_verification import WebhookSettings
from src.utils.error_handlers import register_exception_handlers

configure_logging()
logger = logging.getLogger(__name__)


def sentry_traces_sampler(sampling_context):
    """
    Sampling strategy:
    - Errors: always sampled (parent_sampled)
    - Development: 100%
    - Health/metrics endpoints: 0%
    - Everything else: SENTRY_TRACES_SAMPLE_RATE
    """
    if sampling_context.get("parent_sampled") is not None:
        return 1.0

    if Config.SENTRY_ENVIRONMENT == "development":
        return 1.0

    endpoint = sampling_context.get("asgi_scope", {}).get("path", "")
    if endpoint in ["/", "/health", "/metrics"]:
        return 0.0

    return Config.SENTRY_TRACES_SAMPLE_RATE


def init_sentry() -> bool:
    """Initialise Sentry when enabled and a DSN is configured."""
    if not (Config.SENTRY_ENABLED and Config.SENTRY_DSN):
        logger.info("Sentry disabled (SENTRY_ENABLED=false or SENTRY_DSN not set)")
        return False

    import sentry_sdk

    sentry_sdk.init(
        dsn=Config.SENTRY_DSN,
        environment=Config.SENTRY_ENVIRONMENT,
        release=Config.APP_VERSION,
        traces_sampler=sentry_traces_sampler,
        # Payment payloads carry customer emails
        send_default_pii=False,
    )
    logger.info(f"Sentry initialized (environment: {Config.SENTRY_ENVIRONMENT})")
    return True


def create_app() -> FastAPI:
    app = FastAPI(
        title="PayBridge API",
        description="Stripe and PayPal payment broker with webhook reconciliation",
        version=Config.APP_VERSION,
        lifespan=lifespan,
    )

    init_sentry()

    # One store per app; routes reach everything through app.state
    store = RecordStore()
    app.state.record_store = store
    app.state.stripe_service = StripeService()
    app.state.paypal_client = PayPalClient()
    app.state.reconciler = EventReconciler(store)
    app.state.webhook_settings = WebhookSettings.from_config()

    if Config.IS_PRODUCTION:
        allowed_origins = [Config.BASE_URL]
    else:
        allowed_origins = [
            Config.BASE_URL,
            "http://localhost:3000",
            "http://localhost:3001",
            "http://127.0.0.1:3000",
        ]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # ==================== Routers ====================
    from src.routes.health import router as health_router
    from src.routes.payments import router as payments_router

    app.include_router(health_router)
    app.include_router(payments_router)

    # ==================== Prometheus Metrics ====================
    if Config.PROMETHEUS_ENABLED:

        @app.get("/metrics", tags=["monitoring"], include_in_schema=False)
        async def metrics():
            """
            Prometheus metrics endpoint for monitoring.

            Exposes webhook outcomes and outbound provider call counts.
            """
            return Response(generate_latest(REGISTRY), media_type="text/plain; charset=utf-8")

        logger.info("  [OK] Prometheus metrics endpoint at /metrics")

    logger.info(f"PayBridge API ready (environment: {Config.APP_ENV})")
    return app


# Export a default app instance for environments that import `app`
app = create_app()

if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting PayBridge API server on port {Config.PORT}...")
    uvicorn.run("src.main:app", host="0.0.0.0", port=Config.PORT, reload=Config.IS_DEVELOPMENT)
