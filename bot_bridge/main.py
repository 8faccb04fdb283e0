import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from bot_bridge import __version__
from bot_bridge.config import Settings, settings as default_settings
from bot_bridge.middleware.metrics import MetricsMiddleware
from bot_bridge.middleware.rate_limit import FixedWindowLimiter, RateLimitMiddleware
from bot_bridge.middleware.request_id import RequestIDMiddleware
from bot_bridge.routers import notifications, webhook
from bot_bridge.schemas.notifications import ErrorResponse
from bot_bridge.services.container import BridgeServices
from bot_bridge.services.health import Component
from bot_bridge.tracing import setup_tracing
from bot_bridge.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: BridgeServices = app.state.services
    # Uvicorn runs lifespan startup before it binds the socket, so the first
    # setWebhook can race the bind. Telegram redelivers any update that
    # arrives before the listener is up.
    logger.info(
        "Starting up",
        extra={"port": services.settings.port, "server_url": services.settings.server_url},
    )
    services.start()
    logger.info("Startup complete")

    yield

    logger.info("Shutting down")
    await services.stop()

    provider = getattr(app.state, "tracer_provider", None)
    if provider is not None:
        provider.shutdown()


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(error=str(exc.detail)).model_dump(),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(
        ErrorResponse(error=f"Invalid request: {errors}").model_dump(),
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    services: BridgeServices | None = getattr(request.app.state, "services", None)
    if services is not None:
        services.health.mark_unhealthy(Component.REQUEST_HANDLING, f"{type(exc).__name__}: {exc}")
    logger.error(
        "Unhandled error",
        exc_info=exc,
        extra={"path": request.url.path, "request_id": getattr(request.state, "request_id", None)},
    )
    return JSONResponse(
        ErrorResponse(error="Internal Server Error").model_dump(),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def create_app(
    settings: Settings | None = None,
    services: BridgeServices | None = None,
) -> FastAPI:
    if settings is None:
        settings = default_settings
    setup_logging(settings.log_level, redact=(settings.bot_token, settings.webhook_secret))
    if services is None:
        services = BridgeServices.build(settings)

    app = FastAPI(
        title="Bot Bridge",
        description="Telegram webhook bridge for the web front-end",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    app.add_middleware(
        RateLimitMiddleware,
        limiter=FixedWindowLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
    app.include_router(notifications.router, prefix="/api", tags=["notifications"])

    @app.get("/health", tags=["health"])
    async def health() -> JSONResponse:
        snapshot = services.health.snapshot()
        code = status.HTTP_200_OK if services.health.is_healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(snapshot, status_code=code)

    @app.get("/", tags=["health"])
    async def root() -> dict:
        return {
            "name": app.title,
            "version": app.version,
            "message": "Hello, I am working fine.",
            "endpoints": {
                "health": "/health",
                "webhook": "/webhook",
                "metrics": "/metrics",
                "api": [
                    "/api/sendWelcomeMessage",
                    "/api/sendReferralNotification",
                    "/api/sendBotMessage",
                    "/api/messageCacheStats",
                    "/api/clearMessageCache",
                ],
            },
        }

    # Expose Prometheus metrics at /metrics
    app.mount("/metrics", make_asgi_app())

    if settings.otlp_endpoint:
        app.state.tracer_provider = setup_tracing(app, settings.otlp_endpoint)

    # Mounted last so every route above takes precedence
    if settings.static_dir and Path(settings.static_dir).is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir), name="static")

    return app
