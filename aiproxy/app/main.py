from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aiproxy.app.api.proxy import router as proxy_router
from aiproxy.app.core.config import settings
from aiproxy.app.core.http_client import init_http_client
from aiproxy.app.core.logging import get_logger, setup_logging
from aiproxy.app.exceptions import InternalError, ProxyException
from aiproxy.app.middleware.request_id import RequestIdMiddleware, get_request_id
from aiproxy.app.services.admission import cors_headers
from aiproxy.app.services.rate_limit import get_rate_limiter
from aiproxy.app.services.usage_stats import get_usage_telemetry


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[dict, None]:
        """Open the shared HTTP client and create the process-wide ledgers."""
        async with init_http_client() as http_client:
            get_rate_limiter()
            get_usage_telemetry()

            if not settings.huggingface_api_key:
                logger.warning(
                    "HUGGINGFACE_API_KEY is not set; proxy requests will fail with 500"
                )
            logger.info(
                "Application startup complete",
                extra={
                    "unknown_client_policy": settings.unknown_client_policy,
                    "debug_mode": settings.debug,
                },
            )

            yield {"http_client": http_client}

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="AI Proxy",
        description="Rate-limited proxy in front of a hosted AI inference model",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(RequestIdMiddleware)

    app.include_router(proxy_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness probe with the inference configuration status."""
        return {
            "status": "ok",
            "components": {
                "inference": {
                    "configured": bool(settings.huggingface_api_key),
                },
                "rate_limiter": {
                    "tiers": [tier.name for tier in get_rate_limiter().tiers],
                    "active_clients": get_rate_limiter().active_identity_count(),
                },
            },
        }

    @app.exception_handler(ProxyException)
    async def proxy_exception_handler(request: Request, exc: ProxyException) -> JSONResponse:
        """Render a ProxyException that escaped the handler."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=cors_headers(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Full details are logged server-side. The client sees the generic
        message, plus the exception type and request ID in debug mode.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            }
        )
        content = InternalError().to_response()
        if settings.debug:
            content["exceptionType"] = type(exc).__name__
            content["requestId"] = request_id
        return JSONResponse(
            status_code=500,
            content=content,
            headers=cors_headers(),
        )

    return app


# Create the application instance
app = create_app()
