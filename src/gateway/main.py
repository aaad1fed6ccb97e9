"""FastAPI application factory for the HTTP front end.

Creates the app with logging middleware, metrics middleware, CORS, the
CRMError -> envelope exception handlers, lifespan events that own the
shared request executor, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response

from src.gateway.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.gateway.api.v1.router import router as v1_router
from src.gateway.config import VERSION, Settings, get_settings
from src.gateway.core.monitoring import MetricsMiddleware, get_metrics_response
from src.gateway.crm.dispatcher import OperationDispatcher
from src.gateway.crm.errors import CRMError, InternalFailure, ValidationFailure
from src.gateway.crm.executor import RequestExecutor, RetryPolicy

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the executor on startup, close it on shutdown.

    A dispatcher injected through create_app() is left untouched and is
    never closed here.
    """
    settings: Settings = app.state.settings
    configure_structlog(settings)

    executor: RequestExecutor | None = None
    if app.state.dispatcher is None:
        executor = RequestExecutor.from_settings(settings)
        app.state.dispatcher = OperationDispatcher(
            executor, RetryPolicy.from_settings(settings)
        )

    logger.info(
        "gateway.started",
        upstream=settings.PIPERUN_API_BASE_URL,
        environment=settings.ENVIRONMENT.value,
        max_retries=settings.MAX_RETRIES,
        default_token_configured=app.state.default_token is not None,
    )

    try:
        yield
    finally:
        if executor is not None:
            await executor.aclose()
            app.state.dispatcher = None
        logger.info("gateway.stopped")


# ── Exception Handlers ───────────────────────────────────────────────────────


async def crm_error_handler(request: Request, exc: CRMError) -> JSONResponse:
    """Render any taxonomy failure as the error envelope with its status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed path ids or request bodies become a 400 envelope."""
    failure = ValidationFailure(
        "Invalid request", details=jsonable_encoder(exc.errors())
    )
    return JSONResponse(status_code=failure.status_code, content=failure.to_envelope())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "gateway.unhandled_error",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    failure = InternalFailure("Internal server error")
    return JSONResponse(status_code=failure.status_code, content=failure.to_envelope())


def create_app(
    settings: Settings | None = None,
    dispatcher: OperationDispatcher | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override; defaults to the cached environment settings.
        dispatcher: Pre-built dispatcher (tests inject one backed by a mock
            transport). When omitted, the lifespan builds one from settings.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="PipeRun CRM Gateway",
        version=VERSION,
        description="REST and tool-protocol gateway for the PipeRun CRM API",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.default_token = settings.PIPERUN_API_TOKEN.strip() or None

    app.add_exception_handler(CRMError, crm_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Middleware is added in reverse order (last added = outermost)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


def run() -> None:
    """Console entry point: serve the HTTP front end with uvicorn.

    uvicorn's access log is off: its request line includes the query string,
    which may carry ``?token=``. LoggingMiddleware logs requests instead.
    """
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=False,
    )


# Module-level app for uvicorn
app = create_app()
