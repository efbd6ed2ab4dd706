"""
FastAPI application entry point for the Admission Calculation API.

This module provides the main FastAPI application with:
- Calculation endpoints (create, list, filter, fetch)
- Health and readiness endpoints
- Request logging with correlation IDs
- Prometheus metrics
- Uniform error envelope for every failure
- MongoDB client, worker pool and HTTP session lifecycle
"""

import asyncio
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import aiohttp
import structlog
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram
from pymongo import MongoClient
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from api.src.config import Settings, get_settings
from api.src.errors import AdmissaoError, to_error_response
from api.src.repositories.admission_repo import AdmissionRepository
from api.src.routers import calculations
from api.src.services.calculation_service import CalculationService
from api.src.services.viacep_client import ViaCepClient
from shared.logging import bind_context, clear_context, configure_logging
from shared.metrics import get_metrics_handler, setup_metrics

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# ============================================================================
# Prometheus Metrics
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"]
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    ["method"]
)

# ============================================================================
# Lifespan Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - MongoDB client, repository and index creation
    - Persistence worker pool
    - Shared aiohttp session for ViaCEP
    - Graceful shutdown and resource cleanup
    """
    settings: Settings = app.state.settings
    mongo_client: Optional[MongoClient] = None
    executor: Optional[ThreadPoolExecutor] = None
    session: Optional[aiohttp.ClientSession] = None

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    # ========================================================================
    # Startup: Initialize Resources
    # ========================================================================

    try:
        logger.info(
            "initializing_mongodb",
            database=settings.mongodb_database,
            collection=settings.mongodb_collection
        )
        mongo_client = MongoClient(
            settings.mongodb_url,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms
        )
        collection = mongo_client[settings.mongodb_database][settings.mongodb_collection]
        repository = AdmissionRepository(collection)

        logger.info("initializing_worker_pool", max_workers=settings.persistence_max_workers)
        executor = ThreadPoolExecutor(
            max_workers=settings.persistence_max_workers,
            thread_name_prefix="admissao-store"
        )

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(executor, repository.ensure_indexes)

        session = aiohttp.ClientSession()
        metrics = setup_metrics() if settings.metrics_enabled else None

        app.state.calculation_service = CalculationService(
            repository=repository,
            lookup_client=ViaCepClient(session, settings, metrics=metrics),
            executor=executor,
            metrics=metrics,
        )

        logger.info(
            "application_started",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

        yield

    except Exception as e:
        logger.error("application_startup_failed", error=str(e), exc_info=True)
        raise

    # ========================================================================
    # Shutdown: Cleanup Resources
    # ========================================================================

    finally:
        logger.info("application_shutting_down")
        app.state.calculation_service = None

        if session is not None:
            await session.close()
            logger.info("http_session_closed")

        if executor is not None:
            executor.shutdown(wait=True)
            logger.info("worker_pool_closed")

        if mongo_client is not None:
            mongo_client.close()
            logger.info("mongodb_client_closed")

        logger.info("application_shutdown_complete")


# ============================================================================
# Middleware
# ============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request logging, correlation IDs and HTTP metrics."""

    async def dispatch(self, request: Request, call_next):
        """Process request and log details."""
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        method = request.method
        path = request.url.path

        bind_context(correlation_id=correlation_id)
        http_requests_in_progress.labels(method=method).inc()
        start_time = time.perf_counter()

        logger.info(
            "request_started",
            method=method,
            path=path,
            client_ip=request.client.host if request.client else "unknown"
        )

        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time

            # route template keeps label cardinality bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")

            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=response.status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration=f"{duration:.3f}s"
            )

            response.headers[CORRELATION_HEADER] = correlation_id
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration=f"{time.perf_counter() - start_time:.3f}s",
                exc_info=True
            )
            raise

        finally:
            http_requests_in_progress.labels(method=method).dec()
            clear_context()


# ============================================================================
# Exception Handlers
# ============================================================================


def _error_json(request: Request, exc: BaseException) -> JSONResponse:
    error = to_error_response(exc, request.url.path)
    return JSONResponse(
        status_code=error.status,
        content=error.model_dump(mode="json")
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation and decoding errors."""
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=[{"loc": e.get("loc"), "type": e.get("type")} for e in exc.errors()]
    )
    return _error_json(request, exc)


async def service_exception_handler(request: Request, exc: AdmissaoError):
    """Handle known service errors."""
    logger.warning(
        "service_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc)
    )
    return _error_json(request, exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )
    return _error_json(request, exc)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=exc
    )
    return _error_json(request, exc)


# ============================================================================
# FastAPI Application
# ============================================================================


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to get_settings())

    Returns:
        Configured application
    """
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        environment=settings.environment,
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Computes tenure and 35% of the gross salary for an admission, "
            "enriches it with the ViaCEP address of the CEP and stores the "
            "result in MongoDB."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.calculation_service = None

    if settings.cors_enabled:
        logger.info("configuring_cors", origins=settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AdmissaoError, service_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(calculations.router, prefix=settings.api_prefix)

    # ========================================================================
    # Health and Readiness Endpoints
    # ========================================================================

    @app.get("/health", tags=["Health"], response_class=JSONResponse)
    async def health_check() -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns basic health status without checking dependencies.
        Use for container health checks.
        """
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment
        }

    @app.get("/ready", tags=["Health"], response_class=JSONResponse)
    async def readiness_check(request: Request) -> JSONResponse:
        """
        Readiness check endpoint.

        Verifies that MongoDB answers a ping through the worker pool.
        """
        checks = {"database": "unknown"}

        service = request.app.state.calculation_service
        if service is None:
            checks["database"] = "unavailable"
        else:
            try:
                await service.ping()
                checks["database"] = "healthy"
            except Exception as e:
                logger.error("database_health_check_failed", error=str(e))
                checks["database"] = "unhealthy"

        all_healthy = all(state == "healthy" for state in checks.values())

        return JSONResponse(
            status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ready" if all_healthy else "not_ready",
                "service": settings.app_name,
                "version": settings.app_version,
                "checks": checks
            }
        )

    # ========================================================================
    # Metrics Endpoint
    # ========================================================================

    if settings.metrics_enabled:
        setup_metrics()
        metrics_handler = get_metrics_handler()

        @app.get("/metrics", tags=["Monitoring"], response_class=PlainTextResponse)
        async def metrics() -> Response:
            """Prometheus metrics endpoint."""
            return Response(
                content=metrics_handler(),
                media_type=CONTENT_TYPE_LATEST
            )

    return app


app = create_app()

# ============================================================================
# Application Entry Point
# ============================================================================

if __name__ == "__main__":
    settings = get_settings()
    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )

    uvicorn.run(
        "api.src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
