from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from tally.app.api import (
    admin_router,
    order_reference_prefixes_router,
    orders_router,
    products_router,
    time_entries_router,
)
from tally.app.core.config import settings
from tally.app.core.logging import get_logger, setup_logging
from tally.app.db.async_session import close_async_engine, init_async_db, verify_connection
from tally.app.db.dependencies import SessionDep
from tally.app.exceptions import RateLimitExceededError, TallyException
from tally.app.middleware.rate_limit import RateLimitMiddleware, build_rate_limiters
from tally.app.middleware.request_id import RequestIdMiddleware


def register_exception_handlers(app: FastAPI) -> None:
    """Map application exceptions to JSON error responses."""
    logger = get_logger(__name__)

    @app.exception_handler(TallyException)
    async def tally_exception_handler(request: Request, exc: TallyException) -> JSONResponse:
        content = exc.to_response()
        content["request_id"] = getattr(request.state, "request_id", None)
        headers = {}
        if isinstance(exc, RateLimitExceededError) and exc.retry_after is not None:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global handler for unhandled exceptions.

        The traceback is only ever logged; debug mode adds the exception
        message to the response.
        """
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                },
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            },
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if not await verify_connection():
            logger.error("Database connection failed!")
            raise RuntimeError("Cannot connect to database")

        await init_async_db()
        logger.info("Application startup complete", extra={"debug_mode": settings.debug})

        yield

        await close_async_engine()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Tally",
        description="Time tracking and inventory service with per-IP and per-user rate limiting",
        version="1.0.0",
        lifespan=lifespan,
    )

    # One set of buckets per application instance
    app.state.rate_limiters = build_rate_limiters()

    # Order matters: last added = first executed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
        max_age=600,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(time_entries_router)
    app.include_router(products_router)
    app.include_router(orders_router)
    app.include_router(order_reference_prefixes_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health(session: SessionDep) -> dict[str, Any]:
        """Health check with database status."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}
        try:
            await session.execute(text("SELECT 1"))
            health_status["components"]["database"] = {"status": "ok"}
        except Exception as e:
            health_status["status"] = "degraded"
            health_status["components"]["database"] = {
                "status": "error",
                "error": str(e)[:100],
            }
        return health_status

    register_exception_handlers(app)
    return app


app = create_app()
