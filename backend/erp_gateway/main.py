"""
ERP Gateway - FastAPI Application Factory
==========================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routers;
       the lifespan handler owns the process-wide resources.
Who:   uvicorn (`uvicorn erp_gateway.main:app`) and the test suite.

Process-wide resources (app.state):
    http_client    httpx.AsyncClient shared by every vendor call
    credit_bus     CreditCountBus for live credit count streams
    session_store  SessionStore with the caller session contexts

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal)
    3. Create the shared HTTP client, credit bus and session store

    Shutdown:
    1. Drain background credit refreshes (cancelled after a grace period)
    2. Close the credit bus (ends every open stream)
    3. Close the session store and the HTTP client
    4. Dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from erp_gateway import __version__
from erp_gateway.config import settings
from erp_gateway.database import dispose_engine
from erp_gateway.exceptions import GatewayError
from erp_gateway.middleware.logging import RequestLoggingMiddleware
from erp_gateway.middleware.request_id import (
    RequestIDLogFilter,
    RequestIDMiddleware,
    request_id_var,
)
from erp_gateway.routes import company, health, reports, session
from erp_gateway.services.credit_bus import CreditCountBus
from erp_gateway.services.session_store import SessionStore
from erp_gateway.services.web_service import WebService

logger = logging.getLogger(__name__)

# Grace period for background credit refreshes still using the HTTP client
_SHUTDOWN_DRAIN_SECONDS = 5.0


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s

    The request ID comes from RequestIDLogFilter, attached to the handler so
    records from every logger (vendor client, mediator, access log) get it.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Third-party libraries log every request/statement at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("ERP Gateway starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))

    app.state.http_client = httpx.AsyncClient(
        timeout=settings.vendor_timeout_seconds,
        headers={"Content-Type": "application/json"},
    )
    app.state.credit_bus = CreditCountBus()
    app.state.session_store = SessionStore()

    logger.info(
        "Vendor timeout %.0fs, token TTL %ss, credit refresh %s",
        settings.vendor_timeout_seconds,
        settings.vendor_token_ttl_seconds,
        settings.credit_refresh_mode,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("ERP Gateway shutting down...")

    await WebService.drain_refreshes(timeout=_SHUTDOWN_DRAIN_SECONDS)
    app.state.credit_bus.close()
    app.state.session_store.close()
    await app.state.http_client.aclose()
    await dispose_engine()

    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Render every GatewayError as `{error, message, request_id}`.

    Each exception class carries its own `error_code` and `status_code`
    (see exceptions.py), so one handler covers the whole taxonomy. The
    `context` dict is logged, never returned.
    """

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError):
        rid = request_id_var.get("")
        log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            log_level,
            "%s: %s | Context: %s",
            exc.error_code,
            exc.message,
            exc.context,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500, stack trace logged server-side only."""
        rid = request_id_var.get("")
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="ERP Gateway API",
        description=(
            "Session and credit proxy in front of the accounting web service: "
            "company/period selection, vendor reports and live credit counts."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executed in reverse order of addition: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,  # session cookie
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(session.router)
    app.include_router(company.router)
    app.include_router(reports.router)
    app.include_router(health.router)

    return app


app = create_app()
