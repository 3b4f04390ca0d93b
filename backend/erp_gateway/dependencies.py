"""
ERP Gateway - FastAPI Dependencies
===================================

What:  Dependency providers shared by the routers.
How:   Process-wide objects (session store, credit bus, HTTP client) live on
       `app.state` and are created by the lifespan handler. Request-scoped
       objects (registry, mediator, orchestrator) are built per request on
       top of the request's AsyncSession.

Dependency graph:
    get_db_session ──▶ get_company_registry ──┐
    get_vendor_client ────────────────────────┼──▶ get_session_mediator ──▶ get_web_service
    get_credit_bus ───────────────────────────┘                                 ▲
    get_session_store ──▶ get_session_context                                   │
                                                          (bus, client) ────────┘
"""

import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from erp_gateway.config import settings
from erp_gateway.database import get_db_session
from erp_gateway.exceptions import PartialFailureError, UnauthorizedError
from erp_gateway.schemas.session import SessionContext
from erp_gateway.services.company_registry import CompanyRegistry
from erp_gateway.services.credit_bus import CreditCountBus
from erp_gateway.services.session_mediator import SessionMediator
from erp_gateway.services.session_store import SessionStore, SessionStoreError
from erp_gateway.services.vendor_client import VendorClient
from erp_gateway.services.web_service import WebService

logger = logging.getLogger(__name__)


def get_session_store(conn: HTTPConnection) -> SessionStore:
    return conn.app.state.session_store


def get_credit_bus(conn: HTTPConnection) -> CreditCountBus:
    return conn.app.state.credit_bus


def get_vendor_client(conn: HTTPConnection) -> VendorClient:
    return VendorClient(conn.app.state.http_client)


def lookup_session(conn: HTTPConnection, store: SessionStore) -> SessionContext | None:
    """Caller context for the session cookie, or None."""
    session_id = conn.cookies.get(settings.session_cookie_name)
    if not session_id:
        return None
    return store.get(session_id)


def get_session_context(
    conn: HTTPConnection,
    store: SessionStore = Depends(get_session_store),
) -> SessionContext:
    """
    The caller's session context.

    Raises:
        UnauthorizedError: no session cookie, or the session is unknown/expired.
    """
    context = lookup_session(conn, store)
    if context is None:
        raise UnauthorizedError()
    return context


def get_company_registry(db: AsyncSession = Depends(get_db_session)) -> CompanyRegistry:
    return CompanyRegistry(db)


def get_session_mediator(
    registry: CompanyRegistry = Depends(get_company_registry),
    vendor_client: VendorClient = Depends(get_vendor_client),
) -> SessionMediator:
    return SessionMediator(registry, vendor_client)


def get_web_service(
    mediator: SessionMediator = Depends(get_session_mediator),
    vendor_client: VendorClient = Depends(get_vendor_client),
    bus: CreditCountBus = Depends(get_credit_bus),
) -> WebService:
    return WebService(mediator, vendor_client, bus)


def build_web_service(
    db: AsyncSession, vendor_client: VendorClient, bus: CreditCountBus
) -> WebService:
    """Assemble an orchestrator outside of FastAPI's dependency injection."""
    mediator = SessionMediator(CompanyRegistry(db), vendor_client)
    return WebService(mediator, vendor_client, bus)


def persist_context(store: SessionStore, context: SessionContext) -> None:
    """
    Save the context after a vendor call.

    Raises:
        PartialFailureError: the vendor call went through but the new session
            state (e.g. a fresh token) could not be stored.
    """
    try:
        store.save(context)
    except SessionStoreError as e:
        logger.error("Failed to persist caller session: %s", e.message)
        raise PartialFailureError(context={"reason": e.context.get("reason")}) from e
