"""
ERP Gateway - Company Routes
=============================

What:  Company-level vendor data of the selected company, plus the live
       credit count channel.

Endpoints:
    GET /api/company/periods             accounting periods (sis_firma_getir)
    GET /api/company/credit-count        current credits (sis_kontor_sorgula),
                                         also published to live subscribers
    WS  /api/company/credit-count/ws     snapshot + every published change

WebSocket frames:
    {"id": "creditCount:7", "companyId": 7, "creditCount": 42}
    {"error": "transport_error", "message": "..."}   (then closed with 1011)

    A client that reconnects may pass `?last_event_id=creditCount:7`; it gets
    a fresh snapshot, there is no backlog to replay.
"""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, Query, WebSocket, status
from starlette.websockets import WebSocketState

from erp_gateway.database import async_session_factory
from erp_gateway.dependencies import (
    build_web_service,
    get_credit_bus,
    get_session_context,
    get_session_store,
    get_vendor_client,
    get_web_service,
    lookup_session,
    persist_context,
)
from erp_gateway.exceptions import GatewayError
from erp_gateway.schemas.common import ErrorResponse
from erp_gateway.schemas.report import CreditCountResponse, PeriodItem
from erp_gateway.schemas.session import SessionContext
from erp_gateway.services.credit_bus import CancellationToken, CreditCountBus
from erp_gateway.services.session_store import SessionStore
from erp_gateway.services.vendor_client import VendorClient
from erp_gateway.services.web_service import WebService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/company", tags=["Company"])

_VENDOR_ERRORS = {
    400: {"description": "No company selected / vendor rejected the request", "model": ErrorResponse},
    502: {"description": "Vendor login or vendor server failure", "model": ErrorResponse},
    503: {"description": "Vendor unreachable", "model": ErrorResponse},
}


@router.get(
    "/periods",
    response_model=list[PeriodItem],
    responses=_VENDOR_ERRORS,
    summary="Accounting periods of the selected company",
)
async def get_periods(
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> list[PeriodItem]:
    periods = await service.get_periods(context)
    persist_context(store, context)
    return periods


@router.get(
    "/credit-count",
    response_model=CreditCountResponse,
    responses=_VENDOR_ERRORS,
    summary="Remaining vendor credits of the selected company",
)
async def get_credit_count(
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> CreditCountResponse:
    credit_count = await service.get_credit_count(context)
    persist_context(store, context)
    return CreditCountResponse(
        company_id=context.selected_company_id,
        credit_count=credit_count,
    )


async def _watch_disconnect(websocket: WebSocket, token: CancellationToken) -> None:
    """Cancel the stream once the client goes away; inbound messages are ignored."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        token.cancel()


@router.websocket("/credit-count/ws")
async def credit_count_stream(
    websocket: WebSocket,
    last_event_id: str | None = Query(default=None),
    store: SessionStore = Depends(get_session_store),
    bus: CreditCountBus = Depends(get_credit_bus),
    vendor_client: VendorClient = Depends(get_vendor_client),
):
    context = lookup_session(websocket, store)
    if context is None or context.selected_company_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    company_id = context.selected_company_id

    async def snapshot() -> int:
        # Own DB session: nothing is held open for the lifetime of the socket
        async with async_session_factory() as db:
            service = build_web_service(db, vendor_client, bus)
            credit_count = await service.fetch_credit_count(context)
        persist_context(store, context)
        return credit_count

    await websocket.accept()
    if last_event_id:
        logger.debug("Credit count stream resumed from %s", last_event_id)

    token = CancellationToken()
    watcher = asyncio.create_task(_watch_disconnect(websocket, token))
    stream = bus.subscribe(company_id, token, snapshot)
    logger.info(
        "Credit count stream opened for company %s (user %s)", company_id, context.user_id
    )

    try:
        async for event in stream:
            await websocket.send_json(
                {
                    "id": event.key,
                    "companyId": event.company_id,
                    "creditCount": event.credit_count,
                }
            )
        if websocket.client_state == WebSocketState.CONNECTED:
            # Stream ended server-side (bus closed at shutdown)
            await websocket.close()
    except GatewayError as e:
        logger.warning(
            "Credit count stream for company %s failed: %s", company_id, e.error_code
        )
        await websocket.send_json({"error": e.error_code, "message": e.message})
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        token.cancel()
        stream.close()
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
        logger.info("Credit count stream closed for company %s", company_id)
