"""
ERP Gateway - Report Routes
============================

What:  Read-only vendor reports for the selected company and period.
How:   Each handler delegates to the WebService, then saves the caller
       context back (the vendor login inside the call issues a new token).

Endpoints:
    GET /api/reports/creditors                  account cards with ba = (A)
    GET /api/reports/debtors                    account cards with ba = (B)
    GET /api/reports/orders                     detailed orders
    GET /api/reports/invoices?start_date&end_date
    GET /api/reports/work-hours                 employee tallies (per API)
    GET /api/reports/general?start_date&end_date

Date ranges:
    Both bounds must be given to filter by range; otherwise the report covers
    records created today.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query

from erp_gateway.dependencies import (
    get_session_context,
    get_session_store,
    get_web_service,
    persist_context,
)
from erp_gateway.schemas.common import ErrorResponse
from erp_gateway.schemas.report import GeneralReportResponse, VendorListResponse
from erp_gateway.schemas.session import SessionContext
from erp_gateway.services.session_store import SessionStore
from erp_gateway.services.web_service import WebService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["Reports"])

_VENDOR_ERRORS = {
    400: {"description": "No company selected / vendor rejected the request", "model": ErrorResponse},
    401: {"description": "No caller session", "model": ErrorResponse},
    502: {"description": "Vendor login or vendor server failure", "model": ErrorResponse},
    503: {"description": "Vendor unreachable", "model": ErrorResponse},
}


@router.get(
    "/creditors",
    response_model=VendorListResponse,
    responses=_VENDOR_ERRORS,
    summary="Creditor account cards",
)
async def get_creditors(
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> VendorListResponse:
    result = await service.get_creditors(context)
    persist_context(store, context)
    return result


@router.get(
    "/debtors",
    response_model=VendorListResponse,
    responses=_VENDOR_ERRORS,
    summary="Debtor account cards",
)
async def get_debtors(
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> VendorListResponse:
    result = await service.get_debtors(context)
    persist_context(store, context)
    return result


@router.get(
    "/orders",
    response_model=VendorListResponse,
    responses=_VENDOR_ERRORS,
    summary="Detailed orders",
)
async def get_orders(
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> VendorListResponse:
    result = await service.get_orders(context)
    persist_context(store, context)
    return result


@router.get(
    "/invoices",
    response_model=VendorListResponse,
    responses=_VENDOR_ERRORS,
    summary="Detailed invoices in a date range",
)
async def get_invoices(
    start_date: date | None = Query(default=None, description="First day, inclusive (YYYY-MM-DD)"),
    end_date: date | None = Query(default=None, description="Last day, inclusive (YYYY-MM-DD)"),
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> VendorListResponse:
    result = await service.get_invoices(context, start_date, end_date)
    persist_context(store, context)
    return result


@router.get(
    "/work-hours",
    response_model=VendorListResponse,
    responses=_VENDOR_ERRORS,
    summary="Employee work hour tallies",
)
async def get_work_hours(
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> VendorListResponse:
    result = await service.get_work_hours(context)
    persist_context(store, context)
    return result


@router.get(
    "/general",
    response_model=GeneralReportResponse,
    responses=_VENDOR_ERRORS,
    summary="Dashboard report",
    description=(
        "Waybills, invoices, bank receipts, credit card collections, account cards "
        "and material receipts of the range, with cash balance, creditor/debtor and "
        "purchased-services sums."
    ),
)
async def get_general_report(
    start_date: date | None = Query(default=None, description="First day, inclusive (YYYY-MM-DD)"),
    end_date: date | None = Query(default=None, description="Last day, inclusive (YYYY-MM-DD)"),
    context: SessionContext = Depends(get_session_context),
    service: WebService = Depends(get_web_service),
    store: SessionStore = Depends(get_session_store),
) -> GeneralReportResponse:
    report = await service.get_general_report(context, start_date, end_date)
    persist_context(store, context)
    logger.info(
        "General report for company %s: %d invoices, %d waybills",
        context.selected_company_id,
        len(report.invoices),
        len(report.waybills),
    )
    return report
