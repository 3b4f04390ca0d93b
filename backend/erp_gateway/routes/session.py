"""
ERP Gateway - Caller Session Routes
====================================

What:  Company and period selection for the caller session, and logout.
How:   Reads the SessionContext from the store, lets the session mediator
       change it, saves it back.

Endpoints:
    POST /api/session/company   select a company (resets the period to 0)
    GET  /api/session/company   currently selected company
    POST /api/session/period    select an accounting period
    GET  /api/session/period    currently selected period
    POST /api/session/logout    drop the caller session
"""

import logging

from fastapi import APIRouter, Depends, Response

from erp_gateway.config import settings
from erp_gateway.dependencies import (
    get_session_context,
    get_session_mediator,
    get_session_store,
    persist_context,
)
from erp_gateway.exceptions import NoCompanySelected
from erp_gateway.schemas.common import ErrorResponse, MessageResponse
from erp_gateway.schemas.session import (
    SelectCompanyRequest,
    SelectedCompanyResponse,
    SelectedPeriodResponse,
    SelectPeriodRequest,
    SessionContext,
)
from erp_gateway.services.session_mediator import SessionMediator
from erp_gateway.services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["Session"])


@router.post(
    "/company",
    response_model=SelectedCompanyResponse,
    responses={
        401: {"description": "No caller session", "model": ErrorResponse},
        403: {"description": "User is not assigned to the company", "model": ErrorResponse},
    },
    summary="Select the company to work on",
)
async def select_company(
    body: SelectCompanyRequest,
    context: SessionContext = Depends(get_session_context),
    mediator: SessionMediator = Depends(get_session_mediator),
    store: SessionStore = Depends(get_session_store),
) -> SelectedCompanyResponse:
    await mediator.select_company(context, body.company_id)
    persist_context(store, context)
    logger.info("User %s selected company %s", context.user_id, body.company_id)
    return SelectedCompanyResponse(
        message="Company selected successfully",
        company_id=body.company_id,
    )


@router.get(
    "/company",
    response_model=SelectedCompanyResponse,
    responses={400: {"description": "No company selected", "model": ErrorResponse}},
    summary="Currently selected company",
)
async def get_selected_company(
    context: SessionContext = Depends(get_session_context),
) -> SelectedCompanyResponse:
    if context.selected_company_id is None:
        raise NoCompanySelected()
    return SelectedCompanyResponse(
        message="Selected company retrieved successfully",
        company_id=context.selected_company_id,
    )


@router.post(
    "/period",
    response_model=SelectedPeriodResponse,
    summary="Select the accounting period",
)
async def select_period(
    body: SelectPeriodRequest,
    context: SessionContext = Depends(get_session_context),
    mediator: SessionMediator = Depends(get_session_mediator),
    store: SessionStore = Depends(get_session_store),
) -> SelectedPeriodResponse:
    mediator.select_period(context, body.period_code)
    persist_context(store, context)
    return SelectedPeriodResponse(period_code=context.selected_period_code)


@router.get(
    "/period",
    response_model=SelectedPeriodResponse,
    summary="Currently selected accounting period",
)
async def get_selected_period(
    context: SessionContext = Depends(get_session_context),
) -> SelectedPeriodResponse:
    return SelectedPeriodResponse(period_code=context.selected_period_code)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="End the caller session",
)
async def logout(
    response: Response,
    context: SessionContext = Depends(get_session_context),
    store: SessionStore = Depends(get_session_store),
) -> MessageResponse:
    store.destroy(context.caller_session_id)
    response.delete_cookie(settings.session_cookie_name)
    return MessageResponse(message="Logged out successfully")
