"""
ERP Gateway - Session Mediator
===============================

What:  Guarantees that outbound vendor calls carry a valid token for the
       caller's selected company, and owns company/period selection.
Why:   The vendor issues its own session ids (`wsSessionId`) per login. Each
       caller session maps to at most one vendor session at a time, scoped to
       the company the caller selected.
Who:   Created per request (bound to that request's company registry);
       used by the session routes and the web-service orchestrator.

Re-authentication policy:
    By default (VENDOR_TOKEN_TTL_SECONDS=0) there is no token cache: every
    request family logs in again before its substantive call, trading one
    extra round-trip for never sending a stale token. With a positive TTL a
    token younger than the TTL is reused; when the vendor then rejects it,
    the orchestrator forces a new login and retries once.

Failure semantics of ensure_authenticated:
    Returns Err(...) instead of raising. A rejected login leaves the previous
    token in place; it is only replaced by a successful login.

    ┌──────────────────────┐  no company  ┌────────────────────┐
    │ ensure_authenticated │─────────────▶│ Err(NoCompany...)  │  (no I/O)
    └──────────┬───────────┘              └────────────────────┘
               │ registry → login envelope → vendor (sis/json)
               ├── code 200 ──▶ token = msg, last_authenticated_at = now → Ok
               ├── code != 200 ─▶ Err(UpstreamAuthFailed(msg)), token untouched
               └── transport ───▶ Err(TransportError)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol

from erp_gateway.config import settings
from erp_gateway.exceptions import (
    ForbiddenError,
    GatewayError,
    NoCompanySelected,
    UpstreamAuthFailed,
)
from erp_gateway.schemas.result import Err, Ok, Result
from erp_gateway.schemas.session import SessionContext
from erp_gateway.schemas.vendor import CompanyCredentials
from erp_gateway.services.request_builder import build_login
from erp_gateway.services.status_normalizer import normalize
from erp_gateway.services.vendor_client import VendorClient

logger = logging.getLogger(__name__)


class CompanyDirectory(Protocol):
    """What the mediator needs from the company registry."""

    async def get_company_by_id(self, company_id: int) -> CompanyCredentials: ...

    async def user_may_access_company(self, user_id: int, company_id: int) -> bool: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionMediator:
    """
    Per-request mediator between a caller session and the vendor.

    Args:
        registry:             Company credential/access lookups.
        vendor_client:        Transport to the vendor.
        token_ttl_seconds:    Token reuse window (0 = log in every time).
        disconnect_same_user: Sent in the login envelope.
        clock:                Injected in tests to control token age.
    """

    def __init__(
        self,
        registry: CompanyDirectory,
        vendor_client: VendorClient,
        token_ttl_seconds: Optional[int] = None,
        disconnect_same_user: Optional[bool] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.vendor_client = vendor_client
        self.token_ttl_seconds = (
            settings.vendor_token_ttl_seconds if token_ttl_seconds is None else token_ttl_seconds
        )
        self.disconnect_same_user = (
            settings.vendor_disconnect_same_user
            if disconnect_same_user is None
            else disconnect_same_user
        )
        self._clock = clock
        # Credentials resolved during this request, by company id
        self._credentials: Dict[int, CompanyCredentials] = {}

    @property
    def reuses_tokens(self) -> bool:
        return self.token_ttl_seconds > 0

    async def resolve_company(self, context: SessionContext) -> CompanyCredentials:
        """
        Credentials of the caller's selected company.

        Raises:
            NoCompanySelected: the caller has not selected a company.
            NotFoundError: the selected company no longer exists.
        """
        company_id = context.selected_company_id
        if company_id is None:
            raise NoCompanySelected()
        if company_id not in self._credentials:
            self._credentials[company_id] = await self.registry.get_company_by_id(company_id)
        return self._credentials[company_id]

    def _token_is_fresh(self, context: SessionContext) -> bool:
        if not self.reuses_tokens or not context.vendor_session_token:
            return False
        if context.last_authenticated_at is None:
            return False
        age = self._clock() - context.last_authenticated_at
        return age < timedelta(seconds=self.token_ttl_seconds)

    async def ensure_authenticated(
        self, context: SessionContext, force: bool = False
    ) -> Result[None]:
        """
        Make sure `context.vendor_session_token` is valid for the selected company.

        Args:
            force: Log in even if a cached token would still be reused.
        """
        if context.selected_company_id is None:
            return Err(NoCompanySelected())

        if not force and self._token_is_fresh(context):
            return Ok(None)

        try:
            credentials = await self.resolve_company(context)
            envelope = build_login(
                credentials.web_service_username,
                credentials.api_secret,
                {"apikey": credentials.api_key},
                disconnect_same_user=self.disconnect_same_user,
            )
            response = await self.vendor_client.send(credentials, envelope)
        except GatewayError as e:
            logger.warning(
                "Vendor login for company %s could not be attempted: %s",
                context.selected_company_id,
                e.error_code,
            )
            return Err(e)

        outcome = normalize(response, envelope.operation)
        if not outcome.ok or not response.msg:
            logger.warning(
                "Vendor login rejected for company %s (code=%s)",
                context.selected_company_id,
                response.code or "-",
            )
            return Err(
                UpstreamAuthFailed(
                    message=response.msg or "The accounting service rejected the login.",
                    vendor_code=response.code,
                    context={"company_id": context.selected_company_id},
                )
            )

        # The login response carries the new vendor session id in `msg`
        context.vendor_session_token = response.msg
        context.last_authenticated_at = self._clock()
        logger.debug("Vendor session refreshed for company %s", context.selected_company_id)
        return Ok(None)

    async def select_company(self, context: SessionContext, company_id: int) -> None:
        """
        Switch the caller to another company.

        The period is reset to 0 (vendor default) because the previous period
        code may not exist under the new company. The vendor token is dropped
        because it was issued for the previous company's credentials.

        Raises:
            ForbiddenError: the user is not assigned to this company.
        """
        if not context.is_admin:
            allowed = await self.registry.user_may_access_company(context.user_id, company_id)
            if not allowed:
                logger.warning(
                    "User %s attempted to select unassigned company %s",
                    context.user_id,
                    company_id,
                )
                raise ForbiddenError(context={"company_id": company_id})

        context.selected_company_id = company_id
        context.selected_period_code = 0
        context.vendor_session_token = None
        context.last_authenticated_at = None

    def select_period(self, context: SessionContext, period_code: int) -> None:
        """Set the period unconditionally; the vendor validates it on use."""
        context.selected_period_code = period_code
