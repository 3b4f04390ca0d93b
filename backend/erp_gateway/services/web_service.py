"""
ERP Gateway - Web Service Orchestrator
=======================================

What:  The request-scoped vendor operations behind the company and report routes.
How:   Composes the session mediator, request builder, vendor client, status
       normalizer and credit count bus. Every operation follows the same path:

    ┌──────────────┐   ┌─────────────┐   ┌──────────┐   ┌────────────┐   ┌──────────────┐
    │ ensure auth  │──▶│ build       │──▶│ vendor   │──▶│ normalize  │──▶│ credit count │
    │ (mediator)   │   │ envelope    │   │ call     │   │ (unwrap)   │   │ refresh      │
    └──────────────┘   └─────────────┘   └──────────┘   └────────────┘   └──────────────┘

Retry Policy:
    Only when tokens are reused (VENDOR_TOKEN_TTL_SECONDS > 0): a substantive
    call answered with 401/403 is treated as a stale token, the mediator is
    forced to log in again and the call is retried once (tenacity,
    REAUTH_MAX_ATTEMPTS total attempts). Background credit refreshes never
    log in again. TransportError and UpstreamServerError are never retried.

Credit refresh:
    After a successful list operation the vendor balance is re-read and
    published on the bus. A failing refresh is logged and never fails the
    primary operation. CREDIT_REFRESH_MODE=inline awaits it before returning;
    background schedules it as a task and returns immediately.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from erp_gateway.config import settings
from erp_gateway.exceptions import UpstreamServerError
from erp_gateway.schemas.report import GeneralReportResponse, PeriodItem, VendorListResponse
from erp_gateway.schemas.session import SessionContext
from erp_gateway.schemas.vendor import (
    CompanyCredentials,
    VendorEnvelope,
    VendorFilter,
    VendorResponse,
)
from erp_gateway.services.credit_bus import CreditCountBus
from erp_gateway.services.request_builder import (
    FilterInput,
    ListOperation,
    build_get_credit_count,
    build_get_periods,
    build_list_query,
    created_today_filters,
    date_range_filters,
)
from erp_gateway.services.session_mediator import SessionMediator
from erp_gateway.services.status_normalizer import normalize, parse_code
from erp_gateway.services.vendor_client import VendorClient

logger = logging.getLogger(__name__)

EnvelopeFactory = Callable[[str, CompanyCredentials], VendorEnvelope]

# Vendor codes meaning "this session id is no longer valid"
_STALE_TOKEN_CODES = {401, 403}


class StaleVendorSession(Exception):
    """Internal signal: the vendor rejected a reused token."""

    def __init__(self, response: VendorResponse, operation: str):
        super().__init__(response.msg)
        self.response = response
        self.operation = operation


# ── Report projections ────────────────────────────────────────────────────
ACCOUNT_CARD_COLUMNS = ["carikartkodu", "unvan", "dovizturu", "bakiye"]
ORDER_COLUMNS = [
    "fisno", "unvan", "kartaciklama", "miktar", "anabirimi", "birimfiyatidovizi",
    "toplamtutar", "tutari", "turuack", "turu", "onay", "note", "tamamisevkedildi", "_cdate",
]
INVOICE_COLUMNS = [
    "kartaciklama", "kartkodu", "belgeno2", "turuack", "turu", "fisno", "miktar",
    "fatbirimi", "kalemdovizi", "unvan", "kdvharictutar", "kdvtutari", "indirimtutari",
    "toplamtutar", "_cdate",
]
WAYBILL_COLUMNS = [
    "aciklama", "belgeno2", "turuack", "fisno", "cariunvan", "doviz", "birim", "miktar",
    "stokaciklama", "stokkartkodu", "tutari", "kdvtutari", "indirimtutari", "toplamtutar",
    "_cdate",
]
CASH_ACCOUNT_COLUMNS = ["ba", "alacak", "borc", "bakiye", "_cdate"]
BANK_RECEIPT_COLUMNS = ["fisno", "borc", "turuack", "aciklama", "_cdate"]
CREDIT_CARD_COLLECTION_COLUMNS = [
    "cariunvan", "dovizturu", "toplamtutar", "bankahesapadi", "aciklama", "devirfisno", "_cdate",
]
MATERIAL_RECEIPT_COLUMNS = [
    "fisno", "cariunvan", "aciklama", "turuack", "_cdate", "toplam", "stokkodu", "stokadi",
    "doviz", "birim", "miktar",
]
EMPLOYEE_TALLY_COLUMNS = [
    "personeladisoyadi", "personelsicilno", "normalmesaisaat", "toplamfazlamesaisaat",
    "gecemesaisisaat", "haftasonumesaisisaat", "_cdate",
]

CREDITOR_BA = "(A)"
DEBTOR_BA = "(B)"
PURCHASED_SERVICES_INVOICE_TYPE = "4"


def _to_number(value: Any) -> float:
    """Vendor amounts arrive as strings; unparseable values count as 0."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _rows(result: Any) -> List[Dict[str, Any]]:
    if isinstance(result, list):
        return [row for row in result if isinstance(row, dict)]
    return []


class WebService:
    """
    Vendor operations for one request.

    Stateless apart from its collaborators; the caller's SessionContext is
    passed into every method and mutated in place (new token after login).
    """

    # Background refresh tasks, kept referenced until they finish
    _pending_refreshes: Set["asyncio.Task[None]"] = set()

    def __init__(
        self,
        mediator: SessionMediator,
        vendor_client: VendorClient,
        bus: CreditCountBus,
        refresh_mode: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ):
        self.mediator = mediator
        self.vendor_client = vendor_client
        self.bus = bus
        self.refresh_mode = refresh_mode or settings.credit_refresh_mode
        self.max_attempts = max_attempts or settings.reauth_max_attempts

    # ══════════════════════════════════════════════════════════════════════
    # Core call path
    # ══════════════════════════════════════════════════════════════════════

    async def _execute(
        self,
        context: SessionContext,
        make_envelope: EnvelopeFactory,
        authenticate: bool = True,
        reauthenticate: bool = True,
    ) -> VendorResponse:
        """
        Run one substantive vendor call and return its successful response.

        `reauthenticate=False` reports a stale token instead of logging in again.

        Raises:
            NoCompanySelected, UpstreamAuthFailed, TransportError: from login.
            Upstream*/TransportError: from the substantive call.
        """
        if authenticate:
            (await self.mediator.ensure_authenticated(context)).unwrap()
        credentials = await self.mediator.resolve_company(context)

        attempts = self.max_attempts if self.mediator.reuses_tokens and reauthenticate else 1
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                retry=retry_if_exception_type(StaleVendorSession),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "Vendor token rejected for company %s; logging in again",
                            credentials.company_id,
                        )
                        (await self.mediator.ensure_authenticated(context, force=True)).unwrap()

                    envelope = make_envelope(context.vendor_session_token or "", credentials)
                    response = await self.vendor_client.send(credentials, envelope)

                    if (
                        self.mediator.reuses_tokens
                        and parse_code(response.code) in _STALE_TOKEN_CODES
                    ):
                        raise StaleVendorSession(response, envelope.operation)

                    normalize(response, envelope.operation).unwrap()
                    return response
        except StaleVendorSession as stale:
            # Out of attempts: report the vendor's rejection through the taxonomy
            normalize(stale.response, stale.operation).unwrap()
            raise
        raise AssertionError("unreachable")  # pragma: no cover

    async def _refresh_credit_count(
        self, context: SessionContext, reauthenticate: bool = True
    ) -> None:
        """Re-read the balance with the current token and publish it."""
        try:
            await self.get_credit_count(
                context, authenticate=False, reauthenticate=reauthenticate
            )
        except Exception as e:
            logger.error(
                "Failed to refresh credit count for company %s: %s",
                context.selected_company_id,
                str(e),
                exc_info=True,
            )

    async def _after_call(self, context: SessionContext) -> None:
        if self.refresh_mode == "background":
            # Never logs in again: the route has already saved the context
            task = asyncio.create_task(
                self._refresh_credit_count(context.model_copy(), reauthenticate=False)
            )
            self._pending_refreshes.add(task)
            task.add_done_callback(self._pending_refreshes.discard)
        else:
            await self._refresh_credit_count(context)

    @classmethod
    async def drain_refreshes(cls, timeout: float) -> int:
        """
        Wait for background refreshes at shutdown, cancelling any still running
        after `timeout` seconds.

        Returns:
            Number of refreshes cancelled.
        """
        loop = asyncio.get_running_loop()
        pending = {task for task in cls._pending_refreshes if task.get_loop() is loop}
        if not pending:
            return 0

        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                "Cancelled %d credit count refresh(es) at shutdown", len(still_running)
            )
        return len(still_running)

    # ══════════════════════════════════════════════════════════════════════
    # Company-level operations (sis)
    # ══════════════════════════════════════════════════════════════════════

    async def get_periods(self, context: SessionContext) -> List[PeriodItem]:
        """Accounting periods of the selected company (vendor `m_donemler`)."""
        response = await self._execute(
            context,
            lambda token, company: build_get_periods(token, company.company_code),
        )
        result = response.result if isinstance(response.result, dict) else {}
        periods = result.get("m_donemler") or []
        return [PeriodItem.model_validate(p) for p in periods if isinstance(p, dict)]

    async def fetch_credit_count(
        self,
        context: SessionContext,
        authenticate: bool = True,
        reauthenticate: bool = True,
    ) -> int:
        """Current vendor credit balance, without publishing it."""
        response = await self._execute(
            context,
            lambda token, company: build_get_credit_count(token),
            authenticate=authenticate,
            reauthenticate=reauthenticate,
        )
        result = response.result if isinstance(response.result, dict) else {}
        try:
            return int(float(result["kontorsayisi"]))
        except (KeyError, TypeError, ValueError):
            raise UpstreamServerError(
                message="The accounting service returned an unexpected credit balance.",
                context={"operation": "sis_kontor_sorgula"},
            )

    async def get_credit_count(
        self,
        context: SessionContext,
        authenticate: bool = True,
        reauthenticate: bool = True,
    ) -> int:
        """Current vendor credit balance, published to the company's subscribers."""
        credit_count = await self.fetch_credit_count(
            context, authenticate=authenticate, reauthenticate=reauthenticate
        )
        self.bus.publish(context.selected_company_id, credit_count)
        return credit_count

    # ══════════════════════════════════════════════════════════════════════
    # List operations (scf / bcs / per)
    # ══════════════════════════════════════════════════════════════════════

    async def list_records(
        self,
        context: SessionContext,
        operation: ListOperation,
        projection: Sequence[str],
        filters: Optional[Iterable[FilterInput]] = None,
        authenticate: bool = True,
        refresh: bool = True,
    ) -> VendorListResponse:
        """Run one vendor list operation in the caller's company and period."""
        filter_list = list(filters) if filters is not None else None
        response = await self._execute(
            context,
            lambda token, company: build_list_query(
                operation,
                token,
                company.company_code,
                context.selected_period_code,
                projection,
                filter_list,
            ),
            authenticate=authenticate,
        )
        if refresh:
            await self._after_call(context)
        return VendorListResponse(message=response.msg, payload=_rows(response.result))

    async def get_creditors(self, context: SessionContext) -> VendorListResponse:
        return await self.list_records(
            context,
            ListOperation.ACCOUNT_CARDS,
            ACCOUNT_CARD_COLUMNS,
            [VendorFilter(field="ba", operator="=", value=CREDITOR_BA)],
        )

    async def get_debtors(self, context: SessionContext) -> VendorListResponse:
        return await self.list_records(
            context,
            ListOperation.ACCOUNT_CARDS,
            ACCOUNT_CARD_COLUMNS,
            [VendorFilter(field="ba", operator="=", value=DEBTOR_BA)],
        )

    async def get_orders(self, context: SessionContext) -> VendorListResponse:
        return await self.list_records(context, ListOperation.ORDERS, ORDER_COLUMNS)

    async def get_invoices(
        self,
        context: SessionContext,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> VendorListResponse:
        return await self.list_records(
            context,
            ListOperation.INVOICES,
            INVOICE_COLUMNS,
            self._report_filters(start_date, end_date),
        )

    async def get_work_hours(self, context: SessionContext) -> VendorListResponse:
        return await self.list_records(
            context, ListOperation.EMPLOYEE_TALLIES, EMPLOYEE_TALLY_COLUMNS
        )

    @staticmethod
    def _report_filters(
        start_date: Optional[date], end_date: Optional[date]
    ) -> List[VendorFilter]:
        if start_date and end_date:
            return date_range_filters(start_date, end_date)
        return created_today_filters()

    async def get_general_report(
        self,
        context: SessionContext,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> GeneralReportResponse:
        """
        Dashboard report over a date range (today when no range is given).

        Logs in once, then runs the seven list operations concurrently with
        that token and refreshes the credit count once at the end.
        """
        (await self.mediator.ensure_authenticated(context)).unwrap()
        # Resolve once up front; the sub-calls share one AsyncSession
        await self.mediator.resolve_company(context)
        filters = self._report_filters(start_date, end_date)

        def fetch(operation, columns, extra_filters=()):
            return self.list_records(
                context,
                operation,
                columns,
                [*filters, *extra_filters],
                authenticate=False,
                refresh=False,
            )

        (
            waybills,
            invoices,
            cash_accounts,
            bank_receipts,
            card_collections,
            account_cards,
            material_receipts,
        ) = await asyncio.gather(
            fetch(ListOperation.WAYBILLS, WAYBILL_COLUMNS),
            fetch(ListOperation.INVOICES, INVOICE_COLUMNS),
            fetch(ListOperation.CASH_ACCOUNTS, CASH_ACCOUNT_COLUMNS),
            fetch(
                ListOperation.BANK_RECEIPTS,
                BANK_RECEIPT_COLUMNS,
                [VendorFilter(field="borc", operator="!", value="0")],
            ),
            fetch(ListOperation.CREDIT_CARD_COLLECTIONS, CREDIT_CARD_COLLECTION_COLUMNS),
            fetch(ListOperation.ACCOUNT_CARDS, ["bakiye", "ba"]),
            fetch(
                ListOperation.MATERIAL_RECEIPTS,
                MATERIAL_RECEIPT_COLUMNS,
                [VendorFilter(field="turu", operator="IN", value="1,3,8,9")],
            ),
        )

        await self._after_call(context)

        return GeneralReportResponse(
            waybills=waybills.payload,
            invoices=invoices.payload,
            bank_receipts=bank_receipts.payload,
            credit_card_collections=card_collections.payload,
            account_cards=account_cards.payload,
            material_receipts=material_receipts.payload,
            cash_accounts_balance_sum=sum(
                _to_number(row.get("bakiye")) for row in cash_accounts.payload
            ),
            account_cards_creditor_sum=sum(
                _to_number(row.get("bakiye"))
                for row in account_cards.payload
                if row.get("ba") == CREDITOR_BA
            ),
            account_cards_debtor_sum=sum(
                _to_number(row.get("bakiye"))
                for row in account_cards.payload
                if row.get("ba") == DEBTOR_BA
            ),
            purchased_services_invoices_sum=sum(
                _to_number(row.get("toplamtutar"))
                for row in invoices.payload
                if str(row.get("turu")) == PURCHASED_SERVICES_INVOICE_TYPE
            ),
        )
