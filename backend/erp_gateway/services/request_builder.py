"""
ERP Gateway - Vendor Request Builder
=====================================

What:  Pure functions that construct vendor request envelopes.
Why:   Keeps the vendor's payload dialect (operation names, Turkish keys,
       string booleans, `params.selectedcolumns`) in one place.
How:   Each builder returns a frozen envelope from schemas/vendor.py; nothing
       here performs I/O. The only failures are malformed inputs, reported as
       ConfigurationError.
Who:   Called by the session mediator (login) and the web-service orchestrator.
"""

from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from erp_gateway.exceptions import ConfigurationError
from erp_gateway.schemas.vendor import (
    GetCreditCountEnvelope,
    GetPeriodsEnvelope,
    ListEnvelope,
    LoginEnvelope,
    VendorApi,
    VendorFilter,
)

FilterInput = Union[VendorFilter, Mapping[str, Any]]


class ListOperation(str, Enum):
    """
    Catalog of the vendor list operations used by the reports.

    The prefix of the operation name selects the sub-API it lives under.
    """

    ACCOUNT_CARDS = "scf_carikart_listele"
    ORDERS = "scf_siparis_listele_ayrintili"
    INVOICES = "scf_fatura_listele_ayrintili"
    WAYBILLS = "scf_irsaliye_listele_ayrintili"
    CASH_ACCOUNTS = "scf_kasakart_listele"
    CREDIT_CARD_COLLECTIONS = "scf_kk_tahsilat_listele"
    MATERIAL_RECEIPTS = "scf_malzeme_fisi_listele_ayrintili"
    BANK_RECEIPTS = "bcs_banka_fisi_listele"
    EMPLOYEE_TALLIES = "per_personel_puantaj_listele"

    @property
    def api(self) -> VendorApi:
        prefix = self.value.split("_", 1)[0]
        return {
            "scf": VendorApi.SCF,
            "bcs": VendorApi.BCS,
            "per": VendorApi.PER,
        }[prefix]


def build_login(
    username: str,
    secret: str,
    extra_params: Optional[Dict[str, Any]] = None,
    disconnect_same_user: bool = False,
) -> LoginEnvelope:
    """
    Build the `login` envelope.

    The vendor expects the API key inside `params` (`{"apikey": ...}`) and the
    flag as the strings "True"/"False".
    """
    if not username:
        raise ConfigurationError(message="Vendor username is required for login.")
    return LoginEnvelope(
        username=username,
        password=secret,
        disconnect_same_user="True" if disconnect_same_user else "False",
        params=extra_params or None,
    )


def build_get_periods(
    session_token: str,
    company_code: int,
    extra_params: Optional[Dict[str, Any]] = None,
) -> GetPeriodsEnvelope:
    return GetPeriodsEnvelope(
        session_id=session_token,
        firma_kodu=company_code,
        params=extra_params or None,
    )


def build_get_credit_count(
    session_token: str,
    extra_params: Optional[Dict[str, Any]] = None,
) -> GetCreditCountEnvelope:
    return GetCreditCountEnvelope(session_id=session_token, params=extra_params or None)


def build_list_query(
    operation: Union[ListOperation, str],
    session_token: str,
    company_code: int,
    period_code: int,
    projection: Sequence[str],
    filters: Optional[Iterable[FilterInput]] = None,
) -> ListEnvelope:
    """
    Build a generic list envelope.

    Args:
        operation:     A ListOperation (or its vendor name).
        session_token: Vendor session id from the last successful login.
        company_code:  The company's vendor code (firma_kodu), not its local ID.
        period_code:   Vendor period code (donem_kodu); 0 = vendor default.
        projection:    Column names sent as `params.selectedcolumns`.
        filters:       VendorFilter objects or `{field, operator, value}` dicts.

    Raises:
        ConfigurationError: empty projection, unknown operation, bad filter.
    """
    try:
        op = ListOperation(operation)
    except ValueError:
        raise ConfigurationError(
            message="Unknown vendor list operation.",
            context={"operation": str(operation)},
        )

    columns = [c for c in projection if c]
    if not columns:
        raise ConfigurationError(
            message="A list query needs at least one projected column.",
            context={"operation": op.value},
        )

    parsed_filters: Optional[List[VendorFilter]] = None
    if filters is not None:
        try:
            parsed_filters = [
                f if isinstance(f, VendorFilter) else VendorFilter.model_validate(dict(f))
                for f in filters
            ]
        except PydanticValidationError as e:
            raise ConfigurationError(
                message="A list query filter is malformed.",
                context={"operation": op.value, "errors": e.errors(include_url=False)},
            )

    return ListEnvelope(
        operation=op.value,
        api=op.api,
        session_id=session_token,
        firma_kodu=company_code,
        donem_kodu=period_code,
        params={"selectedcolumns": columns},
        filters=parsed_filters or None,
    )


# ══════════════════════════════════════════════════════════════════════════
# Filter helpers
# ══════════════════════════════════════════════════════════════════════════

_DATE_FORMAT = "%Y-%m-%d"


def date_range_filters(start: date, end: date) -> List[VendorFilter]:
    """Records created between `start` and `end`, both inclusive."""
    return [
        VendorFilter(field="_cdate", operator=">=", value=start.strftime(_DATE_FORMAT)),
        VendorFilter(field="_cdate", operator="<=", value=end.strftime(_DATE_FORMAT)),
    ]


def created_today_filters(today: Optional[date] = None) -> List[VendorFilter]:
    """Records created on `today` (defaults to the current date)."""
    today = today or date.today()
    tomorrow = today + timedelta(days=1)
    return [
        VendorFilter(field="_cdate", operator=">=", value=today.strftime(_DATE_FORMAT)),
        VendorFilter(field="_cdate", operator="<", value=tomorrow.strftime(_DATE_FORMAT)),
    ]
