"""
ERP Gateway - Vendor Wire Schemas
==================================

What:  Pydantic models for the DIA-style web service's request and response bodies.
Why:   The vendor speaks a loosely-typed JSON dialect (numeric codes as strings,
       Turkish field names, string booleans). Modelling it once keeps that
       dialect out of the services.
Who:   Built by services/request_builder.py, sent by services/vendor_client.py.

Wire format:
    Request:  { "<operation_name>": { session_id?, firma_kodu?, donem_kodu?,
                                      filters?, params? } }
    Response: { "code": "200", "msg": "...", "result": ... }
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VendorApi(str, Enum):
    """Sub-APIs of the vendor service, each served under its own path."""

    SIS = "sis/json"  # system: login, company periods, credit count
    SCF = "scf/json"  # trade: account cards, invoices, orders, waybills
    BCS = "bcs/json"  # bank: bank receipts
    PER = "per/json"  # personnel: employee tallies


FilterOperator = Literal["<", ">", "<=", ">=", "!", "=", "IN", "NOT IN"]


class VendorFilter(BaseModel):
    """A single predicate in a list query's `filters` array."""

    field: str = Field(min_length=1)
    operator: FilterOperator
    value: Union[str, int, float]


class CompanyCredentials(BaseModel):
    """
    What:  Everything needed to talk to the vendor on behalf of one company.
    Who:   Produced by the company registry from a `companies` row.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    company_id: int
    web_service_source_url: str
    web_service_username: str
    api_key: str
    api_secret: str
    company_code: int


class VendorResponse(BaseModel):
    """
    What:  The vendor's response envelope.

    `code` is normalized to a string at parse time because the vendor sends
    both "200" and 200 depending on the sub-API. Only the status normalizer
    interprets it.
    """

    code: str = ""
    msg: str = ""
    result: Any = None

    @field_validator("code", "msg", mode="before")
    @classmethod
    def coerce_to_str(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v)


# ══════════════════════════════════════════════════════════════════════════
# Request envelopes: one variant per vendor operation
# ══════════════════════════════════════════════════════════════════════════


class VendorEnvelope(BaseModel):
    """
    Base for request envelopes.

    `operation` is the tag (the single top-level key of the JSON body) and
    `api` the sub-API it must be posted to; neither is part of the body.
    """

    model_config = ConfigDict(frozen=True)

    operation: str
    api: VendorApi

    def to_payload(self) -> Dict[str, Dict[str, Any]]:
        body = self.model_dump(
            mode="json",
            exclude={"operation", "api"},
            exclude_none=True,
        )
        return {self.operation: body}


class LoginEnvelope(VendorEnvelope):
    operation: Literal["login"] = "login"
    api: VendorApi = VendorApi.SIS
    username: str
    password: str
    disconnect_same_user: Literal["True", "False"] = "False"
    params: Optional[Dict[str, Any]] = None


class GetPeriodsEnvelope(VendorEnvelope):
    operation: Literal["sis_firma_getir"] = "sis_firma_getir"
    api: VendorApi = VendorApi.SIS
    session_id: str
    firma_kodu: int
    params: Optional[Dict[str, Any]] = None


class GetCreditCountEnvelope(VendorEnvelope):
    operation: Literal["sis_kontor_sorgula"] = "sis_kontor_sorgula"
    api: VendorApi = VendorApi.SIS
    session_id: str
    params: Optional[Dict[str, Any]] = None


class ListEnvelope(VendorEnvelope):
    """Generic shape shared by every `*_listele*` operation."""

    session_id: str
    firma_kodu: int
    donem_kodu: int = 0
    params: Dict[str, Any]
    filters: Optional[List[VendorFilter]] = None
