"""
ERP Gateway - Company & Report Schemas
=======================================

What:  Response models for vendor-backed routes (periods, credit count, reports).

Design Decision:
    List payloads are passed through as the vendor returned them (`payload`),
    since their columns depend on the projection each route asks for. Only
    the aggregates of the general report are computed server-side.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PeriodItem(BaseModel):
    """One accounting period of the selected company (vendor `m_donemler` row)."""

    donemkodu: int = Field(description="Vendor period code")
    baslangic: Optional[str] = Field(default=None, description="Period start date")
    bitis: Optional[str] = Field(default=None, description="Period end date")


class CreditCountResponse(BaseModel):
    company_id: int
    credit_count: int = Field(description="Remaining vendor credits (kontör)")


class VendorListResponse(BaseModel):
    """A vendor list result: the vendor's own message plus its rows."""

    message: str = Field(default="", description="Vendor message, verbatim")
    payload: List[Dict[str, Any]] = Field(default_factory=list)


class GeneralReportResponse(BaseModel):
    """
    What:  Dashboard report for a date range (defaults to "created today").

    Sums:
        cash_accounts_balance_sum:         Σ bakiye over cash accounts
        account_cards_creditor_sum:        Σ bakiye where ba == "(A)"
        account_cards_debtor_sum:          Σ bakiye where ba == "(B)"
        purchased_services_invoices_sum:   Σ toplamtutar where turu == "4"
    """

    waybills: List[Dict[str, Any]]
    invoices: List[Dict[str, Any]]
    bank_receipts: List[Dict[str, Any]]
    credit_card_collections: List[Dict[str, Any]]
    account_cards: List[Dict[str, Any]]
    material_receipts: List[Dict[str, Any]]
    cash_accounts_balance_sum: float
    account_cards_creditor_sum: float
    account_cards_debtor_sum: float
    purchased_services_invoices_sum: float
