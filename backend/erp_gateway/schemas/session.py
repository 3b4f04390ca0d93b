"""
ERP Gateway - Caller Session Schemas
=====================================

What:  The per-caller session state and the request/response models of the
       session routes.
Who:   SessionContext is owned by the session store, mutated by the session
       mediator and read by the web-service orchestrator.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class SessionContext(BaseModel):
    """
    State kept for one caller (one browser session).

    Invariant:
        `vendor_session_token` is set only while `selected_company_id` is set
        and a vendor login has succeeded since that company was selected.
    """

    caller_session_id: str
    user_id: int
    role: Literal["admin", "user"] = "user"
    vendor_session_token: Optional[str] = None
    selected_company_id: Optional[int] = None
    # 0 asks the vendor for its default (current) period
    selected_period_code: int = 0
    last_authenticated_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SelectCompanyRequest(BaseModel):
    company_id: int = Field(gt=0, description="ID of the company to work on")


class SelectPeriodRequest(BaseModel):
    period_code: int = Field(ge=0, description="Vendor period code (donemkodu); 0 = vendor default")


class SelectedCompanyResponse(BaseModel):
    message: str
    company_id: int


class SelectedPeriodResponse(BaseModel):
    period_code: int
