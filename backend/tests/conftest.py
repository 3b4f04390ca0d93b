"""
ERP Gateway - Test Configuration (conftest.py)
===============================================

What:  Shared pytest fixtures for the entire test suite.
How:   The vendor is replaced by FakeVendor behind httpx.MockTransport, the
       company registry by an AsyncMock. No database or network is needed.

Fixture Hierarchy:
    ├── vendor:         FakeVendor (scripted responses, records every request)
    ├── http_client:    httpx.AsyncClient routed to the fake vendor
    ├── vendor_client:  VendorClient over http_client
    ├── credentials:    CompanyCredentials of company 7 (company 9 via registry)
    ├── registry:       AsyncMock company directory
    ├── mediator:       SessionMediator(registry, vendor_client)
    ├── bus:            CreditCountBus
    └── context:        SessionContext with company 7 selected
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List
from unittest.mock import AsyncMock

# Override settings for testing BEFORE any erp_gateway imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["VENDOR_TOKEN_TTL_SECONDS"] = "0"
os.environ["CREDIT_REFRESH_MODE"] = "inline"

import httpx
import pytest
import pytest_asyncio

from erp_gateway.exceptions import NotFoundError
from erp_gateway.schemas.session import SessionContext
from erp_gateway.schemas.vendor import CompanyCredentials
from erp_gateway.services.credit_bus import CreditCountBus
from erp_gateway.services.session_mediator import SessionMediator
from erp_gateway.services.vendor_client import VendorClient

BASE_URL = "https://erp.example.com/api/v3"


# ══════════════════════════════════════════════════════════════════════════
# Fake vendor
# ══════════════════════════════════════════════════════════════════════════

@dataclass
class VendorRequest:
    url: str
    operation: str
    body: Dict[str, Any]


class FakeVendor:
    """
    httpx.MockTransport handler that speaks the vendor's envelope format.

    Script responses per operation with `respond(operation, *replies)`; the
    replies are used in order and the last one repeats. A reply is a JSON
    dict, an httpx.Response, or an exception to raise.

    Unscripted operations get a successful default; `login` hands out
    "tok-1", "tok-2", ... so re-logins are observable.
    """

    def __init__(self):
        self.requests: List[VendorRequest] = []
        self._replies: Dict[str, List[Any]] = {}
        self._tokens_issued = 0

    def respond(self, operation: str, *replies: Any) -> None:
        self._replies[operation] = list(replies)

    @property
    def operations(self) -> List[str]:
        return [r.operation for r in self.requests]

    def requests_for(self, operation: str) -> List[VendorRequest]:
        return [r for r in self.requests if r.operation == operation]

    def _default(self, operation: str) -> Dict[str, Any]:
        if operation == "login":
            self._tokens_issued += 1
            return {"code": "200", "msg": f"tok-{self._tokens_issued}"}
        if operation == "sis_kontor_sorgula":
            return {"code": "200", "msg": "", "result": {"kontorsayisi": "1000"}}
        return {"code": "200", "msg": "", "result": []}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        operation = next(iter(payload))
        self.requests.append(VendorRequest(str(request.url), operation, payload[operation]))

        replies = self._replies.get(operation)
        if not replies:
            reply = self._default(operation)
        elif len(replies) > 1:
            reply = replies.pop(0)
        else:
            reply = replies[0]

        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def vendor():
    return FakeVendor()


@pytest_asyncio.fixture
async def http_client(vendor):
    async with httpx.AsyncClient(transport=httpx.MockTransport(vendor)) as client:
        yield client


@pytest.fixture
def vendor_client(http_client):
    return VendorClient(http_client, timeout=5.0)


@pytest.fixture
def credentials():
    return CompanyCredentials(
        company_id=7,
        web_service_source_url=BASE_URL,
        web_service_username="ws_user",
        api_key="api-key-7",
        api_secret="api-secret-7",
        company_code=34,
    )


@pytest.fixture
def registry(credentials):
    """
    Company directory with companies 7 and 9; every user may access both.

    Usage:
        registry.user_may_access_company.return_value = False
    """
    companies = {
        7: credentials,
        9: credentials.model_copy(update={"company_id": 9, "company_code": 35}),
    }

    async def get_company_by_id(company_id):
        if company_id not in companies:
            raise NotFoundError(resource="company", resource_id=str(company_id))
        return companies[company_id]

    directory = AsyncMock()
    directory.get_company_by_id = AsyncMock(side_effect=get_company_by_id)
    directory.user_may_access_company = AsyncMock(return_value=True)
    return directory


@pytest.fixture
def mediator(registry, vendor_client):
    return SessionMediator(registry, vendor_client, token_ttl_seconds=0)


@pytest.fixture
def bus():
    return CreditCountBus()


@pytest.fixture
def context():
    return SessionContext(caller_session_id="sess-1", user_id=5, selected_company_id=7)
