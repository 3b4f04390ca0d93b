"""
ERP Gateway - Session Mediator Unit Tests
==========================================

What we test:
    ✅ No company selected → Err(NoCompanySelected) without any vendor call
    ✅ Successful login stores the token from `msg`
    ✅ Rejected login → Err(UpstreamAuthFailed), previous token kept
    ✅ Transport failures surface as Err(TransportError)
    ✅ Token reuse within the TTL, forced re-login
    ✅ Company selection: access check, period reset, token dropped
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from erp_gateway.exceptions import (
    ForbiddenError,
    NoCompanySelected,
    NotFoundError,
    TransportError,
    UpstreamAuthFailed,
)
from erp_gateway.schemas.session import SessionContext
from erp_gateway.services.session_mediator import SessionMediator


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class TestEnsureAuthenticated:

    @pytest.mark.asyncio
    async def test_no_company_selected_makes_no_call(self, mediator, vendor, registry):
        context = SessionContext(caller_session_id="s", user_id=1)

        outcome = await mediator.ensure_authenticated(context)

        assert not outcome.ok
        assert isinstance(outcome.error, NoCompanySelected)
        assert outcome.code == "no_company_selected"
        assert vendor.requests == []
        registry.get_company_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_login_stores_token(self, mediator, vendor, context):
        outcome = await mediator.ensure_authenticated(context)

        assert outcome.ok
        assert context.vendor_session_token == "tok-1"
        assert context.last_authenticated_at is not None
        login = vendor.requests_for("login")[0]
        assert login.url == "https://erp.example.com/api/v3/sis/json"
        assert login.body == {
            "username": "ws_user",
            "password": "api-secret-7",
            "disconnect_same_user": "False",
            "params": {"apikey": "api-key-7"},
        }

    @pytest.mark.asyncio
    async def test_rejected_login_keeps_previous_token(self, mediator, vendor, context):
        context.vendor_session_token = "old-token"
        vendor.respond("login", {"code": "401", "msg": "bad creds"})

        outcome = await mediator.ensure_authenticated(context)

        assert not outcome.ok
        assert isinstance(outcome.error, UpstreamAuthFailed)
        assert outcome.message == "bad creds"
        assert outcome.error.vendor_code == "401"
        assert context.vendor_session_token == "old-token"

    @pytest.mark.asyncio
    async def test_success_code_without_token_is_auth_failure(self, mediator, vendor, context):
        vendor.respond("login", {"code": "200", "msg": ""})
        outcome = await mediator.ensure_authenticated(context)
        assert isinstance(outcome.error, UpstreamAuthFailed)
        assert context.vendor_session_token is None

    @pytest.mark.asyncio
    async def test_transport_failure_is_returned(self, mediator, vendor, context):
        vendor.respond("login", httpx.ConnectError("refused"))
        outcome = await mediator.ensure_authenticated(context)
        assert isinstance(outcome.error, TransportError)

    @pytest.mark.asyncio
    async def test_unknown_company_is_returned(self, mediator, context):
        context.selected_company_id = 404
        outcome = await mediator.ensure_authenticated(context)
        assert isinstance(outcome.error, NotFoundError)

    @pytest.mark.asyncio
    async def test_logs_in_every_time_without_ttl(self, mediator, vendor, context):
        await mediator.ensure_authenticated(context)
        await mediator.ensure_authenticated(context)
        assert vendor.operations == ["login", "login"]
        assert context.vendor_session_token == "tok-2"

    @pytest.mark.asyncio
    async def test_credentials_resolved_once_per_request(self, mediator, registry, context):
        await mediator.ensure_authenticated(context)
        await mediator.ensure_authenticated(context)
        registry.get_company_by_id.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_token_reused_within_ttl(self, registry, vendor_client, vendor, context):
        clock = FakeClock()
        mediator = SessionMediator(registry, vendor_client, token_ttl_seconds=60, clock=clock)

        await mediator.ensure_authenticated(context)
        clock.advance(30)
        await mediator.ensure_authenticated(context)
        assert vendor.operations == ["login"]

        clock.advance(31)
        await mediator.ensure_authenticated(context)
        assert vendor.operations == ["login", "login"]
        assert context.vendor_session_token == "tok-2"

    @pytest.mark.asyncio
    async def test_force_ignores_ttl(self, registry, vendor_client, vendor, context):
        mediator = SessionMediator(registry, vendor_client, token_ttl_seconds=600)
        await mediator.ensure_authenticated(context)
        await mediator.ensure_authenticated(context, force=True)
        assert vendor.operations == ["login", "login"]


class TestSelection:

    @pytest.mark.asyncio
    async def test_select_company_resets_period(self, mediator):
        context = SessionContext(caller_session_id="s", user_id=1)

        await mediator.select_company(context, 7)
        mediator.select_period(context, 3)
        assert (context.selected_company_id, context.selected_period_code) == (7, 3)

        await mediator.select_company(context, 9)
        assert (context.selected_company_id, context.selected_period_code) == (9, 0)

    @pytest.mark.asyncio
    async def test_reselecting_same_company_still_resets_period(self, mediator, context):
        mediator.select_period(context, 5)
        await mediator.select_company(context, 7)
        assert context.selected_period_code == 0

    @pytest.mark.asyncio
    async def test_select_company_drops_token(self, mediator, context):
        await mediator.ensure_authenticated(context)
        await mediator.select_company(context, 9)
        assert context.vendor_session_token is None
        assert context.last_authenticated_at is None

    @pytest.mark.asyncio
    async def test_unassigned_company_forbidden(self, mediator, registry, context):
        registry.user_may_access_company.return_value = False

        with pytest.raises(ForbiddenError):
            await mediator.select_company(context, 9)

        assert context.selected_company_id == 7
        registry.user_may_access_company.assert_awaited_once_with(5, 9)

    @pytest.mark.asyncio
    async def test_admin_skips_access_check(self, mediator, registry):
        registry.user_may_access_company.return_value = False
        context = SessionContext(caller_session_id="s", user_id=1, role="admin")

        await mediator.select_company(context, 9)

        assert context.selected_company_id == 9
        registry.user_may_access_company.assert_not_awaited()

    def test_select_period_is_unconditional(self, mediator, context):
        mediator.select_period(context, 123456)
        assert context.selected_period_code == 123456
