"""
ERP Gateway - Company Registry & Session Store Unit Tests
==========================================================

What we test:
    ✅ Company rows become CompanyCredentials
    ✅ Missing company → NotFoundError, query failure → GatewayError
    ✅ Access check against users_to_companies
    ✅ Session store hands out copies; changes need save()
    ✅ Idle sessions expire on read and are swept on write
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from erp_gateway.exceptions import GatewayError, NotFoundError
from erp_gateway.models.company import Company
from erp_gateway.services.company_registry import CompanyRegistry
from erp_gateway.services.session_store import SessionStore, SessionStoreError


@pytest.fixture
def mock_db_session():
    session = AsyncMock()
    session.execute = AsyncMock()
    return session


def _result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


class TestCompanyRegistry:

    @pytest.mark.asyncio
    async def test_get_company_by_id(self, mock_db_session):
        mock_db_session.execute.return_value = _result(
            Company(
                id=7,
                code=34,
                name="Acme",
                status=True,
                web_service_source="https://erp.example.com/api/v3/",
                web_service_username="ws_user",
                api_key="k",
                api_secret="s",
            )
        )

        credentials = await CompanyRegistry(mock_db_session).get_company_by_id(7)

        assert credentials.company_id == 7
        assert credentials.company_code == 34
        assert credentials.web_service_source_url == "https://erp.example.com/api/v3/"
        assert credentials.api_key == "k"

    @pytest.mark.asyncio
    async def test_missing_company(self, mock_db_session):
        mock_db_session.execute.return_value = _result(None)
        with pytest.raises(NotFoundError) as exc_info:
            await CompanyRegistry(mock_db_session).get_company_by_id(404)
        assert exc_info.value.context["resource_id"] == "404"

    @pytest.mark.asyncio
    async def test_query_failure_hides_details(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(GatewayError) as exc_info:
            await CompanyRegistry(mock_db_session).get_company_by_id(7)
        assert "SELECT" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_user_may_access_company(self, mock_db_session):
        mock_db_session.execute.return_value = _result(7)
        assert await CompanyRegistry(mock_db_session).user_may_access_company(5, 7)

        mock_db_session.execute.return_value = _result(None)
        assert not await CompanyRegistry(mock_db_session).user_may_access_company(5, 9)

    @pytest.mark.asyncio
    async def test_access_check_failure_hides_details(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(GatewayError) as exc_info:
            await CompanyRegistry(mock_db_session).user_may_access_company(5, 7)
        assert "SELECT" not in exc_info.value.message
        assert exc_info.value.context == {"user_id": 5, "company_id": 7}

    def test_repr_leaves_out_credentials(self):
        company = Company(id=1, code=2, name="Acme", api_key="k-secret", api_secret="s-secret")
        assert "secret" not in repr(company)


class TestSessionStore:

    def test_changes_visible_only_after_save(self):
        store = SessionStore()
        context = store.create(user_id=5)

        context.selected_company_id = 7
        assert store.get(context.caller_session_id).selected_company_id is None

        store.save(context)
        assert store.get(context.caller_session_id).selected_company_id == 7

    def test_last_write_wins(self):
        store = SessionStore()
        first = store.create(user_id=5)
        second = store.get(first.caller_session_id)

        first.selected_company_id = 7
        second.selected_company_id = 9
        store.save(first)
        store.save(second)

        assert store.get(first.caller_session_id).selected_company_id == 9

    def test_destroy_and_unknown_ids(self):
        store = SessionStore()
        context = store.create(user_id=5)
        store.destroy(context.caller_session_id)
        store.destroy("never-existed")
        assert store.get(context.caller_session_id) is None
        assert len(store) == 0

    def test_closed_store_refuses_writes(self):
        store = SessionStore()
        context = store.create(user_id=5)
        store.close()
        with pytest.raises(SessionStoreError):
            store.save(context)

    def test_idle_session_expires(self):
        now = [1000.0]
        store = SessionStore(idle_ttl_seconds=60, clock=lambda: now[0])
        context = store.create(user_id=5)

        now[0] += 59
        assert store.get(context.caller_session_id) is not None

        # Reading refreshed the last-seen time
        now[0] += 59
        assert store.get(context.caller_session_id) is not None

        now[0] += 61
        assert store.get(context.caller_session_id) is None
        assert len(store) == 0

    def test_sweep_evicts_abandoned_sessions(self):
        now = [1000.0]
        store = SessionStore(idle_ttl_seconds=60, clock=lambda: now[0])
        abandoned = [store.create(user_id=n) for n in range(3)]

        now[0] += 120
        active = store.create(user_id=99)

        assert store.evict_expired() == 3
        assert len(store) == 1
        assert store.get(active.caller_session_id) is not None
        assert all(store.get(c.caller_session_id) is None for c in abandoned)

    def test_sweep_runs_during_writes(self):
        now = [1000.0]
        store = SessionStore(idle_ttl_seconds=60, clock=lambda: now[0])
        store.create(user_id=1)

        now[0] += 120
        active = store.create(user_id=2)
        for _ in range(98):
            store.save(active)

        assert len(store) == 1

    def test_zero_ttl_never_expires(self):
        now = [1000.0]
        store = SessionStore(idle_ttl_seconds=0, clock=lambda: now[0])
        context = store.create(user_id=5)

        now[0] += 10 ** 6
        assert store.get(context.caller_session_id) is not None
        assert store.evict_expired() == 0
