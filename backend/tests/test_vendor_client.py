"""
ERP Gateway - Vendor Client Unit Tests
=======================================

What we test:
    ✅ resolve_endpoint joins with exactly one slash and is idempotent
    ✅ Envelopes are POSTed to <base>/<sub-api>/json as JSON
    ✅ Network failures and timeouts raise TransportError
    ✅ Unreadable bodies raise TransportError
    ✅ Vendor rejections come back as responses, not exceptions
"""

import httpx
import pytest

from erp_gateway.exceptions import ConfigurationError, TransportError
from erp_gateway.schemas.vendor import VendorApi
from erp_gateway.services.request_builder import build_get_credit_count, build_login
from erp_gateway.services.vendor_client import normalize_base_url, resolve_endpoint


class TestResolveEndpoint:

    @pytest.mark.parametrize(
        "base",
        ["https://erp.example.com/api/v3", "https://erp.example.com/api/v3/", "https://erp.example.com/api/v3//"],
    )
    def test_single_slash_between_parts(self, base):
        assert resolve_endpoint(base, VendorApi.SCF) == "https://erp.example.com/api/v3/scf/json"

    @pytest.mark.parametrize("suffix", ["sis/json", "/sis/json", "sis/json/"])
    def test_suffix_slashes_ignored(self, suffix):
        assert resolve_endpoint("https://erp.example.com/api/v3", suffix) == (
            "https://erp.example.com/api/v3/sis/json"
        )

    @pytest.mark.parametrize("api", list(VendorApi))
    def test_idempotent(self, api):
        for base in ("https://erp.example.com/api/v3", "https://erp.example.com/api/v3/"):
            once = resolve_endpoint(base, api)
            assert resolve_endpoint(once, api) == once
            assert resolve_endpoint(once + "/", api) == once

    def test_missing_base_url_rejected(self):
        with pytest.raises(ConfigurationError):
            normalize_base_url("  ")


class TestVendorClientCall:

    @pytest.mark.asyncio
    async def test_posts_payload_to_sub_api(self, vendor, vendor_client, credentials):
        response = await vendor_client.send(credentials, build_get_credit_count("tok"))

        assert response.code == "200"
        assert response.result == {"kontorsayisi": "1000"}
        request = vendor.requests[0]
        assert request.url == "https://erp.example.com/api/v3/sis/json"
        assert request.operation == "sis_kontor_sorgula"
        assert request.body == {"session_id": "tok"}

    @pytest.mark.asyncio
    async def test_vendor_rejection_is_returned_not_raised(self, vendor, vendor_client, credentials):
        vendor.respond("login", {"code": "401", "msg": "bad creds"})
        response = await vendor_client.send(credentials, build_login("u", "p"))
        assert response.code == "401"
        assert response.msg == "bad creds"

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self, vendor, vendor_client, credentials):
        vendor.respond("sis_kontor_sorgula", httpx.ConnectError("connection refused"))
        with pytest.raises(TransportError) as exc_info:
            await vendor_client.send(credentials, build_get_credit_count("tok"))
        assert exc_info.value.context["error_type"] == "ConnectError"

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self, vendor, vendor_client, credentials):
        vendor.respond("sis_kontor_sorgula", httpx.ReadTimeout("slow"))
        with pytest.raises(TransportError) as exc_info:
            await vendor_client.send(credentials, build_get_credit_count("tok"))
        assert "in time" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_non_json_body_raises_transport_error(self, vendor, vendor_client, credentials):
        vendor.respond("sis_kontor_sorgula", httpx.Response(200, text="<html>maintenance</html>"))
        with pytest.raises(TransportError):
            await vendor_client.send(credentials, build_get_credit_count("tok"))

    @pytest.mark.asyncio
    async def test_json_array_body_raises_transport_error(self, vendor, vendor_client, credentials):
        vendor.respond("sis_kontor_sorgula", httpx.Response(200, json=[1, 2]))
        with pytest.raises(TransportError):
            await vendor_client.send(credentials, build_get_credit_count("tok"))

    @pytest.mark.asyncio
    async def test_http_error_without_code_uses_http_status(self, vendor, vendor_client, credentials):
        vendor.respond("sis_kontor_sorgula", httpx.Response(503, json={"msg": "down"}))
        response = await vendor_client.send(credentials, build_get_credit_count("tok"))
        assert response.code == "503"
        assert response.msg == "down"
