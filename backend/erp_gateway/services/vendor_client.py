"""
ERP Gateway - Vendor Client
============================

What:  Executes one HTTP call against the vendor web service and parses its envelope.
Why:   Separates "could we talk to the vendor?" (TransportError, raised here)
       from "what did the vendor say?" (a VendorResponse, classified later by
       the status normalizer).
How:   POSTs the envelope's JSON payload with a shared httpx.AsyncClient.
Who:   Used by the session mediator (login) and the web-service orchestrator.

Retry Policy:
    None here. A single call is a single attempt. The only retry in the
    gateway (re-login after a rejected token) lives in the orchestrator, and
    transport failures are surfaced to the caller as-is.

Endpoint layout:
    Each company stores one base URL (e.g. https://acme.ws.dia.com.tr/api/v3).
    Operations are posted to <base>/<sub-api>/json, where sub-api is one of
    sis, scf, bcs, per (see VendorApi).
"""

import logging
import time
import uuid
from typing import Optional, Union

import httpx

from erp_gateway.config import settings
from erp_gateway.exceptions import ConfigurationError, TransportError
from erp_gateway.schemas.vendor import (
    CompanyCredentials,
    VendorApi,
    VendorEnvelope,
    VendorResponse,
)

logger = logging.getLogger(__name__)


def normalize_base_url(base_source_url: str) -> str:
    """Ensure exactly one trailing slash."""
    base = (base_source_url or "").strip().rstrip("/")
    if not base:
        raise ConfigurationError(message="The company has no web service URL configured.")
    return base + "/"


def resolve_endpoint(base_source_url: str, suffix: Union[VendorApi, str]) -> str:
    """
    Join a company's base URL and a sub-API suffix with exactly one slash.

    Idempotent: a URL that already ends with the suffix is returned unchanged,
    so resolve_endpoint(resolve_endpoint(u, s), s) == resolve_endpoint(u, s).
    """
    suffix_path = (suffix.value if isinstance(suffix, VendorApi) else suffix).strip("/")
    base = normalize_base_url(base_source_url)
    if not suffix_path:
        return base
    trimmed = base.rstrip("/")
    if trimmed.endswith("/" + suffix_path):
        return trimmed
    return base + suffix_path


class VendorClient:
    """
    Thin async client for the vendor's POST-only JSON API.

    The underlying httpx.AsyncClient is owned by the application lifespan
    (one connection pool per process) and injected here.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: Optional[float] = None,
    ):
        self._http = http_client
        self._timeout = timeout if timeout is not None else settings.vendor_timeout_seconds

    async def call(self, endpoint_url: str, envelope: VendorEnvelope) -> VendorResponse:
        """
        Send one envelope and return the parsed vendor response.

        Raises:
            TransportError: network failure, timeout, or a body that is not a
                JSON object. Vendor-level rejections are NOT raised; they come
                back as a VendorResponse with a non-200 code.
        """
        call_id = str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        try:
            response = await self._http.post(
                endpoint_url,
                json=envelope.to_payload(),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                "[%s] Vendor %s timed out after %.0fms",
                call_id,
                envelope.operation,
                (time.perf_counter() - start_time) * 1000,
            )
            raise TransportError(
                message="The accounting service did not respond in time. Please try again later.",
                context={"operation": envelope.operation, "error_type": type(e).__name__},
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "[%s] Vendor %s transport failure: %s",
                call_id,
                envelope.operation,
                str(e),
            )
            raise TransportError(
                context={"operation": envelope.operation, "error_type": type(e).__name__},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000

        try:
            body = response.json()
        except ValueError as e:
            logger.warning(
                "[%s] Vendor %s returned a non-JSON body (HTTP %d)",
                call_id,
                envelope.operation,
                response.status_code,
            )
            raise TransportError(
                message="The accounting service returned an unreadable response.",
                context={"operation": envelope.operation, "http_status": response.status_code},
            ) from e

        if not isinstance(body, dict):
            raise TransportError(
                message="The accounting service returned an unreadable response.",
                context={"operation": envelope.operation, "http_status": response.status_code},
            )

        vendor_response = VendorResponse.model_validate(body)
        if not vendor_response.code and response.status_code >= 400:
            # HTTP-level failure without an in-band code; let the normalizer classify it
            vendor_response = vendor_response.model_copy(
                update={"code": str(response.status_code)}
            )

        logger.info(
            "[%s] Vendor %s answered code=%s in %.0fms",
            call_id,
            envelope.operation,
            vendor_response.code or "-",
            duration_ms,
        )
        return vendor_response

    async def send(
        self, credentials: CompanyCredentials, envelope: VendorEnvelope
    ) -> VendorResponse:
        """Resolve the envelope's sub-API under the company's base URL and call it."""
        endpoint = resolve_endpoint(credentials.web_service_source_url, envelope.api)
        return await self.call(endpoint, envelope)
