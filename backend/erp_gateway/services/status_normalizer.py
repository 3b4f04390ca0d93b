"""
ERP Gateway - Vendor Status Normalizer
=======================================

What:  Maps the vendor's `code` field to the gateway's error taxonomy.
Why:   The vendor reports failures in-band ("code": "401" inside an HTTP 200),
       sometimes as numbers, sometimes as strings, sometimes not at all. Raw
       codes must not travel past this module.

Mapping:
    "200"            → Ok(result)
    "404"            → UpstreamNotFound
    400..499         → UpstreamBadRequest
    >= 500           → UpstreamServerError
    anything else    → UpstreamServerError (absent, empty, non-numeric, 1xx/3xx)

The vendor's `msg` is carried verbatim as the error message.
"""

from typing import Any, Optional, Type

from erp_gateway.exceptions import (
    UpstreamBadRequest,
    UpstreamError,
    UpstreamNotFound,
    UpstreamServerError,
)
from erp_gateway.schemas.result import Err, Ok, Result
from erp_gateway.schemas.vendor import VendorResponse

SUCCESS_CODE = 200

_FALLBACK_MESSAGE = "The accounting service returned an error."


def parse_code(code: Any) -> Optional[int]:
    """Read a vendor code as an int; None when it is absent or not numeric."""
    if code is None or isinstance(code, bool):
        return None
    try:
        return int(str(code).strip())
    except ValueError:
        return None


def classify(code: Any) -> Optional[Type[UpstreamError]]:
    """Return the error class for a vendor code, or None for success."""
    parsed = parse_code(code)
    if parsed == SUCCESS_CODE:
        return None
    if parsed == 404:
        return UpstreamNotFound
    if parsed is not None and 400 <= parsed < 500:
        return UpstreamBadRequest
    return UpstreamServerError


def normalize(response: VendorResponse, operation: Optional[str] = None) -> Result[Any]:
    """
    Turn a vendor response into Ok(result) or Err(<taxonomy error>).

    Args:
        response:  Parsed vendor envelope.
        operation: Vendor operation name, recorded in the error context for logs.
    """
    error_cls = classify(response.code)
    if error_cls is None:
        return Ok(response.result)

    context = {"operation": operation} if operation else None
    return Err(
        error_cls(
            message=response.msg or _FALLBACK_MESSAGE,
            vendor_code=response.code,
            context=context,
        )
    )
