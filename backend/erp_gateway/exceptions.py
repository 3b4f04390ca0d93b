"""
ERP Gateway - Custom Exception Hierarchy
=========================================

What:  Application-specific exceptions for the vendor proxy and its collaborators.
How:   Each exception carries a human-readable message, an optional context dict,
       a stable machine-readable `error_code` and the HTTP status it maps to.
       Global exception handlers (registered in main.py) turn them into
       structured JSON error responses.
Who:   Raised by services; caught by global handlers or carried inside `Err`
       results (see schemas/result.py).

Exception Hierarchy:
    GatewayError (base)
    ├── NoCompanySelected        → 400 (caller must pick a company first)
    ├── ConfigurationError       → 500 (malformed request construction)
    ├── UnauthorizedError        → 401 (no caller session)
    ├── ForbiddenError           → 403 (company not assigned to the user)
    ├── NotFoundError            → 404 (local record missing)
    ├── PartialFailureError      → 502 (vendor call succeeded, local step failed)
    ├── TransportError           → 503 (network/timeout talking to the vendor)
    └── UpstreamError            (vendor answered with a non-200 code)
        ├── UpstreamAuthFailed   → 502
        ├── UpstreamBadRequest   → 400
        ├── UpstreamNotFound     → 404
        └── UpstreamServerError  → 502

Security Note:
    `message` is safe to return to API consumers. `context` may hold vendor
    URLs, company ids or raw codes and is only ever logged server-side.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """
    Base exception for all ERP Gateway application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    error_code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class NoCompanySelected(GatewayError):
    """
    Raised when a vendor operation is requested before a company was selected.

    The vendor login needs the company's credentials, so nothing can be sent
    upstream until the caller session carries a `selected_company_id`.
    """

    error_code = "no_company_selected"
    status_code = 400

    def __init__(
        self,
        message: str = "No company is selected for this session.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(GatewayError):
    """
    Raised when a vendor request cannot be constructed from its inputs.

    This is a programmer error (empty projection, unknown operation, invalid
    filter operator), not something the end user can fix.
    """

    error_code = "configuration_error"
    status_code = 500

    def __init__(
        self,
        message: str = "The vendor request could not be constructed.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UnauthorizedError(GatewayError):
    """Raised when a request carries no valid caller session."""

    error_code = "unauthorized"
    status_code = 401

    def __init__(
        self,
        message: str = "You need to sign in to perform this action.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(GatewayError):
    """Raised when the caller may not access the requested company."""

    error_code = "forbidden"
    status_code = 403

    def __init__(
        self,
        message: str = "You do not have access to this company.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(GatewayError):
    """
    Raised when a requested local resource does not exist.

    SQLAlchemy returns None for missing records; the registry converts that
    into NotFoundError so routes never deal with None.
    """

    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class PartialFailureError(GatewayError):
    """
    Raised when a vendor call succeeded but the local step after it failed.

    Vendor calls and local persistence never share an atomic unit, so the
    caller is told explicitly instead of the operation being retried.
    """

    error_code = "partial_failure"
    status_code = 502

    def __init__(
        self,
        message: str = "The vendor accepted the request but the result could not be saved.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TransportError(GatewayError):
    """
    Raised when the vendor could not be reached or answered with garbage.

    What:    Connection refused, DNS failure, timeout, or a non-JSON body.
    HTTP:    503 Service Unavailable
    Never retried by the gateway; retry is the caller's decision.
    """

    error_code = "transport_error"
    status_code = 503

    def __init__(
        self,
        message: str = "The accounting service could not be reached. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UpstreamError(GatewayError):
    """
    Base for vendor-level rejections (the vendor answered, with a non-200 code).

    The vendor's `msg` is carried verbatim as `message`; the raw code stays in
    `context["vendor_code"]` for logging only.
    """

    error_code = "upstream_error"
    status_code = 502

    def __init__(
        self,
        message: str = "The accounting service rejected the request.",
        vendor_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if vendor_code is not None:
            ctx["vendor_code"] = vendor_code
        super().__init__(message=message, context=ctx)
        self.vendor_code = vendor_code


class UpstreamAuthFailed(UpstreamError):
    """Raised when the vendor rejects the login for the selected company."""

    error_code = "upstream_auth_failed"
    status_code = 502


class UpstreamBadRequest(UpstreamError):
    """Vendor 4xx codes (other than 404)."""

    error_code = "upstream_bad_request"
    status_code = 400


class UpstreamNotFound(UpstreamError):
    """Vendor code 404."""

    error_code = "upstream_not_found"
    status_code = 404


class UpstreamServerError(UpstreamError):
    """Vendor 5xx codes, and any code that cannot be read as a number."""

    error_code = "upstream_server_error"
    status_code = 502
