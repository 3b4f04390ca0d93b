"""
ERP Gateway - Result Type
==========================

What:  A discriminated result: `Ok(value)` XOR `Err(error)`.
Why:   The normalizer and the session mediator report outcomes instead of
       raising, so a caller can inspect a failure (its code, its message)
       before deciding whether to surface it.
How:   `Err` wraps one of the GatewayError subclasses; `unwrap()` either
       returns the value or raises the carried exception, which lets route
       handlers fall back to the global exception handlers.

Example:
    outcome = normalize(response)
    if not outcome.ok:
        logger.warning("vendor rejected: %s", outcome.code)
    rows = outcome.unwrap()
"""

from dataclasses import dataclass
from typing import ClassVar, Generic, TypeVar, Union

from erp_gateway.exceptions import GatewayError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Success variant carrying the data."""

    value: T
    ok: ClassVar[bool] = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failure variant carrying a taxonomy error (stable code + message)."""

    error: GatewayError
    ok: ClassVar[bool] = False

    @property
    def code(self) -> str:
        return self.error.error_code

    @property
    def message(self) -> str:
        return self.error.message

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]
