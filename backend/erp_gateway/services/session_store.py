"""
ERP Gateway - Caller Session Store
===================================

What:  Keeps one SessionContext per caller session, keyed by the session cookie.
How:   In-memory dict. `get` hands out a copy; changes become visible to other
       requests only after `save` (read-modify-write, last write wins).
Who:   Written by the sign-in flow (`create`) and by the session/vendor routes
       (`save`); emptied on logout (`destroy`) and on idle expiry.

Expiry:
    Every `get` and `save` stamps the session's last-seen time. A session idle
    for longer than SESSION_IDLE_TTL_SECONDS reads as missing and is dropped.
    Abandoned sessions nobody reads again are evicted by a sweep that runs
    every _SWEEP_EVERY writes. A TTL of 0 disables expiry.

Concurrency:
    No optimistic-concurrency guard. Two concurrent company switches from the
    same caller race and the later save wins.

Production Upgrade Path:
    This store works for a single-process deployment. For multiple workers,
    back it with Redis (same get/save/destroy surface, JSON-serialized
    SessionContext via model_dump_json/model_validate_json, EXPIRE for idle TTL).
"""

import logging
import secrets
import time
from typing import Callable, Dict, Optional

from erp_gateway.config import settings
from erp_gateway.exceptions import GatewayError
from erp_gateway.schemas.session import SessionContext

logger = logging.getLogger(__name__)

_SWEEP_EVERY = 100


class SessionStoreError(GatewayError):
    """The store refused a write (e.g. it was closed during shutdown)."""


class SessionStore:
    """Process-local caller session storage."""

    def __init__(
        self,
        idle_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sessions: Dict[str, SessionContext] = {}
        self._last_seen: Dict[str, float] = {}
        self._idle_ttl = (
            settings.session_idle_ttl_seconds if idle_ttl_seconds is None else idle_ttl_seconds
        )
        self._clock = clock
        self._writes = 0
        self._closed = False

    def create(self, user_id: int, role: str = "user") -> SessionContext:
        """Start a caller session for a signed-in user and return its context."""
        session_id = secrets.token_urlsafe(32)
        context = SessionContext(caller_session_id=session_id, user_id=user_id, role=role)
        self.save(context)
        logger.info("Caller session created for user %s", user_id)
        return context.model_copy()

    def _expired(self, session_id: str, now: float) -> bool:
        if not self._idle_ttl:
            return False
        return now - self._last_seen.get(session_id, now) > self._idle_ttl

    def get(self, session_id: str) -> Optional[SessionContext]:
        context = self._sessions.get(session_id)
        if context is None:
            return None

        now = self._clock()
        if self._expired(session_id, now):
            self._remove(session_id)
            logger.info("Caller session of user %s expired", context.user_id)
            return None

        self._last_seen[session_id] = now
        return context.model_copy()

    def save(self, context: SessionContext) -> None:
        if self._closed:
            raise SessionStoreError(
                message="Session state could not be saved.",
                context={"reason": "store closed"},
            )
        now = self._clock()
        self._sessions[context.caller_session_id] = context.model_copy()
        self._last_seen[context.caller_session_id] = now

        self._writes += 1
        if self._writes % _SWEEP_EVERY == 0:
            self.evict_expired()

    def evict_expired(self) -> int:
        """
        Drop every session idle past the TTL.

        Returns:
            Number of sessions removed.
        """
        now = self._clock()
        expired = [sid for sid in self._sessions if self._expired(sid, now)]
        for session_id in expired:
            self._remove(session_id)

        if expired:
            logger.debug("Evicted %d idle caller session(s)", len(expired))
        return len(expired)

    def _remove(self, session_id: str) -> Optional[SessionContext]:
        self._last_seen.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    def destroy(self, session_id: str) -> None:
        """Drop the caller session (logout). Unknown IDs are ignored."""
        if self._remove(session_id) is not None:
            logger.info("Caller session destroyed")

    def close(self) -> None:
        self._closed = True
        self._sessions.clear()
        self._last_seen.clear()

    def __len__(self) -> int:
        return len(self._sessions)
