"""
ERP Gateway - Credit Count Event Bus
=====================================

What:  In-process publish/subscribe of vendor credit balances, keyed by company.
Why:   Every vendor call spends credits (kontör). After a call the gateway asks
       the vendor for the new balance and pushes it to every open live view of
       that company.
How:   One channel per company id, each channel a set of subscriber streams.
       A stream owns an unbounded asyncio.Queue; publishing is a synchronous
       put_nowait into each queue of that company, so it never blocks and
       never touches other companies' subscribers.
Who:   One instance per process, created in the lifespan handler
       (app.state.credit_bus) and closed at shutdown.

Delivery semantics:
    - At most once per emission, only to streams registered at publish time.
    - No backlog: a subscriber registered after a publish never sees it.
    - Every event is tagged with the resumption key `creditCount:{company_id}`.
      A reconnecting client presents that key and simply gets a fresh snapshot;
      the bus holds no history to replay.

Stream lifecycle:
    subscribe() ──▶ registered ──▶ snapshot event ──▶ published events ...
                        │
                        └── token.cancel() / stream.close() / bus.close()
                              → deregistered synchronously, iteration ends
                                (a snapshot still in flight is cancelled)
"""

import asyncio
import contextlib
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

SnapshotFn = Callable[[], Awaitable[int]]


def resumption_key(company_id: int) -> str:
    return f"creditCount:{company_id}"


class CreditCountEvent(BaseModel):
    """One credit balance observation for a company."""

    model_config = ConfigDict(frozen=True)

    company_id: int
    credit_count: int

    @property
    def key(self) -> str:
        return resumption_key(self.company_id)


class CancellationToken:
    """
    Cancellation signal for a live stream.

    Callbacks run synchronously inside cancel(), which is how a stream
    deregisters from the bus the moment its client goes away.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback; runs immediately if already cancelled."""
        if self._event.is_set():
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def wait(self) -> None:
        await self._event.wait()


_CLOSED = object()


class CreditCountStream:
    """
    Async iterator over one company's credit balance.

    Yields the snapshot first (if a snapshot function was given), then every
    value published for the company, until cancelled or closed.

    Usage:
        token = CancellationToken()
        async with bus.subscribe(company_id, token, snapshot) as stream:
            async for event in stream:
                await send(event)
    """

    def __init__(
        self,
        bus: "CreditCountBus",
        company_id: int,
        token: CancellationToken,
        snapshot: Optional[SnapshotFn] = None,
    ):
        self.bus = bus
        self.company_id = company_id
        self.token = token
        self._snapshot = snapshot
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._closed = False
        self._closed_event = asyncio.Event()

    @property
    def key(self) -> str:
        return resumption_key(self.company_id)

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: CreditCountEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        """Deregister from the bus and end iteration. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self.token.remove_callback(self.close)
        self.bus._unregister(self)
        self._closed_event.set()
        # Wake a consumer blocked on the queue
        self._queue.put_nowait(_CLOSED)

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> "CreditCountStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __aiter__(self) -> "CreditCountStream":
        return self

    async def _until_closed(self, awaitable: Awaitable[int]) -> object:
        """Await `awaitable`, giving up with _CLOSED as soon as the stream closes."""
        task = asyncio.ensure_future(awaitable)
        closed = asyncio.ensure_future(self._closed_event.wait())
        try:
            await asyncio.wait({task, closed}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            closed.cancel()

        if task.done():
            return task.result()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return _CLOSED

    async def __anext__(self) -> CreditCountEvent:
        if self._closed:
            raise StopAsyncIteration

        if self._snapshot is not None:
            snapshot, self._snapshot = self._snapshot, None
            try:
                value = await self._until_closed(snapshot())
            except BaseException:
                self.close()
                raise
            if value is _CLOSED or self._closed:
                raise StopAsyncIteration
            return CreditCountEvent(company_id=self.company_id, credit_count=value)

        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class CreditCountBus:
    """
    Process-wide credit count fan-out.

    Thread Safety:
        Meant for a single asyncio event loop (one uvicorn worker). publish()
        is synchronous and may be called from any coroutine on that loop.
    """

    def __init__(self):
        self._channels: Dict[int, Set[CreditCountStream]] = defaultdict(set)
        self._closed = False

    def publish(self, company_id: int, credit_count: int) -> int:
        """
        Broadcast a balance to the company's current subscribers.

        Returns:
            Number of subscribers the event was delivered to (0 is a no-op).
        """
        subscribers = self._channels.get(company_id)
        if not subscribers:
            return 0

        event = CreditCountEvent(company_id=company_id, credit_count=credit_count)
        for stream in list(subscribers):
            stream._deliver(event)

        logger.debug(
            "Published credit count %d for company %s to %d subscriber(s)",
            credit_count,
            company_id,
            len(subscribers),
        )
        return len(subscribers)

    def subscribe(
        self,
        company_id: int,
        token: Optional[CancellationToken] = None,
        snapshot: Optional[SnapshotFn] = None,
    ) -> CreditCountStream:
        """
        Register a live stream for a company.

        Registration happens here, before the snapshot is fetched, so a value
        published while the snapshot is in flight is still delivered.
        """
        if self._closed:
            raise RuntimeError("CreditCountBus is closed")

        stream = CreditCountStream(self, company_id, token or CancellationToken(), snapshot)
        self._channels[company_id].add(stream)
        stream.token.add_callback(stream.close)
        return stream

    def _unregister(self, stream: CreditCountStream) -> None:
        subscribers = self._channels.get(stream.company_id)
        if subscribers is None:
            return
        subscribers.discard(stream)
        if not subscribers:
            del self._channels[stream.company_id]

    def subscriber_count(self, company_id: Optional[int] = None) -> int:
        if company_id is not None:
            return len(self._channels.get(company_id, ()))
        return sum(len(s) for s in self._channels.values())

    def close(self) -> None:
        """End every open stream (application shutdown)."""
        self._closed = True
        for subscribers in list(self._channels.values()):
            for stream in list(subscribers):
                stream.close()
        self._channels.clear()
