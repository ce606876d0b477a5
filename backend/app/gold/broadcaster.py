"""Fan-out of price updates to live stream subscribers."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .errors import GoldFeedError, SubscriberSendFailure
from .models import PriceRecord
from .query import QueryService
from .symbols import DEFAULT_SYMBOL

logger = logging.getLogger(__name__)

Send = Callable[[dict], Awaitable[None]]

DEFAULT_QUEUE_SIZE = 32
DEFAULT_SEND_TIMEOUT = 5.0


@dataclass(eq=False)
class Subscription:
    """One live subscriber. Created and destroyed only by the Broadcaster."""

    id: str
    symbols: frozenset[str]
    send: Send
    queue: asyncio.Queue
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None
    # Symbols that already received a published frame; the subscribe-time
    # snapshot is skipped for these so it never overtakes a newer update
    published: set[str] = field(default_factory=set)

    @property
    def is_active(self) -> bool:
        return not self.closed.is_set()


class Broadcaster:
    """Pushes each published record to every interested subscriber.

    Each subscriber gets a bounded queue drained by its own sender task, so
    ``publish`` never awaits a subscriber. A subscriber whose queue overflows,
    whose send times out, or whose send raises is dropped; the others are
    unaffected. The subscriber set is only touched from the event loop, and
    ``publish`` iterates over a snapshot of it.

    Lifecycle:
        broadcaster = Broadcaster(query_service)
        sub = await broadcaster.subscribe(websocket.send_json, {"XAUUSD"})
        broadcaster.publish(record)   # from the RefreshScheduler
        broadcaster.unsubscribe(sub)
        await broadcaster.close()
    """

    def __init__(
        self,
        query: QueryService,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self._query = query
        self._queue_size = queue_size
        self._send_timeout = send_timeout
        self._subs: dict[str, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def active_symbols(self) -> set[str]:
        """Symbols at least one live subscriber wants."""
        return {symbol for sub in self._subs.values() for symbol in sub.symbols}

    async def subscribe(self, send: Send, symbols: Iterable[str] | None = None) -> Subscription:
        """Register a subscriber and queue an immediate snapshot for each of its symbols.

        The snapshot comes from the cache, fetching through the QueryService on
        a miss. If that fetch fails the subscriber stays registered and simply
        waits for the next publish.
        """
        sub = Subscription(
            id=uuid.uuid4().hex,
            symbols=frozenset(symbols or (DEFAULT_SYMBOL,)),
            send=send,
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        self._subs[sub.id] = sub
        sub.task = asyncio.create_task(self._pump(sub), name=f"subscriber-{sub.id[:8]}")
        logger.info("Subscriber %s connected: %s (%d total)", sub.id[:8], sorted(sub.symbols), len(self._subs))

        try:
            for symbol in sorted(sub.symbols):
                try:
                    record, _ = await self._query.current_price(symbol)
                except GoldFeedError as e:
                    logger.warning("No snapshot for new subscriber %s on %s: %s", sub.id[:8], symbol, e)
                    continue
                if sub.is_active and symbol not in sub.published:
                    self._offer(sub, self._frame(record))
        except asyncio.CancelledError:
            self._remove(sub, "cancelled while subscribing")
            raise
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Stop delivery to a subscriber and release its sender task. Idempotent."""
        self._remove(sub, "unsubscribed")

    def publish(self, record: PriceRecord) -> int:
        """Queue one frame for every subscriber of the record's symbol.

        Returns the number of subscribers the frame was queued for.
        """
        frame = self._frame(record)
        queued = 0
        for sub in list(self._subs.values()):
            if record.symbol not in sub.symbols:
                continue
            sub.published.add(record.symbol)
            if self._offer(sub, frame):
                queued += 1
        logger.debug("Published %s to %d subscriber(s)", record.symbol, queued)
        return queued

    async def close(self) -> None:
        """Drop every subscriber and wait for their sender tasks to finish."""
        subs = list(self._subs.values())
        for sub in subs:
            self._remove(sub, "shutdown")
        tasks = [s.task for s in subs if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- Internal ---

    @staticmethod
    def _frame(record: PriceRecord) -> dict:
        return {
            "type": "gold_data",
            "data": record.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    def _offer(self, sub: Subscription, frame: dict) -> bool:
        try:
            sub.queue.put_nowait(frame)
        except asyncio.QueueFull:
            self._remove(sub, "outbound queue full")
            return False
        return True

    async def _pump(self, sub: Subscription) -> None:
        """Drain one subscriber's queue in order. Exits on the first failed send."""
        while sub.is_active:
            frame = await sub.queue.get()
            try:
                try:
                    async with asyncio.timeout(self._send_timeout):
                        await sub.send(frame)
                except TimeoutError:
                    raise SubscriberSendFailure(
                        f"send timed out after {self._send_timeout:.1f}s", {"subscriber": sub.id}
                    ) from None
                except Exception as e:
                    raise SubscriberSendFailure(str(e) or type(e).__name__, {"subscriber": sub.id}) from e
            except SubscriberSendFailure as e:
                self._remove(sub, str(e))
                return

    def _remove(self, sub: Subscription, reason: str) -> None:
        if self._subs.pop(sub.id, None) is None:
            return
        sub.closed.set()
        if sub.task is not None and sub.task is not asyncio.current_task():
            sub.task.cancel()
        logger.info("Subscriber %s removed (%s); %d remaining", sub.id[:8], reason, len(self._subs))
