"""
Order Stream

Live order lists for dashboards and customer order pages.

A stream delivers full snapshots (newest order first), never diffs: one when
it starts and one after every committed order change it is interested in.
Snapshots are buffered in a bounded queue; when the consumer falls behind the
oldest pending snapshot is dropped, since a newer one supersedes it.

USAGE:
    async with stream_all(context) as stream:
        async for orders in stream:
            ...

    stream = stream_by_customer(context, customer_id)
    stream.start()
    orders = await stream.__anext__()
    stream.stop()

A stream whose snapshot load fails terminates: iteration raises that error.
Stopped streams cannot be restarted.
"""
import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from storefront.schemas.order import OrderFilter, OrderRead
from storefront.services.change_feed import ChangeSubscription, OrderChange
from storefront.services.order_store import OrderStore

if TYPE_CHECKING:
    from storefront.core.context import AppContext


logger = logging.getLogger(__name__)

# Queued after the last snapshot of a finished stream
_END = object()


class StreamState(str, Enum):
    NEW = "NEW"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"


class OrderStream:
    """Explicit start/stop handle over a bounded queue of order snapshots."""

    def __init__(self, context: "AppContext", customer_id: Optional[int] = None):
        self.context = context
        self.customer_id = customer_id
        self.state = StreamState.NEW
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=max(1, context.settings.ORDER_STREAM_BUFFER)
        )
        self._subscription: Optional[ChangeSubscription] = None
        self._task: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None
        self._finished = False

    # ==================== LIFECYCLE ====================

    def start(self) -> "OrderStream":
        """Subscribe to changes and begin loading snapshots. Idempotent while running."""
        if self.state == StreamState.RUNNING:
            return self
        if self.state == StreamState.STOPPED:
            raise RuntimeError("OrderStream cannot be restarted once stopped")

        # Subscribe before the first load so no change can slip in between
        self._subscription = self.context.change_feed.subscribe(self._wants)
        self._task = asyncio.get_running_loop().create_task(self._pump())
        self.state = StreamState.RUNNING
        logger.debug(f"Order stream started (customer={self.customer_id})")
        return self

    def stop(self) -> None:
        """Detach from the change feed and cancel the pump. Idempotent."""
        if self.state == StreamState.STOPPED:
            return
        self.state = StreamState.STOPPED
        self._detach()

        # Pending snapshots are discarded; consumers see the end of the stream
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)
        logger.debug(f"Order stream stopped (customer={self.customer_id})")

    @property
    def running(self) -> bool:
        return self.state == StreamState.RUNNING

    def _detach(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    # ==================== PUMP ====================

    def _wants(self, change: OrderChange) -> bool:
        return self.customer_id is None or change.customer_id == self.customer_id

    async def _load_snapshot(self) -> List[OrderRead]:
        async with self.context.session_factory() as session:
            store = OrderStore(session, self.context)
            return await store.list(OrderFilter(customer_id=self.customer_id))

    async def _pump(self) -> None:
        try:
            while True:
                snapshot = await self._load_snapshot()
                self._offer(snapshot)
                await self._subscription.wait()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Order stream terminated by store error: {e}")
            self._error = e
            self.state = StreamState.STOPPED
            if self._subscription is not None:
                self._subscription.close()
            self._offer(_END)

    def _offer(self, item) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    # ==================== CONSUMPTION ====================

    def __aiter__(self) -> "OrderStream":
        if self.state == StreamState.NEW:
            self.start()
        return self

    async def __anext__(self) -> List[OrderRead]:
        if self.state == StreamState.NEW:
            raise RuntimeError("OrderStream is not started")

        if not self._finished:
            item = await self._queue.get()
            if item is not _END:
                return item
            self._finished = True

        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def __aenter__(self) -> "OrderStream":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()


def stream_all(context: "AppContext") -> OrderStream:
    """Stream of every order. Not started."""
    return OrderStream(context)


def stream_by_customer(context: "AppContext", customer_id: int) -> OrderStream:
    """Stream of one customer's orders only. Not started."""
    return OrderStream(context, customer_id=customer_id)
