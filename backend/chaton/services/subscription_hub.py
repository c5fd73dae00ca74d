"""
Snapshot fan-out for live conversation subscriptions.

Each subscription owns a queue and a pump task, so snapshot callbacks run
on the event loop after the write that produced them has returned.
"""

import asyncio
from typing import Callable, Dict, List, Union

from ..utils.logging_config import get_logger

logger = get_logger(__name__)


SnapshotCallback = Callable[["Snapshot"], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """A live listener on one conversation's message query."""

    def __init__(self, hub: "SnapshotHub", chat_id: str,
                 on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self.chat_id = chat_id
        self.closed = False
        self._hub = hub
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._queue: "asyncio.Queue[Union[Snapshot, Exception]]" = asyncio.Queue()
        self._task = asyncio.get_running_loop().create_task(self._pump())

    def deliver(self, snapshot: "Snapshot") -> None:
        if not self.closed:
            self._queue.put_nowait(snapshot)

    def fail(self, error: Exception) -> None:
        if not self.closed:
            self._queue.put_nowait(error)

    async def drain(self) -> None:
        """Wait until every queued item has been handed to a callback."""
        if not self.closed:
            await self._queue.join()

    def close(self) -> None:
        """Stop delivery. Safe to call more than once, including from a callback."""
        if self.closed:
            return
        self.closed = True
        self._hub.unsubscribe(self)
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        try:
            current = asyncio.current_task()
        except RuntimeError:
            # Closed from synchronous code with no loop running
            current = None
        if self._task is not current and not self._task.done():
            self._task.cancel()

    async def _pump(self) -> None:
        while not self.closed:
            item = await self._queue.get()
            try:
                if isinstance(item, Exception):
                    self.close()
                    self._on_error(item)
                    return
                self._on_snapshot(item)
            except Exception:
                logger.exception(f"Snapshot listener for chat {self.chat_id} raised")
            finally:
                self._queue.task_done()


class SnapshotHub:
    """Registers subscriptions per conversation and broadcasts to them."""

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, chat_id: str, on_snapshot: SnapshotCallback,
                  on_error: ErrorCallback) -> Subscription:
        subscription = Subscription(self, chat_id, on_snapshot, on_error)
        self._subscriptions.setdefault(chat_id, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.chat_id)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            self._subscriptions.pop(subscription.chat_id, None)

    def listeners(self, chat_id: str) -> List[Subscription]:
        return list(self._subscriptions.get(chat_id, []))

    def broadcast(self, snapshot: "Snapshot") -> None:
        for subscription in self.listeners(snapshot.chat_id):
            subscription.deliver(snapshot)

    def broadcast_error(self, chat_id: str, error: Exception) -> None:
        for subscription in self.listeners(chat_id):
            subscription.fail(error)

    def active_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    async def flush(self) -> None:
        """Wait until all queued snapshots have been delivered."""
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                await subscription.drain()

    def close_all(self) -> None:
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                subscription.close()

