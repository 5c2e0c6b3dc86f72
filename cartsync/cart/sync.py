"""
Remote synchronization discipline.

One RemoteSyncQueue per identity. At most one ``replace`` is in flight; a
request that arrives meanwhile takes the single pending slot, replacing any
older pending request. A burst of N mutations therefore costs at most two
network calls: the one already in flight and one carrying the final state.

Requests are ordered by ``(epoch, version)``. The epoch advances every time a
merged snapshot is adopted on sign-in (merges restart versions at 0), so a
new session's version 1 still outranks an old session's version 7. Requests
ranking below the newest one already submitted are dropped.
"""
import asyncio
from typing import Callable, Optional, Tuple

from cartsync.logging import get_logger, sanitize_id_for_logging
from .models import CartSnapshot
from .remote import RemoteCartStore

logger = get_logger(__name__)

SyncOrder = Tuple[int, int]


class RemoteSyncQueue:
    """Single-flight, latest-wins push queue for one identity."""

    def __init__(
        self,
        identity: str,
        remote: RemoteCartStore,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_ack: Optional[Callable[[SyncOrder], None]] = None,
    ):
        self.identity = identity
        self._remote = remote
        self._on_error = on_error
        self._on_ack = on_ack
        self._pending: Optional[Tuple[SyncOrder, CartSnapshot]] = None
        self._task: Optional[asyncio.Task] = None
        self._latest: Optional[SyncOrder] = None
        self.in_flight: Optional[SyncOrder] = None
        self.acked: Optional[SyncOrder] = None
        self.last_error: Optional[Exception] = None
        self.calls = 0

    @property
    def is_busy(self) -> bool:
        return self._pending is not None or (self._task is not None and not self._task.done())

    def submit(self, snapshot: CartSnapshot, epoch: int = 0) -> bool:
        """Queue a full-replace of ``snapshot``; returns False if it was stale."""
        order = (epoch, snapshot.version)
        if self._latest is not None and order < self._latest:
            logger.debug(f"Dropping stale sync {order} < {self._latest}")
            return False
        if self.acked is not None and order <= self.acked:
            return False

        self._latest = order
        # Copy now: the engine keeps mutating after this returns
        self._pending = (order, snapshot.copy())
        self._ensure_worker()
        return True

    def _ensure_worker(self) -> None:
        if self._task is not None and not self._task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; flush() will send it
            return
        self._task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            order, snapshot = self._pending
            self._pending = None
            self.in_flight = order
            self.calls += 1
            try:
                await self._remote.replace(self.identity, snapshot)
            except Exception as e:
                self.last_error = e
                logger.warning(
                    f"Cart sync {order} failed for {sanitize_id_for_logging(self.identity)}: {e}"
                )
                if self._on_error:
                    self._on_error(e)
                continue
            finally:
                self.in_flight = None

            if self.acked is None or order > self.acked:
                self.acked = order
                self.last_error = None
                if self._on_ack:
                    self._on_ack(order)
            else:
                logger.debug(f"Ignoring superseded sync completion {order}")

    async def flush(self) -> None:
        """Wait until nothing is pending or in flight."""
        while True:
            self._ensure_worker()
            task = self._task
            if task is None or task.done():
                if self._pending is None:
                    return
                continue
            await task
