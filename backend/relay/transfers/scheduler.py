"""Per-id expiration timers.

Each upload gets one DeferredDeletion.  When a timer fires it removes itself
from the timer table and hands the id, together with the stored path it was
armed for, to the ``on_expire`` callback; it never touches the registry or the
disk directly.  The callback is expected to re-check the registry, since a
download or a clear may have won the race and the id may since belong to a
newer upload.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str, Optional[str]], Awaitable[object]]


class DeferredDeletion:
    """Cancellable handle for one pending deletion."""

    def __init__(
        self,
        file_id: str,
        delay: float,
        on_fire: Callable[["DeferredDeletion"], Awaitable[None]],
        stored_path: Optional[str] = None,
    ) -> None:
        self.file_id = file_id
        self.stored_path = stored_path
        self.delay = delay
        self._on_fire = on_fire
        self._fired = False
        self._task: asyncio.Task = asyncio.create_task(
            self._run(), name=f"expire-{file_id}"
        )

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        self._fired = True
        await self._on_fire(self)

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        """Cancel the timer.  Returns False once it has started firing."""
        if self._fired or self._task.done():
            return False
        return self._task.cancel()

    async def wait(self) -> None:
        """Wait for the timer to finish firing or being cancelled."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class ExpirationScheduler:
    """Owns the id -> DeferredDeletion table."""

    def __init__(self, on_expire: ExpireCallback) -> None:
        self._on_expire = on_expire
        self._timers: Dict[str, DeferredDeletion] = {}
        self._firing: Set[DeferredDeletion] = set()

    def __len__(self) -> int:
        return len(self._timers)

    def is_armed(self, file_id: str) -> bool:
        return file_id in self._timers

    def get(self, file_id: str) -> Optional[DeferredDeletion]:
        return self._timers.get(file_id)

    def arm(
        self, file_id: str, ttl_seconds: float, stored_path: Optional[str] = None
    ) -> DeferredDeletion:
        """Schedule deletion of *file_id*, replacing any existing timer.

        *stored_path* is passed back to the callback so it can tell this
        upload apart from a later one that reused the id.
        """
        self.cancel(file_id)
        handle = DeferredDeletion(file_id, ttl_seconds, self._fire, stored_path)
        self._timers[file_id] = handle
        logger.debug("Armed expiry for %s in %ss", file_id, ttl_seconds)
        return handle

    def cancel(self, file_id: str) -> bool:
        """Cancel and forget the timer for *file_id* (no-op if absent)."""
        handle = self._timers.pop(file_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.debug("Cancelled expiry for %s", file_id)
        return True

    def cancel_all(self) -> int:
        """Cancel every pending timer and return how many there were."""
        handles = list(self._timers.values())
        self._timers.clear()
        for handle in handles:
            handle.cancel()
        return len(handles)

    async def _fire(self, handle: DeferredDeletion) -> None:
        # Only drop the table entry if it still belongs to this handle.
        if self._timers.get(handle.file_id) is handle:
            del self._timers[handle.file_id]
        self._firing.add(handle)
        try:
            await self._on_expire(handle.file_id, handle.stored_path)
        except Exception:
            logger.exception("Expiry callback failed for %s", handle.file_id)
        finally:
            self._firing.discard(handle)
