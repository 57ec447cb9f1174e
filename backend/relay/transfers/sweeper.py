"""Periodic backstop sweep of the storage directory.

Independent of the per-id timers: every ``interval`` seconds, delete any blob
whose mtime is older than the TTL.  This catches files whose timer was lost.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .blob_store import BlobStore

logger = logging.getLogger(__name__)


class Sweeper:
    """Background task that enforces the TTL by file age."""

    def __init__(self, store: BlobStore, ttl_seconds: float, interval_seconds: float) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._interval = interval_seconds
        self._sweep_task: Optional[asyncio.Task] = None  # type: ignore[type-arg]
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start(self) -> None:
        """Sweep once, then start the background loop."""
        await self.sweep_once()
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Sweeper started (TTL=%ss, interval=%ss)", self._ttl, self._interval
        )

    async def stop(self) -> None:
        """Cancel the background loop."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        logger.info("Sweeper stopped")

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.sweep_once()

    async def sweep_once(self) -> int:
        """Delete expired blobs.  Returns -1 if a sweep was already running."""
        if self._running:
            logger.debug("Sweep already in progress, skipping this cycle")
            return -1
        self._running = True
        try:
            removed = await asyncio.to_thread(self._store.sweep_expired, self._ttl)
        except Exception:
            logger.exception("Sweep failed")
            return 0
        finally:
            self._running = False
        if removed:
            logger.info("Sweep: removed %d expired files", removed)
        return removed
