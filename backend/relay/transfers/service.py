"""Transfer service for Photo Relay.

Owns all relay state: the blob store, the id registry, the expiry timers
and the backstop sweeper.  One asyncio.Lock guards the registry and the
timer table together; disk I/O always happens outside the lock.

A stored file is deleted by whichever trigger reaches the registry first:
    expire()           - its TTL timer fired
    finish_download()  - it was delivered
    clear_all()        - everything was invalidated
The losers find the entry gone and do nothing.
"""
import asyncio
import logging
from typing import BinaryIO, List, Optional, Tuple

from relay.config import StorageSettings

from .blob_store import BlobStore, sanitize_filename
from .errors import ClientInputError, NotLiveError, StorageIOError
from .registry import IdentifierRegistry
from .scheduler import ExpirationScheduler
from .schemas import StoredFile
from .sweeper import Sweeper

logger = logging.getLogger(__name__)


class TransferService:
    """Service for relaying files from upload to one-shot download."""

    def __init__(
        self,
        store: BlobStore,
        ttl_seconds: float = 60.0,
        max_file_size_bytes: int = 100 * 1024 * 1024,
        sweep_interval_seconds: float = 30.0,
        clear_on_upload: bool = False,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._max_bytes = max_file_size_bytes
        self._clear_on_upload = clear_on_upload
        self._registry = IdentifierRegistry()
        self._scheduler = ExpirationScheduler(self.expire)
        self._sweeper = Sweeper(store, ttl_seconds, sweep_interval_seconds)
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "TransferService":
        return cls(
            BlobStore(settings.upload_dir),
            ttl_seconds=settings.ttl_seconds,
            max_file_size_bytes=settings.max_file_size_bytes,
            sweep_interval_seconds=settings.sweep_interval_seconds,
            clear_on_upload=settings.clear_on_upload,
        )

    @property
    def store(self) -> BlobStore:
        return self._store

    @property
    def registry(self) -> IdentifierRegistry:
        return self._registry

    @property
    def scheduler(self) -> ExpirationScheduler:
        return self._scheduler

    @property
    def sweeper(self) -> Sweeper:
        return self._sweeper

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the startup sweep and start the periodic one."""
        await self._sweeper.start()

    async def stop(self) -> None:
        """Stop the sweeper and drop every pending timer.

        Blobs stay on disk; the next startup sweep removes them once stale.
        """
        await self._sweeper.stop()
        async with self._lock:
            cancelled = self._scheduler.cancel_all()
        logger.info("Transfer service stopped (%d timers cancelled)", cancelled)

    # ------------------------------------------------------------------
    # Upload / download
    # ------------------------------------------------------------------

    async def upload(self, source, filename: Optional[str]) -> StoredFile:
        """Store an uploaded stream, register it and arm its expiry timer.

        With ``clear_on_upload`` the earlier files are cleared only once the
        new blob is safely on disk, so a rejected upload changes nothing.

        Args:
            source: Object with an async ``read(n)`` (e.g. UploadFile), or None
            filename: Client-supplied filename

        Returns:
            The registered StoredFile

        Raises:
            ClientInputError: If no file was supplied
            PayloadTooLargeError: If the file exceeds the size ceiling
            StorageIOError: If the file could not be written
        """
        if source is None:
            raise ClientInputError("no file")

        name = sanitize_filename(filename)
        path, size = await self._store.put(source, name, self._max_bytes)

        # The new blob is still pending, so the purge inside clear_all skips it.
        if self._clear_on_upload:
            await self.clear_all()

        async with self._lock:
            try:
                entry = self._registry.create(path, name, size)
            except RuntimeError as e:
                self._store.commit(path)
                self._store.delete(path)
                raise StorageIOError(str(e)) from e
            self._scheduler.arm(entry.id, self._ttl, entry.stored_path)
            self._store.commit(path)

        logger.info(f"File uploaded: {entry.original_name} ({entry.size} bytes) as {entry.id}")
        return entry

    def open_download(self, file_id: str) -> Tuple[StoredFile, BinaryIO]:
        """Resolve *file_id* and open its blob for streaming.

        The caller owns the returned handle and must close it.

        Raises:
            NotLiveError: If the id is unknown, delivered, expired or cleared,
                or its blob was deleted before it could be opened
        """
        entry = self._registry.resolve(file_id)
        if entry is None:
            raise NotLiveError(file_id)
        fh = self._store.open(entry.stored_path)
        if fh is None:
            raise NotLiveError(file_id)
        return entry, fh

    async def finish_download(self, file_id: str, stored_path: Optional[str] = None) -> bool:
        """Delete *file_id* after it was delivered.

        *stored_path* pins the upload that was downloaded, so an id reused
        by a newer upload is not touched.

        Returns False if another trigger already removed it.
        """
        async with self._lock:
            entry = self._registry.remove(file_id, stored_path)
            if entry is not None:
                self._scheduler.cancel(file_id)
        if entry is None:
            logger.debug("Download cleanup for %s found nothing to delete", file_id)
            return False
        self._store.delete(entry.stored_path)
        logger.info("Delivered and deleted %s (%s)", file_id, entry.original_name)
        return True

    async def expire(self, file_id: str, stored_path: Optional[str] = None) -> bool:
        """Delete *file_id* because its TTL elapsed.

        *stored_path* is the blob the timer was armed for; a newer upload
        holding the same id is left alone.

        Returns False if another trigger already removed it.
        """
        async with self._lock:
            entry = self._registry.remove(file_id, stored_path)
        if entry is None:
            logger.debug("Expiry for %s found nothing to delete", file_id)
            return False
        self._store.delete(entry.stored_path)
        logger.info("Expired and deleted %s (%s)", file_id, entry.original_name)
        return True

    # ------------------------------------------------------------------
    # Listing / invalidation
    # ------------------------------------------------------------------

    def list_files(self) -> List[StoredFile]:
        return self._registry.list()

    async def clear_all(self) -> int:
        """Invalidate every tracked file and delete stray blobs.

        Deletion failures are logged by the store and never raised.

        Returns:
            Number of tracked entries invalidated
        """
        async with self._lock:
            cancelled = self._scheduler.cancel_all()
            removed = self._registry.clear()

        for entry in removed:
            self._store.delete(entry.stored_path)
        strays = self._store.purge()

        logger.info(
            "Cleared %d files (%d timers cancelled, %d stray files removed)",
            len(removed), cancelled, strays,
        )
        return len(removed)

    async def sweep(self) -> int:
        """Run one backstop sweep now."""
        return await self._sweeper.sweep_once()
