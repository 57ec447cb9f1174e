"""Blob storage on local disk.

All blobs live flat in one root directory:  <root>/<hex prefix>-<original name>
The store knows nothing about download ids; it only writes, finds and
deletes files.  Deletion is idempotent and never raises.
"""
import logging
import secrets
import time
from pathlib import Path
from typing import BinaryIO, List, Optional, Set, Tuple

from .errors import PayloadTooLargeError, StorageIOError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DEFAULT_NAME = "upload.bin"
PREFIX_BYTES = 3
MAX_NAME_ATTEMPTS = 16


def sanitize_filename(filename: Optional[str]) -> str:
    """Reduce a client-supplied filename to a safe basename."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    if not name or set(name) == {"."}:
        return DEFAULT_NAME
    return name


class BlobStore:
    """Stores uploaded byte streams as uniquely named files under *root*."""

    def __init__(self, root: str):
        self._root = Path(root)
        self._ensure_root()
        self._root = self._root.resolve()
        self._pending: Set[Path] = set()

    @property
    def root(self) -> Path:
        return self._root

    def _ensure_root(self) -> None:
        """Ensure the storage directory exists."""
        self._root.mkdir(parents=True, exist_ok=True)

    def _open_unique(self, name: str):
        for _ in range(MAX_NAME_ATTEMPTS):
            prefix = secrets.token_hex(PREFIX_BYTES)
            path = self._root / f"{prefix}-{name}"
            try:
                return path, path.open("xb")
            except FileExistsError:
                continue
        raise StorageIOError(f"could not allocate a unique name for {name!r}")

    async def put(self, source, original_name: str, max_bytes: int) -> Tuple[Path, int]:
        """Stream *source* to a new file and return ``(path, size)``.

        *source* is anything with an async ``read(n)``, such as a FastAPI
        ``UploadFile``.  The payload is rejected mid-stream as soon as it
        exceeds *max_bytes*; the partial file is removed before raising.

        The new file stays invisible to sweeps and purges until the caller
        has registered it and calls commit().

        Raises:
            PayloadTooLargeError: If more than *max_bytes* were sent.
            StorageIOError: If the file could not be written.
        """
        self._ensure_root()
        try:
            path, fh = self._open_unique(original_name)
        except OSError as e:
            raise StorageIOError(str(e)) from e
        self._pending.add(path)

        size = 0
        try:
            with fh:
                while True:
                    chunk = await source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > max_bytes:
                        raise PayloadTooLargeError(max_bytes)
                    fh.write(chunk)
        except PayloadTooLargeError:
            self._pending.discard(path)
            self.delete(path)
            logger.info("Rejected oversize upload %s (> %d bytes)", original_name, max_bytes)
            raise
        except BaseException as e:
            self._pending.discard(path)
            self.delete(path)
            if isinstance(e, OSError):
                raise StorageIOError(str(e)) from e
            raise

        logger.info(f"Saved file: {path} ({size} bytes)")
        return path, size

    def commit(self, stored_path) -> None:
        """Mark a blob written by put() as registered."""
        self._pending.discard(Path(stored_path))

    def get(self, stored_path) -> Optional[Path]:
        """Return the path if the blob still exists, else None."""
        path = Path(stored_path)
        if path.parent != self._root or not path.is_file():
            return None
        return path

    def open(self, stored_path) -> Optional[BinaryIO]:
        """Open a blob for reading, or return None if it is gone.

        The open handle keeps the content readable even if a sweep or an
        expiry unlinks the file while it is being streamed.
        """
        path = self.get(stored_path)
        if path is None:
            return None
        try:
            return path.open("rb")
        except FileNotFoundError:
            logger.debug("Blob vanished before it could be opened: %s", path)
            return None

    def delete(self, stored_path) -> bool:
        """Delete a blob.

        Returns True if a file was removed.  A missing file is not an error
        here; other I/O failures are logged and left for the next sweep.
        """
        path = Path(stored_path)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Delete skipped, already gone: %s", path)
            return False
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path, e)
            return False
        logger.debug("Deleted file: %s", path)
        return True

    def files(self) -> List[Path]:
        """Return every finished regular file in the storage root.

        Files still being written by an upload are left out, so a sweep or
        purge never deletes a blob before it is registered.
        """
        try:
            return [
                p for p in self._root.iterdir()
                if p.is_file() and p not in self._pending
            ]
        except FileNotFoundError:
            return []

    def sweep_expired(self, ttl_seconds: float, now: Optional[float] = None) -> int:
        """Delete every blob whose mtime is older than *ttl_seconds*."""
        if now is None:
            now = time.time()
        removed = 0
        for path in self.files():
            try:
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Sweep could not stat %s: %s", path, e)
                continue
            if now - mtime > ttl_seconds and self.delete(path):
                removed += 1
        return removed

    def purge(self) -> int:
        """Delete every blob in the storage root, tracked or not."""
        removed = 0
        for path in self.files():
            if self.delete(path):
                removed += 1
        return removed
