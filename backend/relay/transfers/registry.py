"""In-memory registry of live download ids.

The registry is the single source of truth for which ids resolve.  It holds
no lock of its own: none of its methods await, so each call is atomic on the
event loop, and TransferService serialises multi-step changes.
"""
import logging
import secrets
from pathlib import Path
from typing import Dict, List, Optional

from .schemas import StoredFile

logger = logging.getLogger(__name__)

ID_BYTES = 3
MAX_ID_ATTEMPTS = 64


class IdentifierRegistry:
    """Maps short opaque ids to stored files."""

    def __init__(self) -> None:
        self._entries: Dict[str, StoredFile] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._entries

    def _new_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            file_id = secrets.token_hex(ID_BYTES)
            if file_id not in self._entries:
                return file_id
            logger.debug("Id collision on %s, regenerating", file_id)
        raise RuntimeError("Could not generate a free download id")

    def create(self, stored_path, original_name: str, size: int) -> StoredFile:
        """Register a stored blob under a fresh id and return the entry."""
        entry = StoredFile(
            id=self._new_id(),
            original_name=original_name,
            stored_path=str(stored_path),
            size=size,
        )
        self._entries[entry.id] = entry
        return entry

    def resolve(self, file_id: str) -> Optional[StoredFile]:
        """Return the entry if it is registered and its blob still exists."""
        entry = self._entries.get(file_id)
        if entry is None or not Path(entry.stored_path).is_file():
            return None
        return entry

    def remove(self, file_id: str, stored_path=None) -> Optional[StoredFile]:
        """Pop and return the entry, or None if another trigger got there first.

        With *stored_path*, only an entry for that blob is removed; an id
        reused by a newer upload is left alone.
        """
        entry = self._entries.get(file_id)
        if entry is None:
            return None
        if stored_path is not None and entry.stored_path != str(stored_path):
            logger.debug("Id %s now belongs to another upload, not removing", file_id)
            return None
        return self._entries.pop(file_id)

    def list(self) -> List[StoredFile]:
        """Return live entries, oldest first.

        Entries whose blob vanished out-of-band are skipped, not repaired.
        """
        entries = [e for e in self._entries.values() if Path(e.stored_path).is_file()]
        return sorted(entries, key=lambda e: e.created_at)

    def clear(self) -> List[StoredFile]:
        """Empty the registry and return everything that was in it."""
        removed = list(self._entries.values())
        self._entries.clear()
        return removed
