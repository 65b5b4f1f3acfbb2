"""History management for completed generations."""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from src.core.models import HistoryEntry
from src.utils.rwlock import AsyncRWLock

logger = logging.getLogger(__name__)

MAX_HISTORY = 100

_entries_adapter = TypeAdapter(List[HistoryEntry])


def load_history_file(path: Union[str, Path]) -> List[HistoryEntry]:
    """Read history from disk.

    A missing or unreadable file yields an empty history.

    Args:
        path: History JSON file

    Returns:
        Entries, most recent first
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f"Could not read history file {path}: {e}")
        return []

    try:
        return _entries_adapter.validate_json(content)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid history file {path}: {e}")
        return []


def save_history_file(path: Union[str, Path], entries: List[HistoryEntry]) -> None:
    """Write history to disk as pretty-printed JSON."""
    data = [entry.model_dump() for entry in entries]
    Path(path).write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


class HistoryManager:
    """Bounded, most-recent-first log of completed generations.

    Every mutation happens under the write side of an :class:`AsyncRWLock`
    and the lock is released before the file is written. File writes are
    serialized separately and always write the latest state.

    Attributes:
        max_history: Maximum number of entries kept
        history_file: Where the log is persisted, or None to keep it in memory
    """

    def __init__(
        self,
        entries: Optional[List[HistoryEntry]] = None,
        history_file: Optional[Union[str, Path]] = None,
        max_history: int = MAX_HISTORY
    ):
        """Initialize history manager.

        Args:
            entries: Initial entries, most recent first
            history_file: File the log is saved to after each change
            max_history: Maximum number of entries to keep
        """
        self.max_history = max_history
        self.history_file = Path(history_file) if history_file else None
        self._entries: List[HistoryEntry] = list(entries or [])[:max_history]
        self._lock = AsyncRWLock()
        self._save_lock = asyncio.Lock()

    @classmethod
    def from_file(cls, history_file: Union[str, Path], max_history: int = MAX_HISTORY) -> "HistoryManager":
        """Create a manager populated from ``history_file``."""
        return cls(load_history_file(history_file), history_file, max_history)

    async def add(self, entry: HistoryEntry) -> None:
        """Insert an entry at the front, trim to ``max_history`` and persist.

        Persistence failures are logged and never raised.
        """
        async with self._lock.write():
            self._entries.insert(0, entry)
            if len(self._entries) > self.max_history:
                del self._entries[self.max_history:]
        await self.persist()

    async def clear(self) -> None:
        """Remove every entry and persist the empty log."""
        async with self._lock.write():
            self._entries.clear()
        await self.persist()

    async def get_all(self) -> List[HistoryEntry]:
        """Get a copy of all entries, most recent first."""
        async with self._lock.read():
            return list(self._entries)

    async def get_by_timestamp(self, timestamp: int) -> Optional[HistoryEntry]:
        """Find the entry recorded at ``timestamp`` (epoch ms)."""
        async with self._lock.read():
            for entry in self._entries:
                if entry.timestamp == timestamp:
                    return entry
        return None

    async def get_count(self) -> int:
        """Get number of entries in history."""
        async with self._lock.read():
            return len(self._entries)

    async def persist(self) -> bool:
        """Write the current log to ``history_file``.

        Returns:
            True if the file was written, False if there is no file or the
            write failed
        """
        if self.history_file is None:
            return False

        async with self._save_lock:
            entries = await self.get_all()
            try:
                await asyncio.to_thread(save_history_file, self.history_file, entries)
            except OSError as e:
                logger.error(f"Failed to save history to {self.history_file}: {e}")
                return False
        return True
