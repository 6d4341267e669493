"""Bounded undo/redo history over the page array.

This module introduces :class:`HistoryStore`, a cursor-based list of deep
page snapshots. Saving after an undo drops the "future" branch, and the
oldest entries are discarded once the capacity is exceeded. Snapshots are
handed out as deep copies so callers can mutate them freely.
"""

from __future__ import annotations

import copy
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from .. import config
from ..models import HistoryEntry, Page


class HistoryStore:
    """Manage page history independently of the editing session."""

    def __init__(self, *, capacity: int = config.MAX_HISTORY_ENTRIES) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be greater than zero")
        self._capacity = capacity
        self._entries: List[HistoryEntry] = []
        self._cursor = -1
        self._is_restoring = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def is_restoring(self) -> bool:
        """Return whether a snapshot is currently being applied."""

        return self._is_restoring

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def save(self, pages: Sequence[Page]) -> bool:
        """Append a snapshot of ``pages`` after the cursor.

        Returns ``False`` without recording anything while a snapshot is
        being restored.
        """

        if self._is_restoring:
            return False
        del self._entries[self._cursor + 1:]
        self._entries.append(HistoryEntry(pages=copy.deepcopy(list(pages)), timestamp=time.time()))
        if len(self._entries) > self._capacity:
            self._entries.pop(0)
        self._cursor = len(self._entries) - 1
        return True

    def undo(self) -> Optional[List[Page]]:
        """Step back one entry and return a copy of it, or ``None`` at the oldest."""

        if not self.can_undo:
            return None
        self._cursor -= 1
        return copy.deepcopy(self._entries[self._cursor].pages)

    def redo(self) -> Optional[List[Page]]:
        """Step forward one entry and return a copy of it, or ``None`` at the newest."""

        if not self.can_redo:
            return None
        self._cursor += 1
        return copy.deepcopy(self._entries[self._cursor].pages)

    def current(self) -> Optional[List[Page]]:
        if self._cursor < 0:
            return None
        return copy.deepcopy(self._entries[self._cursor].pages)

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = -1

    def reset(self, pages: Sequence[Page]) -> None:
        """Clear the history and record ``pages`` as the new baseline."""

        self.clear()
        self.save(pages)

    @contextmanager
    def restoring(self) -> Iterator[None]:
        """Suppress :meth:`save` while a snapshot is applied."""

        self._is_restoring = True
        try:
            yield
        finally:
            self._is_restoring = False
