"""Single-shot scheduling on the UI thread.

Everything that must not run inline (the next analysis chunk, a debounced
history commit, a debounced autosave, a retry after backoff) goes through a
``Scheduler``: a callable taking a delay in milliseconds and a callback. The
default uses ``QTimer.singleShot`` so callbacks run on the Qt event loop;
tests inject a fake that records or runs callbacks directly.
"""

from __future__ import annotations

from typing import Callable, Optional

from PySide6.QtCore import QTimer

Scheduler = Callable[[int, Callable[[], None]], None]


def qt_scheduler(delay_ms: int, callback: Callable[[], None]) -> None:
    QTimer.singleShot(delay_ms, callback)


class Debouncer:
    """Coalesce bursts of :meth:`trigger` calls into one callback.

    Each trigger schedules a single-shot callback; only the most recent one
    is allowed to fire. :meth:`flush` runs a pending callback immediately.
    """

    def __init__(
        self,
        delay_ms: int,
        callback: Callable[[], None],
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.delay_ms = delay_ms
        self._callback = callback
        self._scheduler = scheduler or qt_scheduler
        self._generation = 0
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    def trigger(self) -> None:
        self._generation += 1
        self._pending = True
        generation = self._generation
        self._scheduler(self.delay_ms, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        if generation != self._generation or not self._pending:
            return
        self._pending = False
        self._callback()

    def flush(self) -> bool:
        """Run the pending callback now. Returns ``False`` if nothing was pending."""
        if not self._pending:
            return False
        self._generation += 1
        self._pending = False
        self._callback()
        return True

    def cancel(self) -> None:
        self._generation += 1
        self._pending = False
