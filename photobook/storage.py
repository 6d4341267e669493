# storage.py
"""Book persistence and autosave with structured logging and metrics.

Books are stored as one JSON document per book id. :class:`AutosaveManager`
debounces saves requested by the editor, retries failed writes with
exponential backoff and never lets a storage failure reach the editing
flow. All attempts log with a correlation identifier (``cid``) so a single
save can be traced across retries. Basic metrics are recorded via the
``autosave_metrics`` instance which tracks success, retry and failure counts
as well as observed durations.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence, Union

from . import config
from .errors import StorageError
from .models import BookDocument, Page
from .scheduling import Debouncer, Scheduler, qt_scheduler

LOGGER = logging.getLogger(__name__)

_BOOK_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class BookStore(Protocol):
    """Key-value document store keyed by book id."""

    def load(self, book_id: str) -> Optional[BookDocument]:
        ...

    def save(self, document: BookDocument) -> None:
        ...

    def update(self, book_id: str, **fields: Any) -> BookDocument:
        ...

    def delete(self, book_id: str) -> bool:
        ...


class JsonBookStore:
    """Stores each book as ``<root>/<book_id>.json``.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a crash mid-write never leaves a truncated document.
    """

    def __init__(self, root: Union[str, Path] = config.AUTOSAVE_PATH):
        self.root = Path(root)

    def path_for(self, book_id: str) -> Path:
        if not _BOOK_ID_PATTERN.match(book_id or ""):
            raise StorageError(f"Invalid book id: {book_id!r}")
        return self.root / f"{book_id}.json"

    def load(self, book_id: str) -> Optional[BookDocument]:
        path = self.path_for(book_id)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            return BookDocument.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise StorageError(f"Failed to load book {book_id}: {exc}") from exc

    def save(self, document: BookDocument) -> None:
        path = self.path_for(document.id)
        payload = document.to_dict()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{document.id}-", suffix=".tmp", dir=self.root)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.remove(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to save book {document.id}: {exc}") from exc

    def update(self, book_id: str, **fields: Any) -> BookDocument:
        """Replace top-level fields of a book, creating the book if needed."""
        document = self.load(book_id) or BookDocument(id=book_id)
        for name, value in fields.items():
            if name == "id" or not hasattr(document, name):
                raise StorageError(f"Unknown book field: {name}")
            setattr(document, name, value)
        self.save(document)
        return document

    def delete(self, book_id: str) -> bool:
        path = self.path_for(book_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete book {book_id}: {exc}") from exc
        return True

    def list_books(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))


def safe_load(store: BookStore, book_id: str) -> Optional[BookDocument]:
    """Load a book, logging and swallowing storage failures."""
    try:
        return store.load(book_id)
    except StorageError as exc:
        LOGGER.error("load failed", extra={"book_id": book_id, "error": str(exc)})
        return None


class _AutosaveMetrics:
    """Simple in-memory metrics collector."""

    def __init__(self) -> None:
        self.counters: Counter[str] = Counter()
        self.durations: list[float] = []

    def record(self, name: str, duration: float | None = None) -> None:
        self.counters[name] += 1
        if duration is not None:
            self.durations.append(duration)

    def reset(self) -> None:
        self.counters.clear()
        self.durations.clear()


autosave_metrics = _AutosaveMetrics()


@dataclass(slots=True)
class _AutosaveContext:
    """Holds state shared across autosave attempts."""

    cid: str
    book_id: str
    pages: List[Page]
    log: logging.LoggerAdapter


class AutosaveManager:
    """Debounced, retrying saves of the page array for one book."""

    def __init__(
        self,
        store: BookStore,
        book_id: str,
        *,
        debounce_ms: int = config.AUTOSAVE_DEBOUNCE_MS,
        scheduler: Optional[Scheduler] = None,
        retry_scheduler: Optional[Scheduler] = None,
        max_retries: int = config.AUTOSAVE_MAX_RETRIES,
        initial_backoff_ms: int = config.AUTOSAVE_INITIAL_BACKOFF_MS,
    ):
        self.store = store
        self.book_id = book_id
        self._scheduler = scheduler or qt_scheduler
        self._retry_scheduler = retry_scheduler or self._scheduler
        self._max_retries = max_retries
        self._initial_backoff_ms = initial_backoff_ms
        self._debouncer = Debouncer(debounce_ms, self.perform_autosave, self._scheduler)
        self._pending_pages: Optional[List[Page]] = None
        self._retry_scheduled = False
        self.last_error: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def schedule(self, pages: Sequence[Page]) -> None:
        """Request a save of ``pages``; bursts of requests collapse into one write."""
        self._pending_pages = copy.deepcopy(list(pages))
        self._debouncer.trigger()

    def flush(self) -> None:
        """Write a pending save immediately."""
        self._debouncer.flush()

    def perform_autosave(self) -> None:
        """Persist the pending pages with retries and structured logs."""
        if self._pending_pages is None or self._retry_scheduled:
            return
        pages = self._pending_pages
        self._pending_pages = None

        cid = uuid.uuid4().hex
        log = logging.LoggerAdapter(LOGGER, {"cid": cid})
        context = _AutosaveContext(cid=cid, book_id=self.book_id, pages=pages, log=log)
        self._attempt(context, attempt=1, backoff_ms=self._initial_backoff_ms)

    def _attempt(self, context: _AutosaveContext, *, attempt: int, backoff_ms: int) -> None:
        start = time.perf_counter()
        try:
            self.store.update(context.book_id, pages=context.pages)
        except (StorageError, OSError) as exc:
            self._handle_error(context, attempt=attempt, backoff_ms=backoff_ms, start=start, error=exc)
            return

        duration = (time.perf_counter() - start) * 1000
        autosave_metrics.record("success", duration)
        self.last_error = None
        context.log.info(
            "autosave complete",
            extra={"book_id": context.book_id, "attempt": attempt, "duration_ms": duration},
        )
        self._resume_pending()

    def _resume_pending(self) -> None:
        # Saves requested while a retry was outstanding
        if self._pending_pages is not None and not self._debouncer.pending:
            self._debouncer.trigger()

    def _handle_error(
        self,
        context: _AutosaveContext,
        *,
        attempt: int,
        backoff_ms: int,
        start: float,
        error: Exception,
    ) -> None:
        context.log.warning(
            "autosave attempt failed",
            extra={"attempt": attempt, "book_id": context.book_id, "error": str(error)},
        )

        if attempt >= self._max_retries:
            autosave_metrics.record("failure")
            self.last_error = str(error)
            context.log.error(
                "autosave failed after retries",
                extra={"attempt": attempt, "book_id": context.book_id, "error": str(error)},
            )
            self._resume_pending()
            return

        self._retry_scheduled = True

        def _retry() -> None:
            self._retry_scheduled = False
            self._attempt(
                context,
                attempt=attempt + 1,
                backoff_ms=int(min(backoff_ms * 2, 2000)),
            )

        autosave_metrics.record("retry", (time.perf_counter() - start) * 1000)
        self._retry_scheduler(backoff_ms, _retry)
