"""Editing session for one photobook.

This module introduces :class:`EditorSession`, the service layer between a
renderer and the page model. Every edit intent goes through
:meth:`EditorSession.update`, which applies the mutation in place, schedules
a debounced history commit and, once committed, a debounced autosave. A drag
that produces many intermediate geometries therefore ends up as a single
history entry.

Intents that reference unknown pages or elements are no-ops and return
``False`` or ``None``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .. import config
from ..models import (
    Background,
    Geometry,
    Page,
    PageElement,
    PhotoElement,
    TextElement,
    TextStyle,
    new_id,
)
from ..scheduling import Debouncer, Scheduler
from ..storage import AutosaveManager, BookStore, safe_load
from . import prefill as prefill_ops
from .history import HistoryStore
from .snap import SnapGuide, guides_on, snap_move, snap_resize, snap_targets

LOGGER = logging.getLogger(__name__)

_PROTECTED_FIELDS = {"id", "prefill_id"}


@dataclass
class DragState:
    """Start snapshot of an active move or resize gesture."""

    page_index: int
    element_id: str
    start_x: float
    start_y: float
    origin: Geometry
    handle: Optional[str] = None

    @property
    def is_resize(self) -> bool:
        return bool(self.handle)


class EditorSession:
    """Owns the page array of one book and every edit applied to it."""

    def __init__(
        self,
        book_id: str,
        pages: Sequence[Page],
        *,
        store: Optional[BookStore] = None,
        history: Optional[HistoryStore] = None,
        scheduler: Optional[Scheduler] = None,
        autosave: Optional[AutosaveManager] = None,
        id_factory: Callable[[str], str] = new_id,
    ) -> None:
        self.book_id = book_id
        self.pages: List[Page] = list(pages)
        self.history = history or HistoryStore()
        self.history.reset(self.pages)
        if autosave is None and store is not None:
            autosave = AutosaveManager(store, book_id, scheduler=scheduler)
        self.autosave = autosave
        self._new_id = id_factory
        self._commit = Debouncer(config.HISTORY_DEBOUNCE_MS, self._commit_now, scheduler)
        self.current_page_index = 0
        self.selected_element_id: Optional[str] = None
        self.drag: Optional[DragState] = None
        self.guides: List[SnapGuide] = []

    @classmethod
    def open(cls, store: BookStore, book_id: str, **kwargs: Any) -> Optional["EditorSession"]:
        """Load ``book_id`` from ``store``; ``None`` when missing or unreadable."""
        document = safe_load(store, book_id)
        if document is None:
            return None
        return cls(book_id, document.pages, store=store, **kwargs)

    # ------------------------------------------------------------------
    # Update path
    # ------------------------------------------------------------------
    def update(self, mutator: Callable[[List[Page]], Any], *, commit: bool = True) -> Any:
        """Apply ``mutator`` to the page array.

        A result of ``False`` or ``None`` means nothing changed and no
        history commit is scheduled.
        """
        result = mutator(self.pages)
        if commit and result is not None and result is not False:
            self._commit.trigger()
        return result

    @property
    def has_pending_commit(self) -> bool:
        return self._commit.pending

    def flush(self) -> bool:
        """Commit a pending history entry immediately."""
        return self._commit.flush()

    def close(self) -> None:
        self.end_drag()
        self.flush()
        if self.autosave is not None:
            self.autosave.flush()

    def _commit_now(self) -> None:
        if self.history.save(self.pages) and self.autosave is not None:
            self.autosave.schedule(self.pages)

    def undo(self) -> bool:
        self.end_drag()
        self.flush()
        return self._restore(self.history.undo())

    def redo(self) -> bool:
        self.end_drag()
        self.flush()
        return self._restore(self.history.redo())

    def _restore(self, snapshot: Optional[List[Page]]) -> bool:
        if snapshot is None:
            return False
        with self.history.restoring():
            self.pages = snapshot
            self.current_page_index = min(self.current_page_index, len(self.pages) - 1)
            self.selected_element_id = None
        if self.autosave is not None:
            self.autosave.schedule(self.pages)
        return True

    # ------------------------------------------------------------------
    # Lookup and selection
    # ------------------------------------------------------------------
    def page(self, page_index: int) -> Optional[Page]:
        if 0 <= page_index < len(self.pages):
            return self.pages[page_index]
        return None

    def find_element(self, page_index: int, element_id: str) -> Optional[PageElement]:
        page = self.page(page_index)
        return page.find_element(element_id) if page is not None else None

    def set_page(self, page_index: int) -> bool:
        if self.page(page_index) is None:
            return False
        self.current_page_index = page_index
        self.selected_element_id = None
        return True

    def select(self, element_id: Optional[str]) -> bool:
        if element_id is None:
            self.selected_element_id = None
            return True
        for index, page in enumerate(self.pages):
            if page.find_element(element_id) is not None:
                self.current_page_index = index
                self.selected_element_id = element_id
                return True
        return False

    # ------------------------------------------------------------------
    # Element intents
    # ------------------------------------------------------------------
    def update_element(self, page_index: int, element_id: str, **changes: Any) -> bool:
        def mutate(pages: List[Page]) -> bool:
            element = self.find_element(page_index, element_id)
            if element is None:
                return False
            invalid = [n for n in changes if n in _PROTECTED_FIELDS or not hasattr(element, n)]
            if invalid:
                LOGGER.debug("Ignoring update of %s with fields %s", element_id, invalid)
                return False
            for name, value in changes.items():
                if name == "rotation":
                    element.set_rotation(value)
                else:
                    setattr(element, name, value)
            return True

        return self.update(mutate)

    def delete_element(self, page_index: int, element_id: str) -> bool:
        if self.drag is not None and self.drag.element_id == element_id:
            self.end_drag()

        def mutate(pages: List[Page]) -> bool:
            page = self.page(page_index)
            return page is not None and prefill_ops.delete_element(page, element_id)

        deleted = self.update(mutate)
        if deleted and self.selected_element_id == element_id:
            self.selected_element_id = None
        return deleted

    def add_text(self, page_index: int, content: str = "Double click to edit") -> Optional[TextElement]:
        def mutate(pages: List[Page]) -> Optional[TextElement]:
            page = self.page(page_index)
            if page is None:
                return None
            element = TextElement(
                id=self._new_id("text"),
                content=content,
                x=35,
                y=45,
                width=30,
                height=10,
                z_index=page.next_z_index(),
                style=TextStyle(font_family="sans-serif", line_height=1.2),
            )
            page.free_elements.append(element)
            return element

        element = self.update(mutate)
        if element is not None:
            self.selected_element_id = element.id
        return element

    def rotate_element(self, page_index: int, element_id: str, delta: float, snap_15: bool = False) -> bool:
        def mutate(pages: List[Page]) -> bool:
            element = self.find_element(page_index, element_id)
            if element is None:
                return False
            rotation = element.rotation + delta
            if snap_15:
                step = config.ROTATION_SNAP_DEGREES
                rotation = round(rotation / step) * step
            element.set_rotation(rotation)
            return True

        return self.update(mutate)

    def set_background(self, page_index: int, background: Background) -> bool:
        def mutate(pages: List[Page]) -> bool:
            page = self.page(page_index)
            if page is None:
                return False
            page.background = copy.copy(background)
            return True

        return self.update(mutate)

    def apply_layout(self, page_index: int, layout_id: str) -> bool:
        def mutate(pages: List[Page]) -> bool:
            page = self.page(page_index)
            return page is not None and prefill_ops.apply_layout(page, layout_id, self._new_id)

        return self.update(mutate)

    def drop_photo(self, page_index: int, src: str, x: float, y: float) -> Optional[PhotoElement]:
        def mutate(pages: List[Page]) -> Optional[PhotoElement]:
            page = self.page(page_index)
            if page is None:
                return None
            return prefill_ops.drop_at_point(page, src, x, y, self._new_id)

        return self.update(mutate)

    def drop_into_prefill(self, page_index: int, src: str, prefill_id: str) -> Optional[PhotoElement]:
        def mutate(pages: List[Page]) -> Optional[PhotoElement]:
            page = self.page(page_index)
            if page is None:
                return None
            return prefill_ops.drop_into_prefill(page, src, prefill_id, self._new_id)

        return self.update(mutate)

    def replace_in_prefill(self, page_index: int, src: str, prefill_id: str) -> bool:
        def mutate(pages: List[Page]) -> bool:
            page = self.page(page_index)
            return page is not None and prefill_ops.replace_in_prefill(page, src, prefill_id)

        return self.update(mutate)

    def swap_in_prefills(self, page_index: int, prefill_a: str, prefill_b: str) -> bool:
        def mutate(pages: List[Page]) -> bool:
            page = self.page(page_index)
            return page is not None and prefill_ops.swap_in_prefills(page, prefill_a, prefill_b)

        return self.update(mutate)

    def remove_from_prefill(self, page_index: int, prefill_id: str) -> bool:
        def mutate(pages: List[Page]) -> bool:
            page = self.page(page_index)
            return page is not None and prefill_ops.remove_from_prefill(page, prefill_id)

        return self.update(mutate)

    def insert_element(self, page_index: int, element: PageElement) -> Optional[PageElement]:
        """Add a free element to a page (used by paste)."""

        def mutate(pages: List[Page]) -> Optional[PageElement]:
            page = self.page(page_index)
            if page is None:
                return None
            page.free_elements.append(element)
            return element

        return self.update(mutate)

    # ------------------------------------------------------------------
    # Page intents
    # ------------------------------------------------------------------
    def add_page(self) -> Page:
        def mutate(pages: List[Page]) -> Page:
            page = Page(id=self._new_id("page"), background=Background(value=config.WHITE))
            pages.append(page)
            return page

        page = self.update(mutate)
        self.set_page(len(self.pages) - 1)
        return page

    def delete_page(self, page_index: int) -> bool:
        """Delete a page; the last remaining page is never deleted."""

        def mutate(pages: List[Page]) -> bool:
            if len(pages) <= 1 or not 0 <= page_index < len(pages):
                return False
            del pages[page_index]
            return True

        self.end_drag()
        deleted = self.update(mutate)
        if deleted:
            if page_index < self.current_page_index or self.current_page_index >= len(self.pages):
                self.current_page_index = max(0, self.current_page_index - 1)
            self.selected_element_id = None
        return deleted

    def duplicate_page(self, page_index: int) -> Optional[Page]:
        """Insert a copy after ``page_index`` with fresh ids and the same links."""

        def mutate(pages: List[Page]) -> Optional[Page]:
            source = self.page(page_index)
            if source is None:
                return None
            clone = copy.deepcopy(source)
            clone.id = self._new_id("page")
            for prefill in clone.prefills:
                prefill.id = self._new_id("prefill")
                if prefill.content is not None:
                    prefill.content.id = self._new_id("photo")
                    prefill.fill(prefill.content)
            for element in clone.free_elements:
                element.id = self._new_id("photo" if isinstance(element, PhotoElement) else "text")
            pages.insert(page_index + 1, clone)
            return clone

        clone = self.update(mutate)
        if clone is not None:
            self.current_page_index = page_index + 1
        return clone

    def reorder_pages(self, from_index: int, to_index: int) -> bool:
        """Move a page; the cover (index 0) never moves and nothing moves before it."""

        def mutate(pages: List[Page]) -> bool:
            if from_index == to_index:
                return False
            if not (1 <= from_index < len(pages) and 1 <= to_index < len(pages)):
                return False
            pages.insert(to_index, pages.pop(from_index))
            return True

        self.end_drag()
        moved = self.update(mutate)
        if moved and self.current_page_index == from_index:
            self.current_page_index = to_index
        return moved

    # ------------------------------------------------------------------
    # Drag state machine
    # ------------------------------------------------------------------
    def begin_drag(
        self,
        page_index: int,
        element_id: str,
        px: float,
        py: float,
        handle: Optional[str] = None,
    ) -> bool:
        """Start moving (or, with a handle such as ``"se"``, resizing) an element."""
        if self.drag is not None:
            self.end_drag()
        element = self.find_element(page_index, element_id)
        if element is None:
            return False
        self.drag = DragState(
            page_index=page_index,
            element_id=element_id,
            start_x=px,
            start_y=py,
            origin=element.geometry,
            handle=handle or None,
        )
        self.selected_element_id = element_id
        self.current_page_index = page_index
        return True

    def drag_to(self, px: float, py: float, lock_aspect: bool = False) -> Optional[Geometry]:
        """Recompute the active element's geometry from the pointer delta."""
        drag = self.drag
        if drag is None:
            return None
        page = self.page(drag.page_index)
        element = page.find_element(drag.element_id) if page is not None else None
        if page is None or element is None:
            self.end_drag()
            return None

        dx = px - drag.start_x
        dy = py - drag.start_y
        targets = snap_targets(page.elements, drag.element_id)

        if drag.is_resize:
            geometry = _resize(drag.origin, drag.handle or "", dx, dy, lock_aspect)
            if not lock_aspect:
                geometry, guides = snap_resize(drag.handle or "", geometry, targets)
            else:
                guides = []
        else:
            origin = drag.origin
            snapped = snap_move(origin.x + dx, origin.y + dy, origin.width, origin.height, targets)
            geometry = Geometry(
                max(0.0, min(snapped.x, 100.0 - origin.width)),
                max(0.0, min(snapped.y, 100.0 - origin.height)),
                origin.width,
                origin.height,
            )
            # clamping can pull the element off the line it snapped to
            guides = guides_on(geometry, snapped.guides)

        def mutate(pages: List[Page]) -> Geometry:
            element.set_geometry(geometry)
            return geometry

        self.guides = guides
        return self.update(mutate)

    def end_drag(self) -> None:
        """Finish the gesture; the last geometry stands and is committed."""
        if self.drag is None:
            return
        self.drag = None
        self.guides = []
        self.flush()

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.book_id, "pages": [page.to_dict() for page in self.pages]}


def _resize(origin: Geometry, handle: str, dx: float, dy: float, lock_aspect: bool) -> Geometry:
    minimum = config.MIN_ELEMENT_SIZE
    x, y, width, height = origin.x, origin.y, origin.width, origin.height

    if "e" in handle:
        width = max(minimum, origin.width + dx)
    elif "w" in handle:
        width = max(minimum, origin.width - dx)
        x = origin.right - width
    if "s" in handle:
        height = max(minimum, origin.height + dy)
    elif "n" in handle:
        height = max(minimum, origin.height - dy)
        y = origin.bottom - height

    if lock_aspect and origin.height > 0:
        aspect = origin.width / origin.height
        width, height = _keep_aspect(width, height, aspect, horizontal=("e" in handle or "w" in handle))
        if "w" in handle:
            x = origin.right - width
        if "n" in handle:
            y = origin.bottom - height

    return Geometry(x, y, width, height)


def _keep_aspect(width: float, height: float, aspect: float, *, horizontal: bool) -> Tuple[float, float]:
    minimum = config.MIN_ELEMENT_SIZE
    if horizontal:
        height = width / aspect
    else:
        width = height * aspect
    # Scale up together if the derived side fell under the minimum
    if width < minimum or height < minimum:
        scale = max(minimum / width, minimum / height)
        width, height = width * scale, height * scale
    return width, height
