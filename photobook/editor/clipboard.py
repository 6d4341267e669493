"""Copy, cut and paste of single page elements."""

from __future__ import annotations

import copy
from typing import Callable, Optional

from .. import config
from ..models import PageElement, PhotoElement, new_id
from .session import EditorSession


class Clipboard:
    """Holds a detached copy of one element for a session."""

    def __init__(self, session: EditorSession, id_factory: Callable[[str], str] = new_id):
        self.session = session
        self._new_id = id_factory
        self.content: Optional[PageElement] = None

    def _selected(self) -> Optional[PageElement]:
        element_id = self.session.selected_element_id
        if element_id is None:
            return None
        return self.session.find_element(self.session.current_page_index, element_id)

    def copy(self) -> bool:
        element = self._selected()
        if element is None:
            return False
        self.content = copy.deepcopy(element)
        return True

    def cut(self) -> bool:
        element = self._selected()
        if element is None:
            return False
        self.content = copy.deepcopy(element)
        return self.session.delete_element(self.session.current_page_index, element.id)

    def paste(self) -> Optional[PageElement]:
        """Paste onto the current page, offset from the original and on top."""
        if self.content is None:
            return None
        page = self.session.page(self.session.current_page_index)
        if page is None:
            return None

        element = copy.deepcopy(self.content)
        kind = "photo" if isinstance(element, PhotoElement) else "text"
        element.id = self._new_id(kind)
        element.x = max(0.0, min(element.x + config.PASTE_OFFSET, 100.0 - element.width))
        element.y = max(0.0, min(element.y + config.PASTE_OFFSET, 100.0 - element.height))
        element.z_index = page.next_z_index()
        if isinstance(element, PhotoElement):
            element.prefill_id = None

        pasted = self.session.insert_element(self.session.current_page_index, element)
        if pasted is not None:
            self.session.selected_element_id = pasted.id
        return pasted
