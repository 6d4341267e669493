"""Prefill (layout frame) operations.

A prefill keeps its geometry for the life of the layout; editing only
changes which photo it holds. Removing or deleting a slotted photo empties
the frame and never removes the frame itself.

All functions operate on a single :class:`~photobook.models.Page` and treat
unknown ids as no-ops.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .. import config
from ..layouts import LayoutTemplates
from ..models import CropTransform, Page, PhotoElement, Prefill, new_id

LOGGER = logging.getLogger(__name__)

IdFactory = Callable[[str], str]


def _photo_for(prefill: Prefill, src: str, z_index: int, id_factory: IdFactory) -> PhotoElement:
    geometry = prefill.geometry
    return PhotoElement(
        id=id_factory("photo"),
        src=src,
        x=geometry.x,
        y=geometry.y,
        width=geometry.width,
        height=geometry.height,
        z_index=z_index,
    )


def _refill(page: Page, prefill: Prefill, src: str, id_factory: IdFactory) -> PhotoElement:
    z_index = page.next_z_index()
    prefill.release()
    element = _photo_for(prefill, src, z_index, id_factory)
    prefill.fill(element)
    return element


def drop_into_prefill(
    page: Page,
    src: str,
    prefill_id: str,
    id_factory: IdFactory = new_id,
) -> Optional[PhotoElement]:
    """Place a new photo in the frame, replacing whatever it held."""
    prefill = page.find_prefill(prefill_id)
    if prefill is None:
        return None
    return _refill(page, prefill, src, id_factory)


def replace_in_prefill(page: Page, src: str, prefill_id: str) -> bool:
    """Show ``src`` in an occupied frame, keeping the element id and geometry."""
    prefill = page.find_prefill(prefill_id)
    if prefill is None or prefill.content is None:
        return False
    prefill.content.src = src
    prefill.content.quality = None
    prefill.content.crop = CropTransform()
    return True


def swap_in_prefills(page: Page, prefill_a: str, prefill_b: str) -> bool:
    """Exchange the photos shown by two frames.

    Only the content moves: both elements keep their ids, geometry, rotation
    and stacking order, and their crops are reset.
    """
    if prefill_a == prefill_b:
        return False
    first = page.find_prefill(prefill_a)
    second = page.find_prefill(prefill_b)
    if first is None or second is None or first.content is None or second.content is None:
        return False
    a, b = first.content, second.content
    a.src, b.src = b.src, a.src
    a.quality, b.quality = b.quality, a.quality
    a.crop = CropTransform()
    b.crop = CropTransform()
    return True


def remove_from_prefill(page: Page, prefill_id: str) -> bool:
    """Delete the frame's photo and leave the frame empty."""
    prefill = page.find_prefill(prefill_id)
    if prefill is None or prefill.content is None:
        return False
    prefill.release()
    return True


def delete_element(page: Page, element_id: str) -> bool:
    """Delete an element; a slotted photo reverts its frame to empty."""
    owner = page.owner_of(element_id)
    if owner is not None:
        owner.release()
        return True
    for index, element in enumerate(page.free_elements):
        if element.id == element_id:
            del page.free_elements[index]
            return True
    return False


def apply_layout(page: Page, layout_id: str, id_factory: IdFactory = new_id) -> bool:
    """Replace the page's frames with those of ``layout_id``.

    Existing photos are re-seated into the new frames in their current
    order, snapped to the frame geometry with rotation reset. Photos beyond
    the frame count stay free at their current geometry; text is untouched.
    An unknown layout leaves the page unchanged.
    """
    if not LayoutTemplates.has_template(layout_id):
        LOGGER.debug("Ignoring unknown layout %s", layout_id)
        return False
    template = LayoutTemplates.get_template(layout_id)

    photos = page.photo_elements
    texts = [el for el in page.free_elements if not isinstance(el, PhotoElement)]
    for prefill in page.prefills:
        prefill.release()

    prefills = [
        Prefill(id=id_factory("prefill"), slot_index=index, geometry=slot)
        for index, slot in enumerate(template.slots)
    ]
    extra: List[PhotoElement] = []
    for index, photo in enumerate(photos):
        photo.prefill_id = None
        if index < len(prefills):
            photo.set_geometry(prefills[index].geometry)
            photo.rotation = 0.0
            photo.z_index = index
            prefills[index].fill(photo)
        else:
            extra.append(photo)

    page.prefills = prefills
    page.free_elements = [*extra, *texts]
    page.layout_id = layout_id
    return True


def prefill_at(page: Page, x: float, y: float) -> Optional[Prefill]:
    for prefill in page.prefills:
        if prefill.geometry.contains(x, y):
            return prefill
    return None


def drop_at_point(
    page: Page,
    src: str,
    x: float,
    y: float,
    id_factory: IdFactory = new_id,
) -> PhotoElement:
    """Drop a photo at a page point.

    Landing inside a frame fills (or replaces) that frame. Anywhere else the
    photo becomes a free element centred on the point and kept on the page.
    """
    target = prefill_at(page, x, y)
    if target is not None:
        return _refill(page, target, src, id_factory)

    size = config.DROP_ELEMENT_SIZE
    half = size / 2
    element = PhotoElement(
        id=id_factory("photo"),
        src=src,
        x=max(0.0, min(x - half, 100.0 - size)),
        y=max(0.0, min(y - half, 100.0 - size)),
        width=size,
        height=size,
        z_index=page.next_z_index(),
    )
    page.free_elements.append(element)
    return element


def link_errors(page: Page) -> List[str]:
    """Describe every inconsistency between frames and photos on ``page``."""
    problems: List[str] = []
    seen = set()
    for element in page.elements:
        if element.id in seen:
            problems.append(f"duplicate element id {element.id}")
        seen.add(element.id)
    for prefill in page.prefills:
        if prefill.content is not None and prefill.content.prefill_id != prefill.id:
            problems.append(f"photo {prefill.content.id} in {prefill.id} links elsewhere")
    for element in page.free_elements:
        if isinstance(element, PhotoElement) and element.prefill_id is not None:
            problems.append(f"free photo {element.id} claims frame {element.prefill_id}")
    return problems
