"""Automatic pagination of selected photos into a photobook.

The composer walks a tier-ordered queue of photos: the best photo becomes
the cover, page 1 is the opening spread, the last few photos form the
closing page and everything in between is content. Every selected photo is
placed in exactly one prefill on exactly one page.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional, Sequence

from . import config
from .analysis.crop import crop_for_slot
from .enrichment import NarrativeAnalysis
from .layouts import (
    CLOSING,
    CONTENT,
    COVER,
    OPENING,
    generate_prefills_from_layout,
    get_template,
    select_layout,
)
from .models import (
    Background,
    Page,
    PhotoElement,
    SelectedPhoto,
    TextElement,
    TextStyle,
    Tier,
    new_id,
)
from .selection import group_by_tier, target_page_count

LOGGER = logging.getLogger(__name__)

MAX_PHOTOS_PER_PAGE = 3

_TEXT_STYLES = {
    "title": dict(font_size=48, font_weight="bold", color="#FFFFFF"),
    "subtitle": dict(font_size=24, font_weight="normal", color="#F0F0F0"),
    "caption": dict(font_size=14, font_weight="normal", color="#666666"),
}


def photos_for_page(target_pages: int, page_index: int, remaining_photos: int) -> int:
    """Photos to place on ``page_index``, varying between two and three."""
    remaining_pages = target_pages - page_index
    if remaining_pages <= 0:
        return min(MAX_PHOTOS_PER_PAGE, remaining_photos)

    avg_needed = remaining_photos / remaining_pages
    if avg_needed <= 1.5:
        return min(2, remaining_photos)
    if avg_needed <= 2.5:
        return min(2 + (page_index % 2), remaining_photos)
    return min(MAX_PHOTOS_PER_PAGE, remaining_photos)


def is_near_black(color: str) -> bool:
    """True for colours too dark to use as a page background.

    Unparseable colours are treated as unusable too.
    """
    value = color.strip().lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    try:
        r, g, b = (int(value[i: i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return True
    if len(value) != 6:
        return True
    return 0.299 * r + 0.587 * g + 0.114 * b < config.NEAR_BLACK_LUMINANCE


def select_background(page_role: str, analysis: Optional[NarrativeAnalysis] = None) -> Background:
    if analysis is not None and analysis.color_palette and page_role != CONTENT:
        color = analysis.color_palette[0]
        if not is_near_black(color):
            return Background(kind="solid", value=color)
    if page_role == CLOSING:
        return Background(kind="solid", value=config.WARM_NEUTRAL)
    return Background(kind="solid", value=config.WHITE)


class PageComposer:
    """Builds the page sequence for a set of selected photos."""

    def __init__(
        self,
        *,
        min_pages: int = config.MIN_PAGES,
        max_pages: int = config.MAX_PAGES,
        rng: Optional[random.Random] = None,
        id_factory: Callable[[str], str] = new_id,
        page_aspect: float = 1.0,
    ):
        if min_pages <= 0 or max_pages < min_pages:
            raise ValueError("min_pages must be positive and not exceed max_pages")
        self.min_pages = min_pages
        self.max_pages = max_pages
        self.rng = rng or random.Random()
        self.page_aspect = page_aspect
        self._new_id = id_factory

    def target_pages(self, photo_count: int) -> int:
        return max(self.min_pages, min(self.max_pages, target_page_count(photo_count)))

    def compose(
        self,
        photos: Sequence[SelectedPhoto],
        analysis: Optional[NarrativeAnalysis] = None,
    ) -> List[Page]:
        if not photos:
            return []

        target = self.target_pages(len(photos))
        groups = group_by_tier(photos)
        queue: List[SelectedPhoto] = [photo for tier in Tier for photo in groups[tier]]

        pages: List[Page] = [self._cover_page(queue[0], analysis)]
        index = 1
        previous_layout = config.COVER_LAYOUT_ID

        while index < len(queue) and len(pages) < target:
            page_number = len(pages)
            remaining = len(queue) - index
            if page_number == 1:
                role = OPENING
            elif remaining <= 3:
                role = CLOSING
            else:
                role = CONTENT

            count = photos_for_page(target, page_number, remaining)
            candidates = queue[index: index + count]
            has_hero = any(photo.tier is Tier.HERO for photo in candidates)
            layout_id = select_layout(count, role, previous_layout, has_hero, self.rng)
            # A layout never receives more photos than it has slots
            page_photos = candidates[: len(get_template(layout_id).slots)]

            page = self._photo_page(layout_id, page_photos, role, analysis)
            chapter_added = self._add_chapter_caption(page, len(pages), analysis)
            if not chapter_added and role in (OPENING, CLOSING):
                self._add_page_caption(page, role, analysis)

            pages.append(page)
            previous_layout = layout_id
            index += len(page_photos)

        while index < len(queue):
            chunk = queue[index: index + MAX_PHOTOS_PER_PAGE]
            has_hero = any(photo.tier is Tier.HERO for photo in chunk)
            layout_id = select_layout(len(chunk), CONTENT, previous_layout, has_hero, self.rng)
            chunk = chunk[: len(get_template(layout_id).slots)]
            pages.append(self._photo_page(layout_id, chunk, CONTENT, analysis))
            previous_layout = layout_id
            index += len(chunk)

        LOGGER.info("Composed %d pages for %d photos (target %d)", len(pages), len(photos), target)
        return pages

    # ------------------------------------------------------------------
    # Page builders
    # ------------------------------------------------------------------
    def _cover_page(self, photo: SelectedPhoto, analysis: Optional[NarrativeAnalysis]) -> Page:
        page = self._photo_page(config.COVER_LAYOUT_ID, [photo], COVER, analysis)
        title = analysis.title if analysis is not None and analysis.title else config.DEFAULT_TITLE
        page.free_elements.append(self._text(title, 10, 70, 80, 15, 1, "title"))
        if analysis is not None and analysis.subtitle:
            page.free_elements.append(self._text(analysis.subtitle, 10, 82, 80, 8, 2, "subtitle"))
        return page

    def _photo_page(
        self,
        layout_id: str,
        photos: Sequence[SelectedPhoto],
        role: str,
        analysis: Optional[NarrativeAnalysis],
    ) -> Page:
        prefills = generate_prefills_from_layout(layout_id, self._new_id)
        for z_index, (prefill, photo) in enumerate(zip(prefills, photos)):
            slot = prefill.geometry
            prefill.fill(
                PhotoElement(
                    id=self._new_id("photo"),
                    src=photo.src,
                    x=slot.x,
                    y=slot.y,
                    width=slot.width,
                    height=slot.height,
                    z_index=z_index,
                    quality=photo.quality.overall,
                    crop=crop_for_slot(photo.quality, slot, self.page_aspect),
                )
            )
        return Page(
            id=self._new_id("page"),
            background=select_background(role, analysis),
            layout_id=layout_id,
            prefills=prefills,
        )

    def _add_chapter_caption(
        self,
        page: Page,
        page_count: int,
        analysis: Optional[NarrativeAnalysis],
    ) -> bool:
        if analysis is None or not analysis.chapters:
            return False
        if page_count <= 1 or page_count % config.CHAPTER_INTERVAL != 1:
            return False
        chapter_index = page_count // config.CHAPTER_INTERVAL
        if chapter_index >= len(analysis.chapters):
            return False
        chapter = analysis.chapters[chapter_index]
        if not chapter.title:
            return False
        page.free_elements.append(
            self._text(chapter.title, 5, 90, 90, 8, len(page.elements), "caption")
        )
        return True

    def _add_page_caption(self, page: Page, role: str, analysis: Optional[NarrativeAnalysis]) -> None:
        if analysis is None:
            return
        caption = analysis.caption_for(role)
        if caption:
            page.free_elements.append(
                self._text(caption, 5, 90, 90, 8, len(page.elements), "caption")
            )

    def _text(
        self,
        content: str,
        x: float,
        y: float,
        width: float,
        height: float,
        z_index: int,
        kind: str,
    ) -> TextElement:
        return TextElement(
            id=self._new_id("text"),
            content=content,
            x=x,
            y=y,
            width=width,
            height=height,
            z_index=z_index,
            style=TextStyle(font_family=config.TITLE_FONT_FAMILY, **_TEXT_STYLES[kind]),
        )
