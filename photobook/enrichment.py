"""Optional narrative enrichment from a remote analysis service.

The service receives a small sample of JPEG thumbnails plus the total photo
count and answers with a title, a colour palette, chapters and optional
per-photo roles. It is never required: every failure degrades to the
heuristic-only pipeline.
"""

from __future__ import annotations

import base64
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from PIL import Image, ImageOps

from . import config
from .errors import EnrichmentError
from .models import PhotoRecord
from .sampling import smart_sample

LOGGER = logging.getLogger(__name__)

HERO = "hero"
SUPPORTING = "supporting"
DETAIL = "detail"


@dataclass(frozen=True)
class Chapter:
    title: str
    description: str = ""
    mood: Optional[str] = None


@dataclass(frozen=True)
class PageCaption:
    page_type: str  # "cover", "opening", "middle" or "closing"
    caption: str
    tone: Optional[str] = None


@dataclass(frozen=True)
class PhotoRoles:
    hero: tuple = ()
    supporting: tuple = ()
    detail: tuple = ()


@dataclass(frozen=True)
class NarrativeAnalysis:
    """Narrative returned by the enrichment service."""

    title: str = config.DEFAULT_TITLE
    subtitle: Optional[str] = None
    style: str = ""
    mood: str = ""
    summary: str = ""
    color_palette: List[str] = field(default_factory=list)
    chapters: List[Chapter] = field(default_factory=list)
    page_captions: List[PageCaption] = field(default_factory=list)
    photo_analysis: Optional[PhotoRoles] = None
    suggested_pages: Optional[int] = None

    def caption_for(self, page_type: str) -> Optional[str]:
        for caption in self.page_captions:
            if caption.page_type == page_type and caption.caption:
                return caption.caption
        return None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "NarrativeAnalysis":
        """Build an analysis from the service JSON, tolerating missing keys."""
        if not isinstance(payload, Mapping):
            raise EnrichmentError(f"Unexpected enrichment payload: {type(payload).__name__}")

        chapters = [
            Chapter(
                title=str(c.get("title", "")),
                description=str(c.get("description", "")),
                mood=c.get("mood"),
            )
            for c in payload.get("chapters") or []
            if isinstance(c, Mapping)
        ]
        captions = [
            PageCaption(
                page_type=str(c.get("pageType", "")),
                caption=str(c.get("caption", "")),
                tone=c.get("tone"),
            )
            for c in payload.get("pageCaptions") or []
            if isinstance(c, Mapping)
        ]
        roles = None
        raw_roles = payload.get("photoAnalysis")
        if isinstance(raw_roles, Mapping):
            roles = PhotoRoles(
                hero=tuple(int(i) for i in raw_roles.get("heroImages") or []),
                supporting=tuple(int(i) for i in raw_roles.get("supportingImages") or []),
                detail=tuple(int(i) for i in raw_roles.get("detailImages") or []),
            )
        suggested = payload.get("suggestedPages")
        return cls(
            title=str(payload.get("title") or config.DEFAULT_TITLE),
            subtitle=payload.get("subtitle") or None,
            style=str(payload.get("style") or ""),
            mood=str(payload.get("mood") or ""),
            summary=str(payload.get("summary") or ""),
            color_palette=[str(c) for c in payload.get("colorPalette") or []],
            chapters=chapters,
            page_captions=captions,
            photo_analysis=roles,
            suggested_pages=int(suggested) if suggested is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "subtitle": self.subtitle,
            "style": self.style,
            "mood": self.mood,
            "summary": self.summary,
            "colorPalette": list(self.color_palette),
            "chapters": [
                {"title": c.title, "description": c.description, "mood": c.mood}
                for c in self.chapters
            ],
            "pageCaptions": [
                {"pageType": c.page_type, "caption": c.caption, "tone": c.tone}
                for c in self.page_captions
            ],
            "suggestedPages": self.suggested_pages,
        }
        if self.photo_analysis is not None:
            data["photoAnalysis"] = {
                "heroImages": list(self.photo_analysis.hero),
                "supportingImages": list(self.photo_analysis.supporting),
                "detailImages": list(self.photo_analysis.detail),
            }
        return data


class EnrichmentProvider(ABC):
    """Abstract base class for narrative analysis services."""

    @abstractmethod
    def analyze(self, images: List[str], photo_count: int) -> NarrativeAnalysis:
        """Analyse ``images`` (JPEG data URLs) sampled from ``photo_count`` photos.

        Raises:
            EnrichmentError: the service could not produce an analysis.
        """


class HttpEnrichmentProvider(EnrichmentProvider):
    """Posts the sample to a JSON endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: int = config.ENRICHMENT_TIMEOUT_SECS,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.headers = headers or {}
        self._session = session or requests.Session()

    def analyze(self, images: List[str], photo_count: int) -> NarrativeAnalysis:
        payload = {
            "images": images,
            "photoCount": photo_count,
            "sampledCount": len(images),
        }
        try:
            response = self._session.post(
                self.endpoint,
                json=payload,
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.RequestException as exc:
            raise EnrichmentError(f"Enrichment request failed: {exc}") from exc
        except ValueError as exc:
            raise EnrichmentError(f"Enrichment response is not JSON: {exc}") from exc

        if isinstance(result, Mapping) and result.get("error"):
            raise EnrichmentError(f"Enrichment service error: {result['error']}")
        analysis = result.get("analysis", result) if isinstance(result, Mapping) else result
        return NarrativeAnalysis.from_payload(analysis)


def encode_thumbnail(record: PhotoRecord, max_edge: int = config.ENRICHMENT_THUMBNAIL_EDGE) -> str:
    """Return a JPEG data URL of ``record`` no larger than ``max_edge``."""
    source = record.source
    if isinstance(source, bytes):
        opened = Image.open(io.BytesIO(source))
    elif isinstance(source, (str, Path)):
        opened = Image.open(source)
    else:
        raise EnrichmentError(f"No pixel source for {record.name}")

    with opened as img:
        img = ImageOps.exif_transpose(img).convert("RGB")
        img.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=80)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


def request_enrichment(
    provider: Optional[EnrichmentProvider],
    photos: Sequence[PhotoRecord],
    *,
    max_samples: int = config.MAX_ENRICHMENT_SAMPLES,
) -> Optional[NarrativeAnalysis]:
    """Ask ``provider`` for a narrative, returning ``None`` on any failure."""
    if provider is None or not photos:
        return None

    sample = smart_sample(list(photos), max_samples)
    images: List[str] = []
    for record in sample:
        try:
            images.append(encode_thumbnail(record))
        except (OSError, EnrichmentError, Image.DecompressionBombError) as exc:
            LOGGER.warning("Skipping thumbnail for %s: %s", record.name, exc)
    if not images:
        LOGGER.warning("No thumbnails could be prepared, skipping enrichment")
        return None

    LOGGER.info("Requesting enrichment for %d of %d photos", len(images), len(photos))
    try:
        return provider.analyze(images, len(photos))
    except (EnrichmentError, ValueError, TypeError) as exc:
        LOGGER.warning("Enrichment unavailable, continuing without it: %s", exc)
        return None


def classify_photos(photo_count: int, analysis: Optional[NarrativeAnalysis] = None) -> List[str]:
    """Narrative role (hero, supporting or detail) for each photo index.

    Without roles from the service a positional guess is used: the first and
    every fifth photo are heroes and every third is a detail. The result is
    descriptive metadata and never affects tiering.
    """
    roles = analysis.photo_analysis if analysis is not None else None
    result: List[str] = []
    for index in range(photo_count):
        if roles is not None:
            if index in roles.hero:
                result.append(HERO)
            elif index in roles.detail:
                result.append(DETAIL)
            else:
                result.append(SUPPORTING)
        elif index == 0 or index % 5 == 0:
            result.append(HERO)
        elif index % 3 == 2:
            result.append(DETAIL)
        else:
            result.append(SUPPORTING)
    return result
