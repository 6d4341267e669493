"""Plain data model shared by the composition pipeline and the editor.

The analysis side (:class:`PhotoRecord`, :class:`QualityScore`,
:class:`SelectedPhoto`) is immutable once built. The page side
(:class:`Page`, :class:`Prefill` and the element classes) is mutated in
place by the editor and snapshotted by the history store.

A :class:`Prefill` owns the photo element it displays. ``Page.elements`` is
derived from the prefills plus the free-floating elements, so a prefill and
its photo can never disagree about each other.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from . import config


def new_id(prefix: str) -> str:
    """Return a fresh element/page identifier with a readable prefix."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def normalize_rotation(value: float) -> float:
    """Fold ``value`` (degrees) into ``[0, 360)``."""
    result = float(value) % 360.0
    if result >= 360.0:  # -1e-20 % 360 rounds up to 360.0
        result = 0.0
    return result


# ----------------------------------------------------------------------
# Analysis records
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class PhotoRecord:
    """An uploaded photo and its basic metadata."""

    name: str
    size: int
    last_modified: int
    source: Union[str, Path, bytes, None] = None
    width: int = 0
    height: int = 0

    @property
    def identity_key(self) -> str:
        return f"{self.name}|{self.size}|{self.last_modified}"

    @property
    def aspect_ratio(self) -> float:
        if self.height <= 0:
            return 1.0
        return self.width / self.height

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width

    @property
    def is_landscape(self) -> bool:
        return self.width > self.height

    @property
    def src(self) -> str:
        """String reference used by page elements."""
        if isinstance(self.source, (str, Path)):
            return str(self.source)
        return self.name

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "PhotoRecord":
        """Build a record from a file on disk.

        Dimensions are read lazily from the image header; unreadable files get
        ``0x0`` and are scored with the neutral default later on.
        """
        from PIL import Image, UnidentifiedImageError

        p = Path(path)
        stat = p.stat()
        width = height = 0
        try:
            with Image.open(p) as img:
                width, height = img.size
        except (UnidentifiedImageError, OSError):
            pass
        return cls(
            name=p.name,
            size=stat.st_size,
            last_modified=int(stat.st_mtime * 1000),
            source=p,
            width=width,
            height=height,
        )


@dataclass(frozen=True)
class QualityScore:
    """Heuristic quality scores for one photo, all in ``[0, 100]``."""

    overall: int
    sharpness: int
    lighting: int
    composition: int
    subject_center: Tuple[float, float] = (0.5, 0.5)
    aspect_ratio: float = 1.0
    dominant_colors: Tuple[str, ...] = ()
    is_portrait: bool = False
    is_landscape: bool = False
    is_default: bool = False

    @classmethod
    def neutral(cls, record: Optional[PhotoRecord] = None) -> "QualityScore":
        """Score used whenever a photo cannot be analysed."""
        value = config.DEFAULT_QUALITY_SCORE
        return cls(
            overall=value,
            sharpness=value,
            lighting=value,
            composition=value,
            aspect_ratio=record.aspect_ratio if record else 1.0,
            is_portrait=record.is_portrait if record else False,
            is_landscape=record.is_landscape if record else False,
            is_default=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "sharpness": self.sharpness,
            "lighting": self.lighting,
            "composition": self.composition,
            "subjectCenter": {"x": self.subject_center[0], "y": self.subject_center[1]},
            "aspectRatio": self.aspect_ratio,
            "dominantColors": list(self.dominant_colors),
            "isPortrait": self.is_portrait,
            "isLandscape": self.is_landscape,
        }


class Tier(str, Enum):
    """Placement priority class. Tiers never exclude a photo."""

    HERO = "hero"
    FEATURED = "featured"
    STANDARD = "standard"
    SUPPORTING = "supporting"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)

    @property
    def description(self) -> str:
        return _TIER_DESCRIPTIONS[self]


_TIER_ORDER = [Tier.HERO, Tier.FEATURED, Tier.STANDARD, Tier.SUPPORTING]
_TIER_DESCRIPTIONS = {
    Tier.HERO: "Best quality - perfect for full-page layouts",
    Tier.FEATURED: "Great quality - ideal for prominent placement",
    Tier.STANDARD: "Good quality - works well in any layout",
    Tier.SUPPORTING: "Included - adds variety to the story",
}


@dataclass(frozen=True)
class SelectedPhoto:
    """A photo retained for the book together with its score and tier."""

    photo: PhotoRecord
    quality: QualityScore
    tier: Tier
    reason: str = ""

    @property
    def src(self) -> str:
        return self.photo.src


# ----------------------------------------------------------------------
# Layout geometry
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Geometry:
    """Rectangle in page-relative percentages (0-100)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Geometry":
        return cls(
            x=float(data.get("x", 0)),
            y=float(data.get("y", 0)),
            width=float(data.get("width", 0)),
            height=float(data.get("height", 0)),
        )


Slot = Geometry


@dataclass(frozen=True)
class LayoutTemplate:
    """A named, static set of slots describing a page structure."""

    id: str
    name: str
    slots: Tuple[Slot, ...]
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.slots:
            raise ValueError(f"Layout '{self.id}' must define at least one slot")
        for slot in self.slots:
            if slot.width <= 0 or slot.height <= 0:
                raise ValueError(f"Layout '{self.id}' has a slot with no area")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slots": [slot.to_dict() for slot in self.slots],
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LayoutTemplate":
        required_keys = {"id", "slots"}
        if not all(key in data for key in required_keys):
            raise ValueError(f"Missing required keys: {required_keys - data.keys()}")
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            slots=tuple(Geometry.from_dict(s) for s in data["slots"]),
            tags=tuple(data.get("tags", ())),
        )


# ----------------------------------------------------------------------
# Page elements
# ----------------------------------------------------------------------
@dataclass
class CropTransform:
    """Pan (0-100, 50 is centred) and zoom (1 is fit) inside a frame."""

    x: float = 50.0
    y: float = 50.0
    zoom: float = 1.0

    @property
    def is_neutral(self) -> bool:
        return self.x == 50.0 and self.y == 50.0 and self.zoom == 1.0


@dataclass
class TextStyle:
    font_family: str = config.TITLE_FONT_FAMILY
    font_size: int = 24
    font_weight: str = "normal"
    font_style: str = "normal"
    color: str = "#000000"
    text_align: str = "center"
    line_height: float = 1.4

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fontFamily": self.font_family,
            "fontSize": self.font_size,
            "fontWeight": self.font_weight,
            "fontStyle": self.font_style,
            "color": self.color,
            "textAlign": self.text_align,
            "lineHeight": self.line_height,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TextStyle":
        default = cls()
        return cls(
            font_family=data.get("fontFamily", default.font_family),
            font_size=int(data.get("fontSize", default.font_size)),
            font_weight=str(data.get("fontWeight", default.font_weight)),
            font_style=data.get("fontStyle", default.font_style),
            color=data.get("color", default.color),
            text_align=data.get("textAlign", default.text_align),
            line_height=float(data.get("lineHeight", default.line_height)),
        )


class _Placed:
    """Geometry helpers shared by both element kinds."""

    x: float
    y: float
    width: float
    height: float
    rotation: float

    @property
    def geometry(self) -> Geometry:
        return Geometry(self.x, self.y, self.width, self.height)

    def set_geometry(self, geometry: Geometry) -> None:
        self.x = geometry.x
        self.y = geometry.y
        self.width = geometry.width
        self.height = geometry.height

    def set_rotation(self, value: float) -> None:
        self.rotation = normalize_rotation(value)


@dataclass
class PhotoElement(_Placed):
    id: str
    src: str
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0
    z_index: int = 0
    opacity: float = 1.0
    crop: CropTransform = field(default_factory=CropTransform)
    quality: Optional[int] = None
    prefill_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.rotation = normalize_rotation(self.rotation)


@dataclass
class TextElement(_Placed):
    id: str
    content: str
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0
    z_index: int = 0
    opacity: float = 1.0
    style: TextStyle = field(default_factory=TextStyle)

    def __post_init__(self) -> None:
        self.rotation = normalize_rotation(self.rotation)


PageElement = Union[PhotoElement, TextElement]


def element_to_dict(element: PageElement) -> Dict[str, Any]:
    """Serialize an element into the renderer/storage read model."""
    base = {
        "id": element.id,
        "x": element.x,
        "y": element.y,
        "width": element.width,
        "height": element.height,
        "rotation": element.rotation,
        "zIndex": element.z_index,
        "opacity": element.opacity,
    }
    if isinstance(element, PhotoElement):
        base.update(
            {
                "type": "photo",
                "src": element.src,
                "cropX": element.crop.x,
                "cropY": element.crop.y,
                "cropZoom": element.crop.zoom,
            }
        )
        if element.quality is not None:
            base["quality"] = element.quality
        if element.prefill_id is not None:
            base["prefillId"] = element.prefill_id
        return base
    if isinstance(element, TextElement):
        base.update({"type": "text", "content": element.content})
        base.update(element.style.to_dict())
        return base
    raise TypeError(f"Unsupported element type: {type(element).__name__}")


def element_from_dict(data: Mapping[str, Any]) -> PageElement:
    kind = data.get("type")
    common = dict(
        id=str(data["id"]),
        x=float(data.get("x", 0)),
        y=float(data.get("y", 0)),
        width=float(data.get("width", 0)),
        height=float(data.get("height", 0)),
        rotation=float(data.get("rotation", 0)),
        z_index=int(data.get("zIndex", 0)),
        opacity=float(data.get("opacity", 1)),
    )
    if kind == "photo":
        return PhotoElement(
            src=str(data.get("src", "")),
            crop=CropTransform(
                x=float(data.get("cropX", 50)),
                y=float(data.get("cropY", 50)),
                zoom=float(data.get("cropZoom", 1)),
            ),
            quality=data.get("quality"),
            prefill_id=data.get("prefillId"),
            **common,
        )
    if kind == "text":
        return TextElement(
            content=str(data.get("content", "")),
            style=TextStyle.from_dict(data),
            **common,
        )
    raise ValueError(f"Unknown element type: {kind!r}")


# ----------------------------------------------------------------------
# Pages
# ----------------------------------------------------------------------
@dataclass
class Background:
    kind: str = "solid"  # "solid", "gradient" or "image"
    value: str = config.WHITE
    secondary_value: Optional[str] = None
    gradient_angle: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.kind, "value": self.value}
        if self.secondary_value is not None:
            data["secondaryValue"] = self.secondary_value
        if self.gradient_angle is not None:
            data["gradientAngle"] = self.gradient_angle
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Background":
        if not data:
            return cls()
        return cls(
            kind=data.get("type", "solid"),
            value=data.get("value", config.WHITE),
            secondary_value=data.get("secondaryValue"),
            gradient_angle=data.get("gradientAngle"),
        )


@dataclass
class Prefill:
    """A layout frame on a page which may hold exactly one photo element."""

    id: str
    slot_index: int
    geometry: Geometry
    content: Optional[PhotoElement] = None

    @property
    def is_empty(self) -> bool:
        return self.content is None

    @property
    def photo_id(self) -> Optional[str]:
        return self.content.id if self.content is not None else None

    def fill(self, element: PhotoElement) -> None:
        """Take ownership of ``element`` and link it back to this frame."""
        element.prefill_id = self.id
        self.content = element

    def release(self) -> Optional[PhotoElement]:
        """Give up the current photo, returning it unlinked."""
        element = self.content
        self.content = None
        if element is not None:
            element.prefill_id = None
        return element

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "slotIndex": self.slot_index}
        data.update(self.geometry.to_dict())
        data["isEmpty"] = self.is_empty
        if self.photo_id is not None:
            data["photoId"] = self.photo_id
        return data


@dataclass
class Page:
    id: str
    background: Background = field(default_factory=Background)
    layout_id: Optional[str] = None
    prefills: List[Prefill] = field(default_factory=list)
    free_elements: List[PageElement] = field(default_factory=list)

    @property
    def elements(self) -> List[PageElement]:
        """All elements on the page: slotted photos first, then free ones."""
        slotted: List[PageElement] = [p.content for p in self.prefills if p.content is not None]
        return slotted + list(self.free_elements)

    @property
    def photo_elements(self) -> List[PhotoElement]:
        return [el for el in self.elements if isinstance(el, PhotoElement)]

    def find_element(self, element_id: str) -> Optional[PageElement]:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    def find_prefill(self, prefill_id: str) -> Optional[Prefill]:
        for prefill in self.prefills:
            if prefill.id == prefill_id:
                return prefill
        return None

    def owner_of(self, element_id: str) -> Optional[Prefill]:
        for prefill in self.prefills:
            if prefill.photo_id == element_id:
                return prefill
        return None

    def next_z_index(self) -> int:
        return max((el.z_index for el in self.elements), default=-1) + 1

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "elements": [element_to_dict(el) for el in self.elements],
            "background": self.background.to_dict(),
            "prefills": [p.to_dict() for p in self.prefills],
        }
        if self.layout_id is not None:
            data["layoutId"] = self.layout_id
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Page":
        """Rebuild a page from its read model.

        Photo elements are re-attached to the prefill named by ``prefillId``.
        A link to a missing or already occupied prefill is dropped and the
        photo becomes free-floating.
        """
        prefills = [
            Prefill(
                id=str(p["id"]),
                slot_index=int(p.get("slotIndex", index)),
                geometry=Geometry.from_dict(p),
            )
            for index, p in enumerate(data.get("prefills") or [])
        ]
        page = cls(
            id=str(data["id"]),
            background=Background.from_dict(data.get("background")),
            layout_id=data.get("layoutId"),
            prefills=prefills,
        )
        for raw in data.get("elements") or []:
            element = element_from_dict(raw)
            if isinstance(element, PhotoElement) and element.prefill_id:
                owner = page.find_prefill(element.prefill_id)
                if owner is not None and owner.is_empty:
                    owner.fill(element)
                    continue
                element.prefill_id = None
            page.free_elements.append(element)
        return page


@dataclass
class HistoryEntry:
    pages: List[Page]
    timestamp: float


@dataclass
class BookDocument:
    """Storage shape of a photobook keyed by its id."""

    id: str
    title: str = config.DEFAULT_TITLE
    book_format: Dict[str, Any] = field(default_factory=lambda: {"size": "medium", "orientation": "vertical"})
    photos: List[str] = field(default_factory=list)
    pages: List[Page] = field(default_factory=list)
    analysis: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "bookFormat": dict(self.book_format),
            "photos": list(self.photos),
            "pages": [page.to_dict() for page in self.pages],
            "analysis": self.analysis,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BookDocument":
        return cls(
            id=str(data["id"]),
            title=data.get("title", config.DEFAULT_TITLE),
            book_format=dict(data.get("bookFormat") or {}),
            photos=list(data.get("photos") or []),
            pages=[Page.from_dict(p) for p in data.get("pages") or []],
            analysis=data.get("analysis"),
        )
