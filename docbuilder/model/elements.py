"""In-memory representation of page elements and pre-layout blocks."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Union

ELEMENT_TEXT = "text"
ELEMENT_IMAGE = "image"
ELEMENT_SHAPE = "shape"
ELEMENT_TYPES = (ELEMENT_TEXT, ELEMENT_IMAGE, ELEMENT_SHAPE)

BLOCK_TITLE = "title"
BLOCK_ROLE_HEADER = "role_header"
BLOCK_TEXT = "text"
BLOCK_CODE = "code"
BLOCK_IMAGE = "image"

MIN_TEXT_HEIGHT_PT = 20.0
DEFAULT_IMAGE_HEIGHT_PT = 200.0
DEFAULT_SHAPE_HEIGHT_PT = 50.0


@dataclass(slots=True)
class Bounds:
    """Axis aligned rectangle in page points, origin at the page's top-left."""

    x: float
    y: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def right(self) -> float:
        return self.x + self.width

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.right and self.y <= y <= self.bottom

    def to_payload(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Bounds":
        try:
            return cls(
                x=float(payload.get("x", 0.0)),
                y=float(payload.get("y", 0.0)),
                width=float(payload["width"]),
                height=float(payload["height"]),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed bounds payload: {payload!r}") from exc


@dataclass(slots=True)
class TextContent:
    """Plain text payload of a text element."""

    text: str

    def to_payload(self) -> object:
        return self.text


@dataclass(slots=True)
class ImageContent:
    """Image payload; ``url`` stays ``None`` when the media could not be resolved."""

    url: Optional[str]
    file_id: Optional[str] = None
    original_width: Optional[float] = None
    original_height: Optional[float] = None

    def to_payload(self) -> object:
        payload: Dict[str, object] = {"url": self.url}
        if self.file_id is not None:
            payload["fileId"] = self.file_id
        if self.original_width is not None:
            payload["originalWidth"] = self.original_width
        if self.original_height is not None:
            payload["originalHeight"] = self.original_height
        return payload


@dataclass(slots=True)
class ShapeContent:
    """Vector shape payload (``rectangle``, ``circle`` ...)."""

    shape: str

    def to_payload(self) -> object:
        return {"shape": self.shape}


ElementContent = Union[TextContent, ImageContent, ShapeContent]


def content_from_payload(element_type: str, payload: object) -> ElementContent:
    """Decode the wire ``content`` field according to the element type."""
    if element_type == ELEMENT_TEXT:
        if isinstance(payload, Mapping):
            return TextContent(text=str(payload.get("text", "")))
        return TextContent(text="" if payload is None else str(payload))
    if element_type == ELEMENT_IMAGE:
        data = payload if isinstance(payload, Mapping) else {"url": payload}
        return ImageContent(
            url=data.get("url"),
            file_id=data.get("fileId"),
            original_width=data.get("originalWidth"),
            original_height=data.get("originalHeight"),
        )
    if element_type == ELEMENT_SHAPE:
        data = payload if isinstance(payload, Mapping) else {}
        return ShapeContent(shape=str(data.get("shape", "rectangle")))
    raise ValueError(f"Unsupported element type: {element_type!r}")


@dataclass(slots=True)
class ElementSpec:
    """Element attributes sent to the service before an identifier exists."""

    element_type: str
    bounds: Bounds
    content: ElementContent
    style: Dict[str, object] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, object]:
        return {
            "type": self.element_type,
            "bounds": self.bounds.to_payload(),
            "content": self.content.to_payload(),
            "style": dict(self.style),
        }


@dataclass(slots=True)
class Element:
    """A persisted, positioned unit of content on exactly one page."""

    id: str
    element_type: str
    bounds: Bounds
    content: ElementContent
    style: Dict[str, object] = field(default_factory=dict)

    def to_spec(self, bounds: Optional[Bounds] = None) -> ElementSpec:
        """Return a spec that recreates this element, optionally at new bounds."""
        target = bounds or self.bounds
        return ElementSpec(
            element_type=self.element_type,
            bounds=Bounds(target.x, target.y, target.width, target.height),
            content=self.content,
            style=dict(self.style),
        )

    def to_payload(self) -> Dict[str, object]:
        payload = self.to_spec().to_payload()
        payload["id"] = self.id
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Element":
        element_type = payload.get("type")
        if element_type not in ELEMENT_TYPES:
            raise ValueError(f"Unsupported element type: {element_type!r}")
        if "id" not in payload or "bounds" not in payload:
            raise ValueError("Element payload requires 'id' and 'bounds'")
        return cls(
            id=str(payload["id"]),
            element_type=element_type,
            bounds=Bounds.from_payload(payload["bounds"]),
            content=content_from_payload(element_type, payload.get("content")),
            style=dict(payload.get("style") or {}),
        )


@dataclass(slots=True)
class Block:
    """Transient pre-layout content unit produced by the content normalizer."""

    kind: str
    payload: ElementContent
    style: Dict[str, object] = field(default_factory=dict)
    width: Optional[float] = None
    height: Optional[float] = None
    spacing_before: float = 0.0
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def element_type(self) -> str:
        if self.kind == BLOCK_IMAGE:
            return ELEMENT_IMAGE
        if isinstance(self.payload, ShapeContent):
            return ELEMENT_SHAPE
        return ELEMENT_TEXT

    @property
    def text(self) -> str:
        return self.payload.text if isinstance(self.payload, TextContent) else ""


@dataclass(slots=True, frozen=True)
class DropZone:
    """Candidate insertion point computed while an element is dragged."""

    y: float
    insert_index: int
