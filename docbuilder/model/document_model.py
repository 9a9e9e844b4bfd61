"""Documents, pages and the page geometry they are laid out against."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from docbuilder.model.elements import Element

DEFAULT_PAGE_SIZE = "A4"
DEFAULT_PAGE_WIDTH_PT = 595.0  # ≈ 8.27" A4
DEFAULT_PAGE_HEIGHT_PT = 842.0  # ≈ 11.69" A4
DEFAULT_MARGIN_PT = 72.0  # 1 inch

PAGE_SIZES_PT: Dict[str, Tuple[float, float]] = {
    "A4": (DEFAULT_PAGE_WIDTH_PT, DEFAULT_PAGE_HEIGHT_PT),
    "Letter": (612.0, 792.0),
    "Legal": (612.0, 1008.0),
}


@dataclass(slots=True)
class Margins:
    """Page margins in points."""

    top: float = DEFAULT_MARGIN_PT
    right: float = DEFAULT_MARGIN_PT
    bottom: float = DEFAULT_MARGIN_PT
    left: float = DEFAULT_MARGIN_PT

    def to_payload(self) -> Dict[str, float]:
        return {"top": self.top, "right": self.right, "bottom": self.bottom, "left": self.left}

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, object]]) -> "Margins":
        if not payload:
            return cls()
        return cls(
            top=float(payload.get("top", DEFAULT_MARGIN_PT)),
            right=float(payload.get("right", DEFAULT_MARGIN_PT)),
            bottom=float(payload.get("bottom", DEFAULT_MARGIN_PT)),
            left=float(payload.get("left", DEFAULT_MARGIN_PT)),
        )


def resolve_page_size(size: Optional[str], orientation: Optional[str]) -> Tuple[float, float]:
    """Return ``(width, height)`` for a named size, swapped for landscape."""
    width, height = PAGE_SIZES_PT.get(size or DEFAULT_PAGE_SIZE, PAGE_SIZES_PT[DEFAULT_PAGE_SIZE])
    if orientation and orientation.lower() == "landscape" and width < height:
        width, height = height, width
    return width, height


@dataclass(slots=True)
class PageGeometry:
    """Page size and margins every page of an assembled document shares."""

    width: float = DEFAULT_PAGE_WIDTH_PT
    height: float = DEFAULT_PAGE_HEIGHT_PT
    margins: Margins = field(default_factory=Margins)
    size: str = DEFAULT_PAGE_SIZE
    orientation: str = "portrait"

    @classmethod
    def named(cls, size: str = DEFAULT_PAGE_SIZE, orientation: str = "portrait",
              margins: Optional[Margins] = None) -> "PageGeometry":
        width, height = resolve_page_size(size, orientation)
        return cls(width=width, height=height, margins=margins or Margins(), size=size, orientation=orientation)

    @property
    def content_width(self) -> float:
        return self.width - self.margins.left - self.margins.right

    @property
    def content_height(self) -> float:
        return self.height - self.margins.top - self.margins.bottom

    @property
    def content_bottom(self) -> float:
        return self.margins.top + self.content_height

    def to_page_spec(self) -> "PageSpec":
        return PageSpec(size=self.size, orientation=self.orientation, width=self.width,
                        height=self.height, margins=Margins(**self.margins.to_payload()))


@dataclass(slots=True)
class PageSpec:
    """Attributes of a page to be created remotely."""

    size: str = DEFAULT_PAGE_SIZE
    orientation: str = "portrait"
    width: Optional[float] = None
    height: Optional[float] = None
    margins: Margins = field(default_factory=Margins)
    background: str = "#ffffff"

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "size": self.size,
            "orientation": self.orientation,
            "margins": self.margins.to_payload(),
            "background": {"color": self.background},
        }
        if self.width is not None:
            payload["width"] = self.width
        if self.height is not None:
            payload["height"] = self.height
        return payload


@dataclass(slots=True)
class Page:
    """Fixed-size layout surface owning an ordered list of elements."""

    id: str
    width: float = DEFAULT_PAGE_WIDTH_PT
    height: float = DEFAULT_PAGE_HEIGHT_PT
    margins: Margins = field(default_factory=Margins)
    elements: List[Element] = field(default_factory=list)

    def index_of(self, element_id: str) -> int:
        for index, element in enumerate(self.elements):
            if element.id == element_id:
                return index
        return -1

    def find(self, element_id: str) -> Optional[Element]:
        index = self.index_of(element_id)
        return self.elements[index] if index >= 0 else None

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "width": self.width,
            "height": self.height,
            "margins": self.margins.to_payload(),
            "elements": [element.to_payload() for element in self.elements],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Page":
        if "id" not in payload:
            raise ValueError("Page payload requires 'id'")
        width, height = resolve_page_size(payload.get("size"), payload.get("orientation"))
        return cls(
            id=str(payload["id"]),
            width=float(payload.get("width") or width),
            height=float(payload.get("height") or height),
            margins=Margins.from_payload(payload.get("margins")),
            elements=[Element.from_payload(item) for item in payload.get("elements") or []],
        )


@dataclass(slots=True)
class Document:
    """Top-level container owning an ordered sequence of pages."""

    id: str
    title: str
    pages: List[Page] = field(default_factory=list)
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def element_count(self) -> int:
        return sum(len(page.elements) for page in self.pages)

    def page_index(self, page_id: str) -> int:
        for index, page in enumerate(self.pages):
            if page.id == page_id:
                return index
        return -1

    def locate(self, element_id: str) -> Optional[Tuple[int, Element]]:
        """Return ``(page_index, element)`` for an element id, if present."""
        for index, page in enumerate(self.pages):
            element = page.find(element_id)
            if element is not None:
                return index, element
        return None

    def to_payload(self) -> Dict[str, object]:
        metadata = dict(self.metadata)
        metadata["title"] = self.title
        return {
            "id": self.id,
            "metadata": metadata,
            "pages": [page.to_payload() for page in self.pages],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "Document":
        if "id" not in payload:
            raise ValueError("Document payload requires 'id'")
        metadata = dict(payload.get("metadata") or {})
        title = payload.get("title") or metadata.get("title") or "Untitled Document"
        return cls(
            id=str(payload["id"]),
            title=str(title),
            pages=[Page.from_payload(item) for item in payload.get("pages") or []],
            metadata=metadata,
        )
