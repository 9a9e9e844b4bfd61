"""In-process document store implementing :class:`DocumentService`."""
from __future__ import annotations

import uuid
from copy import deepcopy
from typing import Dict, List, Mapping

from docbuilder.client.errors import NotFound, ValidationError
from docbuilder.client.service import DocumentService
from docbuilder.model.document_model import Document, Margins, Page, PageSpec, resolve_page_size
from docbuilder.model.elements import ELEMENT_TYPES, Bounds, Element, ElementSpec, content_from_payload
from docbuilder.utils.logger import get_logger

LOGGER = get_logger(__name__)


class InMemoryDocumentService(DocumentService):
    """Keeps documents in a dict; returns copies so callers never alias stored state."""

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self.calls: List[str] = []

    async def create_document(self, meta: Mapping[str, object]) -> Document:
        self.calls.append("create_document")
        size = str(meta.get("size") or "A4")
        orientation = str(meta.get("orientation") or "portrait")
        width, height = resolve_page_size(size, orientation)
        margins = Margins.from_payload(meta.get("margins"))
        document = Document(
            id=self._new_id(),
            title=str(meta.get("title") or "Untitled Document"),
            pages=[Page(id=self._new_id(), width=width, height=height, margins=margins)],
            metadata={key: value for key, value in meta.items() if key != "title"},
        )
        self._documents[document.id] = document
        LOGGER.debug("Created document %s", document.id)
        return deepcopy(document)

    async def get_document(self, document_id: str) -> Document:
        self.calls.append("get_document")
        return deepcopy(self._document(document_id))

    async def create_page(self, document_id: str, page_spec: PageSpec) -> Page:
        self.calls.append("create_page")
        document = self._document(document_id)
        width, height = resolve_page_size(page_spec.size, page_spec.orientation)
        page = Page(
            id=self._new_id(),
            width=page_spec.width or width,
            height=page_spec.height or height,
            margins=Margins(**page_spec.margins.to_payload()),
        )
        document.pages.append(page)
        return deepcopy(page)

    async def delete_page(self, document_id: str, page_id: str) -> None:
        self.calls.append("delete_page")
        document = self._document(document_id)
        index = document.page_index(page_id)
        if index < 0:
            raise NotFound(f"Page {page_id} not found")
        if len(document.pages) == 1:
            raise ValidationError("Cannot delete the last page")
        del document.pages[index]

    async def create_element(self, document_id: str, page_id: str, element_spec: ElementSpec) -> Element:
        self.calls.append("create_element")
        page = self._page(document_id, page_id)
        if element_spec.element_type not in ELEMENT_TYPES:
            raise ValidationError(f"Unsupported element type: {element_spec.element_type!r}")
        self._check_bounds(element_spec.bounds)
        element = Element(
            id=self._new_id(),
            element_type=element_spec.element_type,
            bounds=deepcopy(element_spec.bounds),
            content=deepcopy(element_spec.content),
            style=dict(element_spec.style),
        )
        page.elements.append(element)
        return deepcopy(element)

    async def update_element(
        self, document_id: str, page_id: str, element_id: str, patch: Mapping[str, object]
    ) -> Element:
        self.calls.append("update_element")
        element = self._element(document_id, page_id, element_id)
        try:
            bounds = Bounds.from_payload(patch["bounds"]) if "bounds" in patch else element.bounds
            content = (
                content_from_payload(element.element_type, patch["content"]) if "content" in patch else element.content
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        self._check_bounds(bounds)
        element.bounds = bounds
        element.content = content
        if "style" in patch:
            element.style = dict(patch["style"] or {})
        return deepcopy(element)

    async def delete_element(self, document_id: str, page_id: str, element_id: str) -> None:
        self.calls.append("delete_element")
        page = self._page(document_id, page_id)
        index = page.index_of(element_id)
        if index < 0:
            raise NotFound(f"Element {element_id} not found")
        del page.elements[index]

    async def reorder_element(self, document_id: str, page_id: str, element_id: str, new_index: int) -> None:
        self.calls.append("reorder_element")
        page = self._page(document_id, page_id)
        index = page.index_of(element_id)
        if index < 0:
            raise NotFound(f"Element {element_id} not found")
        if not 0 <= new_index < len(page.elements):
            raise ValidationError(f"Index {new_index} out of range for {len(page.elements)} elements")
        element = page.elements.pop(index)
        page.elements.insert(new_index, element)

    # ------------------------------------------------------------------
    # Lookup helpers
    def _document(self, document_id: str) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise NotFound(f"Document {document_id} not found")
        return document

    def _page(self, document_id: str, page_id: str) -> Page:
        document = self._document(document_id)
        index = document.page_index(page_id)
        if index < 0:
            raise NotFound(f"Page {page_id} not found")
        return document.pages[index]

    def _element(self, document_id: str, page_id: str, element_id: str) -> Element:
        element = self._page(document_id, page_id).find(element_id)
        if element is None:
            raise NotFound(f"Element {element_id} not found")
        return element

    @staticmethod
    def _check_bounds(bounds: Bounds) -> None:
        if bounds.width <= 0 or bounds.height <= 0:
            raise ValidationError(f"Element bounds must have a positive size: {bounds}")

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex[:12]
