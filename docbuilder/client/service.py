"""Transport-agnostic contract of the remote document store."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Mapping

from docbuilder.model.document_model import Document, Page, PageSpec
from docbuilder.model.elements import Element, ElementSpec


class DocumentService(ABC):
    """Remote document operations.

    Implementations return the success payload or raise a
    :class:`~docbuilder.client.errors.DocumentServiceError` subclass.
    """

    @abstractmethod
    async def create_document(self, meta: Mapping[str, object]) -> Document:
        ...

    @abstractmethod
    async def get_document(self, document_id: str) -> Document:
        ...

    @abstractmethod
    async def create_page(self, document_id: str, page_spec: PageSpec) -> Page:
        ...

    @abstractmethod
    async def delete_page(self, document_id: str, page_id: str) -> None:
        ...

    @abstractmethod
    async def create_element(self, document_id: str, page_id: str, element_spec: ElementSpec) -> Element:
        ...

    @abstractmethod
    async def update_element(
        self, document_id: str, page_id: str, element_id: str, patch: Mapping[str, object]
    ) -> Element:
        ...

    @abstractmethod
    async def delete_element(self, document_id: str, page_id: str, element_id: str) -> None:
        ...

    @abstractmethod
    async def reorder_element(self, document_id: str, page_id: str, element_id: str, new_index: int) -> None:
        ...

    async def aclose(self) -> None:
        """Release transport resources; no-op by default."""


def bounds_patch(element: Element) -> Dict[str, object]:
    """Patch payload that replaces only an element's bounds."""
    return {"bounds": element.bounds.to_payload()}
