"""REST implementation of :class:`DocumentService` on top of ``httpx``."""
from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

import httpx

from docbuilder.client.errors import (
    DocumentServiceError,
    NetworkError,
    NotFound,
    RateLimited,
    RequestTimeout,
    ValidationError,
)
from docbuilder.client.service import DocumentService
from docbuilder.model.document_model import Document, Page, PageSpec
from docbuilder.model.elements import Element, ElementSpec
from docbuilder.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:3001/api/enhanced-pdf"
VALIDATION_STATUSES = {400, 409, 422}

T = TypeVar("T")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Interpret a ``Retry-After`` header given in seconds or as an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


class HttpDocumentService(DocumentService):
    """Talks to the editor's ``/api/enhanced-pdf`` REST routes."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json", "Cache-Control": "no-cache"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Documents
    async def create_document(self, meta: Mapping[str, object]) -> Document:
        body = await self._request("POST", "/documents", json=dict(meta))
        return self._decode(Document.from_payload, body, "document")

    async def get_document(self, document_id: str) -> Document:
        body = await self._request("GET", f"/documents/{document_id}")
        return self._decode(Document.from_payload, body, "document")

    # ------------------------------------------------------------------
    # Pages
    async def create_page(self, document_id: str, page_spec: PageSpec) -> Page:
        body = await self._request("POST", f"/documents/{document_id}/pages", json=page_spec.to_payload())
        return self._decode(Page.from_payload, body, "page")

    async def delete_page(self, document_id: str, page_id: str) -> None:
        await self._request("DELETE", f"/documents/{document_id}/pages/{page_id}")

    # ------------------------------------------------------------------
    # Elements
    async def create_element(self, document_id: str, page_id: str, element_spec: ElementSpec) -> Element:
        body = await self._request(
            "POST",
            f"/documents/{document_id}/pages/{page_id}/elements",
            json=element_spec.to_payload(),
        )
        return self._decode(Element.from_payload, body, "element")

    async def update_element(
        self, document_id: str, page_id: str, element_id: str, patch: Mapping[str, object]
    ) -> Element:
        body = await self._request(
            "PUT",
            f"/documents/{document_id}/pages/{page_id}/elements/{element_id}",
            json=dict(patch),
        )
        return self._decode(Element.from_payload, body, "element")

    async def delete_element(self, document_id: str, page_id: str, element_id: str) -> None:
        await self._request("DELETE", f"/documents/{document_id}/pages/{page_id}/elements/{element_id}")

    async def reorder_element(self, document_id: str, page_id: str, element_id: str, new_index: int) -> None:
        await self._request(
            "PUT",
            f"/documents/{document_id}/pages/{page_id}/elements/{element_id}/order",
            json={"index": new_index},
        )

    # ------------------------------------------------------------------
    # Transport helpers
    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise RequestTimeout(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._classify(method, path, response)

        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError(f"{method} {path} returned a non-JSON body", status_code=response.status_code) from exc
        if isinstance(body, dict) and body.get("success") is False:
            raise ValidationError(str(body.get("error") or "request rejected"), status_code=response.status_code)
        return body if isinstance(body, dict) else {}

    def _classify(self, method: str, path: str, response: httpx.Response) -> DocumentServiceError:
        status = response.status_code
        message = f"{method} {path} -> {status}: {self._error_text(response)}"
        if status == 429:
            return RateLimited(message, retry_after=parse_retry_after(response.headers.get("Retry-After")))
        if status == 404:
            return NotFound(message, status_code=status)
        if status in VALIDATION_STATUSES:
            return ValidationError(message, status_code=status)
        if status in {408, 504}:
            return RequestTimeout(message, status_code=status)
        if status >= 500:
            return NetworkError(message, status_code=status)
        return ValidationError(message, status_code=status)

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase or ""
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or response.reason_phrase)
        return response.reason_phrase or ""

    @staticmethod
    def _field(body: Mapping[str, Any], key: str) -> Mapping[str, Any]:
        value = body.get(key)
        if not isinstance(value, Mapping):
            raise ValidationError(f"Response is missing '{key}'")
        return value

    @classmethod
    def _decode(cls, decoder: Callable[[Mapping[str, Any]], T], body: Mapping[str, Any], key: str) -> T:
        payload = cls._field(body, key)
        try:
            return decoder(payload)
        except (AttributeError, TypeError, ValueError) as exc:
            raise ValidationError(f"Malformed '{key}' in response: {exc}") from exc
