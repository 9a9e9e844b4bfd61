"""Classified failures of the remote document service."""
from __future__ import annotations

from typing import Optional


class DocumentServiceError(Exception):
    """Base class for every failure surfaced by a document service call."""

    retryable = False

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(DocumentServiceError):
    """Transient transport failure (connection reset, 5xx, ...)."""

    retryable = True


class RequestTimeout(NetworkError):
    """The call did not complete within its time budget."""


class RateLimited(DocumentServiceError):
    """The service asked us to slow down; ``retry_after`` is its hint in seconds."""

    retryable = True

    def __init__(self, message: str, *, retry_after: Optional[float] = None,
                 status_code: Optional[int] = 429) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class ValidationError(DocumentServiceError):
    """Malformed page or element specification."""


class NotFound(DocumentServiceError):
    """Stale document, page or element identifier."""


class OperationCancelled(DocumentServiceError):
    """The owning operation cancelled the call before it completed."""
