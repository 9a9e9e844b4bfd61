"""Retrying, paced and cancellable wrapper around a :class:`DocumentService`."""
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Optional, TypeVar

from docbuilder.client.errors import NetworkError, OperationCancelled, RateLimited, RequestTimeout
from docbuilder.client.service import DocumentService
from docbuilder.model.document_model import Document, Page, PageSpec
from docbuilder.model.elements import Element, ElementSpec
from docbuilder.utils.logger import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_PACING_DELAY_S = 0.1
DEFAULT_TIMEOUT_S = 30.0


@dataclass(slots=True)
class RetryPolicy:
    """Retry, backoff, pacing and timeout parameters (seconds)."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY_S
    pacing_delay: float = DEFAULT_PACING_DELAY_S
    timeout: float = DEFAULT_TIMEOUT_S

    def backoff(self, attempt: int, hint: Optional[float] = None) -> float:
        """Delay before retry number ``attempt + 1``; a server hint wins."""
        if hint is not None:
            return hint
        return self.base_delay * (2 ** attempt)

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        """Build a policy from ``DOCBUILDER_*`` environment variables."""
        return cls(
            max_retries=int(os.environ.get("DOCBUILDER_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
            base_delay=float(os.environ.get("DOCBUILDER_BASE_DELAY", DEFAULT_BASE_DELAY_S)),
            pacing_delay=float(os.environ.get("DOCBUILDER_PACING_DELAY", DEFAULT_PACING_DELAY_S)),
            timeout=float(os.environ.get("DOCBUILDER_TIMEOUT", DEFAULT_TIMEOUT_S)),
        )


class CancellationToken:
    """Cancellation handle owned by one assembly, reflow or fetch operation."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(slots=True)
class MutationStats:
    """Counters for the calls issued through one client."""

    mutations: int = 0
    fetches: int = 0
    retries: int = 0


class DocumentMutationClient:
    """Issues document service calls one at a time with retry, pacing and timeouts.

    Calls are not deduplicated: submitting the same change twice performs it twice.
    """

    def __init__(
        self,
        service: DocumentService,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._service = service
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock
        self._last_mutation_at: Optional[float] = None
        self.stats = MutationStats()

    @property
    def service(self) -> DocumentService:
        return self._service

    # ------------------------------------------------------------------
    # Operations
    async def create_document(self, meta: Mapping[str, object], token: Optional[CancellationToken] = None) -> Document:
        return await self._mutate("create_document", lambda: self._service.create_document(meta), token)

    async def get_document(self, document_id: str, token: Optional[CancellationToken] = None) -> Document:
        self.stats.fetches += 1
        return await self._call("get_document", lambda: self._service.get_document(document_id), token)

    async def create_page(
        self, document_id: str, page_spec: PageSpec, token: Optional[CancellationToken] = None
    ) -> Page:
        return await self._mutate("create_page", lambda: self._service.create_page(document_id, page_spec), token)

    async def delete_page(self, document_id: str, page_id: str, token: Optional[CancellationToken] = None) -> None:
        await self._mutate("delete_page", lambda: self._service.delete_page(document_id, page_id), token)

    async def create_element(
        self, document_id: str, page_id: str, spec: ElementSpec, token: Optional[CancellationToken] = None
    ) -> Element:
        return await self._mutate(
            "create_element", lambda: self._service.create_element(document_id, page_id, spec), token
        )

    async def update_element(
        self,
        document_id: str,
        page_id: str,
        element_id: str,
        patch: Mapping[str, object],
        token: Optional[CancellationToken] = None,
    ) -> Element:
        return await self._mutate(
            "update_element",
            lambda: self._service.update_element(document_id, page_id, element_id, patch),
            token,
        )

    async def delete_element(
        self, document_id: str, page_id: str, element_id: str, token: Optional[CancellationToken] = None
    ) -> None:
        await self._mutate(
            "delete_element", lambda: self._service.delete_element(document_id, page_id, element_id), token
        )

    async def reorder_element(
        self,
        document_id: str,
        page_id: str,
        element_id: str,
        new_index: int,
        token: Optional[CancellationToken] = None,
    ) -> None:
        await self._mutate(
            "reorder_element",
            lambda: self._service.reorder_element(document_id, page_id, element_id, new_index),
            token,
        )

    # ------------------------------------------------------------------
    # Call orchestration
    async def _mutate(self, label: str, factory: Callable[[], Awaitable[T]], token: Optional[CancellationToken]) -> T:
        await self._pace(token)
        self.stats.mutations += 1
        try:
            return await self._call(label, factory, token)
        finally:
            self._last_mutation_at = self._now()

    async def _pace(self, token: Optional[CancellationToken]) -> None:
        if self._last_mutation_at is None or self.policy.pacing_delay <= 0:
            return
        remaining = self.policy.pacing_delay - (self._now() - self._last_mutation_at)
        if remaining > 0:
            await self._wait(remaining, token)

    async def _call(self, label: str, factory: Callable[[], Awaitable[T]], token: Optional[CancellationToken]) -> T:
        attempt = 0
        while True:
            if token is not None:
                token.raise_if_cancelled()
            try:
                return await self._bounded(label, factory(), token)
            except (NetworkError, RateLimited) as exc:
                if attempt >= self.policy.max_retries:
                    LOGGER.warning("%s failed after %d attempts: %s", label, attempt + 1, exc)
                    raise
                hint = exc.retry_after if isinstance(exc, RateLimited) else None
                delay = self.policy.backoff(attempt, hint)
                LOGGER.warning(
                    "%s: %s; retrying in %.2fs (attempt %d/%d)",
                    label,
                    type(exc).__name__,
                    delay,
                    attempt + 1,
                    self.policy.max_retries,
                )
                await self._wait(delay, token)
                attempt += 1
                self.stats.retries += 1

    async def _bounded(self, label: str, call: Awaitable[T], token: Optional[CancellationToken]) -> T:
        task = asyncio.ensure_future(call)
        waiters = {task}
        cancel_waiter = None
        if token is not None:
            cancel_waiter = asyncio.ensure_future(token.wait())
            waiters.add(cancel_waiter)

        done, _ = await asyncio.wait(waiters, timeout=self.policy.timeout, return_when=asyncio.FIRST_COMPLETED)
        if cancel_waiter is not None and cancel_waiter not in done:
            cancel_waiter.cancel()
            await asyncio.gather(cancel_waiter, return_exceptions=True)

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if cancel_waiter is not None and cancel_waiter in done:
            raise OperationCancelled(f"{label} aborted: {token.reason}")
        raise RequestTimeout(f"{label} exceeded {self.policy.timeout:.1f}s")

    async def _wait(self, delay: float, token: Optional[CancellationToken]) -> None:
        if token is None:
            await self._sleep(delay)
            return
        token.raise_if_cancelled()
        sleeper = asyncio.ensure_future(self._sleep(delay))
        cancel_waiter = asyncio.ensure_future(token.wait())
        done, pending = await asyncio.wait({sleeper, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        for future in pending:
            future.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if cancel_waiter in done:
            raise OperationCancelled(token.reason or "cancelled")

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()
