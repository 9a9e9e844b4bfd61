"""Allocate blocks and elements onto fixed-size pages and persist the result."""
from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from docbuilder.client.errors import DocumentServiceError
from docbuilder.client.mutation_client import CancellationToken, DocumentMutationClient
from docbuilder.model.document_model import Document, Page, PageGeometry
from docbuilder.model.elements import (
    BLOCK_CODE,
    BLOCK_IMAGE,
    Block,
    Bounds,
    Element,
    ElementSpec,
    ShapeContent,
)
from docbuilder.parser.height_estimator import HeightEstimator
from docbuilder.utils.logger import get_logger

LOGGER = get_logger(__name__)

INTER_BLOCK_SPACING_PT = 15.0
MODE_ASSEMBLE = "assemble"
MODE_REFLOW = "reflow"
# Extra gap stored on an element so reflow reproduces it.
SPACING_BEFORE_KEY = "spacingBefore"


@dataclass(slots=True)
class LayoutContext:
    """Mutable cursor state while flowing content down the pages."""

    geometry: PageGeometry
    page_index: int = 0
    cursor_y: float = 0.0

    def __post_init__(self) -> None:
        if not self.cursor_y:
            self.cursor_y = self.geometry.margins.top

    @property
    def page_has_content(self) -> bool:
        return self.cursor_y > self.geometry.margins.top

    def overflows(self, height: float) -> bool:
        return self.cursor_y + height > self.geometry.content_bottom

    def next_page(self) -> None:
        self.page_index += 1
        self.cursor_y = self.geometry.margins.top

    def place(self, height: float, spacing: float, spacing_before: float = 0.0) -> Tuple[int, float]:
        """Return ``(page_index, y)`` for an item of ``height`` and advance the cursor.

        Items never split; one taller than the content area lands alone at
        the top of a page and overflows it.
        """
        if spacing_before and self.page_has_content:
            self.cursor_y += spacing_before
        if self.overflows(height) and self.page_has_content:
            self.next_page()
        slot = (self.page_index, self.cursor_y)
        self.cursor_y += height + spacing
        return slot


@dataclass(slots=True, frozen=True)
class Placement:
    """Planned page index and vertical offset of one block or element."""

    page_index: int
    y: float
    height: float


@dataclass(slots=True, frozen=True)
class ElementSnapshot:
    """Immutable copy of an element and where it currently lives."""

    page_index: int
    order: int
    element: Element
    absolute_y: float


@dataclass(slots=True)
class AllocationReport:
    """Outcome of one assembly or reflow run, including partial progress."""

    mode: str
    total: int
    created: int = 0
    updated: int = 0
    deleted: int = 0
    reordered: int = 0
    unchanged: int = 0
    pages_created: int = 0
    pages_deleted: int = 0
    error: Optional[DocumentServiceError] = None
    placements: List[Tuple[str, int, float]] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.error is None

    @property
    def processed(self) -> int:
        if self.mode == MODE_ASSEMBLE:
            return self.created
        return self.updated + self.created + self.unchanged

    @property
    def mutations(self) -> int:
        return (
            self.created + self.updated + self.deleted + self.reordered + self.pages_created + self.pages_deleted
        )

    def summary(self) -> str:
        if self.mode == MODE_ASSEMBLE:
            text = f"created {self.created} of {self.total} elements"
        else:
            text = (
                f"reflowed {self.processed} of {self.total} elements "
                f"({self.updated} moved, {self.created} changed page)"
            )
        if self.error is not None:
            text += f"; stopped: {self.error}"
        return text


class PageAllocator:
    """Flow engine shared by initial assembly and reflow."""

    def __init__(
        self,
        client: DocumentMutationClient,
        geometry: Optional[PageGeometry] = None,
        estimator: Optional[HeightEstimator] = None,
        spacing: float = INTER_BLOCK_SPACING_PT,
        prune_empty_pages: bool = False,
    ) -> None:
        self._client = client
        self.geometry = geometry or PageGeometry()
        self._estimator = estimator or HeightEstimator()
        self._spacing = spacing
        self._prune_empty_pages = prune_empty_pages

    @property
    def client(self) -> DocumentMutationClient:
        return self._client

    @property
    def estimator(self) -> HeightEstimator:
        return self._estimator

    # ------------------------------------------------------------------
    # Planning (pure)
    def plan(self, blocks: Sequence[Block]) -> List[Placement]:
        """Return where each block would land, without touching the service."""
        context = LayoutContext(self.geometry)
        placements: List[Placement] = []
        for block in blocks:
            height = self._estimator.estimate(block, self.geometry.content_width)
            page_index, y = context.place(height, self._spacing, block.spacing_before)
            placements.append(Placement(page_index, y, height))
        return placements

    def snapshot(self, document: Document) -> List[ElementSnapshot]:
        """Capture every element sorted by absolute Y, ties kept in page order."""
        nominal_height = self.geometry.height
        snapshots = [
            ElementSnapshot(
                page_index=page_index,
                order=order,
                element=deepcopy(element),
                absolute_y=page_index * nominal_height + element.bounds.y,
            )
            for page_index, page in enumerate(document.pages)
            for order, element in enumerate(page.elements)
        ]
        # sorted() is stable, so equal absolute Y keeps document order.
        return sorted(snapshots, key=lambda snap: snap.absolute_y)

    def plan_reflow(self, snapshots: Sequence[ElementSnapshot]) -> List[Placement]:
        context = LayoutContext(self.geometry)
        placements: List[Placement] = []
        for snap in snapshots:
            height = snap.element.bounds.height
            spacing_before = float(snap.element.style.get(SPACING_BEFORE_KEY) or 0.0)
            page_index, y = context.place(height, self._spacing, spacing_before)
            placements.append(Placement(page_index, y, height))
        return placements

    # ------------------------------------------------------------------
    # Initial assembly
    async def assemble(
        self, document: Document, blocks: Sequence[Block], token: Optional[CancellationToken] = None
    ) -> AllocationReport:
        """Persist ``blocks`` as new elements, creating pages on overflow."""
        report = AllocationReport(mode=MODE_ASSEMBLE, total=len(blocks))
        placements = self.plan(blocks)

        try:
            for block, placement in zip(blocks, placements):
                page = await self._ensure_page(document, placement.page_index, report, token)
                spec = self._spec_for(block, placement)
                element = await self._client.create_element(document.id, page.id, spec, token)
                page.elements.append(element)
                report.created += 1
                report.placements.append((element.id, placement.page_index, placement.y))
                LOGGER.debug(
                    "Placed %s block on page %d at y=%.1f (h=%.1f)",
                    block.kind,
                    placement.page_index,
                    placement.y,
                    placement.height,
                )
        except DocumentServiceError as exc:
            report.error = exc
            LOGGER.warning("Assembly of %s stopped: %s", document.id, report.summary())
            return report

        LOGGER.info("Assembly of %s finished: %s on %d pages", document.id, report.summary(), len(document.pages))
        return report

    # ------------------------------------------------------------------
    # Reflow
    async def reflow(self, document: Document, token: Optional[CancellationToken] = None) -> AllocationReport:
        """Re-derive page and offset of every element; only changed ones are mutated."""
        snapshots = self.snapshot(document)
        placements = self.plan_reflow(snapshots)
        report = AllocationReport(mode=MODE_REFLOW, total=len(snapshots))
        placed_per_page: Dict[int, int] = {}

        try:
            for snap, placement in zip(snapshots, placements):
                slot = placed_per_page.get(placement.page_index, 0)
                await self._apply_placement(document, snap, placement, slot, report, token)
                placed_per_page[placement.page_index] = slot + 1
            if self._prune_empty_pages:
                await self._prune_trailing_pages(document, report, token)
        except DocumentServiceError as exc:
            report.error = exc
            LOGGER.warning("Reflow of %s stopped: %s", document.id, report.summary())
            return report

        LOGGER.info("Reflow of %s finished: %s", document.id, report.summary())
        return report

    async def _apply_placement(
        self,
        document: Document,
        snap: ElementSnapshot,
        placement: Placement,
        slot: int,
        report: AllocationReport,
        token: Optional[CancellationToken],
    ) -> None:
        element = snap.element
        current_page = document.pages[snap.page_index]

        if placement.page_index == snap.page_index:
            target_page = current_page
            if element.bounds.y == placement.y:
                report.unchanged += 1
                placed_id = element.id
            else:
                bounds = Bounds(element.bounds.x, placement.y, element.bounds.width, element.bounds.height)
                updated = await self._client.update_element(
                    document.id, current_page.id, element.id, {"bounds": bounds.to_payload()}, token
                )
                _replace(current_page, updated)
                report.updated += 1
                placed_id = updated.id
        else:
            # An element changing page is deleted and recreated on its new page.
            target_page = await self._ensure_page(document, placement.page_index, report, token)
            await self._client.delete_element(document.id, current_page.id, element.id, token)
            _remove(current_page, element.id)
            report.deleted += 1
            bounds = Bounds(element.bounds.x, placement.y, element.bounds.width, element.bounds.height)
            created = await self._client.create_element(document.id, target_page.id, element.to_spec(bounds), token)
            target_page.elements.append(created)
            report.created += 1
            placed_id = created.id
        report.placements.append((placed_id, placement.page_index, placement.y))

        # Elements already placed on this page occupy the indexes before ``slot``.
        index = target_page.index_of(placed_id)
        if index != slot:
            await self._client.reorder_element(document.id, target_page.id, placed_id, slot, token)
            report.reordered += 1
            target_page.elements.insert(slot, target_page.elements.pop(index))

    async def _prune_trailing_pages(
        self, document: Document, report: AllocationReport, token: Optional[CancellationToken]
    ) -> None:
        while len(document.pages) > 1 and not document.pages[-1].elements:
            page = document.pages[-1]
            await self._client.delete_page(document.id, page.id, token)
            document.pages.pop()
            report.pages_deleted += 1

    # ------------------------------------------------------------------
    # Helpers
    async def _ensure_page(
        self,
        document: Document,
        page_index: int,
        report: AllocationReport,
        token: Optional[CancellationToken],
    ) -> Page:
        while len(document.pages) <= page_index:
            page = await self._client.create_page(document.id, self.geometry.to_page_spec(), token)
            document.pages.append(page)
            report.pages_created += 1
            LOGGER.info("Created page %d of %s", len(document.pages), document.id)
        return document.pages[page_index]

    def _spec_for(self, block: Block, placement: Placement) -> ElementSpec:
        content_width = self.geometry.content_width
        width = content_width
        if block.kind == BLOCK_IMAGE or isinstance(block.payload, ShapeContent):
            width = min(content_width, block.width or content_width)
        style = dict(block.style)
        if block.kind == BLOCK_CODE and "language" in block.metadata:
            style.setdefault("language", block.metadata["language"])
        if block.spacing_before:
            style[SPACING_BEFORE_KEY] = block.spacing_before
        return ElementSpec(
            element_type=block.element_type,
            bounds=Bounds(self.geometry.margins.left, placement.y, width, placement.height),
            content=block.payload,
            style=style,
        )


def _replace(page: Page, element: Element) -> None:
    index = page.index_of(element.id)
    if index >= 0:
        page.elements[index] = element
    else:
        page.elements.append(element)


def _remove(page: Page, element_id: str) -> None:
    index = page.index_of(element_id)
    if index >= 0:
        del page.elements[index]
