"""Pointer-driven editing of an assembled document: selection, drag, resize, tools."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from docbuilder.client.errors import DocumentServiceError
from docbuilder.client.mutation_client import CancellationToken
from docbuilder.client.service import bounds_patch
from docbuilder.model.document_model import Document, Page
from docbuilder.model.elements import (
    BLOCK_TEXT,
    ELEMENT_SHAPE,
    ELEMENT_TEXT,
    Bounds,
    DropZone,
    Element,
    ElementSpec,
    ShapeContent,
    TextContent,
)
from docbuilder.model.style_model import StylesCatalog
from docbuilder.parser.layout_calculator import MODE_REFLOW, AllocationReport, PageAllocator
from docbuilder.utils.logger import get_logger
from docbuilder.utils.units import DEFAULT_ZOOM_PERCENT, ZOOM_STEP_PERCENT, clamp_zoom, pixels_to_points

LOGGER = get_logger(__name__)

TOOL_SELECT = "select"
TOOL_TEXT = "text"
TOOL_RECTANGLE = "rectangle"
TOOL_CIRCLE = "circle"
TOOLS = (TOOL_SELECT, TOOL_TEXT, TOOL_RECTANGLE, TOOL_CIRCLE)

RESIZE_HANDLES = ("nw", "n", "ne", "e", "se", "s", "sw", "w")
MIN_ELEMENT_WIDTH_PT = 50.0
MIN_ELEMENT_HEIGHT_PT = 20.0
DROP_ZONE_TOLERANCE_PT = 30.0

NEW_TEXT_SIZE_PT = (200.0, 40.0)
NEW_SHAPE_SIZE_PT = (100.0, 100.0)
NEW_TEXT_PLACEHOLDER = "Double-click to edit"
NEW_SHAPE_STYLE: Dict[str, object] = {"fill": "#e3f2fd", "stroke": "#2196f3", "strokeWidth": 2}


class InteractionState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    REORDERING = "reordering"


class ControllerBusy(RuntimeError):
    """Raised when a commit is requested while a reflow is still running."""


@dataclass(slots=True)
class Gesture:
    """Pointer gesture in progress on one element (page points)."""

    element_id: str
    origin: Bounds
    start_x: float
    start_y: float
    handle: Optional[str] = None


def compute_drop_zones(siblings: List[Element]) -> List[DropZone]:
    """Insertion points around ``siblings``, which exclude the dragged element.

    One zone sits at the top of the first sibling, one between each
    consecutive pair and one below the last. ``insert_index`` is the
    position the dragged element takes among the siblings.
    """
    ordered = sorted(siblings, key=lambda element: element.bounds.y)
    if not ordered:
        return []
    zones = [DropZone(y=ordered[0].bounds.y, insert_index=0)]
    for index in range(1, len(ordered)):
        above, below = ordered[index - 1].bounds, ordered[index].bounds
        midpoint = (above.bottom + below.y) / 2
        zones.append(DropZone(y=min(max(midpoint, above.y), below.y), insert_index=index))
    zones.append(DropZone(y=ordered[-1].bounds.bottom, insert_index=len(ordered)))
    return zones


def nearest_zone(zones: List[DropZone], y: float, tolerance: float = DROP_ZONE_TOLERANCE_PT) -> Optional[DropZone]:
    best: Optional[DropZone] = None
    for zone in zones:
        distance = abs(zone.y - y)
        if distance <= tolerance and (best is None or distance < abs(best.y - y)):
            best = zone
    return best


def resize_bounds(origin: Bounds, handle: str, dx: float, dy: float) -> Bounds:
    """Apply a handle drag of ``(dx, dy)`` to ``origin`` honouring minimum sizes.

    West and north handles move the left/top edge, so the opposite edge
    stays fixed when the minimum kicks in.
    """
    if handle not in RESIZE_HANDLES:
        raise ValueError(f"Unknown resize handle: {handle!r}")
    x, y, width, height = origin.x, origin.y, origin.width, origin.height
    if "e" in handle:
        width = max(MIN_ELEMENT_WIDTH_PT, origin.width + dx)
    if "w" in handle:
        width = max(MIN_ELEMENT_WIDTH_PT, origin.width - dx)
        x = origin.right - width
    if "s" in handle:
        height = max(MIN_ELEMENT_HEIGHT_PT, origin.height + dy)
    if "n" in handle:
        height = max(MIN_ELEMENT_HEIGHT_PT, origin.height - dy)
        y = origin.bottom - height
    return Bounds(x, y, width, height)


class LayoutController:
    """Turns pointer input into local previews and committed mutations plus reflow.

    Pointer coordinates are screen pixels relative to the current page at
    the current zoom level; everything stored is in page points.
    """

    def __init__(
        self,
        document: Document,
        allocator: PageAllocator,
        *,
        styles: Optional[StylesCatalog] = None,
        tolerance: float = DROP_ZONE_TOLERANCE_PT,
    ) -> None:
        self.document = document
        self._allocator = allocator
        self._client = allocator.client
        self._styles = styles or StylesCatalog.default()
        self.tolerance = tolerance
        self.state = InteractionState.IDLE
        self.tool = TOOL_SELECT
        self.page_index = 0
        self.zoom = float(DEFAULT_ZOOM_PERCENT)
        self.selected_id: Optional[str] = None
        self.drop_zones: List[DropZone] = []
        self.active_zone: Optional[DropZone] = None
        self.last_report: Optional[AllocationReport] = None
        self._gesture: Optional[Gesture] = None
        self._in_flight: Optional[CancellationToken] = None

    # ------------------------------------------------------------------
    # View state
    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    @property
    def current_page(self) -> Page:
        return self.document.pages[self.page_index]

    @property
    def selected(self) -> Optional[Element]:
        if self.selected_id is None:
            return None
        return self.current_page.find(self.selected_id)

    def select_tool(self, tool: str) -> None:
        if tool not in TOOLS:
            raise ValueError(f"Unknown tool: {tool!r}")
        self.tool = tool
        self.clear_selection()

    def go_to_page(self, page_index: int) -> None:
        if not 0 <= page_index < len(self.document.pages):
            raise IndexError(f"Page {page_index} out of range")
        self.clear_selection()
        self.page_index = page_index

    def set_zoom(self, percent: float) -> float:
        self.zoom = float(clamp_zoom(percent))
        return self.zoom

    def zoom_in(self) -> float:
        return self.set_zoom(self.zoom + ZOOM_STEP_PERCENT)

    def zoom_out(self) -> float:
        return self.set_zoom(self.zoom - ZOOM_STEP_PERCENT)

    def select(self, element_id: str) -> Element:
        element = self.current_page.find(element_id)
        if element is None:
            raise KeyError(f"Element {element_id} is not on page {self.page_index}")
        self.selected_id = element_id
        return element

    def clear_selection(self) -> None:
        if self._gesture is not None:
            self.abort_gesture()
        self.selected_id = None

    def to_page_point(self, screen_x: float, screen_y: float) -> Tuple[float, float]:
        return pixels_to_points(screen_x, self.zoom), pixels_to_points(screen_y, self.zoom)

    def hit_test(self, x: float, y: float) -> Optional[Element]:
        """Topmost element under a page point; later elements paint above earlier ones."""
        for element in reversed(self.current_page.elements):
            if element.bounds.contains(x, y):
                return element
        return None

    # ------------------------------------------------------------------
    # Pointer gestures
    def press(self, screen_x: float, screen_y: float) -> Optional[Element]:
        """Select the element under the pointer and start dragging it."""
        if self.tool != TOOL_SELECT:
            return None
        self._ensure_idle_pipeline()
        x, y = self.to_page_point(screen_x, screen_y)
        element = self.hit_test(x, y)
        if element is None:
            self.clear_selection()
            return None
        self.selected_id = element.id
        self._gesture = Gesture(element.id, _copy(element.bounds), x, y)
        siblings = [other for other in self.current_page.elements if other.id != element.id]
        self.drop_zones = compute_drop_zones(siblings)
        self.active_zone = None
        self.state = InteractionState.DRAGGING
        return element

    def press_handle(self, handle: str, screen_x: float, screen_y: float) -> Element:
        """Start resizing the selected element from one of its eight handles."""
        if handle not in RESIZE_HANDLES:
            raise ValueError(f"Unknown resize handle: {handle!r}")
        self._ensure_idle_pipeline()
        element = self.selected
        if element is None:
            raise LookupError("No element selected")
        x, y = self.to_page_point(screen_x, screen_y)
        self._gesture = Gesture(element.id, _copy(element.bounds), x, y, handle=handle)
        self.state = InteractionState.RESIZING
        return element

    def move(self, screen_x: float, screen_y: float) -> Optional[Bounds]:
        """Preview the gesture locally; nothing is sent to the service."""
        gesture = self._gesture
        if gesture is None:
            return None
        self._ensure_idle_pipeline()
        element = self.current_page.find(gesture.element_id)
        if element is None:
            return None
        x, y = self.to_page_point(screen_x, screen_y)
        dx, dy = x - gesture.start_x, y - gesture.start_y
        origin = gesture.origin
        if self.state is InteractionState.DRAGGING:
            element.bounds = Bounds(origin.x + dx, origin.y + dy, origin.width, origin.height)
            self.active_zone = nearest_zone(self.drop_zones, y, self.tolerance)
        elif self.state is InteractionState.RESIZING and gesture.handle:
            element.bounds = resize_bounds(origin, gesture.handle, dx, dy)
        return element.bounds

    def abort_gesture(self) -> None:
        """Drop a gesture without committing, restoring the original bounds."""
        gesture = self._gesture
        if gesture is not None:
            element = self.current_page.find(gesture.element_id)
            if element is not None:
                element.bounds = gesture.origin
        self._reset_gesture()

    async def release(self) -> Optional[AllocationReport]:
        """Commit the gesture in progress, then reflow the document."""
        gesture = self._gesture
        if gesture is None:
            return None
        self._ensure_idle_pipeline()
        element = self.current_page.find(gesture.element_id)
        if element is None:
            self._reset_gesture()
            return None

        if self.state is InteractionState.DRAGGING and self.active_zone is not None:
            zone = self.active_zone
            self.state = InteractionState.REORDERING
            return await self._run(partial(self._commit_reorder, element, gesture.origin, zone))
        if element.bounds.to_payload() == gesture.origin.to_payload():
            self._reset_gesture()
            return None
        return await self._run(partial(self._commit_bounds, element))

    # ------------------------------------------------------------------
    # Tools and edits
    async def place(self, screen_x: float, screen_y: float) -> Optional[Element]:
        """Create an element with the active tool at the pointer; no reflow."""
        if self.tool == TOOL_SELECT:
            return None
        self._ensure_idle_pipeline()
        x, y = self.to_page_point(screen_x, screen_y)
        if self.tool == TOOL_TEXT:
            width, height = NEW_TEXT_SIZE_PT
            spec = ElementSpec(
                ELEMENT_TEXT,
                Bounds(x, y, width, height),
                TextContent(NEW_TEXT_PLACEHOLDER),
                self._styles.resolve(None, BLOCK_TEXT),
            )
        else:
            width, height = NEW_SHAPE_SIZE_PT
            spec = ElementSpec(ELEMENT_SHAPE, Bounds(x, y, width, height), ShapeContent(self.tool), dict(NEW_SHAPE_STYLE))
        page = self.current_page
        token = CancellationToken()
        self._in_flight = token
        try:
            element = await self._client.create_element(self.document.id, page.id, spec, token)
        finally:
            self._in_flight = None
        page.elements.append(element)
        self.selected_id = element.id
        LOGGER.info("Placed %s element %s on page %d", self.tool, element.id, self.page_index)
        return element

    async def edit_content(self, text: str) -> Optional[AllocationReport]:
        """Replace the selected text element's content, re-estimate its height and reflow."""
        element = self.selected
        if element is None or element.element_type != ELEMENT_TEXT:
            raise LookupError("No text element selected")
        self._ensure_idle_pipeline()
        return await self._run(partial(self._commit_content, element, text))

    async def delete_selected(self) -> Optional[AllocationReport]:
        element = self.selected
        if element is None:
            return None
        self._ensure_idle_pipeline()
        return await self._run(partial(self._commit_delete, element))

    async def reflow(self) -> AllocationReport:
        self._ensure_idle_pipeline()
        return await self._run(None)

    def cancel(self, reason: str = "cancelled by user") -> bool:
        """Abort the in-flight commit or reflow; returns whether one was running."""
        if self._in_flight is None:
            return False
        self._in_flight.cancel(reason)
        return True

    # ------------------------------------------------------------------
    # Commits
    async def _commit_reorder(self, element: Element, origin: Bounds, zone: DropZone, token: CancellationToken) -> None:
        page = self.current_page
        y = zone.y
        await self._client.reorder_element(self.document.id, page.id, element.id, zone.insert_index, token)
        page.elements.remove(element)
        page.elements.insert(zone.insert_index, element)
        element.bounds = Bounds(origin.x, y, origin.width, origin.height)
        updated = await self._client.update_element(
            self.document.id, page.id, element.id, bounds_patch(element), token
        )
        _swap(page, updated)
        LOGGER.info("Moved %s to index %d on page %d", element.id, zone.insert_index, self.page_index)

    async def _commit_bounds(self, element: Element, token: CancellationToken) -> None:
        page = self.current_page
        updated = await self._client.update_element(
            self.document.id, page.id, element.id, bounds_patch(element), token
        )
        _swap(page, updated)

    async def _commit_content(self, element: Element, text: str, token: CancellationToken) -> None:
        page = self.current_page
        edited = Element(element.id, element.element_type, element.bounds, TextContent(text), element.style)
        height = self._allocator.estimator.estimate_element(edited)
        bounds = Bounds(element.bounds.x, element.bounds.y, element.bounds.width, height)
        updated = await self._client.update_element(
            self.document.id, page.id, element.id, {"content": text, "bounds": bounds.to_payload()}, token
        )
        _swap(page, updated)

    async def _commit_delete(self, element: Element, token: CancellationToken) -> None:
        page = self.current_page
        await self._client.delete_element(self.document.id, page.id, element.id, token)
        page.elements.remove(element)
        self.selected_id = None

    async def _run(self, commit: Optional[Callable[[CancellationToken], Awaitable[None]]]) -> AllocationReport:
        """Run ``commit`` and then a reflow under one in-flight token."""
        token = CancellationToken()
        self._in_flight = token
        try:
            if commit is not None:
                try:
                    await commit(token)
                except DocumentServiceError as exc:
                    LOGGER.warning("Commit on %s failed, skipping reflow: %s", self.document.id, exc)
                    self.abort_gesture()
                    report = AllocationReport(mode=MODE_REFLOW, total=self.document.element_count, error=exc)
                    self.last_report = report
                    return report
            report = await self._allocator.reflow(self.document, token)
        finally:
            self._in_flight = None
            self._reset_gesture()
        self.last_report = report
        if self.page_index >= len(self.document.pages):
            self.page_index = len(self.document.pages) - 1
        if self.selected_id is not None and self.current_page.find(self.selected_id) is None:
            self.selected_id = None
        return report

    def _ensure_idle_pipeline(self) -> None:
        if self._in_flight is not None:
            raise ControllerBusy(f"An edit of {self.document.id} is still in flight")

    def _reset_gesture(self) -> None:
        self._gesture = None
        self.drop_zones = []
        self.active_zone = None
        self.state = InteractionState.IDLE


def _copy(bounds: Bounds) -> Bounds:
    return Bounds(bounds.x, bounds.y, bounds.width, bounds.height)


def _swap(page: Page, element: Element) -> None:
    index = page.index_of(element.id)
    if index >= 0:
        page.elements[index] = element
