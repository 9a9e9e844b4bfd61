"""Tests for pointer-driven editing and the commit-then-reflow cycle."""
import asyncio
import unittest
from unittest.mock import AsyncMock, patch

from docbuilder.client.errors import NotFound
from docbuilder.client.memory_service import InMemoryDocumentService
from docbuilder.client.mutation_client import DocumentMutationClient, RetryPolicy
from docbuilder.controller.layout_controller import (
    ControllerBusy,
    InteractionState,
    LayoutController,
    compute_drop_zones,
    resize_bounds,
)
from docbuilder.model.elements import BLOCK_TEXT, Block, Bounds, DropZone, Element, TextContent
from docbuilder.parser.layout_calculator import AllocationReport, PageAllocator


def texts(page):
    return [element.content.text for element in page.elements]


def offsets(page):
    return [element.bounds.y for element in page.elements]


class ResizeBoundsTest(unittest.TestCase):
    """Handle geometry and minimum sizes."""

    def setUp(self):
        self.origin = Bounds(100, 100, 200, 80)

    def test_east_and_south_grow_from_fixed_origin(self):
        self.assertEqual(resize_bounds(self.origin, "se", 30, 20), Bounds(100, 100, 230, 100))
        self.assertEqual(resize_bounds(self.origin, "e", 30, 20), Bounds(100, 100, 230, 80))
        self.assertEqual(resize_bounds(self.origin, "s", 30, 20), Bounds(100, 100, 200, 100))

    def test_west_and_north_keep_opposite_edge(self):
        self.assertEqual(resize_bounds(self.origin, "nw", 50, 30), Bounds(150, 130, 150, 50))
        self.assertEqual(resize_bounds(self.origin, "w", -20, 0), Bounds(80, 100, 220, 80))
        self.assertEqual(resize_bounds(self.origin, "n", 0, -20), Bounds(100, 80, 200, 100))

    def test_minimum_size_enforced(self):
        shrunk = resize_bounds(self.origin, "ne", -1000, 1000)
        self.assertEqual((shrunk.width, shrunk.height), (50, 20))
        self.assertEqual(shrunk.bottom, self.origin.bottom)

        shrunk = resize_bounds(self.origin, "sw", 1000, -1000)
        self.assertEqual((shrunk.x, shrunk.width, shrunk.height), (250, 50, 20))

    def test_unknown_handle(self):
        with self.assertRaises(ValueError):
            resize_bounds(self.origin, "middle", 0, 0)


class DropZoneTest(unittest.TestCase):
    """Insertion points between siblings."""

    def test_zones_around_siblings(self):
        siblings = [
            Element("c", "text", Bounds(72, 142, 451, 20), TextContent("c")),
            Element("b", "text", Bounds(72, 107, 451, 20), TextContent("b")),
        ]
        self.assertEqual(
            compute_drop_zones(siblings),
            [DropZone(107, 0), DropZone(134.5, 1), DropZone(162, 2)],
        )

    def test_no_siblings_no_zones(self):
        self.assertEqual(compute_drop_zones([]), [])


class LayoutControllerTest(unittest.IsolatedAsyncioTestCase):
    """Four 20pt text elements at y = 72, 107, 142, 177 on one page."""

    async def asyncSetUp(self):
        self.service = InMemoryDocumentService()
        self.client = DocumentMutationClient(self.service, RetryPolicy(pacing_delay=0.0))
        self.allocator = PageAllocator(self.client)
        self.document = await self.client.create_document({"title": "Controller"})
        blocks = [
            Block(kind=BLOCK_TEXT, payload=TextContent(name), style={"fontSize": 12, "lineHeight": 1.4})
            for name in "ABCD"
        ]
        await self.allocator.assemble(self.document, blocks)
        self.controller = LayoutController(self.document, self.allocator)
        self.page = self.document.pages[0]

    async def test_press_computes_zones_excluding_dragged_element(self):
        element = self.controller.press(100, 80)

        self.assertEqual(element.content.text, "A")
        self.assertEqual(self.controller.state, InteractionState.DRAGGING)
        self.assertEqual(
            self.controller.drop_zones,
            [DropZone(107, 0), DropZone(134.5, 1), DropZone(169.5, 2), DropZone(197, 3)],
        )

    async def test_move_is_local_only(self):
        calls = len(self.service.calls)
        self.controller.press(100, 80)
        bounds = self.controller.move(130, 170)

        self.assertEqual((bounds.x, bounds.y), (102, 162))
        self.assertEqual(self.controller.active_zone, DropZone(169.5, 2))
        self.assertEqual(len(self.service.calls), calls)

    async def test_reorder_then_reflow_changes_only_bounds(self):
        dragged = self.page.elements[0]
        before = (dragged.id, dragged.element_type, dragged.content, dict(dragged.style))

        self.controller.press(100, 80)
        self.controller.move(100, 170)
        report = await self.controller.release()

        self.assertTrue(report.completed)
        self.assertIn("reorder_element", self.service.calls)
        self.assertEqual(texts(self.page), ["B", "C", "A", "D"])
        self.assertEqual(offsets(self.page), [72, 107, 142, 177])

        moved = self.page.elements[2]
        self.assertEqual((moved.id, moved.element_type, moved.content, moved.style), before)
        self.assertEqual((moved.bounds.x, moved.bounds.width, moved.bounds.height), (72, 451, 20))
        self.assertEqual(self.controller.state, InteractionState.IDLE)

        stored = await self.client.get_document(self.document.id)
        self.assertEqual(texts(stored.pages[0]), ["B", "C", "A", "D"])

    async def test_drop_outside_zones_updates_position_then_reflows(self):
        self.controller.press(100, 80)
        self.controller.move(100, 400)
        self.assertIsNone(self.controller.active_zone)

        report = await self.controller.release()

        self.assertEqual(report.updated, 4)
        self.assertEqual(report.reordered, 3)
        self.assertEqual(texts(self.page), ["B", "C", "D", "A"])
        self.assertEqual(offsets(self.page), [72, 107, 142, 177])

        stored = await self.client.get_document(self.document.id)
        self.assertEqual(texts(stored.pages[0]), ["B", "C", "D", "A"])
        self.assertEqual(offsets(stored.pages[0]), [72, 107, 142, 177])

    async def test_click_without_movement_commits_nothing(self):
        calls = len(self.service.calls)
        self.controller.press(100, 80)

        self.assertIsNone(await self.controller.release())
        self.assertEqual(len(self.service.calls), calls)
        self.assertEqual(self.controller.selected.content.text, "A")

    async def test_resize_persists_and_pushes_followers_down(self):
        self.controller.select(self.page.elements[0].id)
        self.controller.press_handle("s", 300, 92)
        self.controller.move(300, 122)
        self.assertEqual(self.controller.state, InteractionState.RESIZING)

        report = await self.controller.release()

        self.assertTrue(report.completed)
        self.assertEqual(self.page.elements[0].bounds.height, 50)
        self.assertEqual(offsets(self.page), [72, 137, 172, 207])

    async def test_selection_cleared_on_tool_or_page_change(self):
        self.controller.select(self.page.elements[1].id)
        self.controller.select_tool("rectangle")
        self.assertIsNone(self.controller.selected)

        self.controller.select_tool("select")
        self.controller.select(self.page.elements[1].id)
        self.controller.go_to_page(0)
        self.assertIsNone(self.controller.selected_id)

        with self.assertRaises(IndexError):
            self.controller.go_to_page(3)
        with self.assertRaises(ValueError):
            self.controller.select_tool("lasso")

    async def test_page_change_abandons_drag(self):
        self.controller.press(100, 80)
        self.controller.move(100, 300)
        self.controller.go_to_page(0)

        self.assertEqual(self.controller.state, InteractionState.IDLE)
        self.assertEqual(self.page.elements[0].bounds.y, 72)

    async def test_tools_place_elements_without_reflow(self):
        self.controller.set_zoom(200)
        self.controller.select_tool("text")
        text = await self.controller.place(200, 300)

        self.assertEqual(text.content.text, "Double-click to edit")
        self.assertEqual(text.bounds, Bounds(100, 150, 200, 40))

        self.controller.select_tool("circle")
        shape = await self.controller.place(400, 400)
        self.assertEqual(shape.content.shape, "circle")
        self.assertEqual((shape.bounds.width, shape.bounds.height), (100, 100))
        self.assertNotIn("update_element", self.service.calls)
        self.assertEqual(len(self.page.elements), 6)

    async def test_edit_content_reestimates_height(self):
        self.controller.select(self.page.elements[0].id)
        report = await self.controller.edit_content("x" * 200)

        self.assertTrue(report.completed)
        edited = self.page.elements[0]
        self.assertEqual(edited.content.text, "x" * 200)
        self.assertAlmostEqual(edited.bounds.height, 4 * 12 * 1.4)
        self.assertAlmostEqual(self.page.elements[1].bounds.y, 72 + 4 * 12 * 1.4 + 15)

    async def test_delete_selected_reflows(self):
        self.controller.select(self.page.elements[1].id)
        report = await self.controller.delete_selected()

        self.assertTrue(report.completed)
        self.assertEqual(texts(self.page), ["A", "C", "D"])
        self.assertEqual(offsets(self.page), [72, 107, 142])
        self.assertIsNone(self.controller.selected_id)

    async def test_failed_commit_restores_preview(self):
        self.controller.press(100, 80)
        self.controller.move(100, 400)
        with patch.object(self.client, "update_element", AsyncMock(side_effect=NotFound("stale element"))):
            with self.assertLogs("docbuilder.controller.layout_controller", level="WARNING"):
                report = await self.controller.release()

        self.assertIsInstance(report.error, NotFound)
        self.assertEqual(self.page.elements[0].bounds.y, 72)
        self.assertFalse(self.controller.busy)

    async def test_second_reflow_refused_while_one_runs(self):
        gate = asyncio.Event()
        seen = []

        async def slow_reflow(document, token=None):
            seen.append(token)
            await gate.wait()
            return AllocationReport(mode="reflow", total=document.element_count)

        with patch.object(self.allocator, "reflow", slow_reflow):
            first = asyncio.create_task(self.controller.reflow())
            await asyncio.sleep(0)
            self.assertTrue(self.controller.busy)

            with self.assertRaises(ControllerBusy):
                await self.controller.reflow()
            self.assertTrue(self.controller.cancel())
            self.assertTrue(seen[0].cancelled)

            gate.set()
            await first

        self.assertFalse(self.controller.busy)
        self.assertFalse(self.controller.cancel())

    async def test_gestures_refused_while_commit_reflows(self):
        gate = asyncio.Event()
        entered = asyncio.Event()

        async def slow_reflow(document, token=None):
            entered.set()
            await gate.wait()
            return AllocationReport(mode="reflow", total=document.element_count)

        with patch.object(self.allocator, "reflow", slow_reflow):
            self.controller.press(100, 80)
            self.controller.move(100, 400)
            releasing = asyncio.create_task(self.controller.release())
            await entered.wait()
            before = [element.bounds.to_payload() for element in self.page.elements]

            with self.assertRaises(ControllerBusy):
                self.controller.move(100, 100)
            with self.assertRaises(ControllerBusy):
                self.controller.press(100, 117)
            self.controller.select(self.page.elements[1].id)
            with self.assertRaises(ControllerBusy):
                self.controller.press_handle("s", 300, 127)
            self.assertEqual([element.bounds.to_payload() for element in self.page.elements], before)

            gate.set()
            report = await releasing

        self.assertTrue(report.completed)
        self.assertFalse(self.controller.busy)
        self.assertIsNotNone(self.controller.press(100, 117))

    async def test_place_holds_pipeline_until_created(self):
        gate = asyncio.Event()
        entered = asyncio.Event()
        tokens = []
        create_element = self.client.create_element

        async def slow_create(document_id, page_id, spec, token=None):
            tokens.append(token)
            entered.set()
            await gate.wait()
            return await create_element(document_id, page_id, spec, token)

        self.controller.select_tool("circle")
        with patch.object(self.client, "create_element", slow_create):
            placing = asyncio.create_task(self.controller.place(300, 500))
            await entered.wait()

            self.assertTrue(self.controller.busy)
            self.assertIsNotNone(tokens[0])
            with self.assertRaises(ControllerBusy):
                await self.controller.reflow()

            gate.set()
            shape = await placing

        self.assertFalse(self.controller.busy)
        self.assertIs(self.page.elements[-1], shape)
        self.assertNotIn("update_element", self.service.calls)

    async def test_zoom_is_clamped(self):
        self.assertEqual(self.controller.set_zoom(1000), 400)
        self.assertEqual(self.controller.set_zoom(10), 25)
        self.assertEqual(self.controller.zoom_out(), 25)
        self.assertEqual(self.controller.zoom_in(), 50)


if __name__ == '__main__':
    unittest.main()
