"""
Tests for keyboard tree operations and section unwrap.
"""

import random
import unittest

from scriptorium.errors import PersistenceHTTPError
from scriptorium.models import Point, Rect
from scriptorium.ordering import OrderingEngine, can_unwrap_section_title
from scriptorium.store import BlockStore

from fakes import RecordingAPI, make_block


def page_blocks():
    """Root: A, S (s1, s2, s3), B."""
    return [
        make_block("A", sort=0, text="A"),
        make_block("S", sort=1, type="section", level=1),
        make_block("s1", parent_id="S", sort=0, text="one"),
        make_block("s2", parent_id="S", sort=1, text="two"),
        make_block("s3", parent_id="S", sort=2, text="three"),
        make_block("B", sort=2, text="B"),
    ]


class EngineTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        blocks = page_blocks()
        self.store = BlockStore("page-1", blocks)
        self.api = RecordingAPI(blocks)
        self.rendered = []
        self.engine = OrderingEngine(self.store, self.api,
                                     renderer=lambda blocks, focus: self.rendered.append(focus))

    def ids(self, parent_id):
        return [b.id for b in self.store.children(parent_id)]


class TestIndentOutdent(EngineTestCase):
    """Test indent and outdent."""

    async def test_indent_first_block_is_noop(self):
        result = await self.engine.indent("A")
        await self.engine.drain()

        self.assertEqual(result.focus_id, "A")
        self.assertFalse(result.changed)
        self.assertEqual(self.api.calls, [])

    async def test_indent_makes_last_child_of_previous_sibling(self):
        result = await self.engine.indent("B")
        await self.engine.drain()

        self.assertEqual(self.ids("S"), ["s1", "s2", "s3", "B"])
        self.assertEqual(self.ids(None), ["A", "S"])
        self.store.validate_tree()
        self.assertEqual(result.focus_id, "B")
        self.assertEqual(self.rendered, ["B"])

        reorders = self.api.calls_named("reorder")
        self.assertEqual(len(reorders), 1)
        self.assertEqual(reorders[0][1], "page-1")

    async def test_outdent_root_block_is_noop(self):
        result = await self.engine.outdent("A")
        await self.engine.drain()

        self.assertEqual(result.focus_id, "A")
        self.assertEqual(self.api.calls, [])
        self.assertEqual(self.ids(None), ["A", "S", "B"])

    async def test_outdent_brings_following_siblings(self):
        await self.engine.outdent("s2")
        await self.engine.drain()

        self.assertEqual(self.ids(None), ["A", "S", "s2", "s3", "B"])
        self.assertEqual(self.ids("S"), ["s1"])
        self.store.validate_tree()

    async def test_outdent_last_child(self):
        await self.engine.outdent("s3")

        self.assertEqual(self.ids(None), ["A", "S", "s3", "B"])
        self.assertEqual(self.ids("S"), ["s1", "s2"])
        self.store.validate_tree()

    async def test_indent_then_outdent_restores_structure(self):
        await self.engine.indent("B")
        await self.engine.outdent("B")
        await self.engine.drain()

        self.assertEqual(self.ids(None), ["A", "S", "B"])
        self.assertEqual(self.ids("S"), ["s1", "s2", "s3"])
        self.assertIsNone(self.store.get("B").parent_id)
        self.store.validate_tree()

    async def test_reorder_failure_is_logged_and_local_state_kept(self):
        self.api.fail_reorder = PersistenceHTTPError(500, "Internal Server Error")

        with self.assertLogs(level="ERROR") as logs:
            await self.engine.indent("B")
            await self.engine.drain()

        self.assertEqual(self.store.get("B").parent_id, "S")
        self.assertTrue(any("Reorder" in line for line in logs.output))

    async def test_reorder_sends_every_touched_sibling(self):
        await self.engine.indent("B")
        await self.engine.drain()

        moves = self.api.calls_named("reorder")[0][2]
        by_id = {m.id: (m.parent_id, m.sort) for m in moves}
        self.assertEqual(by_id["B"], ("S", 3))
        self.assertEqual(by_id["A"], (None, 0))
        self.assertEqual(by_id["S"], (None, 1))


class TestMoveWithinSiblings(EngineTestCase):
    """Test swapping neighbours."""

    async def test_move_up(self):
        result = await self.engine.move_within_siblings("s2", -1)

        self.assertEqual(self.ids("S"), ["s2", "s1", "s3"])
        self.assertEqual(result.focus_id, "s2")
        self.store.validate_tree()

    async def test_move_down(self):
        await self.engine.move_within_siblings("A", 1)
        self.assertEqual(self.ids(None), ["S", "A", "B"])

    async def test_move_past_edge_is_noop(self):
        first = await self.engine.move_within_siblings("s1", -1)
        last = await self.engine.move_within_siblings("s3", 1)
        await self.engine.drain()

        self.assertFalse(first.changed)
        self.assertFalse(last.changed)
        self.assertEqual(self.api.calls, [])


class TestUnwrapSection(EngineTestCase):
    """Test deleting a section while keeping its children."""

    async def test_unwrap_splices_children_in_place(self):
        result = await self.engine.unwrap_section("S")

        self.assertEqual(self.ids(None), ["A", "s1", "s2", "s3", "B"])
        self.assertNotIn("S", self.store)
        self.assertEqual(result.focus_id, "s1")
        self.store.validate_tree()
        self.assertEqual([c[0] for c in self.api.calls], ["reorder", "delete"])

    async def test_unwrap_empty_section_focuses_previous_sibling(self):
        await self.engine.unwrap_section("S")
        self.store.append(make_block("E", sort=5, type="section"))

        result = await self.engine.unwrap_section("E")

        self.assertEqual(result.focus_id, "B")
        self.assertNotIn("E", self.store)

    async def test_unwrap_first_empty_section_focuses_next_sibling(self):
        store = BlockStore("page-1", [
            make_block("E", sort=0, type="section"),
            make_block("x", sort=1, text="x"),
        ])
        engine = OrderingEngine(store, RecordingAPI())

        result = await engine.unwrap_section("E")

        self.assertEqual(result.focus_id, "x")
        self.assertEqual(store.get("x").sort, 0)

    async def test_unwrap_only_child_focuses_parent(self):
        store = BlockStore("page-1", [
            make_block("P", sort=0, type="section"),
            make_block("E", parent_id="P", sort=0, type="section"),
        ])
        engine = OrderingEngine(store, RecordingAPI())

        result = await engine.unwrap_section("E")

        self.assertEqual(result.focus_id, "P")

    async def test_unwrap_failure_propagates_and_tree_stays_sound(self):
        self.api.fail_delete = PersistenceHTTPError(500, "Internal Server Error")

        with self.assertRaises(PersistenceHTTPError):
            await self.engine.unwrap_section("S")

        self.assertIn("S", self.store)
        self.assertEqual(self.ids(None), ["A", "s1", "s2", "s3", "B", "S"])
        self.store.validate_tree()

    async def test_unwrap_non_section_is_noop(self):
        result = await self.engine.unwrap_section("A")
        self.assertEqual(result.focus_id, "A")
        self.assertEqual(self.api.calls, [])

    def test_can_unwrap_only_blank_titles(self):
        self.assertTrue(can_unwrap_section_title(""))
        self.assertTrue(can_unwrap_section_title("   "))
        self.assertTrue(can_unwrap_section_title(None))
        self.assertFalse(can_unwrap_section_title("Loot"))


def layout(store):
    """One 20px row per block in document order, indented 20px per level."""
    rects = {}
    for i, block in enumerate(store.document_order()):
        left = 20.0 * len(store.ancestors(block.id))
        rects[block.id] = Rect(left=left, top=20.0 * i, right=400.0, bottom=20.0 * i + 20.0)
    return rects


class TestOperationSequences(unittest.IsolatedAsyncioTestCase):
    """Test that any mix of tree operations keeps the tree sound."""

    def page(self):
        return page_blocks() + [
            make_block("T", sort=3, type="section", level=1),
            make_block("T2", parent_id="T", sort=0, type="section", level=2),
            make_block("t1", parent_id="T2", sort=0, text="t1"),
            make_block("C", sort=4, text="C"),
        ]

    async def run_sequence(self, seed, steps=60):
        rng = random.Random(seed)
        blocks = self.page()
        store = BlockStore("page-1", blocks)
        engine = OrderingEngine(store, RecordingAPI(blocks))

        for step in range(steps):
            block_id = rng.choice([b.id for b in store.get_all()])
            op = rng.choice(["indent", "outdent", "up", "down", "drag"])
            if op == "indent":
                await engine.indent(block_id)
            elif op == "outdent":
                await engine.outdent(block_id)
            elif op == "up":
                await engine.move_within_siblings(block_id, -1)
            elif op == "down":
                await engine.move_within_siblings(block_id, 1)
            else:
                rects = layout(store)
                hovered = rng.choice([b.id for b in store.get_all() if b.is_section])
                cursor = Point(x=rects[hovered].left + rng.uniform(-60.0, 60.0),
                               y=rng.uniform(-10.0, 20.0 * len(rects) + 10.0))
                await engine.drag_reparent(block_id, cursor, hovered, rects)
            store.validate_tree()
            self.assertEqual(len(store), len(blocks), f"seed {seed} step {step} ({op} {block_id})")

        await engine.drain()

    async def test_random_sequences_keep_tree_sound(self):
        for seed in range(50):
            with self.subTest(seed=seed):
                await self.run_sequence(seed)


if __name__ == '__main__':
    unittest.main(verbosity=2)
