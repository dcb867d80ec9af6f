"""
Tests for outline normalization from heading levels.
"""

import unittest

from scriptorium.errors import PersistenceNetworkError
from scriptorium.ordering import OutlineNormalizer, compute_outline_parents
from scriptorium.store import BlockStore

from fakes import RecordingAPI, make_block


def leveled(*levels):
    names = []
    blocks = []
    for index, level in enumerate(levels):
        name = f"L{level}{'abcdefg'[sum(1 for n in names if n.startswith(f'L{level}'))]}"
        names.append(name)
        blocks.append(make_block(name, sort=index, type="section", level=level))
    return blocks


class TestComputeOutlineParents(unittest.TestCase):
    """Test the pure nesting rule."""

    def test_levels_nest_under_nearest_shallower_section(self):
        blocks = leveled(1, 2, 2, 1, 3)
        self.assertEqual([b.id for b in blocks], ["L1a", "L2a", "L2b", "L1b", "L3a"])

        parents = compute_outline_parents(blocks)

        self.assertEqual([parents[b.id] for b in blocks], [None, "L1a", "L1a", None, "L2b"])

    def test_paragraphs_follow_latest_leveled_section(self):
        blocks = [
            make_block("S1", sort=0, type="section", level=1),
            make_block("p1", sort=1),
            make_block("S2", sort=2, type="section", level=2),
            make_block("p2", sort=3),
            make_block("X", sort=4, type="section"),
            make_block("p3", sort=5),
        ]

        parents = compute_outline_parents(blocks)

        self.assertEqual(parents, {
            "S1": None, "p1": "S1", "S2": "S1", "p2": "S2", "X": None, "p3": None,
        })

    def test_deep_level_without_parent_level_goes_to_scope_root(self):
        blocks = [make_block("L3", sort=0, type="section", level=3)]
        self.assertEqual(compute_outline_parents(blocks, "scope"), {"L3": "scope"})


class TestOutlineNormalizer(unittest.IsolatedAsyncioTestCase):
    """Test applying the nesting to the store."""

    async def test_normalize_applies_and_persists(self):
        blocks = leveled(1, 2, 2, 1, 3)
        store = BlockStore("page-1", blocks)
        api = RecordingAPI(blocks)

        moves = await OutlineNormalizer(store, api).normalize()

        self.assertEqual([b.id for b in store.children(None)], ["L1a", "L1b"])
        self.assertEqual([b.id for b in store.children("L1a")], ["L2a", "L2b"])
        self.assertEqual([b.id for b in store.children("L2b")], ["L3a"])
        store.validate_tree()
        self.assertEqual(len(moves), 5)
        self.assertEqual(api.calls_named("reorder")[0][2], moves)

    async def test_existing_children_stay_first(self):
        blocks = [
            make_block("S1", sort=0, type="section", level=1),
            make_block("old", parent_id="S1", sort=0, text="kept"),
            make_block("S2", sort=1, type="section", level=2),
        ]
        store = BlockStore("page-1", blocks)

        await OutlineNormalizer(store, RecordingAPI(blocks)).normalize()

        self.assertEqual([b.id for b in store.children("S1")], ["old", "S2"])
        store.validate_tree()

    async def test_headings_are_upgraded_to_sections(self):
        blocks = [
            make_block("H", sort=0, type="heading", level=2, text="Loot"),
            make_block("p", sort=1, text="gold"),
        ]
        store = BlockStore("page-1", blocks)
        api = RecordingAPI(blocks)

        await OutlineNormalizer(store, api).normalize()

        heading = store.get("H")
        self.assertEqual(heading.type, "section")
        self.assertEqual(heading.level, 2)
        self.assertEqual(heading.content, {"title": "Loot"})
        self.assertFalse(heading.props["collapsed"])
        self.assertEqual(store.get("p").parent_id, "H")
        self.assertEqual(api.calls_named("patch")[0][2].type, "section")

    async def test_heading_without_level_becomes_level_one(self):
        blocks = [make_block("H", sort=0, type="heading", text="Intro")]
        store = BlockStore("page-1", blocks)

        await OutlineNormalizer(store, RecordingAPI(blocks)).normalize()

        self.assertEqual(store.get("H").level, 1)

    async def test_reorder_failure_keeps_local_nesting(self):
        blocks = leveled(1, 2)
        store = BlockStore("page-1", blocks)
        api = RecordingAPI(blocks)
        api.fail_reorder = PersistenceNetworkError("offline")

        with self.assertLogs(level="ERROR"):
            await OutlineNormalizer(store, api).normalize()

        self.assertEqual(store.get("L2a").parent_id, "L1a")

    async def test_empty_scope(self):
        store = BlockStore("page-1", [])
        api = RecordingAPI()
        self.assertEqual(await OutlineNormalizer(store, api).normalize(), [])
        self.assertEqual(api.calls, [])


if __name__ == '__main__':
    unittest.main(verbosity=2)
