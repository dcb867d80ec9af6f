"""
Unit tests for core Scriptorium components.

Tests configuration management, the DuckDB block database and the block
data models.
"""

import os
import tempfile
import unittest
from pathlib import Path

from scriptorium.config import ConfigManager
from scriptorium.database import DatabaseManager
from scriptorium.errors import BlockValidationError
from scriptorium.models import Block, BlockPatch, Move, SectionProps


class TestConfigManager(unittest.TestCase):
    """Test configuration management functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "test_config.yaml"

    def tearDown(self):
        """Clean up test fixtures."""
        if self.config_path.exists():
            self.config_path.unlink()
        os.rmdir(self.temp_dir)

    def test_config_creation_with_defaults(self):
        """Test config manager falls back to defaults when file missing."""
        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.api_base_url, "http://localhost:8080")
        self.assertEqual(config.database_filename, "scriptorium.db")
        self.assertAlmostEqual(config.debounce_seconds, 0.4)
        self.assertTrue(config.data_loss_guard_enabled)
        self.assertEqual(config.indent_threshold, 28.0)

    def test_config_loading_from_file(self):
        """Test loading configuration from YAML file."""
        test_config = """
api:
  base_url: "http://wiki.test:9000"
  timeout: 5

sync:
  debounce_ms: 250
  data_loss_guard: false

drag:
  indent_threshold: 40
"""
        with open(self.config_path, 'w') as f:
            f.write(test_config)

        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.api_base_url, "http://wiki.test:9000")
        self.assertEqual(config.api_timeout, 5.0)
        self.assertAlmostEqual(config.debounce_seconds, 0.25)
        self.assertFalse(config.data_loss_guard_enabled)
        self.assertEqual(config.indent_threshold, 40.0)
        # Missing keys fall back to property defaults
        self.assertEqual(config.outdent_threshold, 28.0)

    def test_invalid_yaml_falls_back_to_defaults(self):
        """Test that a broken file does not prevent startup."""
        with open(self.config_path, 'w') as f:
            f.write("sync: [unclosed\n")

        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.get("sync.debounce_ms"), 400)

    def test_dot_notation_access(self):
        """Test accessing config values with dot notation."""
        config = ConfigManager(str(self.config_path))

        self.assertEqual(config.get("drag.outdent_threshold"), 28.0)
        self.assertEqual(config.get("paths.log_file"), "scriptorium.log")
        self.assertIsNone(config.get("nonexistent.key"))
        self.assertEqual(config.get("nonexistent.key", "default"), "default")

    def test_config_reload(self):
        """Test configuration reloading."""
        config = ConfigManager(str(self.config_path))
        self.assertEqual(config.get("sync.debounce_ms"), 400)

        with open(self.config_path, 'w') as f:
            f.write("sync:\n  debounce_ms: 50\n")
        config.reload()

        self.assertEqual(config.get("sync.debounce_ms"), 50)


class TestDataModels(unittest.TestCase):
    """Test block models."""

    def test_block_from_wire_record(self):
        """Test decoding the server's JSON-string form."""
        block = Block.from_record({
            "id": 7,
            "pageId": "p1",
            "parentId": "",
            "sort": "2",
            "type": "section",
            "propsJson": '{"level": 2, "collapsed": true}',
            "contentJson": '{"title": "Loot"}',
            "createdAt": "2024-01-01T00:00:00Z",
        })

        self.assertEqual(block.id, "7")
        self.assertIsNone(block.parent_id)
        self.assertEqual(block.sort, 2)
        self.assertEqual(block.level, 2)
        self.assertTrue(block.props["collapsed"])
        self.assertEqual(block.content["title"], "Loot")

    def test_unknown_keys_are_preserved(self):
        """Test that extra props survive validation."""
        block = Block.from_record({
            "id": "b1", "type": "paragraph",
            "props": {"html": "<p>x</p>", "color": "red"},
            "content": {"text": "x"},
        })
        self.assertEqual(block.props["color"], "red")
        self.assertEqual(block.to_wire()["parentId"], None)

    def test_invalid_level_is_rejected(self):
        """Test that section levels outside 1-3 fail validation."""
        with self.assertRaises(BlockValidationError):
            Block.from_record({"id": "s1", "type": "section", "props": {"level": 5}})

    def test_level_zero_means_plain_section(self):
        """Test that level 0 is treated as no level."""
        block = Block.from_record({"id": "s1", "type": "section", "props": {"level": 0}})
        self.assertIsNone(block.level)
        self.assertIsNone(SectionProps.model_validate({"level": 0}).level)

    def test_unknown_type_is_accepted(self):
        """Test that new block types pass through untouched."""
        block = Block.from_record({"id": "w1", "type": "dice-roller", "props": {"sides": 20}})
        self.assertEqual(block.props["sides"], 20)
        self.assertFalse(block.is_section)

    def test_patch_merge(self):
        """Test merging two patches for the same block."""
        first = BlockPatch(content={"text": "a"}, props={"html": "<p>a</p>"})
        second = BlockPatch(props={"color": "red"}, sort=3)

        merged = first.merged(second)

        self.assertEqual(merged.content, {"text": "a"})
        self.assertEqual(merged.props, {"html": "<p>a</p>", "color": "red"})
        self.assertEqual(merged.sort, 3)
        self.assertNotIn("type", merged.fields)

    def test_patch_to_parent_root_is_explicit(self):
        """Test that moving to the root differs from not moving."""
        self.assertEqual(BlockPatch(parent_id=None).to_wire(), {"parentId": None})
        self.assertEqual(BlockPatch().to_wire(), {})

    def test_complete_against_sends_whole_maps(self):
        """Test that the persisted patch carries the full merged object."""
        block = Block(id="b1", type="paragraph", props={"html": "<p>x</p>"}, content={"text": "x", "lang": "en"})
        outgoing = BlockPatch(content={"text": "y"}).complete_against(block)
        self.assertEqual(outgoing.content, {"text": "y", "lang": "en"})
        self.assertEqual(outgoing.fields, ["content"])


class TestDatabaseManager(unittest.TestCase):
    """Test database management functionality."""

    def setUp(self):
        """Set up test database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test.db"

    def tearDown(self):
        """Clean up test database."""
        if self.db_path.exists():
            self.db_path.unlink()
        wal = Path(str(self.db_path) + ".wal")
        if wal.exists():
            wal.unlink()
        os.rmdir(self.temp_dir)

    def test_database_initialization(self):
        """Test database creation and table initialization."""
        with DatabaseManager(str(self.db_path)) as db:
            db.initialize_database()

            self.assertTrue(self.db_path.exists())
            self.assertIsNotNone(db.connection)
            self.assertEqual(db.list_blocks("p1"), [])

    def test_create_shifts_later_siblings(self):
        """Test inserting a block in the middle of a sibling list."""
        with DatabaseManager(str(self.db_path)) as db:
            db.initialize_database()
            a = db.create_block("p1", "paragraph", None, 0, {}, {"text": "a"})
            b = db.create_block("p1", "paragraph", None, 1, {}, {"text": "b"})
            c = db.create_block("p1", "paragraph", None, 1, {}, {"text": "c"})

            order = [(blk.id, blk.sort) for blk in db.list_blocks("p1")]
            self.assertEqual(order, [(a.id, 0), (c.id, 1), (b.id, 2)])

    def test_patch_renormalizes_old_and_new_parent(self):
        """Test that moving a block through patch keeps both sibling lists contiguous."""
        with DatabaseManager(str(self.db_path)) as db:
            db.initialize_database()
            s = db.create_block("p1", "section", None, 0, {"level": 1}, {"title": "S"})
            a = db.create_block("p1", "paragraph", None, 1, {}, {"text": "a"})
            b = db.create_block("p1", "paragraph", None, 2, {}, {"text": "b"})

            moved = db.patch_block(a.id, BlockPatch(parent_id=s.id, sort=0))

            self.assertEqual(moved.parent_id, s.id)
            self.assertEqual(moved.sort, 0)
            self.assertEqual(db.get_block(b.id).sort, 1)
            self.assertEqual(db.get_block(s.id).sort, 0)

    def test_delete_cascades(self):
        """Test that deleting a section removes its subtree."""
        with DatabaseManager(str(self.db_path)) as db:
            db.initialize_database()
            s = db.create_block("p1", "section", None, 0, {}, {"title": "S"})
            child = db.create_block("p1", "paragraph", s.id, 0, {}, {"text": "in"})
            db.create_block("p1", "paragraph", child.id, 0, {}, {"text": "deeper"})
            tail = db.create_block("p1", "paragraph", None, 1, {}, {"text": "tail"})

            self.assertTrue(db.delete_block(s.id))
            remaining = db.list_blocks("p1")

            self.assertEqual([blk.id for blk in remaining], [tail.id])
            self.assertEqual(remaining[0].sort, 0)
            self.assertFalse(db.delete_block(s.id))

    def test_reorder_is_atomic(self):
        """Test that a failing reorder batch leaves nothing applied."""
        with DatabaseManager(str(self.db_path)) as db:
            db.initialize_database()
            a = db.create_block("p1", "paragraph", None, 0, {}, {"text": "a"})
            b = db.create_block("p1", "paragraph", None, 1, {}, {"text": "b"})

            bad = Move.model_construct(id=b.id, parent_id=None, sort="not-a-number")
            with self.assertRaises(Exception):
                db.reorder_blocks("p1", [Move(id=a.id, parent_id=None, sort=1), bad])

            self.assertEqual(db.get_block(a.id).sort, 0)
            self.assertEqual(db.get_block(b.id).sort, 1)


if __name__ == '__main__':
    # Run all tests
    unittest.main(verbosity=2)
