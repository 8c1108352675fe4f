"""
Tests for snapshot naming and file handling.
"""

import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from camera_detection.core.frame_saver import (
    delete_snapshot,
    list_snapshot_files,
    parse_snapshot_filename,
    save_snapshot,
    snapshot_filename,
    snapshot_timestamp,
)

TS = datetime(2026, 10, 19, 8, 30, 5, 123456, tzinfo=timezone.utc)


class TestSnapshotNames(unittest.TestCase):
    """Test the <label>_<timestamp>_<percent>.jpg convention."""

    def test_filename_format(self):
        self.assertEqual(
            snapshot_filename("person", TS, 0.826), "person_2026-10-19T08-30-05-123Z_83.jpg"
        )

    def test_non_utc_timestamp_converted(self):
        local = TS.astimezone(timezone(timedelta(hours=-5)))
        self.assertEqual(
            snapshot_filename("car", local, 0.5), "car_2026-10-19T08-30-05-123Z_50.jpg"
        )

    def test_parse(self):
        parsed = parse_snapshot_filename("traffic light_2026-10-19T08-30-05-123Z_83.jpg")

        self.assertEqual(parsed["label"], "traffic light")
        self.assertEqual(parsed["timestamp"], TS.replace(microsecond=123000))
        self.assertEqual(parsed["confidence"], 0.83)

    def test_parse_rejects_other_names(self):
        for name in (
            "person.jpg",
            "person_2026-10-19_83.jpg",
            "person_2026-13-45T08-30-05-123Z_83.jpg",
            "person_2026-10-19T08-30-05-123Z_83.txt",
        ):
            with self.subTest(name=name):
                self.assertIsNone(parse_snapshot_filename(name))

    def test_generated_names_parse(self):
        name = snapshot_filename("dog", TS, 0.9)
        self.assertEqual(parse_snapshot_filename(name)["label"], "dog")


class TestSnapshotFiles(unittest.TestCase):
    """Test writing, listing, and deleting snapshot files."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name) / "snapshots"

    def tearDown(self):
        self.tmp.cleanup()

    def test_save_creates_directory(self):
        saved = save_snapshot(b"jpeg", self.dir, "a.jpg")

        self.assertEqual(saved, "a.jpg")
        self.assertEqual((self.dir / "a.jpg").read_bytes(), b"jpeg")

    def test_save_failure_returns_none(self):
        self.dir.parent.mkdir(exist_ok=True)
        self.dir.write_bytes(b"")  # a file, not a directory

        self.assertIsNone(save_snapshot(b"jpeg", self.dir, "a.jpg"))

    def test_delete(self):
        save_snapshot(b"jpeg", self.dir, "a.jpg")

        self.assertTrue(delete_snapshot(self.dir, "a.jpg"))
        self.assertFalse((self.dir / "a.jpg").exists())
        self.assertTrue(delete_snapshot(self.dir, "a.jpg"))

    def test_delete_refuses_traversal(self):
        outside = Path(self.tmp.name) / "keep.jpg"
        outside.write_bytes(b"keep")
        self.dir.mkdir()

        self.assertFalse(delete_snapshot(self.dir, "../keep.jpg"))
        self.assertTrue(outside.exists())

    def test_list_only_images(self):
        for name in ("b.jpg", "a.png", "c.jpeg", "notes.txt"):
            save_snapshot(b"x", self.dir, name)

        names = [p.name for p in list_snapshot_files(self.dir)]

        self.assertEqual(names, ["a.png", "b.jpg", "c.jpeg"])

    def test_list_missing_directory(self):
        self.assertEqual(list_snapshot_files(self.dir), [])

    def test_timestamp_from_name_or_mtime(self):
        named = snapshot_filename("cat", TS, 0.7)
        save_snapshot(b"x", self.dir, named)
        save_snapshot(b"x", self.dir, "export.jpg")
        whole_second = TS.replace(microsecond=0)
        os.utime(self.dir / "export.jpg", (whole_second.timestamp(), whole_second.timestamp()))

        self.assertEqual(snapshot_timestamp(self.dir / named), TS.replace(microsecond=123000))
        self.assertEqual(snapshot_timestamp(self.dir / "export.jpg"), whole_second)


if __name__ == "__main__":
    unittest.main()
