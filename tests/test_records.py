from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from planbook.errors import PersistenceError
from planbook.records import NOT_FOUND, list_record_files, move_record, read_record, remove_record, write_record


class TestRecordStore(unittest.TestCase):
    def test_missing_record_is_not_found_sentinel(self) -> None:
        with TemporaryDirectory() as tmp:
            result = read_record(Path(tmp) / "absent.json")
            self.assertIs(NOT_FOUND, result)
            self.assertFalse(result)

    def test_write_then_read_and_skip_identical(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "record.json"
            self.assertTrue(write_record(path, {"b": 1, "a": [1, 2]}))
            self.assertEqual({"b": 1, "a": [1, 2]}, read_record(path))
            self.assertFalse(write_record(path, {"b": 1, "a": [1, 2]}))
            self.assertTrue(write_record(path, {"b": 2}))
            self.assertFalse((path.parent / "record.json.tmp").exists())

    def test_malformed_json_raises_persistence_error(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(PersistenceError):
                read_record(path)

    def test_move_remove_and_list(self) -> None:
        with TemporaryDirectory() as tmp:
            root = Path(tmp)
            write_record(root / "todo" / "H-T2.json", {"id": "H-T2"})
            write_record(root / "todo" / "H-T1.json", {"id": "H-T1"})
            (root / "todo" / "notes.txt").write_text("ignored", encoding="utf-8")
            self.assertEqual(["H-T1.json", "H-T2.json"], [p.name for p in list_record_files(root / "todo")])

            move_record(root / "todo" / "H-T1.json", root / "doing" / "H-T1.json")
            self.assertEqual({"id": "H-T1"}, read_record(root / "doing" / "H-T1.json"))
            self.assertIs(NOT_FOUND, read_record(root / "todo" / "H-T1.json"))

            self.assertTrue(remove_record(root / "todo" / "H-T2.json"))
            self.assertFalse(remove_record(root / "todo" / "H-T2.json"))
            self.assertEqual([], list_record_files(root / "missing"))


if __name__ == "__main__":
    unittest.main()
