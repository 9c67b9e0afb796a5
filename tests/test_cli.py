from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
import io
from pathlib import Path
import unittest
from unittest.mock import patch

from planbook import cli
from tests.helpers import git_sandbox


def _run(data_dir: Path, *argv: str) -> tuple[int, str, str]:
    out = io.StringIO()
    err = io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = cli.main(["--data-dir", str(data_dir), *argv])
    return code, out.getvalue(), err.getvalue()


class TestCliCommands(unittest.TestCase):
    def setUp(self) -> None:
        tmp = self.enterContext(git_sandbox())
        self.data_dir = tmp / "data"

    def test_theme_okr_and_task_flow(self) -> None:
        code, out, _err = _run(self.data_dir, "theme-add", "Health", "--color", "#22c55e")
        self.assertEqual(0, code)
        self.assertIn("created theme H: Health", out)

        self.assertEqual(0, _run(self.data_dir, "objective-add", "H", "Run a marathon")[0])
        code, out, _err = _run(self.data_dir, "kr-add", "H-O1", "Run 10k", "--target", "1")
        self.assertEqual(0, code)
        self.assertIn("H-KR1", out)
        self.assertIn("(binary)", out)

        code, out, _err = _run(self.data_dir, "themes")
        self.assertIn("H-O1 [active] Run a marathon", out)
        self.assertIn("H-KR1 [active] Run 10k [ ]", out)

        code, out, _err = _run(self.data_dir, "task-add", "Stretch", "--theme", "H", "--priority", "important-urgent")
        self.assertEqual(0, code)
        self.assertIn("created task H-T1: Stretch", out)

        code, out, _err = _run(self.data_dir)
        self.assertEqual(0, code)
        self.assertIn("[important-urgent]", out)
        self.assertIn("H-T1 Stretch", out)

        code, out, _err = _run(self.data_dir, "history", "-n", "1")
        self.assertIn("Add task: Stretch", out)

    def test_denied_move_reports_rule(self) -> None:
        _run(self.data_dir, "task-add", "Stretch", "--theme", "H", "--priority", "important-urgent")
        self.assertEqual(0, _run(self.data_dir, "task-move", "H-T1", "done")[0])
        code, _out, err = _run(self.data_dir, "task-move", "H-T1", "todo")
        self.assertEqual(1, code)
        self.assertIn("move denied for H-T1", err)
        self.assertIn("[allowed-transitions]", err)

    def test_refusal_is_logged(self) -> None:
        code, _out, err = _run(
            self.data_dir, "task-add", "Orphan", "--theme", "H", "--priority", "important-urgent", "--parent", "H-T9"
        )
        self.assertEqual(1, code)
        self.assertIn("refused:", err)
        log_text = (self.data_dir / "logs" / "planbook.log").read_text(encoding="utf-8")
        self.assertIn("[warn] task-add:", log_text)

    def test_missing_task_is_an_error(self) -> None:
        code, _out, err = _run(self.data_dir, "task-archive", "H-T9")
        self.assertEqual(1, code)
        self.assertIn("error: task with ID H-T9 not found", err)

    def test_promote_with_today_override(self) -> None:
        _run(
            self.data_dir,
            "task-add",
            "Renew passport",
            "--theme",
            "H",
            "--priority",
            "important-not-urgent",
            "--promote-on",
            "2025-01-01",
        )
        code, out, _err = _run(self.data_dir, "promote", "--today", "2025-01-02")
        self.assertEqual(0, code)
        self.assertIn("promoted H-T1", out)
        self.assertEqual(2, _run(self.data_dir, "promote", "--today", "soon")[0])

    def test_board_without_textual_explains_install(self) -> None:
        missing = ModuleNotFoundError("No module named 'textual'")
        missing.name = "textual"
        with patch("planbook.cli._run_board_entry", side_effect=missing):
            code, _out, err = _run(self.data_dir, "board")
        self.assertEqual(1, code)
        self.assertIn("requires `textual`", err)

    def test_doctor_reports_clean_repo(self) -> None:
        _run(self.data_dir, "theme-add", "Health")
        code, out, err = _run(self.data_dir, "doctor")
        self.assertEqual(0, code, err)
        self.assertIn("git status: clean", out)
        self.assertIn("planbook.toml guide", out)


if __name__ == "__main__":
    unittest.main()
