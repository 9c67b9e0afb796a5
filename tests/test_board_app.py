from __future__ import annotations

import unittest

from planbook.board_app import render_activity, render_column
from planbook.models import Task, TaskWithStatus, default_board_configuration


def _item(task_id: str, status: str, priority: str, *, parent: str | None = None, subtasks: tuple[str, ...] = ()) -> TaskWithStatus:
    task = Task(id=task_id, title=f"task {task_id}", theme_id="H", priority=priority, parent_task_id=parent)
    return TaskWithStatus(task=task, status=status, subtask_ids=subtasks)


class TestBoardRendering(unittest.TestCase):
    def setUp(self) -> None:
        self.columns = {column.name: column for column in default_board_configuration().columns}
        self.tasks = [
            _item("H-T1", "todo", "important-urgent", subtasks=("H-T2",)),
            _item("H-T2", "todo", "important-urgent", parent="H-T1"),
            _item("H-T3", "todo", "important-not-urgent"),
            _item("H-T4", "doing", "important-urgent"),
        ]

    def test_todo_column_groups_by_priority_section(self) -> None:
        text = render_column(self.columns["todo"], self.tasks)
        lines = text.splitlines()
        self.assertEqual("TODO", lines[0])
        urgent = lines.index("-- Important & Urgent --")
        self.assertEqual("  H-T1 task H-T1 [1 sub]", lines[urgent + 1])
        self.assertEqual("  ↳ H-T2 task H-T2", lines[urgent + 2])
        self.assertIn("-- Not Important & Urgent --\n  (empty)", text)
        self.assertNotIn("H-T4", text)

    def test_plain_columns_list_their_status(self) -> None:
        self.assertIn("H-T4 task H-T4", render_column(self.columns["doing"], self.tasks))
        self.assertIn("(empty)", render_column(self.columns["done"], self.tasks))

    def test_activity_lines(self) -> None:
        self.assertEqual("no activity yet", render_activity([]))
        events = [{"severity": "warn", "message": "cascade move of H-T2 to done failed"}]
        self.assertEqual("[warn] cascade move of H-T2 to done failed", render_activity(events))


if __name__ == "__main__":
    unittest.main()
