from __future__ import annotations

import unittest

from planbook.errors import NotFoundError, ValidationError
from planbook.models import DayFocus, KeyResult, NavigationContext, Objective, Task, Theme
from planbook.plan_store import PlanStore
from tests.helpers import FakeClock, git_sandbox, run_git


def _changed_in_head(store: PlanStore) -> list[str]:
    proc = run_git(store.paths.root, "show", "--name-only", "--format=", "--no-renames", "HEAD")
    return sorted(line for line in proc.stdout.splitlines() if line.strip())


class TestThemesAndCalendar(unittest.TestCase):
    def test_save_theme_allocates_ids_and_skips_identical_rewrites(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            theme = Theme(
                name="Health",
                color="#22c55e",
                objectives=[Objective(title="Run", key_results=[KeyResult(description="10k", target_value=1)])],
            )
            saved = store.save_theme(theme)
            self.assertEqual("H", saved.id)
            self.assertEqual("H-O1", saved.objectives[0].id)
            self.assertEqual("H-KR1", saved.objectives[0].key_results[0].id)
            self.assertEqual(["Add theme: Health"], [entry.message for entry in store.history()])

            store.save_theme(store.load_themes()[0])
            self.assertEqual(1, len(store.history()))

            store.delete_theme("H")
            self.assertEqual([], store.load_themes())
            self.assertEqual("Delete theme: Health", store.history(limit=1)[0].message)
            with self.assertRaises(NotFoundError):
                store.delete_theme("H")

    def test_day_focus_entries_stay_sorted_per_year(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            store.save_day_focus(DayFocus(date="2025-03-02", theme_id="H"))
            store.save_day_focus(DayFocus(date="2025-01-15", theme_id="C", notes="kickoff"))
            store.save_day_focus(DayFocus(date="2025-03-02", theme_id="C"))
            days = store.load_year_focus(2025)
            self.assertEqual(["2025-01-15", "2025-03-02"], [day.date for day in days])
            self.assertEqual("C", days[1].theme_id)
            self.assertEqual("Update day focus: 2025-03-02", store.history(limit=1)[0].message)
            self.assertEqual([], store.load_year_focus(2024))
            with self.assertRaises(ValidationError):
                store.save_day_focus(DayFocus(date="March 2nd"))


class TestTaskFiles(unittest.TestCase):
    def test_create_commits_task_and_order_together(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            task = store.create_task(Task(title="Stretch", theme_id="H", priority="important-urgent"), "important-urgent")
            self.assertEqual("H-T1", task.id)
            self.assertEqual("2025-03-14T09:00:00Z", task.created_at)
            self.assertTrue(store.paths.task_file("H", "todo", "H-T1").exists())
            self.assertEqual({"important-urgent": ["H-T1"]}, store.load_task_order())
            self.assertEqual(["task_order.json", "tasks/H/todo/H-T1.json"], _changed_in_head(store))

            second = store.create_task(Task(title="Walk", theme_id="H", priority="important-urgent"), "important-urgent")
            self.assertEqual("H-T2", second.id)

    def test_move_renames_in_one_commit(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            store.create_task(Task(title="Stretch", theme_id="H", priority="important-urgent"), "important-urgent")
            before = store.move_task("H-T1", "doing", order={"doing": ["H-T1"]})
            self.assertEqual("todo", before.status)
            self.assertEqual("doing", store.find_task("H-T1").status)
            self.assertEqual("Move task Stretch: todo -> doing", store.history(limit=1)[0].message)
            self.assertEqual(
                ["task_order.json", "tasks/H/doing/H-T1.json", "tasks/H/todo/H-T1.json"],
                _changed_in_head(store),
            )
            self.assertTrue(store.repo.status().clean)
            with self.assertRaises(ValidationError):
                store.move_task("H-T1", "blocked")

    def test_save_task_relocates_on_theme_change(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            task = store.create_task(Task(title="Stretch", theme_id="H", priority="important-urgent"), "important-urgent")
            task.theme_id = "C"
            task.title = "Stretch daily"
            store.save_task(task)
            self.assertFalse(store.paths.task_file("H", "todo", "H-T1").exists())
            self.assertTrue(store.paths.task_file("C", "todo", "H-T1").exists())
            found = store.find_task("H-T1")
            self.assertEqual("Stretch daily", found.task.title)
            self.assertEqual("2025-03-14T09:00:00Z", found.task.created_at)
            self.assertTrue(store.repo.status().clean)

    def test_new_ids_skip_tasks_filed_under_other_themes(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            task = store.create_task(Task(title="Stretch", theme_id="H", priority="important-urgent"), "important-urgent")
            task.theme_id = "C"
            store.save_task(task)
            second = store.create_task(Task(title="Walk", theme_id="H", priority="important-urgent"), "important-urgent")
            self.assertEqual("H-T2", second.id)

            with self.assertRaises(ValidationError):
                store.create_task(Task(title="Escape", theme_id="../..", priority="important-urgent"), "important-urgent")
            second.theme_id = "x/y"
            with self.assertRaises(ValidationError):
                store.save_task(second)
            self.assertEqual(["H-T1", "H-T2"], sorted(item.id for item in store.load_tasks()))
            self.assertTrue(store.repo.status().clean)

    def test_delete_prunes_order(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            for title in ("One", "Two"):
                store.create_task(Task(title=title, theme_id="H", priority="important-urgent"), "important-urgent")
            store.delete_task("H-T1")
            self.assertEqual({"important-urgent": ["H-T2"]}, store.load_task_order())
            self.assertIsNone(store.find_task("H-T1"))
            self.assertEqual("Delete task: One", store.history(limit=1)[0].message)
            with self.assertRaises(NotFoundError):
                store.delete_task("H-T1")

    def test_load_tasks_fills_subtask_ids(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            store.create_task(Task(title="Parent", theme_id="H", priority="important-urgent"), "important-urgent")
            store.create_task(
                Task(title="Child", theme_id="H", priority="important-urgent", parent_task_id="H-T1"),
                "important-urgent",
            )
            by_id = {item.id: item for item in store.load_tasks()}
            self.assertEqual(("H-T2",), by_id["H-T1"].subtask_ids)
            self.assertEqual((), by_id["H-T2"].subtask_ids)


class TestUnversionedState(unittest.TestCase):
    def test_navigation_and_drafts_never_enter_history(self) -> None:
        with git_sandbox() as tmp:
            store = PlanStore.open(tmp / "data", clock=FakeClock())
            self.assertIsNone(store.load_navigation_context())
            store.save_navigation_context(NavigationContext(current_view="tasks", filter_theme_ids=["H"]))
            store.save_task_drafts({"H": {"title": "half-typed"}})

            self.assertEqual("tasks", store.load_navigation_context().current_view)
            self.assertEqual({"H": {"title": "half-typed"}}, store.load_task_drafts())
            self.assertEqual([], store.history())
            self.assertNotIn("navigation_context.json", store.repo.status().untracked)
            self.assertNotIn("task_drafts.json", store.repo.status().untracked)


if __name__ == "__main__":
    unittest.main()
