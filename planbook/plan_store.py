from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import GitConfig
from .errors import NotFoundError, PersistenceError, ValidationError
from .ids import assign_tree_ids, is_valid_theme_id, next_task_id, suggest_abbreviation
from .models import (
    ALL_TASK_STATUSES,
    STATUS_ARCHIVED,
    STATUS_TODO,
    DayFocus,
    NavigationContext,
    Task,
    TaskWithStatus,
    Theme,
    day_focus_from_record,
    is_task_status,
    navigation_from_record,
    record_from_day_focus,
    record_from_navigation,
    record_from_task,
    record_from_theme,
    task_from_record,
    theme_from_record,
)
from .ordering import TaskOrder, append_id, normalize_order, prune_ids
from .paths import UNVERSIONED_NAMES, DataPaths, data_paths, ensure_data_dirs
from .records import NOT_FOUND, list_record_files, move_record, read_record, remove_record, write_record
from .versioning import AuthorConfiguration, CommitInfo, Repository


def utc_timestamp(now: datetime | None = None) -> str:
    moment = now or datetime.now(tz=timezone.utc)
    return moment.astimezone(timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def _check_theme_id(theme_id: str) -> None:
    # The theme ID becomes a directory name under tasks/.
    if not theme_id:
        raise ValidationError("task theme_id cannot be empty")
    if not is_valid_theme_id(theme_id):
        raise ValidationError(f"invalid theme ID {theme_id!r}; expected 1-3 uppercase letters")


class PlanStore:
    """File layout plus commit discipline for plan data.

    Every mutating method writes (or renames) its files first and then commits
    exactly those paths in one transaction. Reads always go to disk.
    """

    def __init__(
        self,
        paths: DataPaths,
        repo: Repository,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.paths = paths
        self.repo = repo
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    @classmethod
    def open(
        cls,
        root: Path | None = None,
        *,
        git: GitConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "PlanStore":
        paths = ensure_data_dirs(data_paths(root))
        git = git or GitConfig()
        author = AuthorConfiguration(name=git.author_name, email=git.author_email)
        repo = Repository.open(paths.root, author, ignored=UNVERSIONED_NAMES)
        return cls(paths, repo, clock=clock)

    def now(self) -> datetime:
        return self._clock()

    def _commit(self, message: str, changed: list[Path]) -> str:
        with self.repo.begin() as tx:
            tx.stage(changed)
            return tx.commit(message)

    # Themes

    def load_themes(self) -> list[Theme]:
        payload = read_record(self.paths.themes_json)
        if payload is NOT_FOUND:
            return []
        if not isinstance(payload, dict):
            raise PersistenceError(f"malformed themes file {self.paths.themes_json}")
        items = payload.get("themes") if isinstance(payload.get("themes"), list) else []
        return [theme_from_record(item) for item in items if isinstance(item, dict)]

    def _write_themes(self, themes: list[Theme]) -> Path:
        write_record(self.paths.themes_json, {"themes": [record_from_theme(theme) for theme in themes]})
        return self.paths.themes_json

    def save_theme(self, theme: Theme) -> Theme:
        """Insert or replace a theme, allocating any missing IDs first."""

        themes = self.load_themes()
        if not theme.id:
            theme.id = suggest_abbreviation(theme.name, themes)
        assign_tree_ids(theme)

        found = False
        for idx, existing in enumerate(themes):
            if existing.id == theme.id:
                themes[idx] = theme
                found = True
                break
        if not found:
            themes.append(theme)

        changed = self._write_themes(themes)
        action = "Update" if found else "Add"
        self._commit(f"{action} theme: {theme.name}", [changed])
        return theme

    def delete_theme(self, theme_id: str) -> Theme:
        themes = self.load_themes()
        kept = [theme for theme in themes if theme.id != theme_id]
        if len(kept) == len(themes):
            raise NotFoundError("theme", theme_id)
        deleted = next(theme for theme in themes if theme.id == theme_id)
        changed = self._write_themes(kept)
        self._commit(f"Delete theme: {deleted.name}", [changed])
        return deleted

    # Calendar

    def load_year_focus(self, year: int) -> list[DayFocus]:
        payload = read_record(self.paths.year_file(year))
        if payload is NOT_FOUND:
            return []
        if not isinstance(payload, dict):
            raise PersistenceError(f"malformed calendar file {self.paths.year_file(year)}")
        entries = payload.get("entries") if isinstance(payload.get("entries"), list) else []
        days = [day_focus_from_record(item) for item in entries if isinstance(item, dict)]
        return [day for day in days if day is not None]

    def save_day_focus(self, day: DayFocus) -> None:
        year = _year_of(day.date)
        entries = self.load_year_focus(year)
        found = False
        for idx, entry in enumerate(entries):
            if entry.date == day.date:
                entries[idx] = day
                found = True
                break
        if not found:
            entries.append(day)
        entries.sort(key=lambda entry: entry.date)

        path = self.paths.year_file(year)
        write_record(path, {"year": year, "entries": [record_from_day_focus(entry) for entry in entries]})
        action = "Update" if found else "Add"
        self._commit(f"{action} day focus: {day.date}", [path])

    # Tasks

    def _task_locations(self) -> list[tuple[Task, str, Path]]:
        found: list[tuple[Task, str, Path]] = []
        if not self.paths.tasks_dir.is_dir():
            return found
        for theme_dir in sorted(path for path in self.paths.tasks_dir.iterdir() if path.is_dir()):
            for status in ALL_TASK_STATUSES:
                for path in list_record_files(theme_dir / status):
                    payload = read_record(path)
                    if not isinstance(payload, dict):
                        raise PersistenceError(f"malformed task file {path}")
                    task = task_from_record(payload)
                    if not task.id:
                        task.id = path.stem
                    if not task.theme_id:
                        task.theme_id = theme_dir.name
                    found.append((task, status, path))
        return found

    def load_tasks(self) -> list[TaskWithStatus]:
        """Every task in every location, archived included, with subtask IDs filled in."""

        located = self._task_locations()
        children: dict[str, list[str]] = {}
        for task, _status, _path in located:
            if task.parent_task_id:
                children.setdefault(task.parent_task_id, []).append(task.id)
        return [
            TaskWithStatus(task=task, status=status, subtask_ids=tuple(children.get(task.id, ())))
            for task, status, _path in located
        ]

    def _locate(self, task_id: str) -> tuple[Task, str, Path]:
        archived: tuple[Task, str, Path] | None = None
        for task, status, path in self._task_locations():
            if task.id != task_id:
                continue
            if status != STATUS_ARCHIVED:
                return task, status, path
            archived = archived or (task, status, path)
        if archived is None:
            raise NotFoundError("task", task_id)
        return archived

    def find_task(self, task_id: str) -> TaskWithStatus | None:
        """Locate a task, preferring a live copy over an archived one with the same ID."""

        try:
            task, status, _path = self._locate(task_id)
        except NotFoundError:
            return None
        return TaskWithStatus(task=task, status=status)

    def _all_task_ids(self) -> list[str]:
        """Task IDs from every theme directory; a task keeps its ID when it changes theme."""

        ids: list[str] = []
        if not self.paths.tasks_dir.is_dir():
            return ids
        for theme_dir in self.paths.tasks_dir.iterdir():
            if not theme_dir.is_dir():
                continue
            for status in ALL_TASK_STATUSES:
                ids.extend(path.stem for path in list_record_files(theme_dir / status))
        return ids

    def create_task(self, task: Task, zone: str) -> Task:
        """Write a new todo task and append it to `zone` in the same commit."""

        _check_theme_id(task.theme_id)
        stamp = utc_timestamp(self.now())
        task.id = next_task_id(task.theme_id, self._all_task_ids())
        task.created_at = task.created_at or stamp
        task.updated_at = stamp

        path = self.paths.task_file(task.theme_id, STATUS_TODO, task.id)
        write_record(path, record_from_task(task))
        order = self.load_task_order()
        append_id(order, zone, task.id)
        self._write_task_order(order)
        self._commit(f"Add task: {task.title}", [path, self.paths.task_order_json])
        return task

    def save_task(self, task: Task, *, order: TaskOrder | None = None) -> Task:
        """Rewrite an existing task in place. Status is never changed here.

        A changed theme_id relocates the file to the new theme's directory
        under the same status. When `order` is given it is committed with it.
        """

        if not task.id:
            raise ValidationError("task ID cannot be empty")
        _check_theme_id(task.theme_id)
        existing, status, old_path = self._locate(task.id)
        task.created_at = task.created_at or existing.created_at
        task.updated_at = utc_timestamp(self.now())

        path = self.paths.task_file(task.theme_id, status, task.id)
        changed = [path]
        if path != old_path:
            move_record(old_path, path)
            changed.append(old_path)
        write_record(path, record_from_task(task))
        if order is not None:
            self._write_task_order(order)
            changed.append(self.paths.task_order_json)
        self._commit(f"Update task: {task.title}", changed)
        return task

    def move_task(self, task_id: str, new_status: str, *, order: TaskOrder | None = None) -> TaskWithStatus:
        """Rename a task into another status directory; old and new paths share one commit.

        Returns the task with its previous status.
        """

        if not is_task_status(new_status):
            raise ValidationError(f"invalid status {new_status!r}")
        task, old_status, old_path = self._locate(task_id)
        before = TaskWithStatus(task=task, status=old_status)
        if old_status == new_status:
            return before
        new_path = self.paths.task_file(task.theme_id, new_status, task.id)
        move_record(old_path, new_path)
        changed = [new_path, old_path]
        if order is not None:
            self._write_task_order(order)
            changed.append(self.paths.task_order_json)
        self._commit(f"Move task {task.title}: {old_status} -> {new_status}", changed)
        return before

    def relocate_tasks(self, task_ids: list[str], new_status: str, message: str, *, order: TaskOrder) -> list[str]:
        """Move several tasks to `new_status` and commit them with `order` at once."""

        if not is_task_status(new_status):
            raise ValidationError(f"invalid status {new_status!r}")
        changed: list[Path] = []
        moved: list[str] = []
        for task_id in task_ids:
            task, status, old_path = self._locate(task_id)
            if status == new_status:
                continue
            new_path = self.paths.task_file(task.theme_id, new_status, task.id)
            move_record(old_path, new_path)
            changed.extend([new_path, old_path])
            moved.append(task_id)
        self._write_task_order(order)
        changed.append(self.paths.task_order_json)
        self._commit(message, changed)
        return moved

    def delete_task(self, task_id: str) -> Task:
        """Delete the task file and prune its ID from the order in one commit."""

        task, _status, path = self._locate(task_id)
        remove_record(path)
        order = self.load_task_order()
        prune_ids(order, [task_id])
        self._write_task_order(order)
        self._commit(f"Delete task: {task.title}", [path, self.paths.task_order_json])
        return task

    # Task order

    def load_task_order(self) -> TaskOrder:
        payload = read_record(self.paths.task_order_json)
        if payload is NOT_FOUND:
            return {}
        return normalize_order(payload)

    def _write_task_order(self, order: TaskOrder) -> Path:
        write_record(self.paths.task_order_json, {zone: list(order[zone]) for zone in sorted(order)})
        return self.paths.task_order_json

    def save_task_order(self, order: TaskOrder) -> str:
        path = self._write_task_order(order)
        return self._commit("Update task order", [path])

    # Preferences (never versioned)

    def load_navigation_context(self) -> NavigationContext | None:
        payload = read_record(self.paths.navigation_json)
        if payload is NOT_FOUND or not isinstance(payload, dict):
            return None
        return navigation_from_record(payload)

    def save_navigation_context(self, ctx: NavigationContext) -> None:
        write_record(self.paths.navigation_json, record_from_navigation(ctx))

    def load_task_drafts(self) -> dict[str, Any]:
        payload = read_record(self.paths.drafts_json)
        if payload is NOT_FOUND or not isinstance(payload, dict):
            return {}
        return payload

    def save_task_drafts(self, drafts: dict[str, Any]) -> None:
        write_record(self.paths.drafts_json, drafts)

    # History

    def history(self, limit: int = 0) -> list[CommitInfo]:
        return self.repo.history(limit)

    def file_history(self, path: Path | str, limit: int = 0) -> list[CommitInfo]:
        return self.repo.file_history(path, limit)


def _year_of(date: str) -> int:
    try:
        return datetime.strptime(date, "%Y-%m-%d").year
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid date {date!r}; expected YYYY-MM-DD") from exc
