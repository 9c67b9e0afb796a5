from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from pathlib import Path
from typing import Any

from . import okr
from .config import PlanbookConfig
from .errors import NotFoundError, PersistenceError, PlanbookError, RuleViolationError, ValidationError
from .events import EventBus
from .ids import extract_theme_abbr, is_valid_theme_id, suggest_abbreviation
from .models import (
    PRIORITY_IMPORTANT_NOT_URGENT,
    PRIORITY_IMPORTANT_URGENT,
    STATUS_ARCHIVED,
    STATUS_DOING,
    STATUS_DONE,
    STATUS_TODO,
    BoardConfiguration,
    DayFocus,
    KeyResult,
    NavigationContext,
    Objective,
    Task,
    TaskWithStatus,
    Theme,
    default_board_configuration,
    is_task_status,
)
from .ordering import (
    TaskOrder,
    append_id,
    drop_zone_for,
    merge_positions,
    prune_ids,
    relocate_id,
    remove_id,
    sort_tasks,
)
from .plan_store import PlanStore
from .rules import (
    EVENT_TASK_CREATE,
    EVENT_TASK_MOVE,
    EVENT_TASK_UPDATE,
    RuleEngine,
    RuleViolation,
    TaskEvent,
    TaskInfo,
    default_rules,
)
from .versioning import CommitInfo


@dataclass(frozen=True)
class MoveResult:
    success: bool
    violations: tuple[RuleViolation, ...] = ()
    positions: TaskOrder = field(default_factory=dict)
    cascade_errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReorderResult:
    success: bool
    positions: TaskOrder


@dataclass(frozen=True)
class PromotedTask:
    id: str
    title: str
    old_priority: str
    new_priority: str


def _require(value: str, name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{name} cannot be empty")
    return cleaned


def _check_date(value: str, name: str) -> str:
    if not value:
        return ""
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise ValidationError(f"invalid {name} {value!r}; expected YYYY-MM-DD") from exc
    return value


def _check_theme_id(value: str) -> str:
    theme_id = _require(value, "theme ID")
    if not is_valid_theme_id(theme_id):
        raise ValidationError(f"invalid theme ID {theme_id!r}; expected 1-3 uppercase letters")
    return theme_id


def _check_parent_task_id(value: str | None) -> str | None:
    parent_id = (value or "").strip()
    if not parent_id:
        return None
    abbr = extract_theme_abbr(parent_id)
    if not abbr or not parent_id.startswith(f"{abbr}-T"):
        raise ValidationError(f"invalid parent task ID {parent_id!r}")
    return parent_id


def _split_tags(tags: list[str] | str | None) -> list[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [tag.strip() for tag in tags if tag and tag.strip()]


def _pick(tasks: list[TaskWithStatus], task_id: str) -> TaskWithStatus | None:
    archived: TaskWithStatus | None = None
    for item in tasks:
        if item.id != task_id:
            continue
        if item.status != STATUS_ARCHIVED:
            return item
        archived = archived or item
    return archived


def _descendants(parent_id: str, tasks: list[TaskWithStatus], *, status: str = "") -> list[str]:
    found: list[str] = []
    seen = {parent_id}
    frontier = [parent_id]
    while frontier:
        current = frontier.pop(0)
        for item in tasks:
            if item.task.parent_task_id != current or item.id in seen:
                continue
            if status and item.status != status:
                continue
            seen.add(item.id)
            found.append(item.id)
            frontier.append(item.id)
    return found


class PlanningManager:
    """Domain operations over themes, OKRs, the calendar, and the task board.

    Every call re-reads what it needs from the store. Mutations publish one
    activity event each on the bus.
    """

    def __init__(
        self,
        store: PlanStore,
        *,
        engine: RuleEngine | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.store = store
        self.engine = engine or RuleEngine()
        self.bus = bus or EventBus(store.paths.logs_dir / "events.jsonl")

    @classmethod
    def open(
        cls,
        root: Path | None = None,
        *,
        config: PlanbookConfig | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "PlanningManager":
        config = config or PlanbookConfig()
        store = PlanStore.open(root, git=config.git, clock=clock)
        return cls(store, engine=RuleEngine(default_rules(config.board)), bus=bus)

    def _publish(self, event_type: str, message: str, *, severity: str = "info", **metadata: Any) -> None:
        self.bus.publish_event(event_type, message, severity=severity, source="planning", metadata=metadata)

    # Themes

    def get_themes(self) -> list[Theme]:
        return self.store.load_themes()

    def suggest_theme_abbreviation(self, name: str) -> str:
        return suggest_abbreviation(name, self.store.load_themes())

    def create_theme(self, name: str, color: str) -> Theme:
        name = _require(name, "theme name")
        color = _require(color, "theme color")
        theme = self.store.save_theme(Theme(name=name, color=color))
        self._publish("theme.created", f"theme {theme.id} created: {theme.name}", theme_id=theme.id)
        return theme

    def update_theme(self, theme: Theme) -> Theme:
        _require(theme.id, "theme ID")
        if not any(existing.id == theme.id for existing in self.store.load_themes()):
            raise NotFoundError("theme", theme.id)
        saved = self.store.save_theme(theme)
        self._publish("theme.updated", f"theme {saved.id} updated", theme_id=saved.id)
        return saved

    def save_theme(self, theme: Theme) -> Theme:
        saved = self.store.save_theme(theme)
        self._publish("theme.saved", f"theme {saved.id} saved", theme_id=saved.id)
        return saved

    def delete_theme(self, theme_id: str) -> None:
        theme_id = _require(theme_id, "theme ID")
        deleted = self.store.delete_theme(theme_id)
        self._publish("theme.deleted", f"theme {deleted.id} deleted: {deleted.name}", theme_id=deleted.id)

    # Objectives and key results

    def create_objective(self, parent_id: str, title: str) -> Objective:
        parent_id = _require(parent_id, "parent ID")
        title = _require(title, "objective title")
        themes = self.store.load_themes()
        located = okr.locate_parent(themes, parent_id)
        if located is None:
            raise NotFoundError("parent", parent_id)
        theme_idx, container = located
        objective = Objective(title=title)
        container.append(objective)
        self.store.save_theme(themes[theme_idx])
        self._publish("okr.created", f"objective {objective.id} created under {parent_id}", okr_id=objective.id)
        return objective

    def update_objective(self, objective_id: str, title: str) -> None:
        objective_id = _require(objective_id, "objective ID")
        title = _require(title, "objective title")
        themes = self.store.load_themes()
        located = okr.locate_objective(themes, objective_id)
        if located is None:
            raise NotFoundError("objective", objective_id)
        theme_idx, objective = located
        objective.title = title
        self.store.save_theme(themes[theme_idx])
        self._publish("okr.updated", f"objective {objective_id} updated", okr_id=objective_id)

    def delete_objective(self, objective_id: str) -> None:
        objective_id = _require(objective_id, "objective ID")
        themes = self.store.load_themes()
        for theme in themes:
            slot = okr.find_objective_slot(theme.objectives, objective_id)
            if slot is None:
                continue
            container, idx = slot
            del container[idx]
            self.store.save_theme(theme)
            self._publish("okr.deleted", f"objective {objective_id} deleted", okr_id=objective_id)
            return
        raise NotFoundError("objective", objective_id)

    def create_key_result(
        self,
        parent_objective_id: str,
        description: str,
        start_value: int = 0,
        target_value: int = 0,
    ) -> KeyResult:
        parent_objective_id = _require(parent_objective_id, "parent objective ID")
        description = _require(description, "key result description")
        if target_value < 0:
            raise ValidationError("target value cannot be negative")
        themes = self.store.load_themes()
        located = okr.locate_objective(themes, parent_objective_id)
        if located is None:
            raise NotFoundError("objective", parent_objective_id)
        theme_idx, objective = located
        key_result = KeyResult(
            description=description,
            start_value=int(start_value),
            current_value=int(start_value),
            target_value=int(target_value),
        )
        objective.key_results.append(key_result)
        self.store.save_theme(themes[theme_idx])
        self._publish("okr.created", f"key result {key_result.id} created under {parent_objective_id}", okr_id=key_result.id)
        return key_result

    def _with_key_result(self, key_result_id: str, mutate: Callable[[KeyResult], None]) -> KeyResult:
        themes = self.store.load_themes()
        located = okr.locate_key_result(themes, key_result_id)
        if located is None:
            raise NotFoundError("key result", key_result_id)
        theme_idx, owner, kr_idx = located
        key_result = owner.key_results[kr_idx]
        mutate(key_result)
        self.store.save_theme(themes[theme_idx])
        return key_result

    def update_key_result(self, key_result_id: str, description: str) -> None:
        key_result_id = _require(key_result_id, "key result ID")
        description = _require(description, "key result description")

        def apply(kr: KeyResult) -> None:
            kr.description = description

        self._with_key_result(key_result_id, apply)
        self._publish("okr.updated", f"key result {key_result_id} updated", okr_id=key_result_id)

    def update_key_result_progress(self, key_result_id: str, current_value: int) -> None:
        key_result_id = _require(key_result_id, "key result ID")

        def apply(kr: KeyResult) -> None:
            kr.current_value = int(current_value)

        self._with_key_result(key_result_id, apply)
        self._publish(
            "okr.progress",
            f"key result {key_result_id} progress set to {int(current_value)}",
            okr_id=key_result_id,
            current_value=int(current_value),
        )

    def delete_key_result(self, key_result_id: str) -> None:
        key_result_id = _require(key_result_id, "key result ID")
        themes = self.store.load_themes()
        located = okr.locate_key_result(themes, key_result_id)
        if located is None:
            raise NotFoundError("key result", key_result_id)
        theme_idx, owner, kr_idx = located
        del owner.key_results[kr_idx]
        self.store.save_theme(themes[theme_idx])
        self._publish("okr.deleted", f"key result {key_result_id} deleted", okr_id=key_result_id)

    def set_objective_status(self, objective_id: str, status: str) -> None:
        objective_id = _require(objective_id, "objective ID")
        status = _require(status, "status")
        themes = self.store.load_themes()
        located = okr.locate_objective(themes, objective_id)
        if located is None:
            raise NotFoundError("objective", objective_id)
        theme_idx, objective = located
        okr.set_objective_status(objective, status)
        self.store.save_theme(themes[theme_idx])
        self._publish("okr.status", f"objective {objective_id} is now {status}", okr_id=objective_id, status=status)

    def set_key_result_status(self, key_result_id: str, status: str) -> None:
        key_result_id = _require(key_result_id, "key result ID")
        status = _require(status, "status")
        self._with_key_result(key_result_id, lambda kr: okr.set_key_result_status(kr, status))
        self._publish("okr.status", f"key result {key_result_id} is now {status}", okr_id=key_result_id, status=status)

    # Calendar

    def get_year_focus(self, year: int) -> list[DayFocus]:
        if year < 1900 or year > 9999:
            raise ValidationError(f"invalid year {year}")
        return self.store.load_year_focus(year)

    def save_day_focus(self, day: DayFocus) -> None:
        _require(day.date, "date")
        _check_date(day.date, "date")
        self.store.save_day_focus(day)
        self._publish("calendar.updated", f"day {day.date} focus saved", date=day.date, theme_id=day.theme_id)

    def clear_day_focus(self, day_date: str) -> None:
        """Drop the theme assignment for a day while keeping its notes and text."""

        day_date = _check_date(_require(day_date, "date"), "date")
        year = int(day_date[:4])
        existing = next((entry for entry in self.store.load_year_focus(year) if entry.date == day_date), None)
        if existing is None:
            return
        self.store.save_day_focus(replace(existing, theme_id=""))
        self._publish("calendar.cleared", f"day {day_date} focus cleared", date=day_date)

    # Tasks

    def get_board_configuration(self) -> BoardConfiguration:
        return default_board_configuration()

    def get_tasks(self) -> list[TaskWithStatus]:
        return sort_tasks(self.store.load_tasks(), self.store.load_task_order())

    @staticmethod
    def _task_infos(tasks: list[TaskWithStatus]) -> tuple[TaskInfo, ...]:
        return tuple(
            TaskInfo(
                id=item.id,
                title=item.task.title,
                status=item.status,
                priority=item.task.priority,
                parent_task_id=item.task.parent_task_id,
                created_at=item.task.created_at,
            )
            for item in tasks
        )

    def _gate(self, kind: str, task: Task, tasks: list[TaskWithStatus]) -> None:
        event = TaskEvent(kind=kind, task=task, all_tasks=self._task_infos(tasks), now=self.store.now())
        result = self.engine.evaluate(event)
        if not result.allowed:
            raise RuleViolationError.from_violations(list(result.violations))

    def create_task(
        self,
        title: str,
        theme_id: str,
        priority: str,
        *,
        day_date: str = "",
        description: str = "",
        tags: list[str] | str | None = None,
        due_date: str = "",
        promotion_date: str = "",
        parent_task_id: str | None = None,
    ) -> Task:
        theme_id = _check_theme_id(theme_id)
        task = Task(
            title=(title or "").strip(),
            description=description or "",
            theme_id=theme_id,
            day_date=_check_date(day_date, "dayDate"),
            priority=(priority or "").strip(),
            tags=_split_tags(tags),
            due_date=_check_date(due_date, "dueDate"),
            promotion_date=_check_date(promotion_date, "promotionDate"),
            parent_task_id=_check_parent_task_id(parent_task_id),
        )
        self._gate(EVENT_TASK_CREATE, task, self.store.load_tasks())
        created = self.store.create_task(task, drop_zone_for(STATUS_TODO, task.priority))
        self._publish("task.created", f"task {created.id} created: {created.title}", task_id=created.id)
        return created

    def update_task(self, task: Task) -> Task:
        """Rewrite a task's fields. Column membership is left alone; use move_task for that."""

        _require(task.id, "task ID")
        _check_theme_id(task.theme_id)
        task.parent_task_id = _check_parent_task_id(task.parent_task_id)
        _check_date(task.day_date, "dayDate")
        _check_date(task.due_date, "dueDate")
        _check_date(task.promotion_date, "promotionDate")
        tasks = self.store.load_tasks()
        current = _pick(tasks, task.id)
        if current is None:
            raise NotFoundError("task", task.id)
        self._gate(EVENT_TASK_UPDATE, task, tasks)

        order: TaskOrder | None = None
        new_zone = drop_zone_for(current.status, task.priority)
        if new_zone != current.zone:
            order = self.store.load_task_order()
            relocate_id(order, task.id, new_zone)
        saved = self.store.save_task(task, order=order)
        self._publish("task.updated", f"task {saved.id} updated", task_id=saved.id)
        return saved

    def move_task(self, task_id: str, new_status: str, positions: dict[str, list[str]] | None = None) -> MoveResult:
        """Move a task to another board column.

        A rule denial comes back as `MoveResult(success=False)` with the
        violations rather than as an exception. The two follow-on cascades
        (parent into doing, children into done) are best effort; their
        failures are reported in `cascade_errors` and on the activity log.
        """

        task_id = _require(task_id, "task ID")
        if not is_task_status(new_status):
            raise ValidationError(f"invalid status {new_status!r}")
        tasks = self.get_tasks()
        moving = _pick(tasks, task_id)
        if moving is None:
            raise NotFoundError("task", task_id)

        if moving.status == new_status:
            if not positions:
                return MoveResult(success=True, positions=self.store.load_task_order())
            return MoveResult(success=True, positions=self.reorder_tasks(positions).positions)

        event = TaskEvent(
            kind=EVENT_TASK_MOVE,
            task=moving.task,
            old_status=moving.status,
            new_status=new_status,
            all_tasks=self._task_infos(tasks),
            now=self.store.now(),
        )
        result = self.engine.evaluate(event)
        if not result.allowed:
            self._publish(
                "task.move_denied",
                f"task {task_id} move {moving.status} -> {new_status} denied",
                task_id=task_id,
                violations=[violation.to_dict() for violation in result.violations],
            )
            return MoveResult(success=False, violations=result.violations)

        order = self.store.load_task_order()
        remove_id(order, task_id)
        append_id(order, drop_zone_for(new_status, moving.task.priority), task_id)
        if positions:
            order = merge_positions(order, positions)
        self.store.move_task(task_id, new_status, order=order)
        self._publish(
            "task.moved",
            f"task {task_id} moved {moving.status} -> {new_status}",
            task_id=task_id,
            old_status=moving.status,
            new_status=new_status,
        )

        cascade_errors: list[str] = []
        parent_id = moving.task.parent_task_id
        if new_status == STATUS_DOING and parent_id:
            parent = _pick(tasks, parent_id)
            if parent is not None and parent.status == STATUS_TODO:
                self._cascade_move(parent, STATUS_DOING, order, cascade_errors)
        if new_status == STATUS_DONE:
            for child in tasks:
                if child.task.parent_task_id != task_id:
                    continue
                if child.status in {STATUS_DONE, STATUS_ARCHIVED}:
                    continue
                self._cascade_move(child, STATUS_DONE, order, cascade_errors)

        return MoveResult(success=True, positions=order, cascade_errors=tuple(cascade_errors))

    def _cascade_move(self, item: TaskWithStatus, new_status: str, order: TaskOrder, errors: list[str]) -> None:
        try:
            remove_id(order, item.id)
            append_id(order, drop_zone_for(new_status, item.task.priority), item.id)
            self.store.move_task(item.id, new_status, order=order)
        except PlanbookError as exc:
            errors.append(f"{item.id}: {exc}")
            self._publish(
                "task.cascade_failed",
                f"cascade move of {item.id} to {new_status} failed: {exc}",
                severity="warn",
                task_id=item.id,
            )
            return
        self._publish(
            "task.cascaded",
            f"task {item.id} moved {item.status} -> {new_status} by cascade",
            task_id=item.id,
            old_status=item.status,
            new_status=new_status,
        )

    def delete_task(self, task_id: str) -> None:
        task_id = _require(task_id, "task ID")
        deleted = self.store.delete_task(task_id)
        self._publish("task.deleted", f"task {deleted.id} deleted: {deleted.title}", task_id=deleted.id)

    def process_priority_promotions(self, today: date | None = None) -> list[PromotedTask]:
        """Promote important-not-urgent tasks whose promotion date has arrived.

        Running it twice in a row promotes nothing the second time.
        """

        cutoff = (today or self.store.now().date()).isoformat()
        promoted: list[PromotedTask] = []
        for item in self.get_tasks():
            task = item.task
            if item.status == STATUS_ARCHIVED or not task.promotion_date:
                continue
            if task.priority != PRIORITY_IMPORTANT_NOT_URGENT or task.promotion_date > cutoff:
                continue
            updated = replace(task, priority=PRIORITY_IMPORTANT_URGENT, promotion_date="")
            order: TaskOrder | None = None
            if item.status == STATUS_TODO:
                order = self.store.load_task_order()
                relocate_id(order, task.id, PRIORITY_IMPORTANT_URGENT)
            self.store.save_task(updated, order=order)
            promoted.append(
                PromotedTask(
                    id=task.id,
                    title=task.title,
                    old_priority=task.priority,
                    new_priority=PRIORITY_IMPORTANT_URGENT,
                )
            )
            self._publish("task.promoted", f"task {task.id} promoted to {PRIORITY_IMPORTANT_URGENT}", task_id=task.id)
        return promoted

    def archive_task(self, task_id: str) -> list[str]:
        """Archive a done task and every descendant; returns the archived IDs."""

        task_id = _require(task_id, "task ID")
        tasks = self.store.load_tasks()
        target = _pick(tasks, task_id)
        if target is None:
            raise NotFoundError("task", task_id)
        if target.status != STATUS_DONE:
            raise RuleViolationError(f"task {task_id} is not done (status: {target.status})")

        affected = [task_id, *_descendants(task_id, tasks)]
        order = self.store.load_task_order()
        prune_ids(order, affected)
        extra = f" (+{len(affected) - 1} subtasks)" if len(affected) > 1 else ""
        self.store.relocate_tasks(affected, STATUS_ARCHIVED, f"Archive task: {target.task.title}{extra}", order=order)
        self._publish("task.archived", f"task {task_id} archived", task_id=task_id, affected=affected)
        return affected

    def restore_task(self, task_id: str) -> list[str]:
        """Bring an archived task and its archived descendants back to done."""

        task_id = _require(task_id, "task ID")
        tasks = self.store.load_tasks()
        matches = [item for item in tasks if item.id == task_id]
        if not matches:
            raise NotFoundError("task", task_id)
        target = next((item for item in matches if item.status == STATUS_ARCHIVED), None)
        if target is None:
            raise RuleViolationError(f"task {task_id} is not archived (status: {matches[0].status})")

        affected = [task_id, *_descendants(task_id, tasks, status=STATUS_ARCHIVED)]
        order = self.store.load_task_order()
        for restored_id in affected:
            append_id(order, STATUS_DONE, restored_id)
        self.store.relocate_tasks(affected, STATUS_DONE, f"Restore task: {target.task.title}", order=order)
        self._publish("task.restored", f"task {task_id} restored", task_id=task_id, affected=affected)
        return affected

    def archive_all_done_tasks(self) -> list[str]:
        tasks = self.store.load_tasks()
        done_ids = {item.id for item in tasks if item.status == STATUS_DONE}
        archived: list[str] = []
        for item in tasks:
            if item.status != STATUS_DONE or item.id in archived:
                continue
            if item.task.parent_task_id and item.task.parent_task_id in done_ids:
                continue
            archived.extend(self.archive_task(item.id))
        return archived

    def reorder_tasks(self, positions: dict[str, list[str]]) -> ReorderResult:
        order = merge_positions(self.store.load_task_order(), positions)
        self.store.save_task_order(order)
        self._publish("task.reordered", f"reordered zones: {', '.join(sorted(positions))}", zones=sorted(positions))
        return ReorderResult(success=True, positions=order)

    # Preferences

    def load_navigation_context(self) -> NavigationContext:
        try:
            ctx = self.store.load_navigation_context()
        except PersistenceError as exc:
            self._publish("navigation.load_failed", f"navigation context unreadable: {exc}", severity="warn")
            return NavigationContext()
        return ctx or NavigationContext()

    def save_navigation_context(self, ctx: NavigationContext) -> None:
        self.store.save_navigation_context(ctx)

    def load_task_drafts(self) -> dict[str, Any]:
        return self.store.load_task_drafts()

    def save_task_drafts(self, drafts: dict[str, Any]) -> None:
        self.store.save_task_drafts(drafts)

    # History

    def history(self, limit: int = 0) -> list[CommitInfo]:
        return self.store.history(limit)
