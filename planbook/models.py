from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


STATUS_TODO = "todo"
STATUS_DOING = "doing"
STATUS_DONE = "done"
STATUS_ARCHIVED = "archived"

BOARD_STATUSES = (STATUS_TODO, STATUS_DOING, STATUS_DONE)
ALL_TASK_STATUSES = (STATUS_TODO, STATUS_DOING, STATUS_DONE, STATUS_ARCHIVED)

PRIORITY_IMPORTANT_URGENT = "important-urgent"
PRIORITY_IMPORTANT_NOT_URGENT = "important-not-urgent"
PRIORITY_NOT_IMPORTANT_URGENT = "not-important-urgent"

# Eisenhower quadrants 1-3; "not important, not urgent" is deliberately absent.
PRIORITIES = (
    PRIORITY_IMPORTANT_URGENT,
    PRIORITY_IMPORTANT_NOT_URGENT,
    PRIORITY_NOT_IMPORTANT_URGENT,
)

OKR_ACTIVE = "active"
OKR_COMPLETED = "completed"
OKR_ARCHIVED = "archived"
OKR_STATUSES = (OKR_ACTIVE, OKR_COMPLETED, OKR_ARCHIVED)


def is_board_status(status: str) -> bool:
    return status in BOARD_STATUSES


def is_task_status(status: str) -> bool:
    return status in ALL_TASK_STATUSES


def is_valid_priority(priority: str) -> bool:
    return priority in PRIORITIES


def is_valid_okr_status(status: str) -> bool:
    return status == "" or status in OKR_STATUSES


def effective_okr_status(status: str) -> str:
    return status or OKR_ACTIVE


def _clean(value: Any) -> str:
    return " ".join(str(value or "").split())


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except Exception:  # noqa: BLE001
        return 0


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


@dataclass
class KeyResult:
    id: str = ""
    parent_id: str = ""
    description: str = ""
    status: str = ""
    start_value: int = 0
    current_value: int = 0
    target_value: int = 0

    @property
    def kind(self) -> str:
        if self.target_value <= 0:
            return "untracked"
        if self.target_value == 1 and self.start_value == 0:
            return "binary"
        return "numeric"

    @property
    def progress(self) -> float | None:
        """Fraction of the way from start to target; exceeds 1.0 on over-achievement."""
        if self.kind == "untracked":
            return None
        span = self.target_value - self.start_value
        if span <= 0:
            return 1.0 if self.current_value >= self.target_value else 0.0
        return (self.current_value - self.start_value) / span


@dataclass
class Objective:
    id: str = ""
    parent_id: str = ""
    title: str = ""
    status: str = ""
    key_results: list[KeyResult] = field(default_factory=list)
    objectives: list[Objective] = field(default_factory=list)


@dataclass
class Theme:
    id: str = ""
    name: str = ""
    color: str = ""
    objectives: list[Objective] = field(default_factory=list)


@dataclass
class Task:
    id: str = ""
    title: str = ""
    description: str = ""
    theme_id: str = ""
    day_date: str = ""
    priority: str = ""
    tags: list[str] = field(default_factory=list)
    due_date: str = ""
    promotion_date: str = ""
    parent_task_id: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class TaskWithStatus:
    task: Task
    status: str
    subtask_ids: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def zone(self) -> str:
        if self.status == STATUS_TODO and self.task.priority:
            return self.task.priority
        return self.status


@dataclass
class DayFocus:
    date: str
    theme_id: str = ""
    notes: str = ""
    text: str = ""


@dataclass
class NavigationContext:
    current_view: str = "home"
    current_item: str = ""
    filter_theme_ids: list[str] = field(default_factory=list)
    filter_date: str = ""
    last_accessed: str = ""
    show_completed: bool = False
    show_archived: bool = False
    show_archived_tasks: bool = False
    expanded_okr_ids: list[str] = field(default_factory=list)
    filter_tag_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SectionDefinition:
    name: str
    title: str
    color: str


@dataclass(frozen=True)
class ColumnDefinition:
    name: str
    title: str
    type: str
    sections: tuple[SectionDefinition, ...] = ()


@dataclass(frozen=True)
class BoardConfiguration:
    name: str
    columns: tuple[ColumnDefinition, ...]


def default_board_configuration() -> BoardConfiguration:
    return BoardConfiguration(
        name="Planbook Board",
        columns=(
            ColumnDefinition(
                name=STATUS_TODO,
                title="TODO",
                type=STATUS_TODO,
                sections=(
                    SectionDefinition(PRIORITY_IMPORTANT_URGENT, "Important & Urgent", "#ef4444"),
                    SectionDefinition(PRIORITY_NOT_IMPORTANT_URGENT, "Not Important & Urgent", "#f59e0b"),
                    SectionDefinition(PRIORITY_IMPORTANT_NOT_URGENT, "Important & Not Urgent", "#3b82f6"),
                ),
            ),
            ColumnDefinition(name=STATUS_DOING, title="DOING", type=STATUS_DOING),
            ColumnDefinition(name=STATUS_DONE, title="DONE", type=STATUS_DONE),
        ),
    )


# Record <-> model conversion. On-disk keys are camelCase and empty optionals
# are omitted so unchanged entities serialise to identical bytes.


def key_result_from_record(record: dict[str, Any]) -> KeyResult:
    return KeyResult(
        id=_clean(record.get("id")),
        parent_id=_clean(record.get("parentId")),
        description=str(record.get("description") or ""),
        status=_clean(record.get("status")),
        start_value=_as_int(record.get("startValue")),
        current_value=_as_int(record.get("currentValue")),
        target_value=_as_int(record.get("targetValue")),
    )


def record_from_key_result(kr: KeyResult) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": kr.id,
        "parentId": kr.parent_id,
        "description": kr.description,
    }
    if kr.status:
        record["status"] = kr.status
    if kr.start_value:
        record["startValue"] = int(kr.start_value)
    if kr.current_value:
        record["currentValue"] = int(kr.current_value)
    if kr.target_value:
        record["targetValue"] = int(kr.target_value)
    return record


def objective_from_record(record: dict[str, Any]) -> Objective:
    key_results = record.get("keyResults") if isinstance(record.get("keyResults"), list) else []
    children = record.get("objectives") if isinstance(record.get("objectives"), list) else []
    return Objective(
        id=_clean(record.get("id")),
        parent_id=_clean(record.get("parentId")),
        title=str(record.get("title") or ""),
        status=_clean(record.get("status")),
        key_results=[key_result_from_record(item) for item in key_results if isinstance(item, dict)],
        objectives=[objective_from_record(item) for item in children if isinstance(item, dict)],
    )


def record_from_objective(obj: Objective) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": obj.id,
        "parentId": obj.parent_id,
        "title": obj.title,
    }
    if obj.status:
        record["status"] = obj.status
    record["keyResults"] = [record_from_key_result(kr) for kr in obj.key_results]
    if obj.objectives:
        record["objectives"] = [record_from_objective(child) for child in obj.objectives]
    return record


def theme_from_record(record: dict[str, Any]) -> Theme:
    objectives = record.get("objectives") if isinstance(record.get("objectives"), list) else []
    return Theme(
        id=_clean(record.get("id")),
        name=str(record.get("name") or ""),
        color=_clean(record.get("color")),
        objectives=[objective_from_record(item) for item in objectives if isinstance(item, dict)],
    )


def record_from_theme(theme: Theme) -> dict[str, Any]:
    return {
        "id": theme.id,
        "name": theme.name,
        "color": theme.color,
        "objectives": [record_from_objective(obj) for obj in theme.objectives],
    }


def task_from_record(record: dict[str, Any]) -> Task:
    parent = _clean(record.get("parentTaskId"))
    return Task(
        id=_clean(record.get("id")),
        title=str(record.get("title") or ""),
        description=str(record.get("description") or ""),
        theme_id=_clean(record.get("themeId")),
        day_date=_clean(record.get("dayDate")),
        priority=_clean(record.get("priority")),
        tags=_str_list(record.get("tags")),
        due_date=_clean(record.get("dueDate")),
        promotion_date=_clean(record.get("promotionDate")),
        parent_task_id=parent or None,
        created_at=_clean(record.get("createdAt")),
        updated_at=_clean(record.get("updatedAt")),
    )


def record_from_task(task: Task) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
    }
    if task.description:
        record["description"] = task.description
    record["themeId"] = task.theme_id
    record["dayDate"] = task.day_date
    record["priority"] = task.priority
    if task.tags:
        record["tags"] = list(task.tags)
    if task.due_date:
        record["dueDate"] = task.due_date
    if task.promotion_date:
        record["promotionDate"] = task.promotion_date
    if task.parent_task_id:
        record["parentTaskId"] = task.parent_task_id
    if task.created_at:
        record["createdAt"] = task.created_at
    if task.updated_at:
        record["updatedAt"] = task.updated_at
    return record


def day_focus_from_record(record: dict[str, Any]) -> DayFocus | None:
    day = _clean(record.get("date"))
    if not day:
        return None
    return DayFocus(
        date=day,
        theme_id=_clean(record.get("themeId")),
        notes=str(record.get("notes") or ""),
        text=str(record.get("text") or ""),
    )


def record_from_day_focus(day: DayFocus) -> dict[str, Any]:
    return {"date": day.date, "themeId": day.theme_id, "notes": day.notes, "text": day.text}


def navigation_from_record(record: dict[str, Any]) -> NavigationContext:
    theme_ids = _str_list(record.get("filterThemeIds"))
    legacy_theme = _clean(record.get("filterThemeId"))
    if not theme_ids and legacy_theme:
        theme_ids = [legacy_theme]
    return NavigationContext(
        current_view=_clean(record.get("currentView")) or "home",
        current_item=_clean(record.get("currentItem")),
        filter_theme_ids=theme_ids,
        filter_date=_clean(record.get("filterDate")),
        last_accessed=_clean(record.get("lastAccessed")),
        show_completed=bool(record.get("showCompleted", False)),
        show_archived=bool(record.get("showArchived", False)),
        show_archived_tasks=bool(record.get("showArchivedTasks", False)),
        expanded_okr_ids=_str_list(record.get("expandedOkrIds")),
        filter_tag_ids=_str_list(record.get("filterTagIds")),
    )


def record_from_navigation(ctx: NavigationContext) -> dict[str, Any]:
    return {
        "currentView": ctx.current_view,
        "currentItem": ctx.current_item,
        "filterThemeIds": list(ctx.filter_theme_ids),
        "filterDate": ctx.filter_date,
        "lastAccessed": ctx.last_accessed,
        "showCompleted": bool(ctx.show_completed),
        "showArchived": bool(ctx.show_archived),
        "showArchivedTasks": bool(ctx.show_archived_tasks),
        "expandedOkrIds": list(ctx.expanded_okr_ids),
        "filterTagIds": list(ctx.filter_tag_ids),
    }
