"""Pure rule evaluation for task create/update/move events.

Rules are plain data (a kind plus parameters) dispatched through `_CHECKS`; the
engine never touches disk and a given event always yields the same verdict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from .config import BoardConfig
from .models import (
    PRIORITIES,
    STATUS_ARCHIVED,
    STATUS_DOING,
    STATUS_DONE,
    STATUS_TODO,
    Task,
)


EVENT_TASK_CREATE = "task_create"
EVENT_TASK_UPDATE = "task_update"
EVENT_TASK_MOVE = "task_move"
TRIGGER_ALL = "all"

SEVERITY_HIGH = 100
SEVERITY_MEDIUM = 90
SEVERITY_LOW = 50

DEFAULT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    STATUS_TODO: (STATUS_DOING, STATUS_DONE),
    STATUS_DOING: (STATUS_TODO, STATUS_DONE),
    STATUS_DONE: (STATUS_DOING,),
}


@dataclass(frozen=True)
class TaskInfo:
    id: str
    title: str
    status: str
    priority: str = ""
    parent_task_id: str | None = None
    created_at: str = ""


@dataclass(frozen=True)
class TaskEvent:
    kind: str
    task: Task
    old_status: str = ""
    new_status: str = ""
    all_tasks: tuple[TaskInfo, ...] = ()
    now: datetime | None = None


@dataclass(frozen=True)
class RuleViolation:
    rule_id: str
    message: str
    category: str = "validation"
    severity: int = SEVERITY_HIGH

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "message": self.message,
            "category": self.category,
            "severity": self.severity,
        }


@dataclass(frozen=True)
class RuleEvaluation:
    allowed: bool
    violations: tuple[RuleViolation, ...] = ()


@dataclass(frozen=True)
class Rule:
    id: str
    kind: str
    trigger: str | tuple[str, ...]
    params: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    severity: int = SEVERITY_HIGH
    category: str = "validation"

    def applies_to(self, event_kind: str) -> bool:
        if not self.enabled:
            return False
        if isinstance(self.trigger, str):
            return self.trigger in {event_kind, TRIGGER_ALL}
        return event_kind in self.trigger


def default_rules(board: BoardConfig | None = None) -> list[Rule]:
    board = board or BoardConfig()
    return [
        Rule(
            id="allowed-priority",
            kind="allowed-priority",
            trigger=(EVENT_TASK_CREATE, EVENT_TASK_UPDATE),
            params={"priorities": PRIORITIES},
        ),
        Rule(
            id="required-fields-create",
            kind="required-fields",
            trigger=EVENT_TASK_CREATE,
            params={"fields": ("title",)},
        ),
        Rule(
            id="allowed-transitions",
            kind="allowed-transitions",
            trigger=EVENT_TASK_MOVE,
            params={"transitions": DEFAULT_TRANSITIONS},
            severity=SEVERITY_MEDIUM,
            category="workflow",
        ),
        Rule(
            id="wip-limit-doing",
            kind="wip-limit",
            trigger=EVENT_TASK_MOVE,
            params={"column": STATUS_DOING, "limit": board.wip_limit},
            enabled=board.wip_limit > 0,
        ),
        Rule(
            id="subtask-hierarchy",
            kind="subtask-hierarchy",
            trigger=TRIGGER_ALL,
            params={"max_depth": board.max_subtask_depth},
        ),
        Rule(
            id="max-age-doing",
            kind="max-age",
            trigger=EVENT_TASK_MOVE,
            params={"column": STATUS_DOING, "max_age_days": board.max_age_days},
            enabled=board.max_age_days > 0,
            severity=SEVERITY_LOW,
            category="automation",
        ),
    ]


def _violation(rule: Rule, message: str) -> RuleViolation:
    return RuleViolation(rule_id=rule.id, message=message, category=rule.category, severity=rule.severity)


def check_allowed_priority(rule: Rule, event: TaskEvent) -> list[RuleViolation]:
    allowed = tuple(rule.params.get("priorities") or PRIORITIES)
    priority = event.task.priority
    if priority in allowed:
        return []
    if not priority:
        return [_violation(rule, "Task priority is required")]
    return [_violation(rule, f"Priority {priority!r} is not allowed; use one of: {', '.join(allowed)}")]


def check_required_fields(rule: Rule, event: TaskEvent) -> list[RuleViolation]:
    violations: list[RuleViolation] = []
    for name in rule.params.get("fields") or ():
        value = getattr(event.task, str(name), "")
        if isinstance(value, str) and not value.strip():
            violations.append(_violation(rule, f"Task {name} is required"))
    return violations


def check_allowed_transition(rule: Rule, event: TaskEvent) -> list[RuleViolation]:
    old, new = event.old_status, event.new_status
    if not old or not new or old == new:
        return []
    if STATUS_ARCHIVED in {old, new}:
        return [_violation(rule, f"Transition from {old!r} to {new!r} is not a board move; use archive or restore")]
    transitions = rule.params.get("transitions") or {}
    if old not in transitions:
        return [_violation(rule, f"No transitions defined from column {old!r}")]
    if new in transitions[old]:
        return []
    return [_violation(rule, f"Transition from {old!r} to {new!r} is not allowed")]


def check_wip_limit(rule: Rule, event: TaskEvent) -> list[RuleViolation]:
    column = str(rule.params.get("column") or "")
    limit = int(rule.params.get("limit") or 0)
    if not column or limit <= 0 or event.new_status != column or event.old_status == column:
        return []
    count = sum(1 for info in event.all_tasks if info.status == column and info.id != event.task.id)
    if count < limit:
        return []
    return [_violation(rule, f"WIP limit exceeded: column {column!r} has {count} tasks, limit is {limit}")]


def check_subtask_hierarchy(rule: Rule, event: TaskEvent) -> list[RuleViolation]:
    parent_id = event.task.parent_task_id or ""
    if not parent_id:
        return []
    task_id = event.task.id
    parents = {info.id: (info.parent_task_id or "") for info in event.all_tasks}
    if parent_id not in parents:
        return [_violation(rule, f"Parent task {parent_id!r} does not exist")]
    if task_id and task_id == parent_id:
        return [_violation(rule, "Task cannot be its own parent")]

    if task_id:
        parents[task_id] = parent_id
        seen = {task_id}
        current = parent_id
        while current:
            if current in seen:
                return [_violation(rule, "Circular parent reference detected")]
            seen.add(current)
            current = parents.get(current, "")

    max_depth = int(rule.params.get("max_depth") or 0)
    if max_depth <= 0:
        return []
    depth = 1
    current = parent_id
    walked = {current}
    while parents.get(current) and parents[current] not in walked:
        depth += 1
        current = parents[current]
        walked.add(current)
    if depth > max_depth:
        return [_violation(rule, f"Subtask depth {depth} exceeds maximum depth {max_depth}")]
    return []


def _parse_timestamp(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_max_age(rule: Rule, event: TaskEvent) -> list[RuleViolation]:
    column = str(rule.params.get("column") or "")
    max_days = int(rule.params.get("max_age_days") or 0)
    if max_days <= 0 or event.now is None:
        return []
    if column and event.new_status != column:
        return []
    created = _parse_timestamp(event.task.created_at)
    if created is None:
        return []
    now = event.now if event.now.tzinfo else event.now.replace(tzinfo=timezone.utc)
    age_days = (now - created).total_seconds() / 86400
    if age_days <= max_days:
        return []
    return [_violation(rule, f"Task has exceeded max age: {age_days:.0f} days old (limit: {max_days} days)")]


RuleCheck = Callable[[Rule, TaskEvent], list[RuleViolation]]

_CHECKS: dict[str, RuleCheck] = {
    "allowed-priority": check_allowed_priority,
    "required-fields": check_required_fields,
    "allowed-transitions": check_allowed_transition,
    "wip-limit": check_wip_limit,
    "subtask-hierarchy": check_subtask_hierarchy,
    "max-age": check_max_age,
}


class RuleEngine:
    def __init__(self, rules: list[Rule] | None = None) -> None:
        self.rules = list(rules) if rules is not None else default_rules()

    def evaluate(self, event: TaskEvent) -> RuleEvaluation:
        violations: list[RuleViolation] = []
        for rule in self.rules:
            if not rule.applies_to(event.kind):
                continue
            check = _CHECKS.get(rule.kind)
            if check is None:
                continue
            violations.extend(check(rule, event))
        violations.sort(key=lambda item: -item.severity)
        return RuleEvaluation(allowed=not violations, violations=tuple(violations))
