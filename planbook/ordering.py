from __future__ import annotations

from typing import Iterable, Mapping

from .models import STATUS_TODO, TaskWithStatus

TaskOrder = dict[str, list[str]]


def drop_zone_for(status: str, priority: str) -> str:
    """todo tasks are ordered per Eisenhower section; every other column is one zone."""
    if status == STATUS_TODO and priority:
        return priority
    return status


def normalize_order(payload: object) -> TaskOrder:
    if not isinstance(payload, dict):
        return {}
    order: TaskOrder = {}
    for zone, ids in payload.items():
        if not isinstance(ids, list):
            continue
        seen: set[str] = set()
        cleaned: list[str] = []
        for item in ids:
            value = str(item or "").strip()
            if value and value not in seen:
                seen.add(value)
                cleaned.append(value)
        order[str(zone)] = cleaned
    return order


def merge_positions(current: Mapping[str, list[str]], proposed: Mapping[str, list[str]]) -> TaskOrder:
    merged: TaskOrder = {zone: list(ids) for zone, ids in current.items()}
    for zone, ids in normalize_order(dict(proposed)).items():
        merged[zone] = ids
    return merged


def remove_id(order: TaskOrder, task_id: str) -> bool:
    changed = False
    for zone, ids in order.items():
        if task_id in ids:
            order[zone] = [item for item in ids if item != task_id]
            changed = True
    return changed


def prune_ids(order: TaskOrder, task_ids: Iterable[str]) -> bool:
    doomed = set(task_ids)
    changed = False
    for zone, ids in order.items():
        kept = [item for item in ids if item not in doomed]
        if len(kept) != len(ids):
            order[zone] = kept
            changed = True
    return changed


def append_id(order: TaskOrder, zone: str, task_id: str) -> None:
    ids = order.setdefault(zone, [])
    if task_id not in ids:
        ids.append(task_id)


def relocate_id(order: TaskOrder, task_id: str, zone: str) -> bool:
    """Move `task_id` to the end of `zone` unless it already sits there."""
    if task_id in order.get(zone, []):
        return False
    remove_id(order, task_id)
    append_id(order, zone, task_id)
    return True


def sort_tasks(tasks: Iterable[TaskWithStatus], order: Mapping[str, list[str]]) -> list[TaskWithStatus]:
    positions: dict[tuple[str, str], int] = {}
    for zone, ids in order.items():
        for idx, task_id in enumerate(ids):
            positions.setdefault((zone, task_id), idx)

    def key(item: TaskWithStatus) -> tuple[str, int, int, str, str]:
        zone = item.zone
        position = positions.get((zone, item.id))
        if position is None:
            return (zone, 1, 0, item.task.created_at, item.id)
        return (zone, 0, position, "", item.id)

    return sorted(tasks, key=key)
