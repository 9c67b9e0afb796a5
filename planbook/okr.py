from __future__ import annotations

from .errors import InvalidTransitionError, ObjectiveCompletionBlocked, ValidationError
from .models import (
    OKR_ACTIVE,
    OKR_ARCHIVED,
    OKR_COMPLETED,
    KeyResult,
    Objective,
    Theme,
    effective_okr_status,
    is_valid_okr_status,
)


# Tree lookups return (container, index) slots rather than node references so
# callers can replace or delete in place without knowing the node's depth.


def find_objective(objectives: list[Objective], objective_id: str) -> Objective | None:
    slot = find_objective_slot(objectives, objective_id)
    if slot is None:
        return None
    container, idx = slot
    return container[idx]


def find_objective_slot(objectives: list[Objective], objective_id: str) -> tuple[list[Objective], int] | None:
    for idx, obj in enumerate(objectives):
        if obj.id == objective_id:
            return objectives, idx
        found = find_objective_slot(obj.objectives, objective_id)
        if found is not None:
            return found
    return None


def find_key_result_slot(objectives: list[Objective], key_result_id: str) -> tuple[Objective, int] | None:
    for obj in objectives:
        for idx, kr in enumerate(obj.key_results):
            if kr.id == key_result_id:
                return obj, idx
        found = find_key_result_slot(obj.objectives, key_result_id)
        if found is not None:
            return found
    return None


def locate_objective(themes: list[Theme], objective_id: str) -> tuple[int, Objective] | None:
    for theme_idx, theme in enumerate(themes):
        obj = find_objective(theme.objectives, objective_id)
        if obj is not None:
            return theme_idx, obj
    return None


def locate_key_result(themes: list[Theme], key_result_id: str) -> tuple[int, Objective, int] | None:
    for theme_idx, theme in enumerate(themes):
        slot = find_key_result_slot(theme.objectives, key_result_id)
        if slot is not None:
            owner, kr_idx = slot
            return theme_idx, owner, kr_idx
    return None


def locate_parent(themes: list[Theme], parent_id: str) -> tuple[int, list[Objective]] | None:
    """Resolve a parent for a new objective: a theme ID first, then any objective."""
    for theme_idx, theme in enumerate(themes):
        if theme.id == parent_id:
            return theme_idx, theme.objectives
    located = locate_objective(themes, parent_id)
    if located is None:
        return None
    theme_idx, obj = located
    return theme_idx, obj.objectives


def validate_okr_transition(current: str, target: str) -> None:
    if not is_valid_okr_status(target):
        raise ValidationError(f"invalid status {target!r}")
    now = effective_okr_status(current)
    goal = effective_okr_status(target)
    if now == goal:
        return
    if goal == OKR_ACTIVE:
        return
    if now == OKR_ACTIVE and goal == OKR_COMPLETED:
        return
    if now == OKR_COMPLETED and goal == OKR_ARCHIVED:
        return
    if now == OKR_ACTIVE and goal == OKR_ARCHIVED:
        raise InvalidTransitionError(now, goal, "cannot archive an active item; complete it first")
    raise InvalidTransitionError(now, goal, f"invalid transition from {now!r} to {goal!r}")


def completion_blockers(obj: Objective) -> list[tuple[str, str]]:
    blockers: list[tuple[str, str]] = []
    for child in obj.objectives:
        if effective_okr_status(child.status) not in {OKR_COMPLETED, OKR_ARCHIVED}:
            blockers.append((child.id, child.title))
    for kr in obj.key_results:
        if effective_okr_status(kr.status) not in {OKR_COMPLETED, OKR_ARCHIVED}:
            blockers.append((kr.id, kr.description))
    return blockers


def set_objective_status(obj: Objective, status: str) -> None:
    validate_okr_transition(obj.status, status)
    if effective_okr_status(status) == OKR_COMPLETED:
        blockers = completion_blockers(obj)
        if blockers:
            raise ObjectiveCompletionBlocked(obj.id, blockers)
    obj.status = status


def set_key_result_status(kr: KeyResult, status: str) -> None:
    validate_okr_transition(kr.status, status)
    kr.status = status
