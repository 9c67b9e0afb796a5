from __future__ import annotations

from typing import Any


class PlanbookError(Exception):
    """Base class for every failure raised by the planning core."""


class ValidationError(PlanbookError, ValueError):
    """Missing or malformed argument, rejected before any I/O happens."""


class NotFoundError(PlanbookError, LookupError):
    def __init__(self, kind: str, entity_id: str, *, scope: str = "") -> None:
        self.kind = kind
        self.entity_id = entity_id
        self.scope = scope
        where = f" in {scope}" if scope else ""
        super().__init__(f"{kind} with ID {entity_id} not found{where}")


class RuleViolationError(PlanbookError):
    """A well-formed request refused by a transition or board rule."""

    def __init__(self, message: str, *, violations: list[Any] | None = None) -> None:
        self.violations = list(violations or [])
        super().__init__(message)

    @classmethod
    def from_violations(cls, violations: list[Any]) -> "RuleViolationError":
        messages = [str(getattr(item, "message", item)) for item in violations]
        return cls("rule violation: " + "; ".join(messages), violations=violations)


class InvalidTransitionError(RuleViolationError):
    def __init__(self, current: str, target: str, message: str) -> None:
        self.current = current
        self.target = target
        super().__init__(message)


class ObjectiveCompletionBlocked(RuleViolationError):
    def __init__(self, objective_id: str, blockers: list[tuple[str, str]]) -> None:
        self.objective_id = objective_id
        self.blockers = list(blockers)
        listed = ", ".join(f"{child_id} ({label})" for child_id, label in self.blockers)
        super().__init__(f"cannot complete objective {objective_id}; active children: {listed}")


class PersistenceError(PlanbookError, RuntimeError):
    """Disk or version-control failure. Retrying the same call is safe."""
