from __future__ import annotations

from collections import deque
from collections.abc import Callable
import contextlib
from datetime import datetime, timezone
import json
import secrets
import time
from pathlib import Path
from typing import Any

EventHandler = Callable[[dict[str, Any]], Any]

SEVERITIES = ("info", "warn", "error")


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()


def new_event_id() -> str:
    stamp = int(time.time() * 1000)
    token = secrets.token_hex(4)
    return f"evt-{stamp}-{token}"


def make_event(
    event_type: str,
    message: str,
    *,
    severity: str = "info",
    source: str = "planning",
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    level = str(severity or "info").lower()
    return {
        "id": new_event_id(),
        "ts": utc_now_iso(),
        "type": str(event_type or "planning.event"),
        "severity": level if level in SEVERITIES else "info",
        "source": str(source or "planning"),
        "message": " ".join(str(message or "").split()),
        "metadata": dict(metadata or {}),
    }


def tail_jsonl(path: Path, limit: int) -> list[dict[str, Any]]:
    """Last `limit` JSON objects in a JSONL file (all of them for limit <= 0)."""

    events: list[dict[str, Any]] = []
    try:
        handle = path.open("r", encoding="utf-8")
    except FileNotFoundError:
        return events
    with handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                events.append(payload)
    return events[-limit:] if limit > 0 else events


class EventBus:
    """Synchronous activity feed for planning mutations.

    Every published event is kept in a bounded in-memory window, appended to
    the JSONL activity log when one is configured, and handed to subscribers
    whose type prefix matches.
    """

    def __init__(self, log_path: Path | None = None, *, keep: int = 200) -> None:
        self._log_path = log_path
        self._recent: deque[dict[str, Any]] = deque(maxlen=max(1, keep))
        self._handlers: list[tuple[str, EventHandler]] = []
        self.events_written = 0
        if self._log_path is not None:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_path.touch(exist_ok=True)

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    def subscribe(self, handler: EventHandler, *, prefix: str = "") -> Callable[[], None]:
        """Call `handler` for events whose type starts with `prefix`; returns an unsubscribe callable."""

        entry = (prefix, handler)
        self._handlers.append(entry)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._handlers.remove(entry)

        return _unsubscribe

    def publish_event(
        self,
        event_type: str,
        message: str,
        *,
        severity: str = "info",
        source: str = "planning",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        event = make_event(event_type, message, severity=severity, source=source, metadata=metadata)
        self._recent.append(event)
        if self._log_path is not None:
            with self._log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(event, sort_keys=True, ensure_ascii=True))
                handle.write("\n")
            self.events_written += 1
        for prefix, handler in list(self._handlers):
            if not event["type"].startswith(prefix):
                continue
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                continue
        return event

    def read_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Newest-last activity. Reads the log when there is one, so earlier runs show up too."""

        if self._log_path is not None:
            return tail_jsonl(self._log_path, limit)
        events = list(self._recent)
        return events[-limit:] if limit > 0 else events


def append_runtime_log(log_file: Path, *, level: str, message: str) -> None:
    normalized_message = " ".join(message.split())
    stamp = utc_now_iso()
    line = f"{stamp} [{level.lower()}] {normalized_message}\n"
    with contextlib.suppress(Exception):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with log_file.open("a", encoding="utf-8") as handle:
            handle.write(line)
