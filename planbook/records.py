from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .errors import PersistenceError


class _NotFound:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


# Returned by read_record when the file does not exist. Callers branch on
# identity (`result is NOT_FOUND`) instead of catching an exception.
NOT_FOUND: Any = _NotFound()


def render_record(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=True) + "\n"


def read_record(path: Path) -> Any:
    """Read one whole JSON record.

    Missing file → NOT_FOUND. Unreadable or malformed file → PersistenceError.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return NOT_FOUND
    except OSError as exc:
        raise PersistenceError(f"failed to read {path}: {exc}") from exc
    try:
        return json.loads(text)
    except ValueError as exc:
        raise PersistenceError(f"failed to parse {path}: {exc}") from exc


def write_record(path: Path, payload: Any) -> bool:
    """Overwrite `path` with the rendered payload.

    Returns False when the file already held byte-identical content, so the
    caller can skip staging a no-op change.
    """

    rendered = render_record(payload)
    try:
        if path.exists() and path.read_text(encoding="utf-8") == rendered:
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(rendered, encoding="utf-8")
        tmp.replace(path)
    except OSError as exc:
        raise PersistenceError(f"failed to write {path}: {exc}") from exc
    return True


def remove_record(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise PersistenceError(f"failed to delete {path}: {exc}") from exc
    return True


def move_record(src: Path, dest: Path) -> None:
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        src.replace(dest)
    except OSError as exc:
        raise PersistenceError(f"failed to move {src} -> {dest}: {exc}") from exc


def list_record_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.glob("*.json") if path.is_file())
