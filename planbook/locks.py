from __future__ import annotations

import contextlib
from pathlib import Path
from typing import IO


class RepositoryLock:
    """Exclusive, blocking lock on a repository's lock file.

    Held for the lifetime of one transaction so Begin…Commit sequences from
    different handles (including symlinked paths to the same repo) serialise.
    """

    def __init__(self, lock_path: Path) -> None:
        self.lock_path = lock_path.resolve()
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        if self._handle is not None:
            return
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.lock_path.open("a+", encoding="utf-8")
        try:
            import fcntl  # type: ignore

            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        except ModuleNotFoundError:
            handle.close()
            raise RuntimeError("Repository locks require fcntl (not available on this platform).")
        except OSError as exc:
            handle.close()
            raise RuntimeError(f"Failed to lock repository (lock: {self.lock_path}).") from exc
        self._handle = handle

    def release(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            import fcntl  # type: ignore

            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except Exception:  # noqa: BLE001
            pass
        with contextlib.suppress(OSError):
            handle.close()
