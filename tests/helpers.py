from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
import os
from pathlib import Path
import subprocess
from tempfile import TemporaryDirectory
from typing import Iterator
from unittest.mock import patch


def run_git(repo: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args],
        cwd=str(repo),
        text=True,
        capture_output=True,
        check=False,
    )


@contextmanager
def git_sandbox() -> Iterator[Path]:
    """Temporary directory with git's global/system config isolated from the host."""

    with TemporaryDirectory() as tmp:
        root = Path(tmp)
        env = {"GIT_CONFIG_GLOBAL": str(root / "global.gitconfig"), "GIT_CONFIG_NOSYSTEM": "1"}
        with patch.dict(os.environ, env, clear=False):
            yield root


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 3, 14, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value
