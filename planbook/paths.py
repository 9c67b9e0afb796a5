from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path


DATA_DIR_ENV = "PLANBOOK_DATA_DIR"
DEFAULT_DATA_DIRNAME = ".planbook"

# Files that hold per-machine preferences and never enter version history.
UNVERSIONED_NAMES = ("navigation_context.json", "task_drafts.json", "planbook.toml", "logs/", "*.tmp")


def default_data_root() -> Path:
    """Resolve where plan data lives when the caller did not say.

    `PLANBOOK_DATA_DIR` wins; otherwise a dot-directory in the user's home.
    """

    override = (os.environ.get(DATA_DIR_ENV) or "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_DATA_DIRNAME


@dataclass(frozen=True)
class DataPaths:
    root: Path
    themes_dir: Path
    themes_json: Path
    calendar_dir: Path
    tasks_dir: Path
    task_order_json: Path
    navigation_json: Path
    drafts_json: Path
    config_toml: Path
    logs_dir: Path

    def year_file(self, year: int) -> Path:
        return self.calendar_dir / f"{year}.json"

    def task_dir(self, theme_id: str, status: str) -> Path:
        return self.tasks_dir / theme_id / status

    def task_file(self, theme_id: str, status: str, task_id: str) -> Path:
        return self.task_dir(theme_id, status) / f"{task_id}.json"


def data_paths(root: Path | None = None) -> DataPaths:
    base = (root or default_data_root()).resolve()
    themes_dir = base / "themes"
    return DataPaths(
        root=base,
        themes_dir=themes_dir,
        themes_json=themes_dir / "themes.json",
        calendar_dir=base / "calendar",
        tasks_dir=base / "tasks",
        task_order_json=base / "task_order.json",
        navigation_json=base / "navigation_context.json",
        drafts_json=base / "task_drafts.json",
        config_toml=base / "planbook.toml",
        logs_dir=base / "logs",
    )


def ensure_data_dirs(paths: DataPaths | None = None) -> DataPaths:
    paths = paths or data_paths()
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.themes_dir.mkdir(parents=True, exist_ok=True)
    paths.calendar_dir.mkdir(parents=True, exist_ok=True)
    paths.tasks_dir.mkdir(parents=True, exist_ok=True)
    paths.logs_dir.mkdir(parents=True, exist_ok=True)
    return paths
