from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import tomllib


def _as_int(value, *, default: int) -> int:
    try:
        return int(value)
    except Exception:  # noqa: BLE001
        return int(default)


def _as_bool(value, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
    return bool(default)


def _as_str(value, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return " ".join(value.split())
    return default


@dataclass(frozen=True)
class GitConfig:
    author_name: str = "Planbook"
    author_email: str = "planbook@localhost"


@dataclass(frozen=True)
class BoardConfig:
    wip_limit: int = 20
    max_subtask_depth: int = 2
    max_age_days: int = 0  # 0 disables the max-age rule


@dataclass(frozen=True)
class PromotionsConfig:
    run_on_start: bool = True


@dataclass(frozen=True)
class PlanbookConfig:
    git: GitConfig = field(default_factory=GitConfig)
    board: BoardConfig = field(default_factory=BoardConfig)
    promotions: PromotionsConfig = field(default_factory=PromotionsConfig)


def load_planbook_toml(path: Path) -> tuple[PlanbookConfig, str]:
    """Load data-root config from planbook.toml.

    Returns (config, warning). Warning is empty on success; a broken file
    yields defaults plus a warning rather than an exception.
    """

    if not path.exists():
        return PlanbookConfig(), ""

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        return PlanbookConfig(), f"planbook.toml parse failed: {exc}"

    if not isinstance(data, dict):
        return PlanbookConfig(), "planbook.toml parse failed: top-level is not a table"

    git = data.get("git") if isinstance(data.get("git"), dict) else {}
    board = data.get("board") if isinstance(data.get("board"), dict) else {}
    promotions = data.get("promotions") if isinstance(data.get("promotions"), dict) else {}

    cfg = PlanbookConfig(
        git=GitConfig(
            author_name=_as_str(git.get("author_name"), default=GitConfig.author_name),
            author_email=_as_str(git.get("author_email"), default=GitConfig.author_email),
        ),
        board=BoardConfig(
            wip_limit=max(1, _as_int(board.get("wip_limit"), default=BoardConfig.wip_limit)),
            max_subtask_depth=max(1, _as_int(board.get("max_subtask_depth"), default=BoardConfig.max_subtask_depth)),
            max_age_days=max(0, _as_int(board.get("max_age_days"), default=BoardConfig.max_age_days)),
        ),
        promotions=PromotionsConfig(
            run_on_start=_as_bool(promotions.get("run_on_start"), default=PromotionsConfig.run_on_start),
        ),
    )
    return cfg, ""


def explain_planbook_toml(config: PlanbookConfig, *, path: Path | None = None) -> str:
    location = str(path) if path is not None else "planbook.toml"
    max_age = str(config.board.max_age_days) if config.board.max_age_days else "disabled"
    lines = [
        f"planbook.toml guide ({location})",
        "",
        "[git]",
        f"- author_name: commit author for plan history (current: {config.git.author_name})",
        f"- author_email: commit author email (current: {config.git.author_email})",
        "",
        "[board]",
        f"- wip_limit: max tasks in the doing column (current: {config.board.wip_limit})",
        f"- max_subtask_depth: deepest allowed subtask nesting (current: {config.board.max_subtask_depth})",
        f"- max_age_days: flag tasks older than this when started, 0 = off (current: {max_age})",
        "",
        "[promotions]",
        f"- run_on_start: run the priority promotion sweep when the CLI starts (current: {'true' if config.promotions.run_on_start else 'false'})",
    ]
    return "\n".join(lines)
