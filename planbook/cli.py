from __future__ import annotations

import argparse
from datetime import date
from pathlib import Path
import sys

from . import __version__
from .config import explain_planbook_toml, load_planbook_toml
from .errors import PlanbookError, RuleViolationError
from .events import append_runtime_log
from .models import ALL_TASK_STATUSES, PRIORITIES, Objective, effective_okr_status
from .paths import DataPaths, data_paths
from .planning import PlanningManager
from .versioning import git_identity_status, is_git_repo


def _paths(args: argparse.Namespace) -> DataPaths:
    root = Path(args.data_dir).expanduser() if getattr(args, "data_dir", None) else None
    return data_paths(root)


def _log(paths: DataPaths, *, level: str, message: str) -> None:
    append_runtime_log(paths.logs_dir / "planbook.log", level=level, message=message)


def _open_manager(args: argparse.Namespace, *, sweep: bool = True) -> PlanningManager:
    paths = _paths(args)
    config, warning = load_planbook_toml(paths.config_toml)
    if warning:
        print(f"warning: {warning}", file=sys.stderr)
        _log(paths, level="warn", message=warning)
    manager = PlanningManager.open(paths.root, config=config)
    if sweep and config.promotions.run_on_start:
        for promoted in manager.process_priority_promotions():
            print(f"promoted {promoted.id}: {promoted.title} ({promoted.old_priority} -> {promoted.new_priority})")
            _log(paths, level="info", message=f"promoted {promoted.id} to {promoted.new_priority}")
    return manager


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="planbook",
        description="Planbook: themes, OKRs, and a git-versioned task board",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--data-dir", help="Plan data directory (default: $PLANBOOK_DATA_DIR or ~/.planbook)")

    sub = parser.add_subparsers(dest="cmd", required=False)

    sub.add_parser("themes", help="List themes with their objectives and key results.")

    theme_add = sub.add_parser("theme-add", help="Create a theme.")
    theme_add.add_argument("name")
    theme_add.add_argument("--color", default="#6b7280", help="Display color")

    objective_add = sub.add_parser("objective-add", help="Create an objective under a theme or objective.")
    objective_add.add_argument("parent_id")
    objective_add.add_argument("title")

    kr_add = sub.add_parser("kr-add", help="Create a key result under an objective.")
    kr_add.add_argument("objective_id")
    kr_add.add_argument("description")
    kr_add.add_argument("--start", type=int, default=0)
    kr_add.add_argument("--target", type=int, default=0, help="0 = untracked, 1 = checkbox, >1 = numeric")

    okr_status = sub.add_parser("okr-status", help="Set an objective or key result status.")
    okr_status.add_argument("okr_id")
    okr_status.add_argument("status", choices=["active", "completed", "archived"])

    tasks = sub.add_parser("tasks", help="List board tasks in display order.")
    tasks.add_argument("--all", action="store_true", help="Include archived tasks")

    task_add = sub.add_parser("task-add", help="Create a todo task.")
    task_add.add_argument("title")
    task_add.add_argument("--theme", required=True, help="Theme ID")
    task_add.add_argument("--priority", required=True, choices=list(PRIORITIES))
    task_add.add_argument("--parent", help="Parent task ID")
    task_add.add_argument("--description", default="")
    task_add.add_argument("--tags", default="", help="Comma separated tags")
    task_add.add_argument("--due", default="", help="Due date YYYY-MM-DD")
    task_add.add_argument("--promote-on", default="", help="Promotion date YYYY-MM-DD")

    task_move = sub.add_parser("task-move", help="Move a task to another column.")
    task_move.add_argument("task_id")
    task_move.add_argument("status", choices=list(ALL_TASK_STATUSES))

    task_archive = sub.add_parser("task-archive", help="Archive a done task and its subtasks.")
    task_archive.add_argument("task_id")

    task_restore = sub.add_parser("task-restore", help="Restore an archived task to done.")
    task_restore.add_argument("task_id")

    sub.add_parser("archive-done", help="Archive every root-level done task.")

    promote = sub.add_parser("promote", help="Run the priority promotion sweep.")
    promote.add_argument("--today", help="(dev) Override today's date YYYY-MM-DD")

    history = sub.add_parser("history", help="Show plan history.")
    history.add_argument("-n", "--limit", type=int, default=20, help="0 = all")

    sub.add_parser("doctor", help="Check data directory, git, and config.")

    sub.add_parser("board", help="Open the read-only terminal board.")

    return parser


def _print_objectives(objectives: list[Objective], depth: int) -> None:
    pad = "  " * depth
    for obj in objectives:
        print(f"{pad}{obj.id} [{effective_okr_status(obj.status)}] {obj.title}")
        for kr in obj.key_results:
            if kr.kind == "binary":
                progress = "[x]" if kr.current_value >= 1 else "[ ]"
            elif kr.kind == "numeric":
                progress = f"{kr.current_value}/{kr.target_value}"
            else:
                progress = "-"
            print(f"{pad}  {kr.id} [{effective_okr_status(kr.status)}] {kr.description} {progress}")
        _print_objectives(obj.objectives, depth + 1)


def cmd_themes(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    themes = manager.get_themes()
    if not themes:
        print("no themes yet")
        return 0
    for theme in themes:
        print(f"{theme.id} {theme.name} ({theme.color})")
        _print_objectives(theme.objectives, 1)
    return 0


def cmd_theme_add(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    theme = manager.create_theme(args.name, args.color)
    print(f"created theme {theme.id}: {theme.name}")
    return 0


def cmd_objective_add(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    objective = manager.create_objective(args.parent_id, args.title)
    print(f"created objective {objective.id}: {objective.title}")
    return 0


def cmd_kr_add(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    key_result = manager.create_key_result(args.objective_id, args.description, args.start, args.target)
    print(f"created key result {key_result.id}: {key_result.description} ({key_result.kind})")
    return 0


def cmd_okr_status(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    if "-KR" in args.okr_id:
        manager.set_key_result_status(args.okr_id, args.status)
    else:
        manager.set_objective_status(args.okr_id, args.status)
    print(f"{args.okr_id} -> {args.status}")
    return 0


def cmd_tasks(args: argparse.Namespace) -> int:
    manager = _open_manager(args)
    shown = 0
    zone = None
    for item in manager.get_tasks():
        if item.status == "archived" and not args.all:
            continue
        if item.zone != zone:
            zone = item.zone
            print(f"[{zone}]")
        parent = f" (sub of {item.task.parent_task_id})" if item.task.parent_task_id else ""
        print(f"  {item.id} {item.task.title}{parent}")
        shown += 1
    if not shown:
        print("no tasks")
    return 0


def cmd_task_add(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    task = manager.create_task(
        args.title,
        args.theme,
        args.priority,
        description=args.description,
        tags=args.tags,
        due_date=args.due,
        promotion_date=args.promote_on,
        parent_task_id=args.parent,
    )
    print(f"created task {task.id}: {task.title}")
    return 0


def cmd_task_move(args: argparse.Namespace) -> int:
    paths = _paths(args)
    manager = _open_manager(args, sweep=False)
    result = manager.move_task(args.task_id, args.status)
    if not result.success:
        print(f"move denied for {args.task_id}:", file=sys.stderr)
        for violation in result.violations:
            print(f"- [{violation.rule_id}] {violation.message}", file=sys.stderr)
        return 1
    print(f"moved {args.task_id} -> {args.status}")
    for problem in result.cascade_errors:
        print(f"warning: cascade failed: {problem}", file=sys.stderr)
        _log(paths, level="warn", message=f"cascade failed: {problem}")
    return 0


def cmd_task_archive(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    archived = manager.archive_task(args.task_id)
    print(f"archived: {', '.join(archived)}")
    return 0


def cmd_task_restore(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    restored = manager.restore_task(args.task_id)
    print(f"restored: {', '.join(restored)}")
    return 0


def cmd_archive_done(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    archived = manager.archive_all_done_tasks()
    print(f"archived: {', '.join(archived)}" if archived else "nothing to archive")
    return 0


def cmd_promote(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    today = None
    if args.today:
        try:
            today = date.fromisoformat(args.today)
        except ValueError:
            print(f"invalid --today {args.today!r}; expected YYYY-MM-DD", file=sys.stderr)
            return 2
    promoted = manager.process_priority_promotions(today)
    if not promoted:
        print("nothing to promote")
    for item in promoted:
        print(f"promoted {item.id}: {item.title} ({item.old_priority} -> {item.new_priority})")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    manager = _open_manager(args, sweep=False)
    for commit in manager.history(max(0, int(args.limit))):
        print(f"{commit.commit[:10]} {commit.timestamp} {commit.message}")
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    paths = _paths(args)
    problems: list[str] = []
    config, warning = load_planbook_toml(paths.config_toml)
    if warning:
        problems.append(warning)

    lines = [
        "planbook doctor",
        f"- data: {paths.root}",
        f"- python executable: {sys.executable}",
        f"- config: {paths.config_toml} ({'present' if paths.config_toml.exists() else 'defaults'})",
    ]
    if paths.root.exists() and is_git_repo(paths.root):
        ok, detail = git_identity_status(paths.root)
        lines.append(f"- git identity: {detail}")
        if not ok:
            problems.append(detail)
        try:
            manager = PlanningManager.open(paths.root, config=config)
            status = manager.store.repo.status()
            lines.append(f"- git status: {'clean' if status.clean else 'dirty'}")
            for name in status.modified + status.untracked:
                problems.append(f"uncommitted change: {name}")
        except PlanbookError as exc:
            problems.append(str(exc))
    else:
        lines.append("- git: not initialized yet (created on first write)")

    print("\n".join(lines))
    print()
    print(explain_planbook_toml(config, path=paths.config_toml))
    if problems:
        print("\nProblems:", file=sys.stderr)
        for problem in problems:
            print(f"- {problem}", file=sys.stderr)
        return 1
    return 0


def _run_board_entry(args: argparse.Namespace) -> int:
    from .board_app import run_board_app

    return run_board_app(_open_manager(args))


def cmd_board(args: argparse.Namespace) -> int:
    try:
        return _run_board_entry(args)
    except ModuleNotFoundError as exc:
        if exc.name == "textual":
            print("The board view requires `textual`. Install it (pip install textual), then retry.", file=sys.stderr)
            return 1
        raise


_COMMANDS = {
    "themes": cmd_themes,
    "theme-add": cmd_theme_add,
    "objective-add": cmd_objective_add,
    "kr-add": cmd_kr_add,
    "okr-status": cmd_okr_status,
    "tasks": cmd_tasks,
    "task-add": cmd_task_add,
    "task-move": cmd_task_move,
    "task-archive": cmd_task_archive,
    "task-restore": cmd_task_restore,
    "archive-done": cmd_archive_done,
    "promote": cmd_promote,
    "history": cmd_history,
    "doctor": cmd_doctor,
    "board": cmd_board,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    argv = list(argv) if argv is not None else list(sys.argv[1:])
    args = parser.parse_args(argv)
    if not args.cmd:
        args.cmd = "tasks"
        args.all = False

    handler = _COMMANDS.get(args.cmd)
    if handler is None:
        parser.error(f"Unknown command: {args.cmd}")
        return 2
    try:
        return handler(args)
    except RuleViolationError as exc:
        print(f"refused: {exc}", file=sys.stderr)
        _log(_paths(args), level="warn", message=f"{args.cmd}: {exc}")
        return 1
    except PlanbookError as exc:
        print(f"error: {exc}", file=sys.stderr)
        _log(_paths(args), level="error", message=f"{args.cmd}: {exc}")
        return 1
