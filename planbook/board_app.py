from __future__ import annotations

from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.widgets import Footer, Static

from .models import STATUS_TODO, ColumnDefinition, TaskWithStatus
from .planning import PlanningManager


def render_column(column: ColumnDefinition, tasks: list[TaskWithStatus]) -> str:
    """Plain-text body for one board column, tasks already in display order."""

    lines = [column.title, ""]
    if column.type == STATUS_TODO and column.sections:
        for section in column.sections:
            lines.append(f"-- {section.title} --")
            members = [item for item in tasks if item.status == STATUS_TODO and item.zone == section.name]
            lines.extend(_task_line(item) for item in members)
            if not members:
                lines.append("  (empty)")
            lines.append("")
        return "\n".join(lines).rstrip()
    members = [item for item in tasks if item.status == column.name]
    lines.extend(_task_line(item) for item in members)
    if not members:
        lines.append("  (empty)")
    return "\n".join(lines)


def _task_line(item: TaskWithStatus) -> str:
    marker = "  ↳ " if item.task.parent_task_id else "  "
    subtasks = f" [{len(item.subtask_ids)} sub]" if item.subtask_ids else ""
    return f"{marker}{item.id} {item.task.title}{subtasks}"


def render_activity(events: list[dict]) -> str:
    if not events:
        return "no activity yet"
    return "\n".join(f"[{event.get('severity', 'info')}] {event.get('message', '')}" for event in events)


class PlanbookBoardApp(App[None]):
    CSS = """
    Screen {
        layout: vertical;
    }

    #status-bar {
        height: 1;
        padding: 0 1;
        background: $boost;
        color: $text;
    }

    #columns {
        height: 1fr;
    }

    .column {
        width: 1fr;
        border: solid $primary;
        padding: 0 1;
    }

    #activity {
        height: 8;
        border: solid $secondary;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh_board", "Refresh"),
    ]

    def __init__(self, manager: PlanningManager) -> None:
        super().__init__()
        self.manager = manager
        self.board = manager.get_board_configuration()
        self._unsubscribe = manager.bus.subscribe(self._on_planning_event)

    def compose(self) -> ComposeResult:
        yield Static("", id="status-bar")
        with Horizontal(id="columns"):
            for column in self.board.columns:
                yield Static("", id=f"column-{column.name}", classes="column", markup=False)
        yield Static("", id="activity", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self.action_refresh_board()

    def on_unmount(self) -> None:
        self._unsubscribe()

    def action_refresh_board(self) -> None:
        tasks = [item for item in self.manager.get_tasks() if item.status != "archived"]
        for column in self.board.columns:
            self.query_one(f"#column-{column.name}", Static).update(render_column(column, tasks))
        self.query_one("#status-bar", Static).update(
            f"{self.board.name} | {self.manager.store.paths.root} | {len(tasks)} open tasks"
        )
        self.query_one("#activity", Static).update(render_activity(self.manager.bus.read_recent(6)))

    def _on_planning_event(self, event: dict) -> None:
        if self.is_running:
            self.action_refresh_board()


def run_board_app(manager: PlanningManager) -> int:
    app = PlanbookBoardApp(manager)
    app.run(mouse=False)
    return 0
