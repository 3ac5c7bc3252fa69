"""TUI Dashboard for fleetrun."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, replace

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker

from .bootstrap import BootstrapContext, Bootstrapper
from .config import Config
from .connection import Transport
from .models import NodeStatus, NodeTarget
from .response_set import ResponseSet


STATUS_ICONS = {
    NodeStatus.PENDING: ("○", "dim"),
    NodeStatus.CONNECTING: ("◐", "yellow"),
    NodeStatus.RUNNING: ("●", "yellow"),
    NodeStatus.SUCCESS: ("✓", "green"),
    NodeStatus.FAILED: ("✗", "red"),
}


def widget_id(name: str) -> str:
    """Make a node name usable as a widget id."""
    return re.sub(r"[^A-Za-z0-9_-]", "-", name)


def unique_targets(targets: Iterable[NodeTarget]) -> list[NodeTarget]:
    """Drop repeated hosts and give each remaining target a distinct name."""
    seen: set[NodeTarget] = set()
    names: set[str] = set()
    result = []
    for target in targets:
        if target in seen:
            continue
        seen.add(target)
        if target.name in names:
            target = replace(target, name=f"{target.name} ({target.address})")
        names.add(target.name)
        result.append(target)
    return result


class NodePanel(Static):
    """A panel displaying output for a single node."""

    status: reactive[NodeStatus] = reactive(NodeStatus.PENDING)

    def __init__(self, target: NodeTarget, index: int, **kwargs) -> None:
        self.panel_key = f"{index}-{widget_id(target.name)}"
        super().__init__(id=f"panel-{self.panel_key}", **kwargs)
        self.target = target

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), id=f"header-{self.panel_key}")
        yield RichLog(
            id=f"log-{self.panel_key}",
            highlight=True,
            markup=True,
            wrap=True,
            auto_scroll=True,
        )

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        target = self.target
        return (
            f"[{color}]{icon}[/] [{color}][bold]{target.name}[/bold][/] "
            f"[{color}]{target.user}@{target.address}:{target.port}[/]"
        )

    def watch_status(self, status: NodeStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        header = self.query_one(f"#header-{self.panel_key}", Label)
        header.update(self._get_header())

    def append_output(self, line: str) -> None:
        """Append a line of output to this panel."""
        log = self.query_one(f"#log-{self.panel_key}", RichLog)
        if line.startswith("$ "):
            log.write(f"[bold cyan]{line}[/bold cyan]")
        elif line.startswith("STDERR:"):
            log.write(f"[red]{line}[/red]")
        elif line.startswith("ERROR:"):
            log.write(f"[bold red]{line}[/bold red]")
        else:
            log.write(line)


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return (
            f"Progress: {self.completed}/{self.total} nodes complete, "
            f"{self.failed} failed | {status} | Press 'q' to quit"
        )


@dataclass
class NodeOutput(Message):
    """Message for node output."""
    node_name: str
    line: str


@dataclass
class NodeStatusChange(Message):
    """Message for node status change."""
    node_name: str
    status: NodeStatus


class Dashboard(App):
    """Live view of a run, one panel per node.

    Runs ``command`` on every node, or the bootstrap steps when a
    ``bootstrap`` context is given.
    """

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    NodePanel {
        border: solid $primary;
        height: 100%;
        min-height: 10;
    }

    NodePanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    NodePanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self,
        config: Config,
        command: str | None = None,
        bootstrap: BootstrapContext | None = None,
        transport: Transport | None = None,
        enable_logging: bool = True,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.command = command
        self.bootstrap = bootstrap
        self.transport = transport
        self.enable_logging = enable_logging
        self.targets = unique_targets(config.targets())
        self.panels: dict[str, NodePanel] = {}
        self.executor: Bootstrapper | None = None
        self.responses: ResponseSet | None = None
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        for index, target in enumerate(self.targets):
            panel = NodePanel(target, index)
            self.panels[target.name] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start execution when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.panels)

        self.executor = Bootstrapper(
            self.config.ssh,
            max_concurrency=self.config.max_concurrency,
            transport=self.transport,
            on_output=self._on_output,
            on_status=self._on_status,
            log_dir=self.config.log_dir if self.enable_logging else None,
            source_path=self.config.source_path,
        )

        # Start execution using Textual's worker system
        self._worker = self.run_worker(self._run_execution(), exclusive=True, thread=True)

    async def _run_execution(self) -> None:
        """Run the executor and keep the aggregate for the caller."""
        if self.bootstrap is not None:
            self.responses = await self.executor.bootstrap(self.targets, self.bootstrap)
        else:
            self.responses = await self.executor.run(self.targets, self.command or "")

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == event.worker.state.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def _on_output(self, node_name: str, line: str) -> None:
        """Handle output from a node - posts message to main thread."""
        self.post_message(NodeOutput(node_name, line))

    def _on_status(self, node_name: str, status: NodeStatus) -> None:
        """Handle status change for a node - posts message to main thread."""
        self.post_message(NodeStatusChange(node_name, status))

    def on_node_output(self, message: NodeOutput) -> None:
        """Handle NodeOutput message in main thread."""
        if message.node_name in self.panels:
            self.panels[message.node_name].append_output(message.line)

    def on_node_status_change(self, message: NodeStatusChange) -> None:
        """Handle NodeStatusChange message in main thread."""
        if message.node_name in self.panels:
            self.panels[message.node_name].status = message.status

        if message.status in (NodeStatus.SUCCESS, NodeStatus.FAILED):
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.completed += 1
            if message.status == NodeStatus.FAILED:
                status_bar.failed += 1

    async def action_quit(self) -> None:
        """Quit the application."""
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
