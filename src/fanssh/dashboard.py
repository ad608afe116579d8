"""TUI Dashboard for fanssh."""

from dataclasses import dataclass

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker, WorkerState

from .executor import Executor, NodeStatus


STATUS_ICONS = {
    NodeStatus.PENDING: ("", "dim"),
    NodeStatus.RUNNING: ("", "yellow"),
    NodeStatus.SUCCESS: ("", "green"),
    NodeStatus.FAILED: ("", "red"),
}


class HostPanel(Static):
    """A panel displaying the result for a single host."""

    status: reactive[NodeStatus] = reactive(NodeStatus.PENDING)

    def __init__(self, index: int, address: str, user: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.index = index
        self.address = address
        self.user = user

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), id=f"header-{self.index}")
        yield RichLog(
            id=f"log-{self.index}",
            highlight=True,
            markup=False,
            wrap=True,
            auto_scroll=True,
        )

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        return f"[{color}]{icon}[/] [{color}][bold]{self.user}@{self.address}[/bold][/]"

    def watch_status(self, status: NodeStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        header = self.query_one(f"#header-{self.index}", Label)
        header.update(self._get_header())

    def append_output(self, text: str) -> None:
        """Append a result record to this panel."""
        log = self.query_one(f"#log-{self.index}", RichLog)
        log.write(text.rstrip("\n"))


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return (
            f"Progress: {self.completed}/{self.total} hosts complete, "
            f"{self.failed} failed | {status} | Press 'q' to quit"
        )


@dataclass
class HostOutput(Message):
    """Message for a host's result record."""
    index: int
    address: str
    text: str


@dataclass
class HostStatusChange(Message):
    """Message for host status change."""
    index: int
    address: str
    status: NodeStatus


class Dashboard(App):
    """Live view of a fan-out run."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    HostPanel {
        border: solid $primary;
        height: 100%;
        min-height: 8;
    }

    HostPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    HostPanel RichLog {
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

    def __init__(self, executor: Executor, **kwargs) -> None:
        super().__init__(**kwargs)
        self.executor = executor
        self.executor.on_output = self._on_output
        self.executor.on_status = self._on_status
        # keyed by position; the same address may be listed more than once
        self.panels: dict[int, HostPanel] = {}
        self.error: BaseException | None = None
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        for index, target in enumerate(self.executor.targets):
            panel = HostPanel(index, target.address, target.user, id=f"panel-{index}")
            self.panels[index] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start execution when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.executor.targets)

        self._worker = self.run_worker(
            self._run_execution(), exclusive=True, thread=True, exit_on_error=False
        )

    async def _run_execution(self) -> None:
        await self.executor.run_all()

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker != self._worker:
            return
        if event.state == WorkerState.ERROR:
            self.error = event.worker.error
            self.exit()
        elif event.state == WorkerState.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def _on_output(self, index: int, address: str, text: str) -> None:
        """Handle a record from a host - posts message to main thread."""
        self.post_message(HostOutput(index, address, text))

    def _on_status(self, index: int, address: str, status: NodeStatus) -> None:
        """Handle status change for a host - posts message to main thread."""
        self.post_message(HostStatusChange(index, address, status))

    def on_host_output(self, message: HostOutput) -> None:
        if message.index in self.panels:
            self.panels[message.index].append_output(message.text)

    def on_host_status_change(self, message: HostStatusChange) -> None:
        if message.index in self.panels:
            self.panels[message.index].status = message.status

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
