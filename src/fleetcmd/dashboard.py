"""TUI Dashboard for fleetcmd."""

from dataclasses import dataclass

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Grid
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, RichLog, Static
from textual.worker import Worker, WorkerCancelled, WorkerState

from .config import Config, HostConfig
from .dispatcher import CompletionResult, HostStatus
from .errors import ConnectionFailed
from .streams import STDERR, default_io_handler

STATUS_STYLES = {
    HostStatus.PENDING: "dim",
    HostStatus.RUNNING: "yellow",
    HostStatus.SUCCESS: "green",
    HostStatus.FAILED: "red",
}


class HostLog(RichLog):
    """Output of one host; its border shows the host and its status."""

    DEFAULT_CSS = """
    HostLog {
        border: round $primary;
        min-height: 8;
        padding: 0 1;
    }
    """

    status: reactive[HostStatus] = reactive(HostStatus.PENDING)

    def __init__(self, host: HostConfig, **kwargs) -> None:
        super().__init__(wrap=True, markup=False, auto_scroll=True, **kwargs)
        self.host_config = host
        self.border_title = f"{host.name}  {host.user}@{host.host}:{host.port}"

    def watch_status(self, status: HostStatus) -> None:
        style = STATUS_STYLES[status]
        self.border_subtitle = f"[{style}]{status.value}[/]"

    def add_chunk(self, stream: str, chunk: str) -> None:
        for line in chunk.splitlines():
            self.write(Text(line, style="red") if stream == STDERR else line)


class Progress(Static):
    """One-line summary of finished hosts."""

    DEFAULT_CSS = """
    Progress {
        dock: bottom;
        height: 1;
        padding: 0 1;
        background: $surface;
    }
    """

    finished: reactive[int] = reactive(0)
    done: reactive[bool] = reactive(False)

    def __init__(self, total: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.total = total

    def render(self) -> str:
        state = "done" if self.done else "running"
        return f"{self.finished}/{self.total} hosts finished ({state}), q to quit"


@dataclass
class ChunkReceived(Message):
    host: str
    stream: str
    chunk: str


@dataclass
class StatusChanged(Message):
    host: str
    status: HostStatus


class Dashboard(App):
    """Runs one command on the configured hosts and shows each host's output."""

    CSS = """
    #hosts {
        grid-size: 2;
        grid-gutter: 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(self, config: Config, command: str, options: dict, **kwargs) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.command = command
        self.options = options
        self.logs: dict[str, HostLog] = {}
        self.result: CompletionResult | None = None
        self.error: str | None = None
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Grid(id="hosts"):
            for host in self.config.hosts:
                self.logs[host.name] = HostLog(host, id=f"log-{host.name}")
                yield self.logs[host.name]
        yield Progress(len(self.config.hosts), id="progress")
        yield Footer()

    def on_mount(self) -> None:
        # Runs on the app's own loop so that cancelling it closes the channels
        self._worker = self.run_worker(self._execute(), exclusive=True)

    async def _execute(self) -> None:
        from .runner import execute

        try:
            self.result = await execute(
                self.config,
                self.command,
                self.options,
                callback=self._on_chunk,
                on_status=self._on_status,
            )
        except ConnectionFailed as e:
            self.error = str(e)

    def _on_chunk(self, channel, stream: str, chunk: str) -> None:
        # Still logged so the per-host log files get the output
        default_io_handler(channel, stream, chunk)
        self.post_message(ChunkReceived(channel.host, stream, chunk))

    def _on_status(self, host: str, status: HostStatus) -> None:
        self.post_message(StatusChanged(host, status))

    def on_chunk_received(self, message: ChunkReceived) -> None:
        if message.host in self.logs:
            self.logs[message.host].add_chunk(message.stream, message.chunk)

    def on_status_changed(self, message: StatusChanged) -> None:
        if message.host in self.logs:
            self.logs[message.host].status = message.status
        if message.status in (HostStatus.SUCCESS, HostStatus.FAILED):
            self.query_one(Progress).finished += 1

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.worker is self._worker and event.state == WorkerState.SUCCESS:
            self.query_one(Progress).done = True

    async def action_quit(self) -> None:
        if self._worker and self._worker.is_running:
            self._worker.cancel()
            try:
                await self._worker.wait()
            except WorkerCancelled:
                pass
        self.exit()
