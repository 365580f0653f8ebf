import asyncio
from types import SimpleNamespace

import pytest

from fleetcmd.config import HostConfig
from fleetcmd.errors import ConnectionFailed
from fleetcmd.options import OptionSet
from fleetcmd.transport import Session, open_sessions


class FakeStream:
    def __init__(self, chunks=()):
        self.chunks = list(chunks)

    async def read(self, n: int) -> str:
        await asyncio.sleep(0)
        return self.chunks.pop(0) if self.chunks else ""


class FakeStdin:
    def __init__(self):
        self.writes: list[str] = []

    def write(self, data: str) -> None:
        self.writes.append(data)


class FakeProcess:
    def __init__(self, stdout=(), stderr=(), exit_status=0):
        self.stdout = FakeStream(stdout)
        self.stderr = FakeStream(stderr)
        self.stdin = FakeStdin()
        self.exit_status = exit_status
        self.closed = False

    def close(self) -> None:
        self.closed = True
        self.exit_status = None
        self.stdout.chunks.clear()
        self.stderr.chunks.clear()

    async def wait(self):
        return SimpleNamespace(exit_status=self.exit_status)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeConnection:
    def __init__(self, process: FakeProcess | None = None):
        self.closed = False
        self.process = process or FakeProcess()
        self.calls: list[tuple[str, dict]] = []

    def create_process(self, command: str, **kwargs) -> FakeProcess:
        self.calls.append((command, kwargs))
        return self.process

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


@pytest.fixture
def connections(monkeypatch):
    opened: dict[str, FakeConnection] = {}

    async def fake_connect(host: HostConfig) -> Session:
        if host.host == "unreachable":
            raise OSError("no route to host")
        opened[host.name] = FakeConnection()
        return Session(host.name, opened[host.name])

    monkeypatch.setattr("fleetcmd.transport.connect", fake_connect)
    return opened


@pytest.mark.asyncio
async def test_sessions_are_closed_on_exit(connections) -> None:
    hosts = [HostConfig("a", "a.example"), HostConfig("b", "b.example")]
    async with open_sessions(hosts) as sessions:
        assert sorted(sessions) == ["a", "b"]
        assert sessions["a"].open_channel().host == "a"
        assert not connections["a"].closed
    assert all(conn.closed for conn in connections.values())


@pytest.mark.asyncio
async def test_connection_failure_closes_the_rest(connections) -> None:
    hosts = [HostConfig("a", "a.example"), HostConfig("b", "unreachable")]
    with pytest.raises(ConnectionFailed) as excinfo:
        async with open_sessions(hosts):
            pytest.fail("should not be reached")

    assert excinfo.value.errors == {"b": "no route to host"}
    assert connections["a"].closed


def _channel(process: FakeProcess):
    connection = FakeConnection(process)
    return Session("web1", connection).open_channel(), connection


@pytest.mark.asyncio
async def test_channel_streams_chunks_and_returns_exit_status() -> None:
    process = FakeProcess(stdout=["sudo password: ", "ok\n"], stderr=["warn\n"], exit_status=0)
    channel, connection = _channel(process)
    received = []

    def callback(ch, stream, chunk):
        received.append((ch.host, stream, chunk))
        if chunk == "sudo password: ":
            ch.send_data("pw\n")

    status = await channel.execute("ls", OptionSet(), callback)

    assert status == 0
    assert sorted(received) == [
        ("web1", "err", "warn\n"),
        ("web1", "out", "ok\n"),
        ("web1", "out", "sudo password: "),
    ]
    assert process.stdin.writes == ["pw\n"]
    [(command, kwargs)] = connection.calls
    assert command == "ls"
    assert kwargs == {"term_type": None, "encoding": "utf-8", "errors": "replace"}


@pytest.mark.asyncio
async def test_channel_requests_terminal_for_pty() -> None:
    channel, connection = _channel(FakeProcess())
    await channel.execute("ls", OptionSet({"pty": True}), lambda *args: None)
    assert connection.calls[0][1]["term_type"] == "xterm"


@pytest.mark.asyncio
async def test_channel_closed_before_start() -> None:
    process = FakeProcess(stdout=["never\n"])
    channel, _ = _channel(process)
    received = []

    channel.close()
    channel.send_data("ignored\n")
    status = await channel.execute("ls", OptionSet(), lambda *args: received.append(args))

    assert process.closed
    assert status is None
    assert received == []
    assert process.stdin.writes == []


@pytest.mark.asyncio
async def test_channel_closed_while_running() -> None:
    process = FakeProcess(stdout=["first\n", "second\n"])
    channel, _ = _channel(process)
    received = []

    def callback(ch, stream, chunk):
        received.append(chunk)
        ch.close()
        ch.send_data("too late\n")

    status = await channel.execute("ls", OptionSet(), callback)

    assert status is None
    assert received == ["first\n"]
    assert process.stdin.writes == []
