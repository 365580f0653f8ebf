"""asyncssh sessions and channels."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import AsyncExitStack, asynccontextmanager

import asyncssh
from loguru import logger

from .config import HostConfig
from .errors import ConnectionFailed
from .options import OptionSet
from .streams import STDERR, STDOUT, Callback

BUFFER_SIZE = 4096


class Session:
    """An established SSH connection to one configured host."""

    def __init__(self, host: str, connection: asyncssh.SSHClientConnection):
        self.host = host
        self.connection = connection

    def open_channel(self) -> Channel:
        return Channel(self)

    def __repr__(self) -> str:
        return f"Session({self.host!r})"


class Channel:
    """One command execution on a session."""

    def __init__(self, session: Session):
        self.session = session
        self._process: asyncssh.SSHClientProcess | None = None
        self._closed = False

    @property
    def host(self) -> str:
        return self.session.host

    def send_data(self, data: str) -> None:
        if self._process is not None and not self._closed:
            self._process.stdin.write(data)

    def close(self) -> None:
        self._closed = True
        if self._process is not None:
            self._process.close()

    async def execute(self, command: str, options: OptionSet, callback: Callback) -> int | None:
        """Run ``command`` and feed output to ``callback``. Returns the exit status."""
        term_type = "xterm" if options.pty else None
        # Undecodable bytes must not tear down the whole connection
        async with self.session.connection.create_process(
            command, term_type=term_type, encoding="utf-8", errors="replace"
        ) as proc:
            self._process = proc
            if self._closed:
                proc.close()

            # Read in chunks rather than lines so that prompts arrive at once
            async def read_stream(stream, kind):
                while True:
                    chunk = await stream.read(BUFFER_SIZE)
                    if not chunk:
                        break
                    callback(self, kind, chunk)

            await asyncio.gather(
                read_stream(proc.stdout, STDOUT),
                read_stream(proc.stderr, STDERR),
            )

            completed = await proc.wait()
            return completed.exit_status


async def connect(host: HostConfig) -> Session:
    logger.bind(tag=host.name, host=host.name).debug(
        f"connecting to {host.user}@{host.host}:{host.port}"
    )
    connection = await asyncssh.connect(
        host.host,
        port=host.port,
        username=host.user,
        client_keys=[str(host.ssh_key)],
        known_hosts=None,  # Skip host key verification for simplicity
        connect_timeout=host.timeout,
    )
    return Session(host.name, connection)


@asynccontextmanager
async def open_sessions(hosts: Iterable[HostConfig]) -> AsyncIterator[dict[str, Session]]:
    """Connect to every host concurrently and close them all on exit."""
    hosts = list(hosts)
    results = await asyncio.gather(
        *(connect(host) for host in hosts), return_exceptions=True
    )

    async with AsyncExitStack() as stack:
        sessions: dict[str, Session] = {}
        errors: dict[str, str] = {}
        for result in results:
            if isinstance(result, Session):
                sessions[result.host] = result
                stack.push_async_callback(_close, result)

        for host, result in zip(hosts, results):
            if isinstance(result, (asyncssh.Error, OSError)):
                errors[host.name] = str(result) or type(result).__name__
            elif isinstance(result, BaseException):
                raise result
        if errors:
            raise ConnectionFailed(errors)
        yield sessions


async def _close(session: Session) -> None:
    session.connection.close()
    await session.connection.wait_closed()
