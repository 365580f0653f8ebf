"""Command dispatch across multiple hosts."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import asyncssh
from loguru import logger

from .command import command_line
from .config import Settings
from .errors import CommandError
from .escalation import sudo_callback, sudo_command
from .options import OptionSet, resolve_options
from .streams import Callback, default_io_handler


class HostStatus(Enum):
    """Status of a host's execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class HostResult:
    """Outcome of the command on one host."""

    host: str
    exit_status: int | None
    error: str = ""

    @property
    def status(self) -> HostStatus:
        if self.exit_status == 0 and not self.error:
            return HostStatus.SUCCESS
        return HostStatus.FAILED

    @property
    def succeeded(self) -> bool:
        return self.status == HostStatus.SUCCESS

    @property
    def reason(self) -> str:
        if self.error:
            return self.error
        if self.exit_status is None:
            return "aborted without exit status"
        if self.exit_status != 0:
            return f"exited with status {self.exit_status}"
        return ""


@dataclass
class CompletionResult:
    """Per-host outcomes of one command invocation."""

    command: str
    results: dict[str, HostResult] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(result.succeeded for result in self.results.values())

    @property
    def failed_hosts(self) -> list[str]:
        return [host for host, result in self.results.items() if not result.succeeded]

    def check(self) -> CompletionResult:
        """Raise CommandError if the command failed on any host."""
        if not self.ok:
            raise CommandError(self)
        return self


StatusCallback = Callable[[str, HostStatus], None]  # (host, status) -> None


class Dispatcher:
    """Runs commands on a set of established sessions."""

    def __init__(
        self,
        sessions: Mapping[str, Any],
        settings: Settings | None = None,
        on_status: StatusCallback | None = None,
    ):
        self.sessions = dict(sessions)
        self.settings = settings or Settings()
        self.on_status = on_status

    def _emit_status(self, host: str, status: HostStatus) -> None:
        if self.on_status:
            self.on_status(host, status)

    def _targets(self, targets: Iterable[Any] | None) -> list[Any]:
        if targets is None:
            sessions = list(self.sessions.values())
        else:
            # Accept host names as well as session objects
            sessions = [self.sessions[t] if isinstance(t, str) else t for t in targets]

        hosts = [session.host for session in sessions]
        duplicates = sorted({host for host in hosts if hosts.count(host) > 1})
        if duplicates:
            raise ValueError(f"Duplicate target hosts: {', '.join(duplicates)}")
        return sessions

    async def invoke_command(
        self,
        command: str,
        options: Mapping[str, Any] | None = None,
        targets: Iterable[Any] | None = None,
        callback: Callback | None = None,
    ) -> CompletionResult:
        """Invoke ``command`` with the method named by the ``via`` option.

        ``via`` defaults to ``"run"`` and may also be ``"sudo"``.
        """
        options = dict(options or {})
        via = options.pop("via", None) or "run"
        if via not in ("run", "sudo"):
            raise ValueError(f"Unknown invocation method: {via!r}")
        method = getattr(self, via)
        return await method(command, options, targets, callback)

    async def run(
        self,
        command: str,
        options: Mapping[str, Any] | None = None,
        targets: Iterable[Any] | None = None,
        callback: Callback | None = None,
    ) -> CompletionResult:
        """Run ``command`` on every target session in parallel.

        ``callback`` is invoked for all output generated by the command with
        the channel (usable to send data back to the remote process), the
        stream (``"out"`` or ``"err"``) and the data received. It defaults
        to logging the output.
        """
        callback = callback or default_io_handler
        logger.debug(f"executing {command.strip()!r}")

        resolved = resolve_options(options, self.settings)
        line = command_line(command, resolved)
        sessions = self._targets(targets)

        channels = [session.open_channel() for session in sessions]
        tasks = [
            asyncio.ensure_future(self._run_channel(channel, line, resolved, callback))
            for channel in channels
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # Cancelled, or a callback raised: no channel may outlive the call
            for channel, task in zip(channels, tasks):
                channel.close()
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return CompletionResult(
            command=command, results={result.host: result for result in results}
        )

    async def sudo(
        self,
        command: str,
        options: Mapping[str, Any] | None = None,
        targets: Iterable[Any] | None = None,
        callback: Callback | None = None,
    ) -> CompletionResult:
        """Like run, but executes the command via sudo.

        The ``as`` option selects the user to run as. Password prompts are
        answered from ``settings.password``.
        """
        options = dict(options or {})
        as_user = options.pop("as", None)
        command = sudo_command(command, self.settings, as_user)
        handler = sudo_callback(callback or default_io_handler, self.settings)
        return await self.run(command, options, targets, handler)

    async def _run_channel(
        self, channel, line: str, options: OptionSet, callback: Callback
    ) -> HostResult:
        """Run the command on one channel. Returns its HostResult."""
        host = channel.host
        self._emit_status(host, HostStatus.RUNNING)
        try:
            exit_status = await channel.execute(line, options, callback)
            result = HostResult(host, exit_status)
        except asyncssh.Error as e:
            result = HostResult(host, None, f"SSH error: {e}")
        except OSError as e:
            result = HostResult(host, None, f"Connection error: {e}")

        if not result.succeeded:
            logger.bind(tag=host, host=host).debug(f"command failed: {result.reason}")
        self._emit_status(host, result.status)
        return result
