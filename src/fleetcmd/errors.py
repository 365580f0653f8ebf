"""Exceptions raised by fleetcmd."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .dispatcher import CompletionResult


class CommandError(Exception):
    """A command failed on one or more hosts."""

    def __init__(self, result: CompletionResult):
        self.result = result
        hosts = ", ".join(result.failed_hosts)
        super().__init__(f"failed: {result.command!r} on {hosts}")


class ConnectionFailed(Exception):
    """One or more hosts could not be connected to."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        details = "; ".join(f"{host}: {error}" for host, error in errors.items())
        super().__init__(f"connection failed for {details}")
