"""Default output handling for remote command streams."""

from __future__ import annotations

from typing import Any, Callable, Literal

from .log import log

Stream = Literal["out", "err"]
STDOUT: Stream = "out"
STDERR: Stream = "err"

# (channel, stream, chunk) -> None
Callback = Callable[[Any, Stream, str], None]


def stream_tag(stream: str, host: str) -> str:
    return f"{stream} :: {host}"


def default_io_handler(channel, stream: Stream, chunk: str) -> None:
    """Log a chunk of output; stderr at WARNING, stdout at INFO."""
    level = "WARNING" if stream == STDERR else "INFO"
    log(level, chunk, stream_tag(stream, channel.host), host=channel.host)
