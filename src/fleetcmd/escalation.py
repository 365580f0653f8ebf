"""Running commands through sudo and answering its password prompts."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field

from .config import Settings
from .log import log
from .streams import Callback, Stream, stream_tag

TRY_AGAIN = re.compile(r"try again")


def sudo_command(command: str, settings: Settings, as_user: str | None = None) -> str:
    """Prefix ``command`` with the sudo executable, prompt and target user."""
    user = f"-u {as_user}" if as_user else None
    parts = [settings.sudo, f"-p '{settings.sudo_prompt}'", user, command]
    return " ".join(part for part in parts if part)


@dataclass
class EscalationState:
    """Which host owns the password retry for one sudo invocation."""

    prompt_host: str | None = None
    failures: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def claim(self, host: str) -> bool:
        """Record a failed attempt for ``host`` if it is (or becomes) the prompter."""
        with self._lock:
            if self.prompt_host is None or self.prompt_host == host:
                self.prompt_host = host
                self.failures += 1
                return True
            return False

    def exhausted(self, limit: int | None) -> bool:
        with self._lock:
            return limit is not None and self.failures >= limit


class SudoCallback:
    """Output callback that answers sudo prompts and defers everything else.

    To keep every host from reporting (and resetting the password for) the
    same wrong password, only the first host to fail is allowed to do so;
    failures from other hosts are dropped.
    """

    def __init__(self, fallback: Callback, settings: Settings):
        self.fallback = fallback
        self.settings = settings
        self.state = EscalationState()
        self._prompt = re.compile(r"^" + re.escape(settings.sudo_prompt), re.MULTILINE)
        self._pending: set = set()
        self._abandoned: set = set()

    def __call__(self, channel, stream: Stream, chunk: str) -> None:
        failed = TRY_AGAIN.search(chunk) is not None
        prompted = self._prompt.search(chunk) is not None

        if failed:
            self._on_failure(channel, stream, chunk)
        if prompted:
            self._on_prompt(channel)
        elif not failed:
            self._pending.discard(channel)
            self.fallback(channel, stream, chunk)

    def _on_failure(self, channel, stream: Stream, chunk: str) -> None:
        self._pending.discard(channel)
        if self.state.claim(channel.host):
            log("WARNING", chunk, stream_tag(stream, channel.host), host=channel.host)
            self.settings.password.invalidate()

    def _on_prompt(self, channel) -> None:
        if channel in self._pending or channel in self._abandoned:
            return
        if self.state.exhausted(self.settings.max_password_attempts):
            self._abandon(
                channel, f"giving up after {self.state.failures} failed password attempt(s)"
            )
            return
        try:
            password = self.settings.password.get()
        except Exception as e:
            self._abandon(channel, f"could not obtain password: {e!r}")
            return
        self._pending.add(channel)
        channel.send_data(f"{password}\n")

    def _abandon(self, channel, reason: str) -> None:
        """Stop answering on ``channel`` and close it so the remote sudo exits."""
        self._abandoned.add(channel)
        log("ERROR", reason, stream_tag("err", channel.host), host=channel.host)
        channel.close()


def sudo_callback(fallback: Callback, settings: Settings) -> SudoCallback:
    """Return a fresh callback; its state lasts for one sudo invocation."""
    return SudoCallback(fallback, settings)
