"""Per-invocation option resolution."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from .config import Settings


class OptionSet(Mapping[str, Any]):
    """Read-only options for a single command invocation."""

    def __init__(self, options: Mapping[str, Any] | None = None):
        data = dict(options or {})
        if "env" in data:
            data["env"] = MappingProxyType(dict(data["env"]))
        self._data = data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"OptionSet({self._data!r})"

    @property
    def env(self) -> Mapping[str, str]:
        return self._data.get("env", MappingProxyType({}))

    @property
    def shell(self) -> str | bool | None:
        return self._data.get("shell")

    @property
    def pty(self) -> bool:
        return bool(self._data.get("pty", False))


def resolve_options(options: Mapping[str, Any] | None, settings: Settings) -> OptionSet:
    """Merge the default command options from ``settings`` into ``options``.

    * ``default_run_options`` are the base; call options win on conflict.
    * ``env`` is ``default_environment`` updated with the call's ``env``, and
      is left out entirely when the result is empty.
    * ``shell`` is the call's shell if given (``False`` disables the shell
      wrapper), otherwise ``default_shell``; left out when neither is set.
    """
    merged = dict(settings.default_run_options)
    merged.update(options or {})

    env = dict(settings.default_environment)
    if merged.get("env"):
        env.update(merged["env"])
    if env:
        merged["env"] = env
    else:
        merged.pop("env", None)

    shell = merged.get("shell")
    if shell is None:
        shell = settings.default_shell
    if shell is None:
        merged.pop("shell", None)
    else:
        merged["shell"] = shell

    return OptionSet(merged)
