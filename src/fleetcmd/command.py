"""Build the command line that is sent to each remote host."""

from __future__ import annotations

import shlex

from .options import OptionSet

DEFAULT_SHELL = "sh"


def environment_prefix(env) -> str:
    if not env:
        return ""
    assignments = " ".join(f"{key}={shlex.quote(str(value))}" for key, value in env.items())
    return f"env {assignments}"


def command_line(command: str, options: OptionSet) -> str:
    """Return ``command`` wrapped with its environment and shell.

    ``env FOO=bar sh -c 'cmd'`` by default; with ``shell=False`` the command
    is sent as is after the environment prefix.
    """
    command = command.strip()
    shell = options.shell
    if shell is not False:
        command = f"{shell or DEFAULT_SHELL} -c {shlex.quote(command)}"

    prefix = environment_prefix(options.env)
    return f"{prefix} {command}" if prefix else command
