"""fleetcmd: Run commands, optionally through sudo, on many SSH hosts at once."""

from .config import Config, Credential, Defaults, HostConfig, Settings, load_config
from .dispatcher import CompletionResult, Dispatcher, HostResult, HostStatus
from .errors import CommandError, ConnectionFailed
from .escalation import EscalationState, SudoCallback, sudo_callback, sudo_command
from .options import OptionSet, resolve_options
from .streams import default_io_handler
from .transport import Channel, Session, open_sessions

__all__ = [
    "Config",
    "Credential",
    "Defaults",
    "HostConfig",
    "Settings",
    "load_config",
    "CompletionResult",
    "Dispatcher",
    "HostResult",
    "HostStatus",
    "CommandError",
    "ConnectionFailed",
    "EscalationState",
    "SudoCallback",
    "sudo_callback",
    "sudo_command",
    "OptionSet",
    "resolve_options",
    "default_io_handler",
    "Channel",
    "Session",
    "open_sessions",
]
