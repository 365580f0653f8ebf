"""Configuration loader for fleetcmd."""

from __future__ import annotations

import getpass
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml


def _ask_password(prompt: str) -> str:
    return getpass.getpass(prompt)


class Credential:
    """A secret that is obtained lazily and can be invalidated.

    ``get()`` asks the provider for a value whenever none is cached, so
    after ``invalidate()`` the next reader (on any channel) gets a fresh one.
    """

    def __init__(
        self,
        value: str | None = None,
        provider: Callable[[str], str] | None = None,
        prompt: str = "Password: ",
    ):
        self._value = value
        self._provider = provider or _ask_password
        self._prompt = prompt
        self._lock = threading.Lock()

    def get(self) -> str:
        with self._lock:
            if self._value is None:
                self._value = self._provider(self._prompt)
            return self._value

    def set(self, value: str | None) -> None:
        with self._lock:
            self._value = value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None

    @property
    def is_set(self) -> bool:
        return self._value is not None

    def __repr__(self) -> str:
        state = "set" if self.is_set else "unset"
        return f"Credential(<{state}>)"


@dataclass
class Settings:
    """Process-wide defaults consulted for every command invocation."""

    default_environment: dict[str, str] = field(default_factory=dict)
    default_run_options: dict[str, Any] = field(default_factory=dict)
    default_shell: str | None = None
    sudo: str = "sudo"
    sudo_prompt: str = "sudo password: "
    password: Credential = field(default_factory=Credential)
    max_password_attempts: int | None = 3


@dataclass
class Defaults:
    """Default values that can be overridden per host."""

    user: str = "root"
    port: int = 22
    ssh_key: Path = field(default_factory=lambda: Path("~/.ssh/id_rsa").expanduser())
    timeout: int = 30


@dataclass
class HostConfig:
    """Configuration for a single host."""

    name: str
    host: str
    port: int = 22
    user: str = "root"
    ssh_key: Path = field(default_factory=lambda: Path("~/.ssh/id_rsa").expanduser())
    timeout: int = 30


@dataclass
class Config:
    """Main configuration for fleetcmd."""

    hosts: list[HostConfig]
    defaults: Defaults = field(default_factory=Defaults)
    settings: Settings = field(default_factory=Settings)
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    source_path: Path | None = None  # Path to the original config file

    def host_names(self) -> list[str]:
        return [host.name for host in self.hosts]


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError("Configuration must be a mapping")

    config = _parse_config(raw)
    config.source_path = config_path
    return config


def _parse_defaults(raw: dict[str, Any]) -> Defaults:
    """Parse the defaults section."""
    defaults_raw = raw.get("defaults") or {}
    ssh_key_str = defaults_raw.get("ssh_key", "~/.ssh/id_rsa")
    return Defaults(
        user=defaults_raw.get("user", "root"),
        port=defaults_raw.get("port", 22),
        ssh_key=Path(ssh_key_str).expanduser(),
        timeout=defaults_raw.get("timeout", 30),
    )


def _parse_mapping(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Setting '{key}' must be a mapping")
    return dict(value)


def _parse_settings(raw: dict[str, Any]) -> Settings:
    """Parse the settings section."""
    settings_raw = raw.get("settings") or {}
    if not isinstance(settings_raw, dict):
        raise ValueError("'settings' must be a mapping")

    environment = {
        str(k): str(v)
        for k, v in _parse_mapping(settings_raw, "default_environment").items()
    }

    attempts = settings_raw.get("max_password_attempts", 3)
    if attempts is not None and (not isinstance(attempts, int) or attempts < 1):
        raise ValueError("'max_password_attempts' must be a positive integer or null")

    password = settings_raw.get("password")
    return Settings(
        default_environment=environment,
        default_run_options=_parse_mapping(settings_raw, "default_run_options"),
        default_shell=settings_raw.get("default_shell"),
        sudo=settings_raw.get("sudo", "sudo"),
        sudo_prompt=settings_raw.get("sudo_prompt", "sudo password: "),
        password=Credential(None if password is None else str(password)),
        max_password_attempts=attempts,
    )


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw YAML data into Config object."""
    defaults = _parse_defaults(raw)
    settings = _parse_settings(raw)

    log_dir = Path(raw.get("log_dir", "logs")).expanduser().resolve()

    hosts_raw = raw.get("hosts", [])
    if not hosts_raw:
        raise ValueError("No hosts defined in configuration")

    hosts = []
    seen: set[str] = set()
    for host_raw in hosts_raw:
        host = _parse_host(host_raw, defaults)
        if host.name in seen:
            raise ValueError(f"Duplicate host name '{host.name}'")
        seen.add(host.name)
        hosts.append(host)

    return Config(
        hosts=hosts,
        defaults=defaults,
        settings=settings,
        log_dir=log_dir,
    )


def _parse_host(host_raw: dict[str, Any], defaults: Defaults) -> HostConfig:
    """Parse a single host configuration."""
    name = host_raw.get("name")
    if not name:
        raise ValueError("Host must have a 'name' field")

    address = host_raw.get("host")
    if not address:
        raise ValueError(f"Host '{name}' must have a 'host' field")

    ssh_key = defaults.ssh_key
    if "ssh_key" in host_raw:
        ssh_key = Path(host_raw["ssh_key"]).expanduser()

    return HostConfig(
        name=name,
        host=address,
        port=host_raw.get("port", defaults.port),
        user=host_raw.get("user", defaults.user),
        ssh_key=ssh_key,
        timeout=host_raw.get("timeout", defaults.timeout),
    )
