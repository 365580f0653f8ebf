#!/usr/bin/env python3
"""Main entry point for fleetcmd."""

import argparse
import asyncio
import sys
from pathlib import Path

from .config import Config, load_config
from .dispatcher import CompletionResult, Dispatcher, StatusCallback
from .errors import ConnectionFailed
from .log import add_host_log_files, configure_logging, remove_sinks
from .streams import Callback
from .transport import open_sessions


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        env[key] = value
    return env


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a command on multiple SSH hosts, optionally via sudo"
    )
    parser.add_argument("config", type=Path, help="Path to YAML configuration file")
    parser.add_argument("command", help="Shell command to run on every host")
    parser.add_argument("--key", type=Path, help="Override SSH key path from config")
    parser.add_argument(
        "--hosts", help="Comma-separated host names to target (default: all)"
    )
    parser.add_argument("--sudo", action="store_true", help="Run the command via sudo")
    parser.add_argument("--as", dest="as_user", help="User to run as (implies --sudo)")
    parser.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable for the command (repeatable)",
    )
    shell = parser.add_mutually_exclusive_group()
    shell.add_argument("--shell", help="Shell used to run the command")
    shell.add_argument(
        "--no-shell", action="store_true", help="Send the command without a shell wrapper"
    )
    parser.add_argument("--pty", action="store_true", help="Request a pseudo-terminal")
    parser.add_argument("--no-logs", action="store_true", help="Disable logging to files")
    parser.add_argument("--log-level", help="Console log level (default: INFO)")
    parser.add_argument(
        "--dashboard", action="store_true", help="Run with the TUI dashboard"
    )
    return parser


def build_options(args: argparse.Namespace) -> dict:
    """Translate command-line flags into invocation options."""
    options: dict = {}
    env = _parse_env(args.env)
    if env:
        options["env"] = env
    if args.no_shell:
        options["shell"] = False
    elif args.shell:
        options["shell"] = args.shell
    if args.pty:
        options["pty"] = True
    if args.as_user:
        options["as"] = args.as_user
    options["via"] = "sudo" if args.sudo or args.as_user else "run"
    return options


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    # The dashboard owns the terminal; output still reaches the log files
    configure_logging(args.log_level, console=not args.dashboard)

    try:
        config = load_config(args.config)
        options = build_options(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Override SSH key if provided (applies to all hosts)
    if args.key:
        key_path = args.key.expanduser()
        config.defaults.ssh_key = key_path
        for host in config.hosts:
            host.ssh_key = key_path

    if args.hosts:
        wanted = [name.strip() for name in args.hosts.split(",") if name.strip()]
        unknown = sorted(set(wanted) - set(config.host_names()))
        if unknown:
            print(f"Error: unknown hosts: {', '.join(unknown)}", file=sys.stderr)
            return 1
        config.hosts = [host for host in config.hosts if host.name in wanted]

    # Validate all SSH keys exist
    ssh_keys = {host.ssh_key for host in config.hosts}
    for ssh_key in ssh_keys:
        if not ssh_key.exists():
            print(f"Error: SSH key not found: {ssh_key}", file=sys.stderr)
            return 1

    sink_ids: list[int] = []
    if not args.no_logs:
        _, sink_ids = add_host_log_files(
            config.log_dir, config.host_names(), config.source_path
        )

    try:
        if args.dashboard:
            return _run_dashboard(config, args.command, options)
        return _run_headless(config, args.command, options)
    finally:
        remove_sinks(sink_ids)


async def execute(
    config: Config,
    command: str,
    options: dict,
    callback: Callback | None = None,
    on_status: StatusCallback | None = None,
) -> CompletionResult:
    """Connect to every configured host and invoke ``command`` on all of them."""
    async with open_sessions(config.hosts) as sessions:
        dispatcher = Dispatcher(sessions, config.settings, on_status=on_status)
        return await dispatcher.invoke_command(command, options, callback=callback)


def _report(result: CompletionResult) -> int:
    if result.ok:
        return 0
    for host in result.failed_hosts:
        print(f"[{host}] {result.results[host].reason}", file=sys.stderr)
    print(f"\nFailed hosts: {', '.join(result.failed_hosts)}", file=sys.stderr)
    return 1


def _run_headless(config: Config, command: str, options: dict) -> int:
    """Run without TUI dashboard."""
    try:
        result = asyncio.run(execute(config, command, options))
    except ConnectionFailed as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    return _report(result)


def _run_dashboard(config: Config, command: str, options: dict) -> int:
    """Run with the TUI dashboard."""
    from .dashboard import Dashboard

    settings = config.settings
    if options.get("via") == "sudo":
        # The dashboard owns the terminal, so ask for the password up front
        # and give up after the first rejection instead of asking again.
        settings.password.get()
        settings.max_password_attempts = 1

    app = Dashboard(config, command, options)
    app.run()

    if app.error:
        print(f"Error: {app.error}", file=sys.stderr)
        return 1
    if app.result is None:
        return 1
    return _report(app.result)


if __name__ == "__main__":
    sys.exit(main())
