from pathlib import Path

import pytest

from fleetcmd.dispatcher import CompletionResult, HostResult
from fleetcmd.runner import _report, build_options, build_parser, main


def _options(*argv: str) -> dict:
    return build_options(build_parser().parse_args(["hosts.yaml", "uptime", *argv]))


def test_plain_run_options() -> None:
    assert _options() == {"via": "run"}


def test_sudo_options() -> None:
    options = _options("--as", "deploy", "--env", "A=1", "--env", "B=x=y", "--no-shell", "--pty")
    assert options == {
        "via": "sudo",
        "as": "deploy",
        "env": {"A": "1", "B": "x=y"},
        "shell": False,
        "pty": True,
    }


def test_shell_option() -> None:
    assert _options("--sudo", "--shell", "/bin/bash") == {"via": "sudo", "shell": "/bin/bash"}


def test_bad_env_pair() -> None:
    with pytest.raises(ValueError):
        _options("--env", "NOVALUE")


def test_missing_config_exits_with_error(tmp_path: Path, capsys) -> None:
    assert main([str(tmp_path / "missing.yaml"), "uptime", "--no-logs"]) == 1
    assert "Error:" in capsys.readouterr().err


def test_unknown_host_exits_with_error(tmp_path: Path, capsys) -> None:
    config = tmp_path / "hosts.yaml"
    config.write_text("hosts:\n  - {name: a, host: x}\n")
    assert main([str(config), "uptime", "--hosts", "a,zz", "--no-logs"]) == 1
    assert "unknown hosts: zz" in capsys.readouterr().err


def test_report_lists_failed_hosts(capsys) -> None:
    result = CompletionResult(
        "ls", {"a": HostResult("a", 0), "b": HostResult("b", 3)}
    )
    assert _report(result) == 1
    err = capsys.readouterr().err
    assert "[b] exited with status 3" in err
    assert "Failed hosts: b" in err

    assert _report(CompletionResult("ls", {"a": HostResult("a", 0)})) == 0
