import asyncio

import pytest

from fleetcmd.config import Config, HostConfig
from fleetcmd.dashboard import Dashboard, Progress
from fleetcmd.dispatcher import CompletionResult, HostResult, HostStatus
from fakes import FakeSession


def _config() -> Config:
    return Config(hosts=[HostConfig("a", "a.example"), HostConfig("b", "b.example")])


@pytest.mark.asyncio
async def test_dashboard_shows_host_progress(monkeypatch) -> None:
    async def fake_execute(config, command, options, callback=None, on_status=None):
        on_status("a", HostStatus.RUNNING)
        callback(FakeSession("a").open_channel(), "out", "hello\n")
        callback(FakeSession("b").open_channel(), "err", "broken\n")
        on_status("a", HostStatus.SUCCESS)
        on_status("b", HostStatus.FAILED)
        return CompletionResult(command, {"a": HostResult("a", 0), "b": HostResult("b", 1)})

    monkeypatch.setattr("fleetcmd.runner.execute", fake_execute)

    app = Dashboard(_config(), "uptime", {"via": "run"})
    async with app.run_test() as pilot:
        await app.workers.wait_for_complete()
        await pilot.pause()

        assert app.result.failed_hosts == ["b"]
        assert app.logs["a"].status == HostStatus.SUCCESS
        assert app.logs["b"].status == HostStatus.FAILED
        progress = app.query_one(Progress)
        assert progress.finished == 2
        assert progress.done


@pytest.mark.asyncio
async def test_quit_cancels_running_command(monkeypatch) -> None:
    cancelled = []

    async def fake_execute(config, command, options, callback=None, on_status=None):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(command)
            raise

    monkeypatch.setattr("fleetcmd.runner.execute", fake_execute)

    app = Dashboard(_config(), "sleep 100", {"via": "run"})
    async with app.run_test() as pilot:
        await pilot.pause()
        await pilot.press("q")

    assert cancelled == ["sleep 100"]
    assert app.result is None
