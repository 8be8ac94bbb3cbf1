"""Tests for the companion controller (lifecycle of the node-sonos-http-api process)."""

import asyncio
import pathlib
from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from homedash.common.models.enums import CompanionState
from homedash.common.models.errors import CompanionStartError
from homedash.constants import CONF_COMPANION_PATH, CONF_HEALTH_ATTEMPTS
from homedash.server.server import HomeDash

DEAD_URL = "http://127.0.0.1:5005"


class FakeProcess:
    """Fake AsyncProcess, exits only when closed or told so."""

    exit_code_on_start: int | None = None

    def __init__(self, args: list[str], **kwargs: Any) -> None:
        """Initialize the fake."""
        self.args = args
        self.kwargs = kwargs
        self.pid = 4321
        self.returncode: int | None = None
        self.last_output: list[str] = []
        self.close_called = False
        self._exited = asyncio.Event()

    async def start(self) -> None:
        if self.exit_code_on_start is not None:
            self.exit(self.exit_code_on_start)

    def exit(self, returncode: int) -> None:
        self.returncode = returncode
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    async def close(self) -> None:
        self.close_called = True
        if self.returncode is None:
            self.exit(0)


@pytest.fixture
def processes() -> Generator[list[FakeProcess], None, None]:
    """Replace the companion process with a fake and collect all created processes."""
    created: list[FakeProcess] = []

    def _create(*args: Any, **kwargs: Any) -> FakeProcess:
        process = FakeProcess(*args, **kwargs)
        created.append(process)
        return process

    with (
        patch("homedash.server.controllers.companion.AsyncProcess", side_effect=_create),
        patch("homedash.server.controllers.companion.shutil.which", return_value="/usr/bin/node"),
    ):
        yield created


@pytest.fixture
def companion_dir(homedash: HomeDash, tmp_path: pathlib.Path) -> pathlib.Path:
    """Create a (fake) node-sonos-http-api checkout and point the config to it."""
    path = tmp_path / "node-sonos-http-api"
    path.mkdir()
    (path / "server.js").write_text("// fake", encoding="utf-8")
    homedash.config.set(CONF_COMPANION_PATH, str(path))
    # the companion is not reachable yet
    homedash.sonos_api.base_url = DEAD_URL
    return path


async def test_external_instance(homedash: HomeDash, processes: list[FakeProcess]) -> None:
    """Test a responding api (not started by us) is used as-is and never stopped."""
    await homedash.companion.ensure_running()
    assert processes == []
    status = await homedash.companion.status()
    assert status.state == CompanionState.RUNNING
    assert status.responding is True
    assert status.external is True
    assert status.running is False
    await homedash.companion.stop()
    assert homedash.companion.state == CompanionState.RUNNING


async def test_start(
    homedash: HomeDash, processes: list[FakeProcess], companion_dir: pathlib.Path
) -> None:
    """Test the companion is launched and awaited until it responds."""
    homedash.sonos_api.ping = AsyncMock(side_effect=[False, False, True])
    await homedash.companion.ensure_running()
    assert len(processes) == 1
    process = processes[0]
    assert process.args == ["/usr/bin/node", "server.js"]
    assert process.kwargs["cwd"] == str(companion_dir)
    assert process.kwargs["env"] == {"PORT": "5005"}
    assert homedash.companion.state == CompanionState.RUNNING
    assert homedash.companion.owns_process

    homedash.sonos_api.ping = AsyncMock(return_value=True)
    status = await homedash.companion.status()
    assert status.running is True
    assert status.external is False
    assert status.pid == 4321
    assert status.port == 5005

    await homedash.companion.stop()
    assert process.close_called
    assert homedash.companion.state == CompanionState.STOPPED
    assert not homedash.companion.owns_process


async def test_start_timeout(
    homedash: HomeDash, processes: list[FakeProcess], companion_dir: pathlib.Path
) -> None:
    """Test the start fails (and the process is cleaned up) if it never responds."""
    homedash.config.set(CONF_HEALTH_ATTEMPTS, 2)
    with pytest.raises(CompanionStartError):
        await homedash.companion.ensure_running()
    assert processes[0].close_called
    assert homedash.companion.state == CompanionState.CRASHED
    assert not homedash.companion.owns_process


async def test_start_process_exits(
    homedash: HomeDash, processes: list[FakeProcess], companion_dir: pathlib.Path
) -> None:
    """Test the start fails fast when the process exits while starting."""
    homedash.config.set(CONF_HEALTH_ATTEMPTS, 1000)
    FakeProcess.exit_code_on_start = 1
    try:
        with pytest.raises(CompanionStartError) as exc_info:
            await homedash.companion.ensure_running()
    finally:
        FakeProcess.exit_code_on_start = None
    assert "exited with code 1" in str(exc_info.value)
    assert homedash.companion.state == CompanionState.CRASHED


async def test_crash_detected(
    homedash: HomeDash, processes: list[FakeProcess], companion_dir: pathlib.Path
) -> None:
    """Test an unexpected exit of a running companion is detected."""
    homedash.sonos_api.ping = AsyncMock(side_effect=[False, True])
    await homedash.companion.ensure_running()
    assert homedash.companion.state == CompanionState.RUNNING

    processes[0].last_output.append("Error: listen EADDRINUSE")
    processes[0].exit(137)
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert homedash.companion.state == CompanionState.CRASHED
    homedash.sonos_api.ping = AsyncMock(return_value=False)
    status = await homedash.companion.status()
    assert status.running is False
    assert "137" in status.last_error
    assert status.last_error.endswith("EADDRINUSE")


async def test_restart(
    homedash: HomeDash, processes: list[FakeProcess], companion_dir: pathlib.Path
) -> None:
    """Test a restart stops the running process and launches a new one."""
    homedash.sonos_api.ping = AsyncMock(side_effect=[False, True])
    await homedash.companion.ensure_running()
    homedash.sonos_api.ping = AsyncMock(side_effect=[False, True])
    await homedash.companion.restart()
    assert len(processes) == 2
    assert processes[0].close_called
    assert not processes[1].close_called
    assert homedash.companion.state == CompanionState.RUNNING


async def test_node_missing(homedash: HomeDash, companion_dir: pathlib.Path) -> None:
    """Test the start fails when node is not installed."""
    with (
        patch("homedash.server.controllers.companion.shutil.which", return_value=None),
        pytest.raises(CompanionStartError),
    ):
        await homedash.companion.ensure_running()
    assert homedash.companion.state == CompanionState.NOT_STARTED


async def test_script_missing(
    homedash: HomeDash, processes: list[FakeProcess], tmp_path: pathlib.Path
) -> None:
    """Test the start fails when the companion is not installed."""
    homedash.sonos_api.base_url = DEAD_URL
    homedash.config.set(CONF_COMPANION_PATH, str(tmp_path / "missing"))
    with pytest.raises(CompanionStartError) as exc_info:
        await homedash.companion.ensure_running()
    assert "server.js not found" in str(exc_info.value)
    assert processes == []


async def test_stop_not_started(homedash: HomeDash) -> None:
    """Test stop is a no-op when the companion was not started by us."""
    await homedash.companion.stop()
    assert homedash.companion.state == CompanionState.NOT_STARTED
