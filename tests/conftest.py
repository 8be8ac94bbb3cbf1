"""Fixtures for testing the Home Dashboard."""

import logging
import pathlib
from collections.abc import AsyncGenerator

import pytest

from homedash.common.helpers.json import json_dumps
from homedash.constants import ENV_OVERRIDES
from homedash.server.server import HomeDash
from tests.common import FakeSonosApi, wait_for_sync_completion


@pytest.fixture(name="caplog")
def caplog_fixture(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Set log level to debug for tests using the caplog fixture."""
    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
async def fake_sonos(aiohttp_server) -> FakeSonosApi:
    """Start a fake Sonos API server."""
    fake = FakeSonosApi()
    server = await aiohttp_server(fake.create_app())
    fake.url = str(server.make_url("")).rstrip("/")
    return fake


@pytest.fixture
async def homedash(
    tmp_path: pathlib.Path, fake_sonos: FakeSonosApi, monkeypatch: pytest.MonkeyPatch
) -> AsyncGenerator[HomeDash, None]:
    """Start a Home Dashboard in test mode, connected to the fake Sonos API."""
    for env_key in ENV_OVERRIDES:
        monkeypatch.delenv(env_key, raising=False)
    storage_path = tmp_path / "root"
    storage_path.mkdir(parents=True)
    settings = {
        "sonos_api": {"url": fake_sonos.url, "timeout": 5},
        # no periodic syncs while testing, tests sync explicitly
        "topology": {"poll_interval": 3600},
        "commands": {"settle_delay": 0, "join_delay": 0, "tv_restore_delay": 0},
        "companion": {
            "autostart": False,
            "path": str(tmp_path / "companion"),
            "health_interval": 0,
            "health_attempts": 3,
            "restart_delay": 0,
        },
    }
    (storage_path / "settings.json").write_text(json_dumps(settings), encoding="utf-8")

    homedash = HomeDash(str(storage_path), enable_webserver=False)
    # wait for the initial sync, so it does not interfere with the tests
    async with wait_for_sync_completion(homedash):
        await homedash.start()
    try:
        yield homedash
    finally:
        await homedash.stop()
