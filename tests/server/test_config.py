"""Tests for the config controller."""

import pathlib
from unittest.mock import MagicMock

import pytest

from homedash.common.helpers.json import json_loads
from homedash.common.models.errors import InvalidDataError
from homedash.constants import (
    CONF_API_TIMEOUT,
    CONF_API_URL,
    CONF_BIND_PORT,
    CONF_COMPANION_AUTOSTART,
    CONF_POLL_INTERVAL,
)
from homedash.server.controllers.config import ConfigController, parse_env_value
from homedash.server.server import HomeDash


async def test_get_set(homedash: HomeDash) -> None:
    """Test getting and setting (nested) values."""
    config = homedash.config
    assert config.get(CONF_POLL_INTERVAL) == 3600
    assert config.get("does/not/exist", "default") == "default"
    assert config.get(f"{CONF_POLL_INTERVAL}/deeper", "default") == "default"
    config.set("some/nested/key", 1)
    assert config.get("some/nested/key") == 1
    assert config.get("some/nested") == {"key": 1}
    config.set_default("some/nested/key", 2)
    config.set_default("some/other", 3)
    assert config.get("some/nested/key") == 1
    assert config.get("some/other") == 3
    assert config.get(CONF_BIND_PORT) == 3000


async def test_persistence(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test the settings are written to disk and loaded again."""
    monkeypatch.delenv("SONOS_API_URL", raising=False)
    homedash = MagicMock()
    homedash.storage_path = str(tmp_path)
    homedash.overrides = {}
    config = ConfigController(homedash)
    await config.setup()
    config.set(CONF_API_URL, "http://sonos:5005")
    await config.close()
    assert (tmp_path / "settings.json").is_file()

    config = ConfigController(homedash)
    await config.setup()
    assert config.get(CONF_API_URL) == "http://sonos:5005"


async def test_env_overrides(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test values from the environment override the stored settings."""
    monkeypatch.setenv("SONOS_API_URL", "http://other:5005")
    monkeypatch.setenv("SONOS_POLL_INTERVAL", "10")
    monkeypatch.setenv("JISHI_AUTOSTART", "true")
    homedash = MagicMock()
    homedash.storage_path = str(tmp_path)
    homedash.overrides = {}
    config = ConfigController(homedash)
    await config.setup()
    assert config.get(CONF_API_URL) == "http://other:5005"
    assert config.get(CONF_POLL_INTERVAL) == 10
    assert config.get(CONF_COMPANION_AUTOSTART) is True
    # an explicit set wins
    config.set(CONF_POLL_INTERVAL, 7)
    assert config.get(CONF_POLL_INTERVAL) == 7


def test_parse_env_value() -> None:
    """Test conversion of environment values."""
    assert parse_env_value(CONF_API_TIMEOUT, "2.5") == 2.5
    assert parse_env_value(CONF_BIND_PORT, "8080") == 8080
    assert parse_env_value(CONF_COMPANION_AUTOSTART, "0") is False
    assert parse_env_value(CONF_API_URL, "http://sonos") == "http://sonos"
    with pytest.raises(InvalidDataError):
        parse_env_value(CONF_BIND_PORT, "eighty")


async def test_commandline_overrides(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test overrides passed to the server win from the environment."""
    monkeypatch.setenv("HOMEDASH_PORT", "8080")
    homedash = MagicMock()
    homedash.storage_path = str(tmp_path)
    homedash.overrides = {CONF_BIND_PORT: 9090}
    config = ConfigController(homedash)
    await config.setup()
    assert config.get(CONF_BIND_PORT) == 9090
    await config.close()
    # overrides are never written to disk, the default is
    stored = json_loads((tmp_path / "settings.json").read_bytes())
    assert stored["webserver"]["bind_port"] == 3000


async def test_defaults_stored(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test a new settings file gets all options, existing values are kept."""
    monkeypatch.delenv("SONOS_API_URL", raising=False)
    (tmp_path / "settings.json").write_text('{"topology": {"poll_interval": 10}}')
    homedash = MagicMock()
    homedash.storage_path = str(tmp_path)
    homedash.overrides = {}
    config = ConfigController(homedash)
    await config.setup()
    await config.close()
    stored = json_loads((tmp_path / "settings.json").read_bytes())
    assert stored["topology"]["poll_interval"] == 10
    assert stored["sonos_api"]["url"] == "http://localhost:5005"
    assert stored["companion"]["autostart"] is False
    # the previous file is kept as backup
    assert (tmp_path / "settings.json.backup").is_file()
