"""Tests for the commandline entrypoint."""

import argparse

from homedash.__main__ import get_config_overrides
from homedash.constants import CONF_API_URL, CONF_BIND_PORT, CONF_COMPANION_AUTOSTART


def test_config_overrides() -> None:
    """Test only the options given on the commandline end up as overrides."""
    args = argparse.Namespace(
        sonos_api_url="http://sonos:5005",
        port=None,
        companion_path=None,
        autostart_companion=False,
    )
    assert get_config_overrides(args) == {
        CONF_API_URL: "http://sonos:5005",
        CONF_COMPANION_AUTOSTART: False,
    }
    args.port = 8080
    assert get_config_overrides(args)[CONF_BIND_PORT] == 8080
