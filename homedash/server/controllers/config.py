"""Logic to handle storage of persistent (configuration) settings."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

import aiofiles
from aiofiles.os import wrap

from homedash.common.helpers.json import JSON_DECODE_EXCEPTIONS, json_dumps, json_loads
from homedash.common.models.errors import InvalidDataError
from homedash.constants import (
    CONF_API_TIMEOUT,
    CONF_BIND_PORT,
    CONF_COMPANION_AUTOSTART,
    CONF_POLL_INTERVAL,
    DEFAULT_SETTINGS,
    ENV_OVERRIDES,
    ROOT_LOGGER_NAME,
)

if TYPE_CHECKING:
    import asyncio

    from homedash.server import HomeDash

LOGGER = logging.getLogger(f"{ROOT_LOGGER_NAME}.config")
DEFAULT_SAVE_DELAY = 5

# config keys that hold a number, values from the environment are converted
NUMERIC_KEYS = (CONF_API_TIMEOUT, CONF_POLL_INTERVAL, CONF_BIND_PORT)
BOOLEAN_KEYS = (CONF_COMPANION_AUTOSTART,)

isfile = wrap(os.path.isfile)
remove = wrap(os.remove)
rename = wrap(os.rename)


def parse_env_value(key: str, value: str) -> Any:
    """Convert a (string) value from the environment to the type of the config key."""
    if key in BOOLEAN_KEYS:
        return value.strip().lower() in ("1", "true", "yes", "on")
    if key in NUMERIC_KEYS:
        try:
            number = float(value)
        except ValueError as err:
            msg = f"Invalid value {value} for {key}: expected a number"
            raise InvalidDataError(msg) from err
        return int(number) if number.is_integer() else number
    return value


class ConfigController:
    """Controller that handles storage of persistent configuration settings."""

    def __init__(self, homedash: HomeDash) -> None:
        """Initialize storage controller."""
        self.homedash = homedash
        self.initialized = False
        self._data: dict[str, Any] = {}
        # values from the environment win from the stored values but are never persisted
        self._overrides: dict[str, Any] = {}
        self.filename = os.path.join(self.homedash.storage_path, "settings.json")
        self._timer_handle: asyncio.TimerHandle | None = None

    async def setup(self) -> None:
        """Async initialize of controller."""
        await self._load()
        self.initialized = True
        # a new settings file gets every option, existing ones get new options added
        for key, default_value in DEFAULT_SETTINGS.items():
            self.set_default(key, default_value)
        self._load_env_overrides()
        self._overrides.update(self.homedash.overrides)
        LOGGER.debug("Started.")

    async def close(self) -> None:
        """Handle logic on server stop."""
        if not self._timer_handle:
            # no point in forcing a save when there are no changes pending
            return
        self._timer_handle.cancel()
        self._timer_handle = None
        await self._async_save()
        LOGGER.debug("Stopped.")

    def get(self, key: str, default: Any = None) -> Any:
        """Get value(s) for a specific key/path in persistent storage."""
        assert self.initialized, "Not yet (async) initialized"
        if key in self._overrides:
            return self._overrides[key]
        # we support a multi level hierarchy by providing the key as path,
        # with a slash (/) as splitter. Sort that out here.
        parent = self._data
        subkeys = key.split("/")
        for index, subkey in enumerate(subkeys):
            if index == (len(subkeys) - 1):
                value = parent.get(subkey, default)
                if value is None:
                    # replace None with default
                    return default
                return value
            if not isinstance(parent.get(subkey), dict):
                # requesting subkey from a non existing parent
                return default
            parent = parent[subkey]
        return default

    def set(self, key: str, value: Any) -> None:
        """Set value(s) for a specific key/path in persistent storage."""
        assert self.initialized, "Not yet (async) initialized"
        parent = self._data
        subkeys = key.split("/")
        for index, subkey in enumerate(subkeys):
            if index == (len(subkeys) - 1):
                parent[subkey] = value
            else:
                parent.setdefault(subkey, {})
                parent = parent[subkey]
        # an explicit set wins from the environment for the rest of this run
        self._overrides.pop(key, None)
        self.save()

    def set_default(self, key: str, default_value: Any) -> None:
        """Set default value(s) for a specific key/path in persistent storage."""
        assert self.initialized, "Not yet (async) initialized"
        cur_value = self.get(key, "__MISSING__")
        if cur_value == "__MISSING__":
            self.set(key, default_value)

    def save(self) -> None:
        """Schedule save of data to disk, changes within the save delay are batched."""
        if self._timer_handle is not None:
            self._timer_handle.cancel()
        self._timer_handle = self.homedash.loop.call_later(
            DEFAULT_SAVE_DELAY, self.homedash.create_task, self._async_save
        )

    def _load_env_overrides(self) -> None:
        """Load the config values that are overridden from the environment."""
        for env_key, conf_key in ENV_OVERRIDES.items():
            if not (value := os.environ.get(env_key)):
                continue
            self._overrides[conf_key] = parse_env_value(conf_key, value)
            LOGGER.debug("Using %s from environment for %s", env_key, conf_key)

    async def _load(self) -> None:
        """Load data from persistent storage."""
        assert not self._data, "Already loaded"

        for filename in (self.filename, f"{self.filename}.backup"):
            try:
                async with aiofiles.open(filename, "r", encoding="utf-8") as _file:
                    self._data = json_loads(await _file.read())
                    LOGGER.debug("Loaded persistent settings from %s", filename)
                    return
            except FileNotFoundError:
                pass
            except JSON_DECODE_EXCEPTIONS:  # pylint: disable=catching-non-exception
                LOGGER.exception("Error while reading persistent storage file %s", filename)
        LOGGER.debug("Started with empty storage: No persistent storage file found.")

    async def _async_save(self) -> None:
        """Save persistent data to disk."""
        self._timer_handle = None
        filename_backup = f"{self.filename}.backup"
        # make backup before we write a new file
        if await isfile(self.filename):
            if await isfile(filename_backup):
                await remove(filename_backup)
            await rename(self.filename, filename_backup)

        async with aiofiles.open(self.filename, "w", encoding="utf-8") as _file:
            await _file.write(json_dumps(self._data, indent=True))
        LOGGER.debug("Saved data to persistent storage")
