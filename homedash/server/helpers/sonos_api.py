"""
Client for the HTTP API of the audio provider.

The provider is a node-sonos-http-api compatible server which exposes the
current zone topology on `/zones` and accepts control commands as plain GET
requests in the form `/{room}/{action}/{args...}`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from aiohttp import ClientConnectorError, ClientError, ClientTimeout

from homedash.common.helpers.json import json_loads_as
from homedash.common.models.errors import ProviderConnectionError, ProviderUnavailableError
from homedash.constants import ROOT_LOGGER_NAME, VERBOSE_LOG_LEVEL

if TYPE_CHECKING:
    from aiohttp import ClientSession

LOGGER = logging.getLogger(f"{ROOT_LOGGER_NAME}.sonos_api")

HEALTH_PROBE_TIMEOUT = 5
ZONES_PATH = "/zones"


class SonosApiClient:
    """Client for the zones/command API of the audio provider."""

    def __init__(
        self,
        http_session: ClientSession,
        base_url: str,
        timeout: float = 30,
    ) -> None:
        """Initialize the client."""
        self.http_session = http_session
        self.base_url = base_url
        self.timeout = timeout

    @property
    def base_url(self) -> str:
        """Return the base url of the provider api."""
        return self._base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        """Set the base url of the provider api."""
        self._base_url = value.rstrip("/")

    async def get_zones(self) -> list[dict[str, Any]]:
        """Fetch the (raw) zone topology snapshot."""
        status, body = await self._get(ZONES_PATH)
        if status != 200:
            msg = f"Sonos API returned status {status} for zones"
            raise ProviderUnavailableError(msg)
        return json_loads_as(body, list, "zones")

    async def get_state(self, room: str) -> dict[str, Any]:
        """Fetch the state block of a single room."""
        status, body = await self._get(self._command_path(room, "state"))
        if status != 200:
            msg = f"Sonos API returned status {status} for device state"
            raise ProviderUnavailableError(msg)
        return json_loads_as(body, dict, "device state")

    async def send_command(self, room: str, action: str, *args: str | int) -> tuple[int, str]:
        """Send a command for a room, returns the status code and body of the response."""
        return await self._get(self._command_path(room, action, *args))

    async def ping(self) -> bool:
        """Return True if the provider api responds to the health probe."""
        try:
            status, _ = await self._get(ZONES_PATH, HEALTH_PROBE_TIMEOUT)
        except ProviderUnavailableError:
            return False
        return status == 200

    @staticmethod
    def _command_path(room: str, action: str, *args: str | int) -> str:
        """Build the (quoted) path for a command."""
        parts = [room, action, *(str(arg) for arg in args)]
        return "/" + "/".join(quote(part, safe="") for part in parts)

    async def _get(self, path: str, timeout: float | None = None) -> tuple[int, str]:
        """Execute GET request on the provider api and return status and body."""
        url = f"{self.base_url}{path}"
        LOGGER.log(VERBOSE_LOG_LEVEL, "GET %s", url)
        try:
            async with self.http_session.get(
                url, timeout=ClientTimeout(total=timeout or self.timeout)
            ) as response:
                return (response.status, await response.text())
        except ClientConnectorError as err:
            # connection refused or host could not be resolved
            raise ProviderConnectionError(f"Unable to connect to {url}: {err}") from err
        except (ClientError, asyncio.TimeoutError) as err:
            msg = f"Request to {url} failed: {err or type(err).__name__}"
            raise ProviderUnavailableError(msg) from err
