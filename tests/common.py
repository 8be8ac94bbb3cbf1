"""Common test helpers for Home Dashboard tests."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from typing import Any

from aiohttp import web

from homedash.common.models.enums import EventType
from homedash.common.models.event import HomeDashEvent
from homedash.server.server import HomeDash


def make_player(
    player_id: str,
    room: str | None = None,
    volume: int = 20,
    state: str = "PLAYING",
    online: bool | None = None,
    uri: str = "x-sonos-spotify:track",
) -> dict[str, Any]:
    """Return a player descriptor as reported by the Sonos API."""
    player: dict[str, Any] = {
        "uuid": player_id,
        "roomName": room or f"Room {player_id}",
        "state": {
            "volume": volume,
            "mute": False,
            "playbackState": state,
            "currentTrack": {
                "artist": "Artist",
                "title": "Title",
                "album": "Album",
                "albumArtUri": "/getaa?s=1",
                "uri": uri,
            },
        },
    }
    if online is not None:
        player["online"] = online
    return player


def make_zone(
    zone_id: str, coordinator: dict[str, Any], *members: dict[str, Any]
) -> dict[str, Any]:
    """Return a zone descriptor, the coordinator is listed as the first member."""
    return {"uuid": zone_id, "coordinator": coordinator, "members": [coordinator, *members]}


class FakeSonosApi:
    """Fake node-sonos-http-api server, records all commands it receives."""

    def __init__(self) -> None:
        """Initialize the fake."""
        self.url = ""
        self.zones: Any = []
        self.zones_status = 200
        self.states: dict[str, dict[str, Any]] = {}
        # command path (e.g. "Kitchen/join/Living Room") -> status code to respond with
        self.failing: dict[str, int] = {}
        self.commands: list[str] = []

    def create_app(self) -> web.Application:
        """Create the aiohttp application of the fake."""
        app = web.Application()
        app.router.add_get("/zones", self._handle_zones)
        app.router.add_get("/{room}/{command:.*}", self._handle_command)
        return app

    async def _handle_zones(self, request: web.Request) -> web.Response:
        if self.zones_status != 200:
            return web.Response(status=self.zones_status, text="error")
        if isinstance(self.zones, str):
            return web.Response(text=self.zones, content_type="application/json")
        return web.json_response(self.zones)

    async def _handle_command(self, request: web.Request) -> web.Response:
        room = request.match_info["room"]
        command = request.match_info["command"]
        path = f"{room}/{command}"
        self.commands.append(path)
        if status := self.failing.get(path):
            return web.Response(status=status, text="command failed")
        if command == "state":
            return web.json_response(self.states.get(room, {}))
        return web.json_response({"status": "success"})


@contextlib.asynccontextmanager
async def wait_for_sync_completion(homedash: HomeDash) -> AsyncGenerator[None, None]:
    """Wait for a (successful or failed) topology sync to finish."""
    flag = asyncio.Event()

    def _event(event: HomeDashEvent) -> None:
        flag.set()

    release_cb = homedash.subscribe(_event, (EventType.TOPOLOGY_UPDATED, EventType.SYNC_FAILED))

    try:
        yield
    finally:
        await flag.wait()
        release_cb()
