"""Controller that manages the builtin webserver that hosts the (REST) api."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from aiohttp import web

from homedash.common.helpers.json import json_dumps, json_loads_as
from homedash.common.models.enums import EventType
from homedash.common.models.errors import (
    CompanionStartError,
    DeviceNotFoundError,
    GroupNotFoundError,
    HomeDashError,
    InvalidCommand,
    InvalidDataError,
    PlayerCommandFailed,
    PlayerUnavailableError,
    ProviderUnavailableError,
)
from homedash.constants import CONF_BIND_IP, CONF_BIND_PORT, DEFAULT_HOST, DEFAULT_PORT
from homedash.server.helpers.webserver import Webserver
from homedash.server.models.core_controller import CoreController

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from homedash.common.models.command import GroupFormationResult
    from homedash.common.models.event import HomeDashEvent
    from homedash.server.helpers.webserver import RouteType

API_PREFIX = "/api/sonos"
DEVICE_ACTIONS = "play|pause|stop|next|previous"
GROUP_ACTIONS = "play|pause|stop"
MAX_PENDING_EVENTS = 256
KEEPALIVE_INTERVAL = 30

# (error class, http status), the first match wins
HTTP_STATUS_MAP: tuple[tuple[type[HomeDashError], int], ...] = (
    (PlayerUnavailableError, 404),
    (InvalidCommand, 400),
    (CompanionStartError, 503),
    (PlayerCommandFailed, 502),
    (ProviderUnavailableError, 502),
    (InvalidDataError, 502),
)


def get_http_status(err: HomeDashError) -> int:
    """Return the HTTP status code for an error."""
    for err_cls, status in HTTP_STATUS_MAP:
        if isinstance(err, err_cls):
            return status
    return 500


def json_response(data: Any, status: int = 200) -> web.Response:
    """Return a json response (serialized with orjson)."""
    return web.json_response(data, status=status, dumps=json_dumps)


def error_response(err: HomeDashError, status: int | None = None, **extra: Any) -> web.Response:
    """Return the json error response for an error."""
    return json_response(
        {"error": str(err), "error_code": err.error_code, **extra},
        status=status or get_http_status(err),
    )


class WebserverController(CoreController):
    """Core Controller that manages the builtin webserver that hosts the api."""

    domain: str = "webserver"

    def __init__(self, *args, **kwargs) -> None:
        """Initialize instance."""
        super().__init__(*args, **kwargs)
        self._server = Webserver(self.logger)

    @property
    def base_url(self) -> str:
        """Return the base_url for the webserver."""
        return self._server.base_url

    async def setup(self) -> None:
        """Async initialize of module."""
        await self._server.setup(
            bind_ip=self.homedash.config.get(CONF_BIND_IP, DEFAULT_HOST),
            bind_port=int(self.homedash.config.get(CONF_BIND_PORT, DEFAULT_PORT)),
            routes=self.routes,
            middlewares=[self._handle_errors],
        )

    async def close(self) -> None:
        """Cleanup on exit."""
        await self._server.close()

    def create_app(self) -> web.Application:
        """Create the (aiohttp) application with all routes, without starting a server."""
        return Webserver.create_app(self.logger, self.routes, middlewares=[self._handle_errors])

    @property
    def routes(self) -> list[RouteType]:
        """Return all routes of the api."""
        return [
            ("GET", "/api/health", self._handle_health),
            # read api
            ("GET", f"{API_PREFIX}/devices", self._handle_devices),
            ("GET", f"{API_PREFIX}/devices/{{device_id}}", self._handle_device),
            ("GET", f"{API_PREFIX}/groups", self._handle_groups),
            ("GET", f"{API_PREFIX}/groups/{{group_id}}", self._handle_group),
            ("GET", f"{API_PREFIX}/status", self._handle_status),
            ("GET", f"{API_PREFIX}/events", self._handle_events),
            ("POST", f"{API_PREFIX}/refresh", self._handle_refresh),
            # device commands
            (
                "POST",
                f"{API_PREFIX}/devices/{{device_id}}/{{action:{DEVICE_ACTIONS}}}",
                self._handle_device_action,
            ),
            ("POST", f"{API_PREFIX}/devices/{{device_id}}/volume/{{volume}}", self._handle_volume),
            ("POST", f"{API_PREFIX}/devices/{{device_id}}/mute", self._handle_mute),
            # group commands
            ("POST", f"{API_PREFIX}/groups", self._handle_create_group),
            (
                "POST",
                f"{API_PREFIX}/groups/{{group_id}}/{{action:{GROUP_ACTIONS}}}",
                self._handle_group_action,
            ),
            (
                "POST",
                f"{API_PREFIX}/groups/{{group_id}}/volume/{{volume}}",
                self._handle_group_volume,
            ),
            ("POST", f"{API_PREFIX}/groups/{{group_id}}/mute", self._handle_group_mute),
            ("POST", f"{API_PREFIX}/groups/{{group_id}}/join/{{device_id}}", self._handle_join),
            ("POST", f"{API_PREFIX}/groups/{{group_id}}/leave/{{device_id}}", self._handle_leave),
            ("POST", f"{API_PREFIX}/groups/{{group_id}}/dissolve", self._handle_dissolve),
            # companion management
            ("GET", f"{API_PREFIX}/companion/status", self._handle_companion_status),
            (
                "POST",
                f"{API_PREFIX}/companion/{{action:start|stop|restart}}",
                self._handle_companion_action,
            ),
        ]

    @web.middleware
    async def _handle_errors(
        self,
        request: web.Request,
        handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
    ) -> web.StreamResponse:
        """Translate errors raised by the handlers into json error responses."""
        try:
            return await handler(request)
        except HomeDashError as err:
            status = get_http_status(err)
            if status >= 500:
                self.logger.warning("%s %s failed: %s", request.method, request.path, err)
            else:
                self.logger.debug("%s %s failed: %s", request.method, request.path, err)
            return error_response(err, status)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle the health check of the dashboard itself."""
        return json_response({"status": "ok", "last_sync": self.homedash.topology.last_sync})

    async def _handle_devices(self, request: web.Request) -> web.Response:
        devices = self.homedash.topology.devices()
        return json_response({"devices": devices, "count": len(devices)})

    async def _handle_device(self, request: web.Request) -> web.Response:
        device_id = request.match_info["device_id"]
        topology = self.homedash.topology
        # a room name works too, the dashboard links to rooms
        device = topology.get_device(device_id) or topology.get_device_by_name(device_id)
        if device is None:
            msg = f"Device {device_id} not found"
            raise DeviceNotFoundError(msg)
        return json_response(device)

    async def _handle_groups(self, request: web.Request) -> web.Response:
        groups = self.homedash.topology.groups()
        return json_response({"groups": groups, "count": len(groups)})

    async def _handle_group(self, request: web.Request) -> web.Response:
        group_id = request.match_info["group_id"]
        if (group := self.homedash.topology.get_group(group_id)) is None:
            msg = f"Group {group_id} not found"
            raise GroupNotFoundError(msg)
        return json_response(group)

    async def _handle_status(self, request: web.Request) -> web.Response:
        topology = self.homedash.topology
        return json_response(
            {
                "last_sync": topology.last_sync,
                "last_error": topology.last_error,
                "device_count": topology.device_count,
                "group_count": topology.group_count,
                "companion": await self.homedash.companion.status(),
            }
        )

    async def _handle_events(self, request: web.Request) -> web.StreamResponse:
        """Stream the events of the dashboard to the client (server-sent events)."""
        return await EventStreamHandler(self, request).handle_client()

    async def _handle_refresh(self, request: web.Request) -> web.Response:
        await self.homedash.topology.sync()
        topology = self.homedash.topology
        return json_response(
            {
                "status": "success",
                "last_sync": topology.last_sync,
                "device_count": topology.device_count,
                "group_count": topology.group_count,
            }
        )

    async def _handle_device_action(self, request: web.Request) -> web.Response:
        action = request.match_info["action"]
        commands = self.homedash.commands
        handler = {
            "play": commands.play_device,
            "pause": commands.pause_device,
            "stop": commands.stop_device,
            "next": commands.next_track,
            "previous": commands.previous_track,
        }[action]
        name = await handler(request.match_info["device_id"])
        return json_response({"status": "success", "action": action, "device": name})

    async def _handle_volume(self, request: web.Request) -> web.Response:
        volume = self._parse_volume(request)
        name = await self.homedash.commands.set_volume(request.match_info["device_id"], volume)
        return json_response(
            {"status": "success", "action": "volume", "device": name, "volume": volume}
        )

    async def _handle_mute(self, request: web.Request) -> web.Response:
        mute = await self._parse_mute(request)
        name = await self.homedash.commands.set_mute(request.match_info["device_id"], mute)
        return json_response({"status": "success", "action": "mute", "device": name, "mute": mute})

    async def _handle_group_action(self, request: web.Request) -> web.Response:
        action = request.match_info["action"]
        commands = self.homedash.commands
        handler = {
            "play": commands.play_group,
            "pause": commands.pause_group,
            "stop": commands.stop_group,
        }[action]
        name = await handler(request.match_info["group_id"])
        return json_response({"status": "success", "action": action, "group": name})

    async def _handle_group_volume(self, request: web.Request) -> web.Response:
        volume = self._parse_volume(request)
        name = await self.homedash.commands.set_group_volume(
            request.match_info["group_id"], volume
        )
        return json_response(
            {"status": "success", "action": "volume", "group": name, "volume": volume}
        )

    async def _handle_group_mute(self, request: web.Request) -> web.Response:
        mute = await self._parse_mute(request)
        name = await self.homedash.commands.set_group_mute(request.match_info["group_id"], mute)
        return json_response({"status": "success", "action": "mute", "group": name, "mute": mute})

    async def _handle_create_group(self, request: web.Request) -> web.Response:
        body = await self._parse_body(request)
        coordinator = body.get("coordinator")
        members = body.get("members")
        if not isinstance(coordinator, str) or not isinstance(members, list):
            msg = "Expected a coordinator (room name) and a list of members (room names)"
            raise InvalidCommand(msg)
        if not all(isinstance(x, str) for x in members):
            msg = "Members must be room names"
            raise InvalidCommand(msg)
        result = await self.homedash.commands.create_group(coordinator, members)
        return self._formation_response("create_group", result)

    async def _handle_join(self, request: web.Request) -> web.Response:
        group, device = await self.homedash.commands.join_group(
            request.match_info["group_id"], request.match_info["device_id"]
        )
        return json_response(
            {"status": "success", "action": "join", "group": group, "device": device}
        )

    async def _handle_leave(self, request: web.Request) -> web.Response:
        group, device = await self.homedash.commands.leave_group(
            request.match_info["group_id"], request.match_info["device_id"]
        )
        return json_response(
            {"status": "success", "action": "leave", "group": group, "device": device}
        )

    async def _handle_dissolve(self, request: web.Request) -> web.Response:
        result = await self.homedash.commands.dissolve_group(request.match_info["group_id"])
        return self._formation_response("dissolve", result)

    async def _handle_companion_status(self, request: web.Request) -> web.Response:
        return json_response(await self.homedash.companion.status())

    async def _handle_companion_action(self, request: web.Request) -> web.Response:
        action = request.match_info["action"]
        companion = self.homedash.companion
        handler = {
            "start": companion.ensure_running,
            "stop": companion.stop,
            "restart": companion.restart,
        }[action]
        await handler()
        return json_response(
            {"status": "success", "action": action, "companion": await companion.status()}
        )

    @staticmethod
    def _formation_response(action: str, result: GroupFormationResult) -> web.Response:
        """Return the response for a grouping choreography, including all steps."""
        try:
            result.raise_for_failure()
        except PlayerCommandFailed as err:
            return error_response(err, action=action, result=result)
        return json_response(
            {
                "status": "success",
                "action": action,
                "group": result.coordinator,
                "result": result,
            }
        )

    @staticmethod
    def _parse_volume(request: web.Request) -> int:
        """Parse the volume level from the request path."""
        try:
            return int(request.match_info["volume"])
        except ValueError as err:
            msg = f"Invalid volume: {request.match_info['volume']}"
            raise InvalidCommand(msg) from err

    async def _parse_mute(self, request: web.Request) -> bool:
        """Parse the mute flag from the json body."""
        mute = (await self._parse_body(request)).get("mute")
        if not isinstance(mute, bool):
            msg = "Expected a json body with a boolean mute value"
            raise InvalidCommand(msg)
        return mute

    @staticmethod
    async def _parse_body(request: web.Request) -> dict[str, Any]:
        """Parse the json body of a request."""
        try:
            return json_loads_as(await request.text(), dict, "request body")
        except InvalidDataError as err:
            raise InvalidCommand(str(err)) from err


class EventStreamHandler:
    """Handle an active server-sent events client connection."""

    def __init__(self, webserver: WebserverController, request: web.Request) -> None:
        """Initialize an active connection."""
        self.homedash = webserver.homedash
        self.logger = webserver.logger
        self.request = request
        self._to_write: asyncio.Queue[HomeDashEvent | None] = asyncio.Queue(
            maxsize=MAX_PENDING_EVENTS
        )
        self._handle_task: asyncio.Task | None = None

    async def handle_client(self) -> web.StreamResponse:
        """Write all events to the client until it disconnects or we shut down."""
        response = web.StreamResponse(
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Access-Control-Allow-Origin": "*",
            }
        )
        await response.prepare(self.request)
        self.logger.debug("Event stream connected from %s", self.request.remote)
        self._handle_task = asyncio.current_task()
        unsub_callback = self.homedash.subscribe(self._handle_event)
        try:
            with suppress(ConnectionResetError):
                await response.write(b": connected\n\n")
                while True:
                    try:
                        event = await asyncio.wait_for(self._to_write.get(), KEEPALIVE_INTERVAL)
                    except TimeoutError:
                        await response.write(b": keepalive\n\n")
                        continue
                    if event is None:
                        break
                    await response.write(f"data: {json_dumps(event)}\n\n".encode())
        finally:
            unsub_callback()
            self.logger.debug("Event stream from %s disconnected", self.request.remote)
        return response

    def _handle_event(self, event: HomeDashEvent) -> None:
        """Queue an event for the client, drops the client when it can not keep up."""
        if event.event == EventType.SHUTDOWN:
            if self._to_write.full():
                self._cancel()
            else:
                self._to_write.put_nowait(None)
            return
        try:
            self._to_write.put_nowait(event)
        except asyncio.QueueFull:
            self.logger.warning(
                "Event stream client %s exceeded max pending events: %s",
                self.request.remote,
                MAX_PENDING_EVENTS,
            )
            self._cancel()

    def _cancel(self) -> None:
        """Cancel the connection."""
        if self._handle_task is not None:
            self._handle_task.cancel()
