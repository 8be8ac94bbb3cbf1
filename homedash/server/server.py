"""Main Home Dashboard class."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any, Self
from uuid import uuid4

from aiohttp import ClientSession, TCPConnector

from homedash.common.models.enums import EventType
from homedash.common.models.event import HomeDashEvent
from homedash.constants import (
    CONF_API_TIMEOUT,
    CONF_API_URL,
    DEFAULT_API_TIMEOUT,
    DEFAULT_API_URL,
    ROOT_LOGGER_NAME,
    VERBOSE_LOG_LEVEL,
)
from homedash.server.controllers.commands import CommandController
from homedash.server.controllers.companion import CompanionController
from homedash.server.controllers.config import ConfigController
from homedash.server.controllers.topology import TopologyController
from homedash.server.controllers.webserver import WebserverController
from homedash.server.helpers.sonos_api import SonosApiClient

if TYPE_CHECKING:
    from types import TracebackType

EventCallBackType = Callable[[HomeDashEvent], None]
EventSubscriptionType = tuple[
    EventCallBackType, tuple[EventType, ...] | None, tuple[str, ...] | None
]

LOGGER = logging.getLogger(ROOT_LOGGER_NAME)


class HomeDash:
    """Main Home Dashboard (Server) object."""

    loop: asyncio.AbstractEventLoop
    http_session: ClientSession
    sonos_api: SonosApiClient
    config: ConfigController
    companion: CompanionController
    topology: TopologyController
    commands: CommandController
    webserver: WebserverController

    def __init__(
        self,
        storage_path: str,
        enable_webserver: bool = True,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the Home Dashboard Server."""
        self.storage_path = storage_path
        self.enable_webserver = enable_webserver
        # config values (e.g. from the commandline) that win from everything else
        self.overrides = overrides or {}
        self._subscribers: set[EventSubscriptionType] = set()
        self._tracked_tasks: dict[str, asyncio.Task] = {}
        self.closing = False

    async def start(self) -> None:
        """Start running the Home Dashboard server."""
        self.loop = asyncio.get_running_loop()
        # create shared aiohttp ClientSession
        self.http_session = ClientSession(
            loop=self.loop,
            connector=TCPConnector(
                ssl=False,
                enable_cleanup_closed=True,
                limit=100,
                limit_per_host=20,
            ),
        )
        # setup config controller first and fetch important config values
        self.config = ConfigController(self)
        await self.config.setup()
        self.sonos_api = SonosApiClient(
            self.http_session,
            self.config.get(CONF_API_URL, DEFAULT_API_URL),
            self.config.get(CONF_API_TIMEOUT, DEFAULT_API_TIMEOUT),
        )
        LOGGER.info("Starting Home Dashboard using Sonos API at %s", self.sonos_api.base_url)
        # setup other core controllers
        self.companion = CompanionController(self)
        self.topology = TopologyController(self)
        self.commands = CommandController(self)
        self.webserver = WebserverController(self)
        # the companion goes first so the first sync finds a running api
        await self.companion.setup()
        await self.topology.setup()
        await self.commands.setup()
        if self.enable_webserver:
            await self.webserver.setup()

    async def stop(self) -> None:
        """Stop running the Home Dashboard server."""
        LOGGER.info("Stop called, cleaning up...")
        self.signal_event(EventType.SHUTDOWN)
        self.closing = True
        # cancel all running tasks
        for task in self._tracked_tasks.values():
            task.cancel()
        # stop core controllers
        if self.enable_webserver:
            await self.webserver.close()
        await self.commands.close()
        await self.topology.close()
        await self.companion.close()
        await self.config.close()
        # close/cleanup shared http session
        if self.http_session:
            await self.http_session.close()

    def signal_event(
        self,
        event: EventType,
        object_id: str | None = None,
        data: Any = None,
    ) -> None:
        """Signal event to subscribers."""
        if self.closing:
            return

        if LOGGER.isEnabledFor(VERBOSE_LOG_LEVEL):
            LOGGER.getChild("event").log(VERBOSE_LOG_LEVEL, "%s %s", event.value, object_id or "")

        event_obj = HomeDashEvent(event=event, object_id=object_id, data=data)
        for cb_func, event_filter, id_filter in self._subscribers:
            if not (event_filter is None or event in event_filter):
                continue
            if not (id_filter is None or object_id in id_filter):
                continue
            if asyncio.iscoroutinefunction(cb_func):
                asyncio.run_coroutine_threadsafe(cb_func(event_obj), self.loop)
            else:
                self.loop.call_soon_threadsafe(cb_func, event_obj)

    def subscribe(
        self,
        cb_func: EventCallBackType,
        event_filter: EventType | tuple[EventType, ...] | None = None,
        id_filter: str | tuple[str, ...] | None = None,
    ) -> Callable:
        """Add callback to event listeners.

        Returns function to remove the listener.
            :param cb_func: callback function or coroutine
            :param event_filter: Optionally only listen for these events
            :param id_filter: Optionally only listen for these id's (device_id, group_id)
        """
        if isinstance(event_filter, EventType):
            event_filter = (event_filter,)
        if isinstance(id_filter, str):
            id_filter = (id_filter,)
        listener = (cb_func, event_filter, id_filter)
        self._subscribers.add(listener)

        def remove_listener() -> None:
            self._subscribers.remove(listener)

        return remove_listener

    def create_task(
        self,
        target: Coroutine | Awaitable | Callable,
        *args: Any,
        task_id: str | None = None,
        **kwargs: Any,
    ) -> asyncio.Task | asyncio.Future:
        """Create Task on (main) event loop from Coroutine(function).

        Tasks created by this helper will be properly cancelled on stop.
        """
        if target is None:
            msg = "Target is missing"
            raise RuntimeError(msg)
        if task_id and (existing := self._tracked_tasks.get(task_id)):
            # prevent duplicate tasks if task_id is given and already present
            return existing
        if asyncio.iscoroutinefunction(target):
            task = self.loop.create_task(target(*args, **kwargs))
        elif asyncio.iscoroutine(target):
            task = self.loop.create_task(target)
        else:
            # regular callback (non async function)
            task = self.loop.create_task(asyncio.to_thread(target, *args, **kwargs))

        if task_id is None:
            task_id = uuid4().hex

        def task_done_callback(_task: asyncio.Task) -> None:
            self._tracked_tasks.pop(task_id, None)
            # log unhandled exceptions
            if not _task.cancelled() and (err := _task.exception()):
                LOGGER.warning(
                    "Exception in task %s - target: %s: %s",
                    _task.get_name(),
                    str(target),
                    str(err),
                    exc_info=err if LOGGER.isEnabledFor(logging.DEBUG) else None,
                )

        self._tracked_tasks[task_id] = task
        task.add_done_callback(task_done_callback)
        return task

    async def __aenter__(self) -> Self:
        """Return Context manager."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        """Exit context manager."""
        await self.stop()
