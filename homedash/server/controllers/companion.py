"""
Companion controller: manages the local node-sonos-http-api process.

The audio provider API is served by a (node.js) companion process. If the API is not
reachable, this controller can launch the companion from a local checkout and wait
until it answers the health probe. A companion that was not started by us
(e.g. run by the operator) is used as-is and is never stopped by us.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from aiofiles.os import wrap

from homedash.common.models.companion import CompanionStatus
from homedash.common.models.enums import CompanionState, EventType
from homedash.common.models.errors import CompanionStartError
from homedash.constants import (
    CONF_COMPANION_AUTOSTART,
    CONF_COMPANION_PATH,
    CONF_HEALTH_ATTEMPTS,
    CONF_HEALTH_INTERVAL,
    CONF_RESTART_DELAY,
    DEFAULT_COMPANION_AUTOSTART,
    DEFAULT_COMPANION_PATH,
    DEFAULT_HEALTH_ATTEMPTS,
    DEFAULT_HEALTH_INTERVAL,
    DEFAULT_RESTART_DELAY,
)
from homedash.server.helpers.process import AsyncProcess
from homedash.server.models.core_controller import CoreController

if TYPE_CHECKING:
    from homedash.server.helpers.sonos_api import SonosApiClient

isfile = wrap(os.path.isfile)

COMPANION_NAME = "node-sonos-http-api"
COMPANION_SCRIPT = "server.js"
DEFAULT_COMPANION_PORT = 5005


class CompanionController(CoreController):
    """Controller that manages the lifecycle of the companion process."""

    domain: str = "companion"

    def __init__(self, *args, **kwargs) -> None:
        """Initialize the controller."""
        super().__init__(*args, **kwargs)
        self._process: AsyncProcess | None = None
        self._watch_task: asyncio.Task | None = None
        self._state = CompanionState.NOT_STARTED
        self._last_error: str | None = None
        # guards the process handle, independent of the topology
        self._lock = asyncio.Lock()

    async def setup(self) -> None:
        """Async initialize of module."""
        if not self.homedash.config.get(CONF_COMPANION_AUTOSTART, DEFAULT_COMPANION_AUTOSTART):
            return
        try:
            await self.ensure_running()
        except CompanionStartError as err:
            self.logger.warning("Unable to start %s: %s", COMPANION_NAME, err)

    async def close(self) -> None:
        """Cleanup on exit."""
        await self.stop()

    @property
    def api(self) -> SonosApiClient:
        """Return the client for the provider api served by the companion."""
        return self.homedash.sonos_api

    @property
    def state(self) -> CompanionState:
        """Return the lifecycle state of the companion."""
        return self._state

    @property
    def port(self) -> int:
        """Return the port the companion listens on (derived from the api url)."""
        return urlparse(self.api.base_url).port or DEFAULT_COMPANION_PORT

    @property
    def owns_process(self) -> bool:
        """Return True if a companion process started by us is alive."""
        return self._process is not None and self._process.returncode is None

    async def ensure_running(self) -> None:
        """Make sure the provider api is available, start the companion if needed."""
        async with self._lock:
            if await self.api.ping():
                if not self.owns_process:
                    self.logger.debug("%s is already running on port %s", COMPANION_NAME, self.port)
                self._set_state(CompanionState.RUNNING)
                return
            await self._start()

    async def stop(self) -> None:
        """Stop the companion process, only if it was started by us."""
        async with self._lock:
            if self._process is None:
                self.logger.debug("%s was not started by us, not stopping it", COMPANION_NAME)
                return
            process = self._process
            self._process = None
            if process.returncode is not None:
                # already exited (crashed), nothing to stop
                return
            self.logger.info("Stopping %s...", COMPANION_NAME)
            await process.close()
            self._set_state(CompanionState.STOPPED)
            self.logger.info("%s stopped", COMPANION_NAME)

    async def restart(self) -> None:
        """Restart the companion process."""
        self.logger.info("Restarting %s...", COMPANION_NAME)
        await self.stop()
        await asyncio.sleep(self.homedash.config.get(CONF_RESTART_DELAY, DEFAULT_RESTART_DELAY))
        await self.ensure_running()

    async def status(self) -> CompanionStatus:
        """Return the status of the companion."""
        responding = await self.api.ping()
        running = self.owns_process
        if self._state == CompanionState.RUNNING and not (responding or running):
            # an (external) instance that went away
            self._last_error = "Companion no longer responds to the health probe"
            self._set_state(CompanionState.CRASHED)
        return CompanionStatus(
            state=self._state,
            running=running,
            responding=responding,
            external=responding and not running,
            url=self.api.base_url,
            port=self.port,
            pid=self._process.pid if running else None,
            last_error=self._last_error,
        )

    async def _start(self) -> None:
        """Launch the companion process and wait until it responds."""
        if (node := shutil.which("node")) is None:
            self._last_error = "Node.js is not available, please install it to run the companion"
            raise CompanionStartError(self._last_error)
        companion_path = os.path.abspath(
            self.homedash.config.get(CONF_COMPANION_PATH, DEFAULT_COMPANION_PATH)
        )
        if not await isfile(os.path.join(companion_path, COMPANION_SCRIPT)):
            self._last_error = f"{COMPANION_SCRIPT} not found in {companion_path}"
            raise CompanionStartError(self._last_error)
        if (previous := self._process) is not None:
            # alive but not responding, replace it
            self._process = None
            await previous.close()

        self.logger.info(
            "Starting %s from %s on port %s", COMPANION_NAME, companion_path, self.port
        )
        self._set_state(CompanionState.STARTING)
        process = AsyncProcess(
            [node, COMPANION_SCRIPT],
            cwd=companion_path,
            env={"PORT": str(self.port)},
            name=COMPANION_NAME,
        )
        try:
            await process.start()
        except OSError as err:
            msg = f"Unable to launch {COMPANION_NAME}: {err}"
            raise CompanionStartError(self._fail(msg)) from err
        self._process = process
        self._watch_task = watch_task = self.homedash.create_task(self._watch_process(process))

        attempts = self.homedash.config.get(CONF_HEALTH_ATTEMPTS, DEFAULT_HEALTH_ATTEMPTS)
        interval = self.homedash.config.get(CONF_HEALTH_INTERVAL, DEFAULT_HEALTH_INTERVAL)
        for _ in range(attempts):
            if await self.api.ping():
                self.logger.info("%s started on port %s", COMPANION_NAME, self.port)
                self._last_error = None
                self._set_state(CompanionState.RUNNING)
                return
            # wait for the next probe, unless the process exits in the meantime
            done, _ = await asyncio.wait({watch_task}, timeout=interval)
            if done:
                msg = f"{COMPANION_NAME} exited with code {process.returncode} while starting"
                raise CompanionStartError(self._fail(msg))

        self._process = None
        await process.close()
        msg = f"{COMPANION_NAME} did not respond within {attempts * interval} seconds"
        raise CompanionStartError(self._fail(msg))

    async def _watch_process(self, process: AsyncProcess) -> None:
        """Wait for the process to exit and mark it crashed if that was unexpected."""
        returncode = await process.wait()
        if process is not self._process:
            # stopped (or replaced) on request
            return
        self._last_error = f"{COMPANION_NAME} exited unexpectedly with code {returncode}"
        if process.last_output:
            self._last_error += f": {process.last_output[-1]}"
        self.logger.warning(self._last_error)
        self._set_state(CompanionState.CRASHED)

    def _fail(self, msg: str) -> str:
        """Register a failure to start the companion, returns the message."""
        self._last_error = msg
        self._set_state(CompanionState.CRASHED)
        return msg

    def _set_state(self, state: CompanionState) -> None:
        """Update the lifecycle state and signal the change."""
        if state == self._state:
            return
        self.logger.debug("%s state changed: %s -> %s", COMPANION_NAME, self._state, state)
        self._state = state
        self.homedash.signal_event(
            EventType.COMPANION_UPDATED, object_id=self.api.base_url, data=state
        )
