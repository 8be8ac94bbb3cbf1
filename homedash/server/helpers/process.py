"""
AsyncProcess.

Wrapper around an asyncio subprocess for a long running child (such as the companion
api server). The output of the child is forwarded to our logger, the last lines are
kept around so a crash can be reported with some context. Closing terminates the
process and kills it when it does not stop in time, without deadlocking.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque

from homedash.constants import ROOT_LOGGER_NAME, VERBOSE_LOG_LEVEL

LOGGER = logging.getLogger(f"{ROOT_LOGGER_NAME}.helpers.process")

TERMINATE_TIMEOUT = 5
OUTPUT_TAIL_LINES = 20


class AsyncProcess:
    """Supervised child process with its output routed to the logger."""

    def __init__(
        self,
        args: list[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        name: str | None = None,
    ) -> None:
        """Initialize AsyncProcess."""
        self.proc: asyncio.subprocess.Process | None = None
        if name is None:
            name = args[0].split(os.sep)[-1]
        self.name = name
        self.logger = LOGGER.getChild(name)
        self.last_output: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
        self._args = args
        self._cwd = cwd
        self._env = env
        self._output_task: asyncio.Task | None = None

    @property
    def returncode(self) -> int | None:
        """Return the returncode of the process, None while it is running."""
        if self.proc is None:
            return None
        return self.proc.returncode

    @property
    def pid(self) -> int | None:
        """Return the PID of the process (if started)."""
        return self.proc.pid if self.proc else None

    async def start(self) -> None:
        """Launch the process, raises OSError if the executable can not be started."""
        env = None
        if self._env is not None:
            env = {**os.environ, **self._env}
        self.proc = await asyncio.create_subprocess_exec(
            *self._args,
            cwd=self._cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        self._output_task = asyncio.create_task(self._read_output())
        self.logger.debug("Process %s started with PID %s", self.name, self.proc.pid)

    async def close(self) -> None:
        """Terminate the process and wait for exit."""
        if self.proc is None:
            return
        if self.returncode is None:
            self.proc.terminate()
        while self.returncode is None:
            try:
                await asyncio.wait_for(self.proc.wait(), TERMINATE_TIMEOUT)
            except TimeoutError:
                self.logger.debug(
                    "Process %s with PID %s did not stop in time. Sending kill...",
                    self.name,
                    self.proc.pid,
                )
                self.proc.kill()
        if self._output_task is not None:
            await self._output_task
        self.logger.debug(
            "Process %s with PID %s stopped with returncode %s",
            self.name,
            self.proc.pid,
            self.returncode,
        )

    async def wait(self) -> int:
        """Wait for the process to exit and return the returncode."""
        returncode = await self.proc.wait()
        if self._output_task is not None:
            # drain the remaining output so last_output is complete
            await self._output_task
        return returncode

    async def _read_output(self) -> None:
        """Forward the (merged) output of the process to the logger."""
        async for raw_line in self.proc.stdout:
            if not (line := raw_line.decode(errors="replace").rstrip()):
                continue
            self.last_output.append(line)
            self.logger.log(VERBOSE_LOG_LEVEL, line)
