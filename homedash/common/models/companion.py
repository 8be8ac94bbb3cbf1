"""Model for the status of the companion process backing the audio provider API."""

from __future__ import annotations

from dataclasses import dataclass

from mashumaro import DataClassDictMixin

from .enums import CompanionState


@dataclass
class CompanionStatus(DataClassDictMixin):
    """Point in time status of the companion process."""

    state: CompanionState
    # running: a process started by us is alive
    running: bool
    # responding: the health probe against the provider api succeeded
    responding: bool
    # external: the provider api is served by an instance we did not start
    external: bool
    url: str
    port: int | None = None
    pid: int | None = None
    last_error: str | None = None
