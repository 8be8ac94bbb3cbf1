"""All enums used by the Home Dashboard models."""

from __future__ import annotations

from enum import StrEnum
from typing import Self


class CommandAction(StrEnum):
    """Enum with the control commands understood by the audio provider."""

    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"
    NEXT = "next"
    PREVIOUS = "previous"
    VOLUME = "volume"
    MUTE = "mute"
    UNMUTE = "unmute"
    JOIN = "join"
    LEAVE = "leave"
    STATE = "state"

    @classmethod
    def for_mute(cls, mute: bool) -> CommandAction:
        """Return the action that applies the given mute state."""
        return cls.MUTE if mute else cls.UNMUTE


class CompanionState(StrEnum):
    """Enum for the lifecycle state of the companion process."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    CRASHED = "crashed"


class EventType(StrEnum):
    """Enum with possible Events."""

    TOPOLOGY_UPDATED = "topology_updated"
    SYNC_FAILED = "sync_failed"
    COMPANION_UPDATED = "companion_updated"
    SHUTDOWN = "application_shutdown"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls: Self, value: object) -> Self:  # noqa: ARG003
        """Set default enum member if an unknown value is provided."""
        return cls.UNKNOWN
