"""Model(s) for a Device (a single speaker/room) as reported by the audio provider."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from mashumaro import DataClassDictMixin

from homedash.constants import DEFAULT_PLAYBACK_STATE

# the provider is not consistent in the naming of some fields,
# so we try these (in order) until one is found
PLAYBACK_STATE_KEYS = ("playbackState", "playerState", "zoneState")
ALBUM_ART_KEYS = ("albumArtURI", "albumArtUri", "absoluteAlbumArtUri")


def _first_str(data: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    """Return the first string value found for the given keys."""
    for key in keys:
        if isinstance(value := data.get(key), str):
            return value
    return None


@dataclass
class TrackInfo(DataClassDictMixin):
    """Metadata of the track currently loaded on a device."""

    artist: str = ""
    title: str = ""
    album: str = ""
    art: str = ""
    uri: str = ""

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> TrackInfo:
        """Parse TrackInfo from the currentTrack block of the provider."""
        return cls(
            artist=data["artist"] if isinstance(data.get("artist"), str) else "",
            title=data["title"] if isinstance(data.get("title"), str) else "",
            album=data["album"] if isinstance(data.get("album"), str) else "",
            art=_first_str(data, ALBUM_ART_KEYS) or "",
            uri=data["uri"] if isinstance(data.get("uri"), str) else "",
        )

    def __str__(self) -> str:
        """Return a short human readable representation."""
        return f"{self.artist} - {self.title}"


@dataclass
class Device(DataClassDictMixin):
    """Representation of a single device (room) within the audio system."""

    device_id: str
    name: str
    room: str
    is_online: bool = False
    # group_id: id of the group this device coordinates or belongs to
    # empty if the device is standalone
    group_id: str = ""
    # coordinator_id: device_id of the coordinator of the group (own id if coordinator)
    coordinator_id: str = ""
    volume: int = 0
    mute: bool = False
    # state: free-form playback state string as reported by the provider
    state: str = DEFAULT_PLAYBACK_STATE
    current_track: TrackInfo | None = None
    last_seen: float = field(default_factory=time.time)

    @classmethod
    def from_provider(cls, data: dict[str, Any], group_id: str = "") -> Device | None:
        """
        Materialize a Device from a player descriptor of a zone snapshot.

        Returns None if the descriptor lacks an identifier or a room name.
        Every device seen in a snapshot is online, unless the provider
        explicitly reports otherwise.
        """
        device_id = data.get("uuid")
        room_name = data.get("roomName")
        if not (isinstance(device_id, str) and device_id):
            return None
        if not (isinstance(room_name, str) and room_name):
            return None
        device = cls(
            device_id=device_id,
            name=room_name,
            room=room_name,
            group_id=group_id,
            # will be updated if this device is not the coordinator
            coordinator_id=device_id,
        )
        if isinstance(state := data.get("state"), dict):
            device._update_state(state)
        device.set_online(data.get("online") is not False)
        return device

    def _update_state(self, state: dict[str, Any]) -> None:
        """Apply the state block of the provider."""
        # bool is a subclass of int, guard that here
        if isinstance(volume := state.get("volume"), int | float) and not isinstance(volume, bool):
            self.volume = max(0, min(100, int(volume)))
        if isinstance(mute := state.get("mute"), bool):
            self.mute = mute
        if playback_state := _first_str(state, PLAYBACK_STATE_KEYS):
            self.state = playback_state
        if isinstance(current_track := state.get("currentTrack"), dict):
            self.current_track = TrackInfo.from_provider(current_track)

    @property
    def is_grouped(self) -> bool:
        """Return True if the device is part of a group it does not own."""
        return self.group_id != "" and self.group_id != self.device_id

    @property
    def is_coordinator(self) -> bool:
        """Return True if the device is a group coordinator."""
        return self.coordinator_id == self.device_id

    def set_online(self, online: bool) -> None:
        """Update the online status and last seen time."""
        self.is_online = online
        if online:
            self.last_seen = time.time()

    def ungroup(self) -> None:
        """Clear all group membership information."""
        self.group_id = ""
        self.coordinator_id = ""
