"""Model(s) for a Group of devices playing in sync."""

from __future__ import annotations

from dataclasses import dataclass, field

from mashumaro import DataClassDictMixin

from homedash.constants import DEFAULT_PLAYBACK_STATE

from .device import Device, TrackInfo


@dataclass
class Group(DataClassDictMixin):
    """
    Representation of a (sync)group of devices.

    The group_id is the zone identifier of the provider. The coordinator
    owns transport control, the aggregate fields (volume, mute, state and
    current track) mirror the coordinator. The member list is ordered and
    always starts with the coordinator.
    """

    group_id: str
    coordinator: Device
    members: list[Device] = field(default_factory=list)
    volume: int = 0
    mute: bool = False
    state: str = DEFAULT_PLAYBACK_STATE
    current_track: TrackInfo | None = None

    @classmethod
    def create(cls, group_id: str, coordinator: Device) -> Group:
        """Create a new group with the coordinator as its sole member."""
        group = cls(group_id=group_id, coordinator=coordinator)
        group.update_from_coordinator(coordinator)
        group.reset_members()
        return group

    @property
    def member_ids(self) -> list[str]:
        """Return the device ids of all members (coordinator included)."""
        return [member.device_id for member in self.members]

    def update_from_coordinator(self, coordinator: Device) -> None:
        """Set the coordinator and mirror its playback details on the group."""
        self.coordinator = coordinator
        coordinator.group_id = self.group_id
        coordinator.coordinator_id = coordinator.device_id
        self.volume = coordinator.volume
        self.mute = coordinator.mute
        self.state = coordinator.state
        self.current_track = coordinator.current_track

    def reset_members(self) -> None:
        """Reset the member list to just the coordinator."""
        self.members = [self.coordinator]

    def add_member(self, device: Device) -> bool:
        """Add a member to the group, returns False if it was already a member."""
        if device.device_id in self.member_ids:
            return False
        self.members.append(device)
        device.group_id = self.group_id
        device.coordinator_id = self.coordinator.device_id
        return True

    def release_members(self) -> None:
        """Clear the group membership on all members (the group is discarded)."""
        for member in self.members:
            member.ungroup()

    def invalid_reason(self) -> str | None:
        """Return the reason why this group is not valid (a zombie), None if valid."""
        if len(self.members) < 2:
            return f"group has {len(self.members)} member(s)"
        if self.coordinator is None or not self.coordinator.device_id:
            return "group has no valid coordinator"
        has_other_members = False
        seen: set[str] = set()
        for member in self.members:
            if member is None or not member.device_id:
                return "group has a member without identifier"
            if not member.is_online:
                return f"member {member.name} is offline"
            if member.device_id != self.coordinator.device_id:
                has_other_members = True
            seen.add(member.device_id)
        if len(seen) < 2:
            return "group has less than 2 distinct members"
        if not has_other_members:
            return "group has no other members besides the coordinator"
        return None

    @property
    def is_valid(self) -> bool:
        """Return True if the group may be exposed (it is not a zombie)."""
        return self.invalid_reason() is None
