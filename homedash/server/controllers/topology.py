"""
Topology controller: keeps the device/group model in sync with the audio provider.

The provider reports a flat list of zones, each with a coordinator and its members.
Every sync rebuilds the complete model from such a snapshot (there is no incremental
update path) and swaps it in at once, so readers always see either the previous
or the new topology. Groups that fail the validity check ("zombies", which the provider
reports while it is still (un)grouping devices) are never exposed.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from homedash.common.models.device import Device
from homedash.common.models.enums import EventType
from homedash.common.models.errors import HomeDashError, ProviderConnectionError
from homedash.common.models.group import Group
from homedash.constants import (
    CONF_POLL_INTERVAL,
    CONF_SETTLE_DELAY,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SETTLE_DELAY,
    ROOT_LOGGER_NAME,
    VERBOSE_LOG_LEVEL,
)
from homedash.server.models.core_controller import CoreController

if TYPE_CHECKING:
    from collections.abc import Iterable

LOGGER = logging.getLogger(f"{ROOT_LOGGER_NAME}.topology")


def _player_id(data: dict[str, Any]) -> str | None:
    """Return the identifier of a player descriptor (if any)."""
    player_id = data.get("uuid")
    return player_id if isinstance(player_id, str) and player_id else None


def build_topology(
    zones: Iterable[Any], previous_groups: dict[str, Group]
) -> tuple[dict[str, Device], dict[str, Group]]:
    """
    Build a fresh device and group map from a (raw) zones snapshot.

    Group objects found in previous_groups (keyed by zone id) are reused, so a zone that
    persists across snapshots keeps the same Group instance, with its coordinator,
    aggregate fields and member list replaced by the new snapshot data.
    Zones that are malformed are skipped, groups that are not valid are discarded.
    """
    devices: dict[str, Device] = {}
    groups: dict[str, Group] = {}
    for zone in zones:
        if not isinstance(zone, dict):
            continue
        zone_id = zone.get("uuid")
        coordinator_data = zone.get("coordinator")
        if not (isinstance(zone_id, str) and zone_id and isinstance(coordinator_data, dict)):
            LOGGER.log(VERBOSE_LOG_LEVEL, "Skipping malformed zone: %s", zone)
            continue
        coordinator = Device.from_provider(coordinator_data)
        if coordinator is None:
            LOGGER.log(VERBOSE_LOG_LEVEL, "Skipping zone %s: invalid coordinator", zone_id)
            continue
        devices[coordinator.device_id] = coordinator
        members = zone.get("members")
        if not isinstance(members, list):
            members = []
        members_data = [x for x in members if isinstance(x, dict)]

        if not any(
            (member_id := _player_id(x)) and member_id != coordinator.device_id
            for x in members_data
        ):
            # standalone device: the zone has no members besides the coordinator
            coordinator.ungroup()
            continue

        if group := previous_groups.get(zone_id):
            group.update_from_coordinator(coordinator)
            group.reset_members()
        else:
            group = Group.create(zone_id, coordinator)
        for member_data in members_data:
            if _player_id(member_data) == coordinator.device_id:
                # the coordinator is always the first member
                continue
            if (member := Device.from_provider(member_data)) is None:
                continue
            if group.add_member(member):
                devices[member.device_id] = member
        if reason := group.invalid_reason():
            LOGGER.debug("Ignoring zombie group %s: %s", zone_id, reason)
            group.release_members()
            continue
        groups[zone_id] = group

    # validity sweep over the complete result
    for group_id, group in list(groups.items()):
        if group.is_valid:
            continue
        LOGGER.debug("Ignoring zombie group %s: %s", group_id, group.invalid_reason())
        group.release_members()
        groups.pop(group_id)
    return devices, groups


class TopologyController(CoreController):
    """
    Controller holding the (synced) topology of devices and groups.

    The group instances are kept across syncs in a registry that only the sync
    writes to, so a zone keeps the same Group object for as long as it is reported.
    The read api hands out copies; apply_snapshot returns the registry instances.
    """

    domain: str = "topology"

    def __init__(self, *args, **kwargs) -> None:
        """Initialize the controller."""
        super().__init__(*args, **kwargs)
        # the published maps are never mutated, a sync replaces them as a whole
        self._devices: dict[str, Device] = {}
        self._groups: dict[str, Group] = {}
        # the (private) group instances that are reused on the next sync
        self._known_groups: dict[str, Group] = {}
        self._lock = threading.Lock()
        self._sync_lock = asyncio.Lock()
        self._poll_task: asyncio.Task | None = None
        self._last_sync: float | None = None
        self._last_error: str | None = None

    async def setup(self) -> None:
        """Async initialize of module."""
        self._poll_task = self.homedash.create_task(self._poll_topology())

    async def close(self) -> None:
        """Cleanup on exit."""
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()

    @property
    def poll_interval(self) -> float:
        """Return the interval (in seconds) between two syncs."""
        return self.homedash.config.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)

    @property
    def last_sync(self) -> float | None:
        """Return the timestamp of the last successful sync."""
        return self._last_sync

    @property
    def last_error(self) -> str | None:
        """Return the error of the last sync (None if it succeeded)."""
        return self._last_error

    @property
    def device_count(self) -> int:
        """Return the number of devices."""
        with self._lock:
            return len(self._devices)

    @property
    def group_count(self) -> int:
        """Return the number of (valid) groups."""
        with self._lock:
            return len(self._groups)

    def devices(self) -> list[Device]:
        """Return (a copy of) all devices."""
        with self._lock:
            devices = self._devices
        return copy.deepcopy(list(devices.values()))

    def groups(self) -> list[Group]:
        """Return (a copy of) all (valid) groups."""
        with self._lock:
            groups = self._groups
        return copy.deepcopy(list(groups.values()))

    def get_device(self, device_id: str) -> Device | None:
        """Return (a copy of) a single device, None if not found."""
        with self._lock:
            device = self._devices.get(device_id)
        return copy.deepcopy(device)

    def get_device_by_name(self, name: str) -> Device | None:
        """Return (a copy of) a single device by its (room) name, None if not found."""
        with self._lock:
            devices = self._devices
        for device in devices.values():
            if device.name.lower() == name.lower():
                return copy.deepcopy(device)
        return None

    def get_group(self, group_id: str) -> Group | None:
        """Return (a copy of) a single group, None if not found."""
        with self._lock:
            group = self._groups.get(group_id)
        return copy.deepcopy(group)

    async def sync(self) -> None:
        """
        Fetch a fresh snapshot from the provider and replace the topology with it.

        If the provider can not be reached, (re)starting the companion process is
        tried once before the fetch is retried. On failure the error is raised
        and the current topology is left untouched.
        """
        async with self._sync_lock:
            try:
                zones = await self._fetch_zones()
            except HomeDashError as err:
                self._last_error = str(err)
                self.homedash.signal_event(EventType.SYNC_FAILED, data=str(err))
                raise
            self.apply_snapshot(zones)
        counts = {"devices": self.device_count, "groups": self.group_count}
        self.homedash.signal_event(EventType.TOPOLOGY_UPDATED, data=counts)

    def apply_snapshot(self, zones: list[dict[str, Any]]) -> dict[str, Group]:
        """
        Rebuild the topology from a (raw) zones snapshot and swap it in.

        Returns the (valid) groups by id, these are the instances that are reused
        on the next snapshot, not copies.
        """
        devices, groups = build_topology(zones, self._known_groups)
        self._known_groups = groups
        # publish copies so the reused group instances can be mutated on the next sync
        devices, groups = copy.deepcopy((devices, groups))
        with self._lock:
            self._devices = devices
            self._groups = groups
        self._last_sync = time.time()
        self._last_error = None
        self.logger.log(
            VERBOSE_LOG_LEVEL,
            "Topology updated: %s devices, %s groups",
            len(devices),
            len(groups),
        )
        return dict(self._known_groups)

    async def _fetch_zones(self) -> list[dict[str, Any]]:
        """Fetch the zones from the provider, (re)start the companion once if unreachable."""
        try:
            return await self.homedash.sonos_api.get_zones()
        except ProviderConnectionError as err:
            self.logger.warning("Sonos API is not reachable (%s), trying to start it...", err)
        await self.homedash.companion.ensure_running()
        await asyncio.sleep(self.homedash.config.get(CONF_SETTLE_DELAY, DEFAULT_SETTLE_DELAY))
        return await self.homedash.sonos_api.get_zones()

    async def _poll_topology(self) -> None:
        """Background task that keeps the topology in sync."""
        while True:
            try:
                await self.sync()
            except HomeDashError as err:
                self.logger.warning("Unable to sync topology: %s", err)
            except Exception as err:
                self.logger.warning(
                    "Error while syncing topology: %s",
                    str(err),
                    exc_info=err if self.logger.isEnabledFor(10) else None,
                )
            await asyncio.sleep(self.poll_interval)
