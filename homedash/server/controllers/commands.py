"""
Commands controller: sends control commands to the devices and groups.

All commands are sent to the audio provider by room name. When the provider can
not be reached, the companion process is (re)started once and the command is
retried exactly once. Grouping is a sequence of separate commands which the provider
processes asynchronously, so it is not atomic: the next topology sync is the only
confirmation of the resulting groups.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from homedash.common.models.command import CommandResult, GroupFormationResult, GroupStep
from homedash.common.models.enums import CommandAction
from homedash.common.models.errors import (
    CompanionStartError,
    DeviceNotFoundError,
    GroupNotFoundError,
    HomeDashError,
    InvalidCommand,
    PlayerCommandFailed,
    ProviderConnectionError,
)
from homedash.constants import (
    CONF_JOIN_DELAY,
    CONF_SETTLE_DELAY,
    CONF_TV_RESTORE_DELAY,
    DEFAULT_JOIN_DELAY,
    DEFAULT_SETTLE_DELAY,
    DEFAULT_TV_RESTORE_DELAY,
    TV_AUDIO_URI_MARKERS,
)
from homedash.server.models.core_controller import CoreController

if TYPE_CHECKING:
    from homedash.common.models.device import Device
    from homedash.common.models.group import Group


def is_tv_audio(state: dict[str, Any]) -> bool:
    """Return True if the state block of a device reports (line-in) audio from a TV."""
    current_track = state.get("currentTrack")
    if not isinstance(current_track, dict):
        return False
    uri = current_track.get("uri")
    if not isinstance(uri, str):
        return False
    return any(marker in uri for marker in TV_AUDIO_URI_MARKERS)


def validate_volume(volume: Any) -> int:
    """Validate a volume level (0..100)."""
    if isinstance(volume, bool) or not isinstance(volume, int) or not 0 <= volume <= 100:
        msg = f"Invalid volume {volume}: must be a number between 0 and 100"
        raise InvalidCommand(msg)
    return volume


class CommandController(CoreController):
    """Controller to execute (player) commands on the audio provider."""

    domain: str = "commands"

    @property
    def settle_delay(self) -> float:
        """Return the time to wait after (re)starting the companion."""
        return self.homedash.config.get(CONF_SETTLE_DELAY, DEFAULT_SETTLE_DELAY)

    @property
    def join_delay(self) -> float:
        """Return the time to wait between two grouping commands."""
        return self.homedash.config.get(CONF_JOIN_DELAY, DEFAULT_JOIN_DELAY)

    async def execute(self, target: str, action: CommandAction, *args: str | int) -> CommandResult:
        """
        Send a single command to a device (by room name).

        target: room name of the device (or group coordinator).
        action: the command to send.
        args: (optional) extra arguments of the command (e.g. volume level).
        """
        api = self.homedash.sonos_api
        retried = False
        try:
            status, body = await api.send_command(target, action, *args)
        except ProviderConnectionError as err:
            self.logger.warning(
                "Sonos API is not reachable for %s on %s (%s), trying to start it...",
                action,
                target,
                err,
            )
            try:
                await self.homedash.companion.ensure_running()
            except CompanionStartError as start_err:
                msg = f"Command {action} on {target} failed: {err} (start failed: {start_err})"
                raise PlayerCommandFailed(msg) from start_err
            await asyncio.sleep(self.settle_delay)
            status, body = await api.send_command(target, action, *args)
            retried = True
        if status != 200:
            msg = f"Command {action} on {target} failed with status {status}: {body}"
            raise PlayerCommandFailed(msg, status)
        self.logger.debug("Command %s %s executed on %s", action, "/".join(map(str, args)), target)
        return CommandResult(
            action=action, target=target, status_code=status, body=body, retried=retried
        )

    # Device commands

    async def play_device(self, device_id: str) -> str:
        """Send PLAY command to given device."""
        return await self._device_command(device_id, CommandAction.PLAY)

    async def pause_device(self, device_id: str) -> str:
        """Send PAUSE command to given device."""
        return await self._device_command(device_id, CommandAction.PAUSE)

    async def stop_device(self, device_id: str) -> str:
        """Send STOP command to given device."""
        return await self._device_command(device_id, CommandAction.STOP)

    async def next_track(self, device_id: str) -> str:
        """Send NEXT TRACK command to given device."""
        return await self._device_command(device_id, CommandAction.NEXT)

    async def previous_track(self, device_id: str) -> str:
        """Send PREVIOUS TRACK command to given device."""
        return await self._device_command(device_id, CommandAction.PREVIOUS)

    async def set_volume(self, device_id: str, volume: int) -> str:
        """Send VOLUME command to given device."""
        volume = validate_volume(volume)
        return await self._device_command(device_id, CommandAction.VOLUME, volume)

    async def set_mute(self, device_id: str, mute: bool) -> str:
        """Send (UN)MUTE command to given device."""
        return await self._device_command(device_id, CommandAction.for_mute(mute))

    # Group commands

    async def play_group(self, group_id: str) -> str:
        """Send PLAY command to given group."""
        return await self._group_command(group_id, CommandAction.PLAY)

    async def pause_group(self, group_id: str) -> str:
        """Send PAUSE command to given group."""
        return await self._group_command(group_id, CommandAction.PAUSE)

    async def stop_group(self, group_id: str) -> str:
        """Send STOP command to given group."""
        return await self._group_command(group_id, CommandAction.STOP)

    async def set_group_volume(self, group_id: str, volume: int) -> str:
        """Send VOLUME command to given group."""
        volume = validate_volume(volume)
        return await self._group_command(group_id, CommandAction.VOLUME, volume)

    async def set_group_mute(self, group_id: str, mute: bool) -> str:
        """Send (UN)MUTE command to given group."""
        return await self._group_command(group_id, CommandAction.for_mute(mute))

    async def join_group(self, group_id: str, device_id: str) -> tuple[str, str]:
        """Let a device join an existing group, returns the group and device name."""
        group = self._get_group(group_id)
        device = self._get_device(device_id)
        await self.execute(device.room, CommandAction.JOIN, group.coordinator.room)
        self.logger.info("%s joined group of %s", device.name, group.coordinator.name)
        return (group.coordinator.name, device.name)

    async def leave_group(self, group_id: str, device_id: str) -> tuple[str, str]:
        """Let a (member) device leave a group, returns the group and device name."""
        group = self._get_group(group_id)
        device = self._get_device(device_id)
        if device_id not in group.member_ids:
            msg = f"Device {device.name} is not a member of group {group.coordinator.name}"
            raise InvalidCommand(msg)
        await self.execute(device.room, CommandAction.LEAVE)
        self.logger.info("%s left group of %s", device.name, group.coordinator.name)
        return (group.coordinator.name, device.name)

    async def dissolve_group(self, group_id: str) -> GroupFormationResult:
        """Let all members (except the coordinator) leave the group."""
        group = self._get_group(group_id)
        members = [x for x in group.members if x.device_id != group.coordinator.device_id]
        result = GroupFormationResult(
            coordinator=group.coordinator.room, members=[x.room for x in members]
        )
        for index, member in enumerate(members):
            if index:
                await asyncio.sleep(self.join_delay)
            await self._run_step(result, member.room, CommandAction.LEAVE)
        self._log_result("Dissolve", result)
        return result

    async def create_group(
        self, coordinator: str, members: list[str]
    ) -> GroupFormationResult:
        """
        Form a new group of devices (by room name).

        The coordinator first leaves its current group (if any), then each member
        joins the coordinator, with a short delay between the joins.
        If the coordinator was playing TV audio, its volume is re-applied afterwards
        to have it pick up the TV input again.
        """
        if not coordinator:
            msg = "No coordinator room provided"
            raise InvalidCommand(msg)
        # deduplicate, keeping the order
        joining = [x for x in dict.fromkeys(members) if x != coordinator]
        if not joining:
            # only the coordinator itself would dissolve its current group
            msg = "No member rooms provided besides the coordinator"
            raise InvalidCommand(msg)
        result = GroupFormationResult(coordinator=coordinator, members=joining)
        self.logger.debug("Creating group with coordinator %s and members %s", coordinator, joining)

        tv_volume = 0
        try:
            state = await self.homedash.sonos_api.get_state(coordinator)
        except HomeDashError as err:
            self.logger.debug("Could not get state of %s: %s", coordinator, err)
            result.add_step(
                GroupStep(CommandAction.STATE, coordinator, False, tolerated=True, error=str(err))
            )
        else:
            result.add_step(GroupStep(CommandAction.STATE, coordinator, True))
            if is_tv_audio(state) and isinstance(volume := state.get("volume"), int | float):
                tv_volume = int(volume)

        # the coordinator may already be standalone, so a failure here is fine
        await self._run_step(result, coordinator, CommandAction.LEAVE, tolerated=True)
        for index, member in enumerate(joining):
            if index:
                await asyncio.sleep(self.join_delay)
            step = await self._run_step(result, member, CommandAction.JOIN, coordinator)
            if not step.success:
                break

        if result.success and tv_volume > 0:
            self.logger.debug("%s was playing TV audio, restoring it...", coordinator)
            await asyncio.sleep(
                self.homedash.config.get(CONF_TV_RESTORE_DELAY, DEFAULT_TV_RESTORE_DELAY)
            )
            await self._run_step(
                result, coordinator, CommandAction.VOLUME, tv_volume, tolerated=True
            )
        self._log_result("Create group", result)
        return result

    async def _run_step(
        self,
        result: GroupFormationResult,
        target: str,
        action: CommandAction,
        *args: str | int,
        tolerated: bool = False,
    ) -> GroupStep:
        """Execute a single step of a grouping choreography and record its outcome."""
        try:
            command = await self.execute(target, action, *args)
        except HomeDashError as err:
            return result.add_step(
                GroupStep(
                    action,
                    target,
                    False,
                    tolerated=tolerated,
                    error=str(err),
                    status_code=getattr(err, "status_code", None),
                )
            )
        return result.add_step(GroupStep(action, target, True, status_code=command.status_code))

    def _log_result(self, name: str, result: GroupFormationResult) -> None:
        if step := result.failed_step:
            self.logger.warning(
                "%s for %s failed at %s %s: %s",
                name,
                result.coordinator,
                step.action,
                step.target,
                step.error,
            )
        else:
            self.logger.info("%s for %s done: %s", name, result.coordinator, result.members)

    async def _device_command(self, device_id: str, action: CommandAction, *args: str | int) -> str:
        device = self._get_device(device_id)
        await self.execute(device.room, action, *args)
        self.logger.info("Sent %s to device %s", action, device.name)
        return device.name

    async def _group_command(self, group_id: str, action: CommandAction, *args: str | int) -> str:
        group = self._get_group(group_id)
        await self.execute(group.coordinator.room, action, *args)
        self.logger.info("Sent %s to group of %s", action, group.coordinator.name)
        return group.coordinator.name

    def _get_device(self, device_id: str) -> Device:
        if (device := self.homedash.topology.get_device(device_id)) is None:
            msg = f"Device {device_id} not found"
            raise DeviceNotFoundError(msg)
        return device

    def _get_group(self, group_id: str) -> Group:
        if (group := self.homedash.topology.get_group(group_id)) is None:
            msg = f"Group {group_id} not found"
            raise GroupNotFoundError(msg)
        return group
