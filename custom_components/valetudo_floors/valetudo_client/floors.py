"""Floor switching: swap the robot's live map for another floor's backup."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .api import ValetudoApiError
from .const import (
    RECOVER_MAP_KEY,
    REBOOT_MAX_POLL_ATTEMPTS,
    REBOOT_POLL_INTERVAL,
    STOP_SETTLE_DELAY,
    RobotStatus,
)
from .device import ValetudoDevice
from .maps import MapStorage
from .models import Floor, PendingNewFloor
from .mqtt import ValetudoMqttError
from .registry import FloorError, FloorRegistry
from .ssh import SshChannel, SshError

_LOGGER = logging.getLogger(__name__)


class MappingInProgress(FloorError):
    """Raised when a new floor is being mapped."""

    def __init__(self, pending: PendingNewFloor) -> None:
        super().__init__(
            f'New floor "{pending.name}" is being mapped, wait for it to be saved first'
        )
        self.pending = pending


class SwitchInProgress(FloorError):
    """Raised when another floor switch is still running."""

    def __init__(self, floor_id: str) -> None:
        super().__init__(f'A switch to floor "{floor_id}" is already running')
        self.floor_id = floor_id


class NoSavedMap(FloorError):
    """Raised when the switch target has no usable backup."""

    def __init__(self, floor_id: str, floor_name: str) -> None:
        super().__init__(
            f'No saved map found for floor "{floor_name}". Take the robot there '
            "and save it as a new floor."
        )
        self.floor_id = floor_id
        self.floor_name = floor_name


class RebootTimeout(FloorError):
    """Raised when the robot does not come back after a reboot."""

    def __init__(self, waited: float) -> None:
        super().__init__(f"Robot did not come back online within {waited:.0f}s after reboot")
        self.waited = waited


@dataclass(frozen=True)
class FloorSwitch:
    """Slot holder for a running switch."""

    floor_id: str


@dataclass(frozen=True)
class FloorSave:
    """Slot holder for a running save of the live map."""

    name: str


class WorkflowSlot:
    """Holds the one workflow allowed to run against a robot's map files.

    Acquire is check-and-set with no await in between, so on a single
    event loop it cannot race. Conflicts are rejected, never queued.
    """

    def __init__(self) -> None:
        self._holder: PendingNewFloor | FloorSwitch | object | None = None

    @property
    def holder(self) -> PendingNewFloor | FloorSwitch | object | None:
        return self._holder

    @property
    def busy(self) -> bool:
        return self._holder is not None

    @property
    def pending_floor(self) -> PendingNewFloor | None:
        if isinstance(self._holder, PendingNewFloor):
            return self._holder
        return None

    def check(self) -> None:
        """Raise if any workflow currently holds the slot."""
        holder = self._holder
        if isinstance(holder, PendingNewFloor):
            raise MappingInProgress(holder)
        if isinstance(holder, FloorSwitch):
            raise SwitchInProgress(holder.floor_id)
        if isinstance(holder, FloorSave):
            raise FloorError(f'Floor "{holder.name}" is being saved')
        if holder is not None:
            raise FloorError("Another floor operation is running")

    def acquire(self, holder: PendingNewFloor | FloorSwitch | object) -> None:
        self.check()
        self._holder = holder

    def replace(self, old: object, new: object) -> None:
        if self._holder is not old:
            raise FloorError("Workflow slot is held by another operation")
        self._holder = new

    def release(self, holder: object) -> None:
        if self._holder is holder:
            self._holder = None


class FloorManager:
    """Floor switch orchestrator for one robot."""

    def __init__(
        self,
        ssh: SshChannel,
        device: ValetudoDevice,
        registry: FloorRegistry,
        storage: MapStorage,
        slot: WorkflowSlot | None = None,
        stop_settle_delay: float = STOP_SETTLE_DELAY,
        reboot_poll_interval: float = REBOOT_POLL_INTERVAL,
        reboot_max_attempts: int = REBOOT_MAX_POLL_ATTEMPTS,
    ) -> None:
        self._ssh = ssh
        self._device = device
        self._registry = registry
        self._storage = storage
        self.slot = slot or WorkflowSlot()
        self.stop_settle_delay = stop_settle_delay
        self.reboot_poll_interval = reboot_poll_interval
        self.reboot_max_attempts = reboot_max_attempts

    async def switch_floor(self, floor_id: str) -> Floor:
        """Swap the robot onto another floor's map.

        Backs up the current floor, restores the target's files, patches the
        firmware config, reboots, and waits for the robot to return. The
        registry only points at the new floor once the robot is back.

        Raises:
            MappingInProgress / SwitchInProgress: Another workflow is running.
            NotFound: Unknown floor id.
            NoSavedMap: Target has no backup and none could be recovered.
            RebootTimeout: Robot did not come back after the reboot.
            SshError: A file operation on the target's map failed.
        """
        self.slot.check()
        floor = self._registry.require(floor_id)

        if self._registry.active_floor == floor_id:
            _LOGGER.info('Already on floor "%s"', floor.name)
            return floor

        token = FloorSwitch(floor_id)
        self.slot.acquire(token)
        try:
            return await self._switch(floor)
        finally:
            self.slot.release(token)

    async def _switch(self, floor: Floor) -> Floor:
        current = self._registry.active_floor
        _LOGGER.info('Switching to floor "%s"...', floor.name)

        await self._backup_current(current)

        if not await self._storage.is_floor_saved(floor.id):
            _LOGGER.info('No backup for "%s", searching for a recoverable map', floor.name)
            if not await self.recover_floor_backup(floor.id):
                raise NoSavedMap(floor.id, floor.name)

        await self._stop_if_cleaning()
        await self._backup_current(current)

        _LOGGER.info("Removing conflicting files...")
        await self._storage.clear_conflict_files()
        await self._storage.clear_live_map()

        _LOGGER.info('Restoring floor "%s" map files...', floor.name)
        restored = await self._storage.restore_floor(floor.id)
        _LOGGER.debug("Restored %s", ", ".join(restored))

        await self._patch_recover_flag()

        _LOGGER.info("Rebooting robot...")
        await self._ssh.reboot()
        await self.wait_for_online()

        await self._registry.set_active(floor.id)
        _LOGGER.info('Switched to floor "%s" successfully', floor.name)
        return floor

    async def _backup_current(self, current: str | None) -> None:
        """Refresh the current floor's backup; a stale backup is still usable."""
        if not current or self._registry.get(current) is None:
            return
        _LOGGER.info("Backing up current floor map...")
        try:
            await self._storage.backup_current_map_as(current)
        except (FloorError, SshError) as err:
            _LOGGER.warning('Failed to back up current floor "%s": %s', current, err)

    async def recover_floor_backup(self, floor_id: str) -> bool:
        """Rebuild a missing backup from the first verified candidate.

        Tries unclaimed floor directories, firmware multi-map slots, then
        alternate primary filenames, in that order.
        """
        claimed = self._registry.floor_ids - {floor_id}
        for kind, path in await self._storage.recovery_candidates(floor_id, claimed):
            _LOGGER.info('Trying to recover floor "%s" from %s', floor_id, path)
            try:
                if kind == "file":
                    ok = await self._storage.adopt_primary_file(path, floor_id)
                else:
                    ok = await self._storage.adopt_directory(path, floor_id)
            except SshError as err:
                _LOGGER.warning("Recovery from %s failed: %s", path, err)
                continue
            if ok:
                _LOGGER.info('Recovered floor "%s" map from %s', floor_id, path)
                return True
        _LOGGER.warning('No recoverable map found for floor "%s"', floor_id)
        return False

    async def _stop_if_cleaning(self) -> None:
        try:
            status = await self._device.get_status()
            if status == RobotStatus.CLEANING:
                _LOGGER.info("Robot is cleaning, stopping first...")
                await self._device.stop()
                await asyncio.sleep(self.stop_settle_delay)
        except (ValetudoApiError, ValetudoMqttError) as err:
            _LOGGER.warning("Could not check/stop cleaning state: %s", err)

    async def _patch_recover_flag(self) -> None:
        _LOGGER.info("Patching RoboController.cfg...")
        try:
            await self._storage.patch_config(RECOVER_MAP_KEY, 0)
        except SshError as err:
            _LOGGER.warning("Failed to patch RoboController.cfg: %s", err)

    async def wait_for_online(self) -> None:
        """Poll reachability after a reboot.

        Raises:
            RebootTimeout: If the robot never answers within the attempt budget.
        """
        _LOGGER.info("Waiting for robot to come back online...")
        for attempt in range(1, self.reboot_max_attempts + 1):
            await asyncio.sleep(self.reboot_poll_interval)
            if await self._device.is_reachable():
                _LOGGER.info("Robot is back online after %d poll(s)", attempt)
                return
            _LOGGER.debug("Robot not reachable yet (poll %d)", attempt)
        raise RebootTimeout(self.reboot_poll_interval * self.reboot_max_attempts)
