"""Mapping a brand-new floor and saving it once firmware finishes the map."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .api import ValetudoApiError
from .const import (
    CAPABILITY_MAPPING_PASS,
    DEFAULT_FIRST_FLOOR_NAME,
    LAYER_TYPE_SEGMENT,
    SEGMENT_MAP_KEY,
    SEGMENT_POLL_INTERVAL,
    SEGMENT_TRIGGER_AFTER,
    SEGMENT_WAIT_TIMEOUT,
    SEGMENTATION_QUIRK_ID,
    SEGMENTATION_QUIRK_VALUE,
    CapabilitySupport,
    RobotStatus,
)
from .device import ValetudoDevice
from .floors import FloorManager, WorkflowSlot
from .maps import MapStorage
from .models import Floor, PendingNewFloor, slugify_floor_name
from .mqtt import ValetudoMqttError
from .registry import DuplicateFloor, FloorError, FloorRegistry, InvalidName
from .ssh import SshChannel, SshError

_LOGGER = logging.getLogger(__name__)


@dataclass
class AutoSaveResult:
    """Outcome of saving a freshly mapped floor."""

    floor: Floor
    segments_found: bool
    segmentation_triggered: bool
    polls: int
    warnings: list[str] = field(default_factory=list)


class _Starting:
    """Slot holder while a new floor is being set up."""


class NewFloorMapper:
    """Drives reset → mapping run → segment wait → auto-save for a new floor."""

    def __init__(
        self,
        ssh: SshChannel,
        device: ValetudoDevice,
        registry: FloorRegistry,
        storage: MapStorage,
        floors: FloorManager,
        slot: WorkflowSlot | None = None,
        poll_interval: float = SEGMENT_POLL_INTERVAL,
        segment_wait_timeout: float = SEGMENT_WAIT_TIMEOUT,
        trigger_after: float = SEGMENT_TRIGGER_AFTER,
        segmentation_quirk_id: str = SEGMENTATION_QUIRK_ID,
    ) -> None:
        self._ssh = ssh
        self._device = device
        self._registry = registry
        self._storage = storage
        self._floors = floors
        self.slot = slot or floors.slot
        self.poll_interval = poll_interval
        self.segment_wait_timeout = segment_wait_timeout
        self.trigger_after = trigger_after
        self.segmentation_quirk_id = segmentation_quirk_id

        self._previous_status: RobotStatus | None = None
        self._saving = False
        self.last_result: AutoSaveResult | None = None

    @property
    def pending(self) -> PendingNewFloor | None:
        return self.slot.pending_floor

    @property
    def saving(self) -> bool:
        return self._saving

    def next_floor_name(self) -> str:
        """First 'Floor N' whose id is not taken yet."""
        taken = self._registry.floor_ids
        number = len(taken) + 1
        while slugify_floor_name(f"Floor {number}") in taken:
            number += 1
        return f"Floor {number}"

    # --- Starting a new floor ---

    async def begin_new_floor(self, has_dock: bool = True, name: str | None = None) -> PendingNewFloor:
        """Back up the current map, register the new floor and start mapping.

        On any failure before the mapping run starts nothing stays pending
        and the store-only floor entry is withdrawn.

        Raises:
            MappingInProgress / SwitchInProgress: Another workflow is running.
            InvalidName / DuplicateFloor: The new floor cannot be registered.
            FloorError / SshError: The current map could not be backed up.
            ValetudoApiError: The robot refused to reset or start mapping.
        """
        starting = _Starting()
        self.slot.acquire(starting)
        created_id: str | None = None
        try:
            if not self._registry.floors:
                _LOGGER.info('No floors exist yet, saving current map as "%s" first', DEFAULT_FIRST_FLOOR_NAME)
                await self._storage.register_and_backup(DEFAULT_FIRST_FLOOR_NAME, has_dock)
            elif self._registry.active_floor:
                active = self._registry.active_floor
                _LOGGER.info('Backing up current floor "%s" before creating new floor', active)
                await self._storage.backup_current_map_as(active)

            name = name or self.next_floor_name()
            floor_id = slugify_floor_name(name)
            if not floor_id:
                raise InvalidName(name)
            if self._registry.get(floor_id) is not None:
                raise DuplicateFloor(floor_id)

            _LOGGER.info('Creating new floor "%s" (dock: %s), then starting new map', name, has_dock)
            await self._registry.add(floor_id, name, has_dock)
            created_id = floor_id

            await self.start_new_map()

            pending = PendingNewFloor(name=name, has_dock=has_dock)
            self.slot.replace(starting, pending)
            self._previous_status = None
            _LOGGER.info('New floor mapping started, will auto-save as "%s"', name)
            return pending
        except BaseException:
            self.slot.release(starting)
            if created_id is not None:
                await self._withdraw(created_id)
            raise

    async def _withdraw(self, floor_id: str) -> None:
        try:
            await self._registry.remove(floor_id)
        except Exception:
            _LOGGER.exception('Could not withdraw floor entry "%s"', floor_id)

    async def start_new_map(self) -> None:
        """Reset the live map and start a mapping run (plain clean as fallback)."""
        await self._device.reset_map()
        self._device.clear_segments()

        support = await self._device.supports_mapping_pass()
        if support == CapabilitySupport.UNSUPPORTED:
            _LOGGER.info("Mapping pass not supported, starting a regular clean")
            await self._device.start()
            return
        try:
            await self._device.start_mapping_pass()
        except ValetudoApiError as err:
            if support == CapabilitySupport.SUPPORTED:
                raise
            _LOGGER.info("Mapping pass failed (%s), starting a regular clean", err)
            self._device.mark_unsupported(CAPABILITY_MAPPING_PASS)
            await self._device.start()

    # --- Status events ---

    async def handle_status(self, status: RobotStatus) -> AutoSaveResult | None:
        """Feed a status observation; auto-saves when a mapping run ends.

        Returns the auto-save result when this call performed it.
        """
        previous = self._previous_status
        self._previous_status = status
        if previous is None or previous == status or self.pending is None:
            return None
        if previous.is_active and status.is_terminal:
            return await self.auto_save()
        return None

    async def auto_save(self) -> AutoSaveResult | None:
        """Wait for firmware to segment the new map, then save it.

        Returns None when there is nothing to save or a save is already
        running. The pending floor is cleared whether the save succeeds
        or fails; a failed save re-raises.
        """
        pending = self.pending
        if pending is None or self._saving:
            return None
        self._saving = True
        try:
            return await self._auto_save(pending)
        finally:
            self._saving = False

    async def _auto_save(self, pending: PendingNewFloor) -> AutoSaveResult | None:
        _LOGGER.info(
            'Mapping run finished, waiting for firmware to finalize map before saving "%s"',
            pending.name,
        )
        max_polls = max(1, round(self.segment_wait_timeout / self.poll_interval))
        trigger_poll = max(1, round(self.trigger_after / self.poll_interval))
        segments_found = False
        triggered = False
        polls = 0

        while polls < max_polls:
            await asyncio.sleep(self.poll_interval)
            polls += 1

            if self.pending is not pending:
                _LOGGER.info("Segment wait aborted, pending floor was cleared")
                return None

            if not triggered and polls >= trigger_poll:
                triggered = True
                _LOGGER.info("No segments after initial wait, triggering manual segmentation...")
                try:
                    await self.trigger_segmentation()
                except (FloorError, SshError, ValetudoApiError) as err:
                    _LOGGER.warning("Manual segmentation trigger failed: %s", err)

            try:
                layers = await self._device.get_map_layers()
            except (ValetudoApiError, ValetudoMqttError) as err:
                _LOGGER.debug("Map poll failed during segment wait: %s", err)
                continue
            if any(layer.type == LAYER_TYPE_SEGMENT for layer in layers):
                _LOGGER.info(
                    "Segments found in map after %.0fs, map is finalized",
                    polls * self.poll_interval,
                )
                segments_found = True
                break
            _LOGGER.debug("No segments in map yet (poll %d/%d)", polls, max_polls)

        warnings = []
        if not segments_found:
            warning = (
                f"Timed out waiting for segments after {self.segment_wait_timeout:.0f}s, "
                f'saving "{pending.name}" without segments'
            )
            _LOGGER.warning(warning)
            warnings.append(warning)

        try:
            floor = await self._storage.register_and_backup(pending.name, pending.has_dock)
        except Exception as err:
            _LOGGER.warning('Auto-save of "%s" failed: %s', pending.name, err)
            raise
        finally:
            self.slot.release(pending)

        _LOGGER.info('Auto-saved new floor "%s" successfully', pending.name)
        self.last_result = AutoSaveResult(
            floor=floor,
            segments_found=segments_found,
            segmentation_triggered=triggered,
            polls=polls,
            warnings=warnings,
        )
        return self.last_result

    def cancel_pending(self) -> PendingNewFloor | None:
        """Drop the pending floor; a running segment wait aborts on its next poll."""
        pending = self.pending
        if pending is not None:
            self.slot.release(pending)
            _LOGGER.info('Pending new floor "%s" cleared', pending.name)
        return pending

    # --- Manual segmentation ---

    async def trigger_segmentation(self) -> str:
        """Ask firmware to segment the current map. Best effort.

        Uses the segmentation quirk when the firmware might have it,
        otherwise sets the firmware's segment flag and reboots. Returns
        "quirk" or "reboot".
        """
        quirk_id = self.segmentation_quirk_id
        support = await self._device.supports_quirk(quirk_id)
        if support != CapabilitySupport.UNSUPPORTED:
            try:
                await self._device.trigger_segmentation_quirk(quirk_id, SEGMENTATION_QUIRK_VALUE)
                _LOGGER.info("Segmentation triggered via firmware quirk")
                return "quirk"
            except ValetudoApiError as err:
                if support == CapabilitySupport.SUPPORTED:
                    raise
                _LOGGER.info("Segmentation quirk not available (%s), using config flag", err)
                self._device.mark_quirk_unsupported(quirk_id)

        if not await self._storage.patch_config(SEGMENT_MAP_KEY, 1):
            raise FloorError(f"Firmware config has no {SEGMENT_MAP_KEY} flag")
        await self._ssh.reboot()
        await self._floors.wait_for_online()
        _LOGGER.info("Segmentation requested via config flag and reboot")
        return "reboot"
