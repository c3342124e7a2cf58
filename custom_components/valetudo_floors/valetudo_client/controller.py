"""Floor controller: one robot's floor workflows behind a command table."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .api import ValetudoApiError
from .const import DEFAULT_FIRST_FLOOR_NAME, RobotStatus
from .device import ValetudoDevice
from .floors import FloorManager, FloorSave, MappingInProgress, WorkflowSlot
from .maps import MapStorage
from .mapping import AutoSaveResult, NewFloorMapper
from .models import Floor, PendingNewFloor, slugify_floor_name
from .mqtt import ValetudoMqttError
from .registry import FloorError, FloorRegistry, RegistryStore
from .ssh import SshChannel, SshError

_LOGGER = logging.getLogger(__name__)


class ActiveFloorError(FloorError):
    """Raised when deleting the floor the robot is currently on."""

    def __init__(self, floor_id: str) -> None:
        super().__init__(f'Cannot delete active floor "{floor_id}", switch to another floor first')
        self.floor_id = floor_id


class UnknownCommand(FloorError):
    """Raised for a command name the controller does not handle."""

    def __init__(self, command: str) -> None:
        super().__init__(f"Unknown command: {command}")
        self.command = command


class MapSnapshotCache:
    """Last map payload seen per floor, for showing floors not on the robot."""

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, Any]] = {}

    def get(self, floor_id: str) -> dict[str, Any] | None:
        return self._snapshots.get(floor_id)

    def put(self, floor_id: str, snapshot: dict[str, Any]) -> None:
        self._snapshots[floor_id] = snapshot

    def drop(self, floor_id: str) -> None:
        self._snapshots.pop(floor_id, None)

    def __contains__(self, floor_id: object) -> bool:
        return floor_id in self._snapshots


class FloorController:
    """Everything needed to manage one robot's floors.

    Wires the channel, device, registry, persistence engine and both
    workflows together, and exposes them as named commands.
    """

    def __init__(
        self,
        ssh: SshChannel,
        device: ValetudoDevice,
        store: RegistryStore,
        floor_options: dict[str, Any] | None = None,
        mapper_options: dict[str, Any] | None = None,
    ) -> None:
        self.ssh = ssh
        self.device = device
        self.registry = FloorRegistry(store)
        self.storage = MapStorage(ssh, self.registry)
        self.slot = WorkflowSlot()
        self.floors = FloorManager(
            ssh, device, self.registry, self.storage, slot=self.slot, **(floor_options or {})
        )
        self.mapper = NewFloorMapper(
            ssh,
            device,
            self.registry,
            self.storage,
            self.floors,
            slot=self.slot,
            **(mapper_options or {}),
        )
        self.snapshots = MapSnapshotCache()
        self.on_auto_save: Callable[[AutoSaveResult], None] | None = None
        self.on_auto_save_error: Callable[[str], None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

        self._commands: dict[str, Callable[..., Awaitable[Any]]] = {
            "switch_floor": self.switch_floor,
            "save_floor": self.save_floor,
            "rename_floor": self.rename_floor,
            "delete_floor": self.delete_floor,
            "set_floor_dock": self.set_floor_dock,
            "new_floor": self.new_floor,
            "list_floors": self.list_floors,
            "get_map_snapshot": self.get_map_snapshot,
            "start_cleaning": self.start_cleaning,
            "return_to_dock": self.return_to_dock,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    @property
    def pending(self) -> PendingNewFloor | None:
        return self.mapper.pending

    @property
    def mapping(self) -> bool:
        return self.mapper.pending is not None

    async def dispatch(self, command: str, **params: Any) -> Any:
        """Run a named command.

        Raises:
            UnknownCommand: If no handler is registered under that name.
        """
        handler = self._commands.get(command)
        if handler is None:
            raise UnknownCommand(command)
        _LOGGER.debug("Dispatching %s(%s)", command, params)
        return await handler(**params)

    # --- Lifecycle ---

    async def async_setup(self) -> None:
        """Load the registry; bootstrap the first floor when none exist."""
        await self.registry.async_load()
        if self.registry.floors:
            return

        floor_id = slugify_floor_name(DEFAULT_FIRST_FLOOR_NAME)
        _LOGGER.info('No floors configured, registering "%s" as active', DEFAULT_FIRST_FLOOR_NAME)
        await self.registry.upsert(floor_id, DEFAULT_FIRST_FLOOR_NAME, True, activate=True)
        try:
            await self.storage.backup_current_map_as(floor_id)
        except (FloorError, SshError) as err:
            _LOGGER.warning('Initial backup of "%s" failed: %s', DEFAULT_FIRST_FLOOR_NAME, err)

    async def async_preserve_backup(self) -> bool:
        """Back up the live map if the active floor has none yet.

        Called whenever the robot becomes reachable. Returns True when a
        backup was written.
        """
        active = self.registry.active_floor
        if not active or self.slot.busy:
            return False
        try:
            if await self.storage.is_floor_saved(active):
                return False
            if not await self.storage.live_map_exists():
                return False
            _LOGGER.info('Active floor "%s" has no backup yet, preserving live map', active)
            await self.storage.backup_current_map_as(active)
        except (FloorError, SshError) as err:
            _LOGGER.warning('Could not preserve map backup for "%s": %s', active, err)
            return False
        return True

    async def async_shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.ssh.disconnect()

    # --- Status events ---

    def on_status(self, status: RobotStatus) -> None:
        """Status callback for the event stream; never blocks the caller."""
        task = asyncio.get_running_loop().create_task(self._handle_status(status))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle_status(self, status: RobotStatus) -> AutoSaveResult | None:
        try:
            result = await self.mapper.handle_status(status)
        except (FloorError, SshError) as err:
            _LOGGER.warning("Auto-save failed: %s", err)
            self._report_auto_save_error(err)
            return None
        except Exception as err:
            _LOGGER.exception("Unexpected error handling status %s", status)
            self._report_auto_save_error(err)
            return None
        if result is not None:
            await self._snapshot_active()
            if self.on_auto_save:
                self.on_auto_save(result)
        return result

    def _report_auto_save_error(self, err: Exception) -> None:
        if self.on_auto_save_error:
            self.on_auto_save_error(f"Auto-save failed: {err}")

    # --- Snapshots ---

    async def _snapshot_active(self) -> None:
        """Cache the live map under the active floor. Best effort."""
        active = self.registry.active_floor
        if not active:
            return
        try:
            map_data = await self.device.get_map()
        except (ValetudoApiError, ValetudoMqttError) as err:
            _LOGGER.debug("Could not snapshot map for %s: %s", active, err)
            return
        if map_data.raw:
            self.snapshots.put(active, map_data.raw)

    # --- Commands ---

    async def switch_floor(self, floor_id: str) -> Floor:
        await self._snapshot_active()
        floor = await self.floors.switch_floor(floor_id)
        self.device.clear_segments()
        await self._snapshot_active()
        return floor

    async def save_floor(self, name: str, has_dock: bool = True) -> Floor:
        """Save the robot's current map as a named floor."""
        token = FloorSave(name)
        self.slot.acquire(token)
        try:
            floor = await self.storage.register_and_backup(name, has_dock)
        finally:
            self.slot.release(token)
        await self._snapshot_active()
        return floor

    async def rename_floor(self, floor_id: str, name: str) -> Floor:
        floor = await self.registry.rename(floor_id, name)
        _LOGGER.info('Renamed floor "%s" to "%s"', floor_id, name)
        return floor

    async def delete_floor(self, floor_id: str) -> None:
        """Forget a floor and remove its backup from the robot.

        Raises:
            ActiveFloorError: If the robot is currently on that floor.
            NotFound: Unknown floor id.
        """
        self.registry.require(floor_id)
        if self.registry.active_floor == floor_id:
            raise ActiveFloorError(floor_id)
        await self.registry.remove(floor_id)
        self.snapshots.drop(floor_id)
        try:
            await self.storage.remove_backup(floor_id)
        except SshError as err:
            _LOGGER.warning('Failed to remove backup of "%s": %s', floor_id, err)
        _LOGGER.info('Deleted floor "%s"', floor_id)

    async def set_floor_dock(self, floor_id: str, has_dock: bool) -> Floor:
        return await self.registry.set_dock(floor_id, has_dock)

    async def new_floor(self, has_dock: bool = True, name: str | None = None) -> PendingNewFloor:
        return await self.mapper.begin_new_floor(has_dock=has_dock, name=name)

    async def list_floors(self) -> dict[str, Any]:
        return {
            "floors": [floor.as_dict() for floor in self.registry.floors],
            "active_floor": self.registry.active_floor,
            "mapping": self.mapping,
        }

    async def get_map_snapshot(self, floor_id: str) -> dict[str, Any] | None:
        self.registry.require(floor_id)
        return self.snapshots.get(floor_id)

    async def start_cleaning(self) -> None:
        """Start a clean; refused while a new floor is being mapped."""
        pending = self.pending
        if pending is not None:
            raise MappingInProgress(pending)
        await self.device.start()

    async def return_to_dock(self) -> None:
        """Send the robot home, or stop it on floors without a dock."""
        if not self.registry.active_floor_has_dock:
            _LOGGER.info("Active floor has no dock, stopping instead of returning")
            await self.device.stop()
            return
        await self.device.return_to_dock()
