"""Copies map files between the robot's live slot and per-floor backups.

Live slot:      /mnt/data/rockrobo/{last_map, ChargerPos.data, ...}
Floor backup:   /mnt/data/rockrobo/floors/<floor_id>/{same files}

A backup only counts once last_map is confirmed present after the copy;
the registry is touched strictly after that check.
"""

from __future__ import annotations

import logging
import re

from .const import (
    ALTERNATE_MAP_FILES,
    CONFLICT_FILES,
    FLOORS_DIR,
    MAP_BASE,
    MAP_FILES,
    MULTI_MAP_DIR,
    PRIMARY_MAP_FILE,
    ROBO_CONFIG,
)
from .models import Floor, slugify_floor_name
from .registry import FloorError, FloorRegistry, InvalidName
from .ssh import SshChannel

_LOGGER = logging.getLogger(__name__)


class NoMapFilesFound(FloorError):
    """Raised when the live slot held none of the map files."""

    def __init__(self, floor_id: str) -> None:
        super().__init__(f'No map files found on robot, cannot save floor "{floor_id}"')
        self.floor_id = floor_id


class VerificationFailed(FloorError):
    """Raised when last_map is missing from a backup after copying."""

    def __init__(self, floor_id: str, path: str) -> None:
        super().__init__(f'Floor "{floor_id}" save verification failed: {path} not found after copy')
        self.floor_id = floor_id
        self.path = path


def floor_dir(floor_id: str) -> str:
    return f"{FLOORS_DIR}/{floor_id}"


def live_path(file_name: str) -> str:
    return f"{MAP_BASE}/{file_name}"


class MapStorage:
    """Map persistence engine for one robot."""

    def __init__(self, ssh: SshChannel, registry: FloorRegistry) -> None:
        self._ssh = ssh
        self._registry = registry

    # --- Copy primitives ---

    async def _copy_set(self, src_dir: str, dst_dir: str, label: str) -> int:
        """Copy every map file present in src_dir. Returns how many were copied."""
        copied = 0
        for file_name in MAP_FILES:
            src = f"{src_dir}/{file_name}"
            if await self._ssh.file_exists(src):
                await self._ssh.copy_file(src, f"{dst_dir}/{file_name}")
                _LOGGER.debug("  %s %s", label, file_name)
                copied += 1
        return copied

    async def _verify(self, floor_id: str) -> None:
        primary = f"{floor_dir(floor_id)}/{PRIMARY_MAP_FILE}"
        if not await self._ssh.file_exists(primary):
            raise VerificationFailed(floor_id, primary)

    async def _snapshot_live_map(self, floor_id: str) -> None:
        """Copy the live slot into the floor's backup dir and verify it."""
        target = floor_dir(floor_id)
        await self._ssh.make_dirs(target)
        copied = await self._copy_set(MAP_BASE, target, "Saved")
        if copied == 0:
            raise NoMapFilesFound(floor_id)
        await self._verify(floor_id)

    # --- Public operations ---

    async def backup_current_map_as(self, floor_id: str) -> Floor:
        """Save the live map into a registered floor's backup and make it active.

        Raises:
            NotFound: If the floor is not registered.
            NoMapFilesFound: If the live slot had no map files.
            VerificationFailed: If last_map is missing after the copy.
        """
        floor = self._registry.require(floor_id)
        _LOGGER.info('Saving current map as floor "%s" (%s)', floor.name, floor_id)
        await self._snapshot_live_map(floor_id)
        await self._registry.set_active(floor_id)
        _LOGGER.info('Floor "%s" saved successfully', floor.name)
        return floor

    async def register_and_backup(self, name: str, has_dock: bool = True) -> Floor:
        """Save the live map as a (possibly new) named floor.

        The registry entry is created or updated only after the robot-side
        copy has been verified.
        """
        floor_id = slugify_floor_name(name)
        if not floor_id:
            raise InvalidName(name)

        _LOGGER.info('Saving current map as new floor "%s" (%s)', name, floor_id)
        await self._snapshot_live_map(floor_id)
        floor = await self._registry.upsert(floor_id, name, has_dock, activate=True)
        _LOGGER.info('Floor "%s" saved and registered successfully', name)
        return floor

    async def is_floor_saved(self, floor_id: str) -> bool:
        """True if the floor has a usable backup on the robot."""
        return await self._ssh.file_exists(f"{floor_dir(floor_id)}/{PRIMARY_MAP_FILE}")

    async def live_map_exists(self) -> bool:
        return await self._ssh.file_exists(live_path(PRIMARY_MAP_FILE))

    async def clear_conflict_files(self) -> None:
        for file_name in CONFLICT_FILES:
            await self._ssh.remove_file(live_path(file_name))

    async def clear_live_map(self) -> None:
        for file_name in MAP_FILES:
            await self._ssh.remove_file(live_path(file_name))

    async def restore_floor(self, floor_id: str) -> list[str]:
        """Copy a floor's backup into the live slot.

        Files missing from the backup are skipped. Returns the restored names.
        """
        source = floor_dir(floor_id)
        restored = []
        for file_name in MAP_FILES:
            src = f"{source}/{file_name}"
            if await self._ssh.file_exists(src):
                await self._ssh.copy_file(src, live_path(file_name))
                _LOGGER.debug("  Restored %s", file_name)
                restored.append(file_name)
        return restored

    async def remove_backup(self, floor_id: str) -> None:
        await self._ssh.remove_tree(floor_dir(floor_id))

    async def patch_config(self, key: str, value: int) -> bool:
        """Set `key=<value>` in RoboController.cfg. Returns False if the key is absent."""
        cfg = await self._ssh.read_text(ROBO_CONFIG)
        patched, count = re.subn(rf"{re.escape(key)}=\d+", f"{key}={value}", cfg)
        if count == 0:
            _LOGGER.debug("%s not present in %s", key, ROBO_CONFIG)
            return False
        if patched != cfg:
            await self._ssh.write_file(ROBO_CONFIG, patched)
        return True

    # --- Recovery candidates ---

    async def list_backup_dirs(self) -> list[str]:
        return sorted(await self._ssh.list_dir(FLOORS_DIR))

    async def list_firmware_slots(self) -> list[str]:
        return sorted(await self._ssh.list_dir(MULTI_MAP_DIR))

    async def adopt_directory(self, src_dir: str, floor_id: str) -> bool:
        """Copy another map file set into the floor's backup and verify it."""
        target = floor_dir(floor_id)
        await self._ssh.make_dirs(target)
        if await self._copy_set(src_dir, target, "Adopted") == 0:
            return False
        return await self.is_floor_saved(floor_id)

    async def adopt_primary_file(self, path: str, floor_id: str) -> bool:
        """Copy a stray primary map file into the floor's backup as last_map."""
        target = floor_dir(floor_id)
        await self._ssh.make_dirs(target)
        await self._ssh.copy_file(path, f"{target}/{PRIMARY_MAP_FILE}")
        return await self.is_floor_saved(floor_id)

    async def recovery_candidates(self, floor_id: str, claimed: set[str]) -> list[tuple[str, str]]:
        """Places a lost backup might be found, in the order they are tried.

        Returns (kind, path) pairs: unclaimed floor dirs, then firmware
        multi-map slots, then alternate primary filenames in the live slot.
        Directory names are assumed to equal floor ids.
        """
        candidates: list[tuple[str, str]] = []
        for name in await self.list_backup_dirs():
            if name == floor_id or name in claimed:
                continue
            if await self._ssh.file_exists(f"{floor_dir(name)}/{PRIMARY_MAP_FILE}"):
                candidates.append(("directory", floor_dir(name)))
        for slot in await self.list_firmware_slots():
            slot_dir = f"{MULTI_MAP_DIR}/{slot}"
            if await self._ssh.file_exists(f"{slot_dir}/{PRIMARY_MAP_FILE}"):
                candidates.append(("directory", slot_dir))
        for file_name in ALTERNATE_MAP_FILES:
            if await self._ssh.file_exists(live_path(file_name)):
                candidates.append(("file", live_path(file_name)))
        return candidates
