"""Shared fakes and fixtures for valetudo_client tests."""

from __future__ import annotations

from typing import Any

import pytest

from valetudo_client.api import ValetudoApiError
from valetudo_client.const import (
    API_MAP,
    FLOORS_DIR,
    MAP_BASE,
    MAP_FILES,
    ROBO_CONFIG,
    CapabilitySupport,
    RobotStatus,
)
from valetudo_client.controller import FloorController
from valetudo_client.models import MapData, MapLayer
from valetudo_client.ssh import ChannelUnavailable, ExecError

ROBO_CONFIG_TEXT = "need_recover_map=1\nneed_segment_map=0\nmap_upload=1\n"

# Workflow timings small enough that tests finish instantly
FAST_FLOOR_OPTIONS = {
    "stop_settle_delay": 0,
    "reboot_poll_interval": 0,
    "reboot_max_attempts": 3,
}
FAST_MAPPER_OPTIONS = {
    "poll_interval": 0.001,
    "segment_wait_timeout": 0.01,  # 10 polls
    "trigger_after": 0.003,  # trigger on poll 3
}


def live_map(tag: str = "live") -> dict[str, bytes]:
    """A full map file set in the live slot, contents tagged for tracing."""
    return {f"{MAP_BASE}/{name}": f"{tag}:{name}".encode() for name in MAP_FILES}


def floor_backup(floor_id: str, tag: str | None = None) -> dict[str, bytes]:
    tag = tag or floor_id
    return {f"{FLOORS_DIR}/{floor_id}/{name}": f"{tag}:{name}".encode() for name in MAP_FILES}


def segment_layer(segment_id: str = "1", name: str = "Kitchen") -> MapLayer:
    return MapLayer(type="segment", segment_id=segment_id, name=name)


FLOOR_LAYER = MapLayer(type="floor")


class FakeSsh:
    """In-memory robot filesystem with the SshChannel surface."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.dirs: set[str] = set()
        self.calls: list[tuple[str, ...]] = []
        self.reboots = 0
        self.unreachable = False
        self.fail_copy_to: set[str] = set()
        self.fail_copy_from: set[str] = set()
        self.drop_copy_to: set[str] = set()

    def _check(self) -> None:
        if self.unreachable:
            raise ChannelUnavailable("robot", 22, "timed out")

    @property
    def mutations(self) -> list[tuple[str, ...]]:
        """Calls that changed robot state."""
        reads = {"exists", "list", "read"}
        return [call for call in self.calls if call[0] not in reads]

    def files_under(self, directory: str) -> dict[str, bytes]:
        prefix = directory.rstrip("/") + "/"
        return {
            path[len(prefix):]: data
            for path, data in self.files.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        }

    async def exec(self, command: str) -> str:
        self._check()
        self.calls.append(("exec", command))
        return ""

    async def file_exists(self, path: str) -> bool:
        self._check()
        self.calls.append(("exists", path))
        return path in self.files or path in self.dirs

    async def copy_file(self, src: str, dst: str) -> None:
        self._check()
        self.calls.append(("copy", src, dst))
        if src not in self.files:
            raise ExecError(f"cp {src} {dst}", 1, "No such file or directory")
        if dst in self.fail_copy_to or src in self.fail_copy_from:
            raise ExecError(f"cp {src} {dst}", 1, "No space left on device")
        if dst in self.drop_copy_to:
            return
        self.files[dst] = self.files[src]

    async def remove_file(self, path: str) -> None:
        self._check()
        self.calls.append(("rm", path))
        self.files.pop(path, None)

    async def remove_tree(self, path: str) -> None:
        self._check()
        self.calls.append(("rmtree", path))
        prefix = path.rstrip("/") + "/"
        self.files = {p: d for p, d in self.files.items() if not p.startswith(prefix)}
        self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}

    async def make_dirs(self, path: str) -> None:
        self._check()
        self.calls.append(("mkdir", path))
        self.dirs.add(path)

    async def list_dir(self, path: str) -> list[str]:
        self._check()
        self.calls.append(("list", path))
        prefix = path.rstrip("/") + "/"
        names = {
            entry[len(prefix):].split("/", 1)[0]
            for entry in list(self.files) + list(self.dirs)
            if entry.startswith(prefix)
        }
        return sorted(names)

    async def read_text(self, path: str) -> str:
        self._check()
        self.calls.append(("read", path))
        if path not in self.files:
            raise ExecError(f"cat {path}", 1, "No such file or directory")
        return self.files[path].decode()

    async def write_file(self, path: str, data: bytes | str) -> None:
        self._check()
        self.calls.append(("write", path))
        self.files[path] = data.encode() if isinstance(data, str) else data

    async def reboot(self) -> None:
        self._check()
        self.calls.append(("reboot",))
        self.reboots += 1

    async def disconnect(self) -> None:
        self.calls.append(("disconnect",))


class FakeDevice:
    """Scripted robot control surface with the ValetudoDevice interface."""

    def __init__(self) -> None:
        self.status = RobotStatus.DOCKED
        self.layers: list[MapLayer] = [FLOOR_LAYER]
        # Each get_map_layers() call takes the next entry while any remain
        self.layer_script: list[list[MapLayer]] = []
        self.map_errors = 0
        self.reachable = True
        self.reachable_script: list[bool] = []
        self.mapping_pass_support = CapabilitySupport.SUPPORTED
        self.mapping_pass_error: Exception | None = None
        self.quirk_support = CapabilitySupport.UNSUPPORTED
        self.quirk_error: Exception | None = None
        self.quirk_ids: list[str] = []
        self.calls: list[str] = []
        self.marked_unsupported: list[str] = []

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def get_status(self) -> RobotStatus:
        self.calls.append("get_status")
        return self.status

    async def get_map(self) -> MapData:
        self.calls.append("get_map")
        raw: dict[str, Any] = {"layers": [{"type": layer.type} for layer in self.layers]}
        return MapData(layers=list(self.layers), pixel_size=5, raw=raw)

    async def get_map_layers(self) -> list[MapLayer]:
        self.calls.append("get_map_layers")
        if self.map_errors > 0:
            self.map_errors -= 1
            raise ValetudoApiError("GET", API_MAP, "timeout")
        if self.layer_script:
            self.layers = self.layer_script.pop(0)
        return list(self.layers)

    async def is_reachable(self) -> bool:
        self.calls.append("is_reachable")
        if self.reachable_script:
            return self.reachable_script.pop(0)
        return self.reachable

    async def start(self) -> None:
        self.calls.append("start")
        self.status = RobotStatus.CLEANING

    async def stop(self) -> None:
        self.calls.append("stop")
        self.status = RobotStatus.IDLE

    async def pause(self) -> None:
        self.calls.append("pause")

    async def return_to_dock(self) -> None:
        self.calls.append("return_to_dock")
        self.status = RobotStatus.RETURNING

    async def reset_map(self) -> None:
        self.calls.append("reset_map")
        self.layers = []

    async def start_mapping_pass(self) -> None:
        self.calls.append("start_mapping_pass")
        if self.mapping_pass_error is not None:
            raise self.mapping_pass_error
        self.status = RobotStatus.CLEANING

    async def trigger_segmentation_quirk(self, quirk_id: str, value: str) -> None:
        self.calls.append("trigger_segmentation_quirk")
        self.quirk_ids.append(quirk_id)
        if self.quirk_error is not None:
            raise self.quirk_error

    def clear_segments(self) -> None:
        self.calls.append("clear_segments")

    async def supports_mapping_pass(self) -> CapabilitySupport:
        return self.mapping_pass_support

    async def supports_quirk(self, quirk_id: str) -> CapabilitySupport:
        return self.quirk_support

    def mark_unsupported(self, capability: str) -> None:
        self.marked_unsupported.append(capability)
        self.mapping_pass_support = CapabilitySupport.UNSUPPORTED

    def mark_quirk_unsupported(self, quirk_id: str) -> None:
        self.marked_unsupported.append(quirk_id)
        self.quirk_support = CapabilitySupport.UNSUPPORTED


class MemoryStore:
    """Registry store kept in memory; records every save."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = data
        self.saves: list[dict[str, Any]] = []
        self.fail_saves = False

    async def async_load(self) -> dict[str, Any] | None:
        return self.data

    async def async_save(self, data: dict[str, Any]) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        self.saves.append(data)
        self.data = data


def two_floor_store(active: str = "ground") -> MemoryStore:
    return MemoryStore(
        {
            "floors": [
                {"id": "ground", "name": "Ground", "has_dock": True},
                {"id": "upstairs", "name": "Upstairs", "has_dock": False},
            ],
            "active_floor": active,
        }
    )


def build_controller(
    ssh: FakeSsh, device: FakeDevice, store: MemoryStore
) -> FloorController:
    return FloorController(
        ssh,  # type: ignore[arg-type]
        device,  # type: ignore[arg-type]
        store,
        floor_options=dict(FAST_FLOOR_OPTIONS),
        mapper_options=dict(FAST_MAPPER_OPTIONS),
    )


@pytest.fixture
def ssh() -> FakeSsh:
    """Robot with a live map and a firmware config, no floor backups."""
    files = live_map()
    files[ROBO_CONFIG] = ROBO_CONFIG_TEXT.encode()
    return FakeSsh(files)


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
