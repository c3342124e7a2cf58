"""Tests for valetudo_client.floors: floor switching and the workflow slot."""

from __future__ import annotations

import asyncio

import aiomqtt
import pytest

from conftest import (
    ROBO_CONFIG_TEXT,
    FakeDevice,
    FakeSsh,
    build_controller,
    floor_backup,
    live_map,
    two_floor_store,
)
from valetudo_client.const import FLOORS_DIR, MAP_BASE, MULTI_MAP_DIR, ROBO_CONFIG, RobotStatus
from valetudo_client.device import ValetudoDevice
from valetudo_client.floors import (
    FloorSwitch,
    MappingInProgress,
    NoSavedMap,
    RebootTimeout,
    SwitchInProgress,
    WorkflowSlot,
)
from valetudo_client.models import PendingNewFloor
from valetudo_client.mqtt import ValetudoMqtt
from valetudo_client.registry import FloorError, NotFound


def _robot(*extra: dict[str, bytes]) -> FakeSsh:
    files = live_map("ground")
    files[ROBO_CONFIG] = ROBO_CONFIG_TEXT.encode()
    for chunk in extra:
        files.update(chunk)
    return FakeSsh(files)


class TestWorkflowSlot:
    """Tests for the single workflow holder."""

    def test_acquire_release(self) -> None:
        slot = WorkflowSlot()
        token = FloorSwitch("ground")
        slot.acquire(token)
        assert slot.busy
        slot.release(token)
        assert not slot.busy

    def test_conflicts_rejected(self) -> None:
        slot = WorkflowSlot()
        slot.acquire(FloorSwitch("ground"))
        with pytest.raises(SwitchInProgress):
            slot.acquire(FloorSwitch("upstairs"))

    def test_pending_floor(self) -> None:
        slot = WorkflowSlot()
        pending = PendingNewFloor("Attic")
        slot.acquire(pending)
        assert slot.pending_floor is pending
        with pytest.raises(MappingInProgress):
            slot.check()

    def test_release_by_other_holder_ignored(self) -> None:
        slot = WorkflowSlot()
        token = FloorSwitch("ground")
        slot.acquire(token)
        slot.release(FloorSwitch("ground"))
        assert slot.holder is token

    def test_replace_requires_current_holder(self) -> None:
        slot = WorkflowSlot()
        slot.acquire(FloorSwitch("ground"))
        with pytest.raises(FloorError):
            slot.replace(object(), PendingNewFloor("Attic"))


class TestSwitchGuards:
    """Switch requests that must not touch the robot."""

    def test_switch_to_active_is_noop(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("ground"), floor_backup("upstairs"))
        controller = build_controller(ssh, device, two_floor_store())

        async def run():
            await controller.async_setup()
            return await controller.floors.switch_floor("ground")

        floor = asyncio.run(run())
        assert floor.id == "ground"
        assert ssh.calls == []
        assert device.calls == []

    def test_unknown_floor(self, device: FakeDevice) -> None:
        ssh = _robot()
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("attic")

        with pytest.raises(NotFound):
            asyncio.run(run())
        assert ssh.calls == []
        assert not controller.slot.busy

    def test_pending_new_floor_blocks_switch(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("upstairs"))
        controller = build_controller(ssh, device, two_floor_store())
        controller.slot.acquire(PendingNewFloor("Attic"))

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("upstairs")

        with pytest.raises(MappingInProgress):
            asyncio.run(run())
        assert ssh.calls == []
        assert controller.registry.active_floor == "ground"


class TestSwitch:
    """Tests for the full switch sequence."""

    def test_switch_restores_target(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("upstairs"))
        ssh.files[f"{MAP_BASE}/StartPos.data"] = b"stale"
        store = two_floor_store()
        controller = build_controller(ssh, device, store)

        async def run():
            await controller.async_setup()
            return await controller.floors.switch_floor("upstairs")

        floor = asyncio.run(run())
        assert floor.id == "upstairs"
        assert store.data["active_floor"] == "upstairs"
        # Current floor backed up before its live files were replaced
        assert ssh.files[f"{FLOORS_DIR}/ground/last_map"] == b"ground:last_map"
        assert ssh.files[f"{MAP_BASE}/last_map"] == b"upstairs:last_map"
        assert f"{MAP_BASE}/StartPos.data" not in ssh.files
        assert "need_recover_map=0" in ssh.files[ROBO_CONFIG].decode()
        assert ssh.reboots == 1
        assert not controller.slot.busy

    def test_stops_cleaning_robot(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("upstairs"))
        device.status = RobotStatus.CLEANING
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("upstairs")

        asyncio.run(run())
        assert device.count("stop") == 1

    def test_stop_publish_failure_is_not_fatal(self) -> None:
        class ReachableApi:
            async def is_reachable(self) -> bool:
                return True

        class DroppedClient:
            async def publish(self, topic: str, payload: str) -> None:
                raise aiomqtt.MqttError("Disconnected during message iteration")

        mqtt = ValetudoMqtt(broker="10.0.0.2", identifier="rockrobo")
        mqtt._client = DroppedClient()  # type: ignore[assignment]
        mqtt._connected = True
        mqtt.state.status = RobotStatus.CLEANING
        device = ValetudoDevice(ReachableApi(), mqtt)  # type: ignore[arg-type]
        ssh = _robot(floor_backup("upstairs"))
        controller = build_controller(ssh, device, two_floor_store())  # type: ignore[arg-type]

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("upstairs")

        asyncio.run(run())
        assert controller.registry.active_floor == "upstairs"
        assert ssh.files[f"{MAP_BASE}/last_map"] == b"upstairs:last_map"
        assert ssh.reboots == 1

    def test_backup_failure_is_not_fatal(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("upstairs"))
        ssh.fail_copy_to.add(f"{FLOORS_DIR}/ground/last_map")
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("upstairs")

        asyncio.run(run())
        assert controller.registry.active_floor == "upstairs"

    def test_no_saved_map(self, device: FakeDevice) -> None:
        ssh = _robot()
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("upstairs")

        with pytest.raises(NoSavedMap) as exc:
            asyncio.run(run())
        assert exc.value.floor_name == "Upstairs"
        assert ssh.reboots == 0
        assert ssh.files[f"{MAP_BASE}/last_map"] == b"ground:last_map"
        assert controller.registry.active_floor == "ground"
        assert not controller.slot.busy

    def test_reboot_timeout_keeps_active_floor(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("upstairs"))
        device.reachable = False
        store = two_floor_store()
        controller = build_controller(ssh, device, store)

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("upstairs")

        with pytest.raises(RebootTimeout):
            asyncio.run(run())
        assert device.count("is_reachable") == 3
        assert store.data["active_floor"] == "ground"
        assert not controller.slot.busy

    def test_active_updated_only_after_reachable(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("upstairs"))
        device.reachable_script = [False, False, True]
        controller = build_controller(ssh, device, two_floor_store())
        seen: list[tuple[str | None, int]] = []

        async def run() -> None:
            await controller.async_setup()
            controller.registry.on_change = lambda config: seen.append(
                (config.active_floor, device.count("is_reachable"))
            )
            await controller.floors.switch_floor("upstairs")

        asyncio.run(run())
        assert seen[-1] == ("upstairs", 3)
        assert all(active == "ground" for active, _ in seen[:-1])


class TestRecovery:
    """Tests for rebuilding a missing target backup."""

    def test_scenario_adopts_unclaimed_directory(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("xyz"))
        store = two_floor_store()
        controller = build_controller(ssh, device, store)

        async def run() -> None:
            await controller.async_setup()
            await controller.floors.switch_floor("upstairs")

        asyncio.run(run())
        assert ssh.files[f"{FLOORS_DIR}/upstairs/last_map"] == b"xyz:last_map"
        assert ssh.files[f"{MAP_BASE}/last_map"] == b"xyz:last_map"
        assert store.data["active_floor"] == "upstairs"

    def test_claimed_directory_not_adopted(self, device: FakeDevice) -> None:
        ssh = _robot(floor_backup("ground", tag="saved-ground"))
        controller = build_controller(ssh, device, two_floor_store(active="upstairs"))

        async def run() -> bool:
            await controller.async_setup()
            return await controller.floors.recover_floor_backup("attic")

        assert asyncio.run(run()) is False

    def test_firmware_slot_before_alternate_file(self, device: FakeDevice) -> None:
        ssh = _robot(
            {
                f"{MULTI_MAP_DIR}/2/last_map": b"slot2",
                f"{MAP_BASE}/last_map.bak": b"bak",
            }
        )
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> bool:
            await controller.async_setup()
            return await controller.floors.recover_floor_backup("upstairs")

        assert asyncio.run(run()) is True
        assert ssh.files[f"{FLOORS_DIR}/upstairs/last_map"] == b"slot2"

    def test_falls_through_failed_candidate(self, device: FakeDevice) -> None:
        ssh = _robot(
            {
                f"{MULTI_MAP_DIR}/0/last_map": b"slot0",
                f"{MAP_BASE}/last_map.old": b"old",
            }
        )
        ssh.fail_copy_from.add(f"{MULTI_MAP_DIR}/0/last_map")
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> bool:
            await controller.async_setup()
            return await controller.floors.recover_floor_backup("upstairs")

        assert asyncio.run(run()) is True
        assert ssh.files[f"{FLOORS_DIR}/upstairs/last_map"] == b"old"

    def test_alternate_primary_file(self, device: FakeDevice) -> None:
        ssh = _robot({f"{MAP_BASE}/last_map.old": b"old"})
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> bool:
            await controller.async_setup()
            return await controller.floors.recover_floor_backup("upstairs")

        assert asyncio.run(run()) is True
        assert ssh.files[f"{FLOORS_DIR}/upstairs/last_map"] == b"old"
