"""Tests for valetudo_client.mapping: new floor mapping and auto-save."""

from __future__ import annotations

import asyncio

import pytest

from conftest import (
    FLOOR_LAYER,
    FAST_MAPPER_OPTIONS,
    FakeDevice,
    FakeSsh,
    MemoryStore,
    build_controller,
    segment_layer,
    two_floor_store,
)
from valetudo_client.api import ValetudoApiError
from valetudo_client.const import (
    CAPABILITY_MAPPING_PASS,
    FLOORS_DIR,
    ROBO_CONFIG,
    CapabilitySupport,
    RobotStatus,
)
from valetudo_client.controller import FloorController
from valetudo_client.floors import MappingInProgress
from valetudo_client.models import PendingNewFloor
from valetudo_client.ssh import SshError


def _error() -> ValetudoApiError:
    return ValetudoApiError("PUT", "/api/v2/robot/capabilities/X", "not found", 404)


class TestBeginNewFloor:
    """Tests for starting a new floor."""

    def test_backs_up_active_and_registers_next_floor(
        self, ssh: FakeSsh, device: FakeDevice
    ) -> None:
        store = two_floor_store()
        controller = build_controller(ssh, device, store)

        async def run() -> PendingNewFloor:
            await controller.async_setup()
            return await controller.mapper.begin_new_floor(has_dock=False)

        pending = asyncio.run(run())
        assert pending == PendingNewFloor("Floor 3", has_dock=False)
        assert controller.pending is pending
        assert ssh.files[f"{FLOORS_DIR}/ground/last_map"] == b"live:last_map"
        assert controller.registry.get("floor_3").has_dock is False
        assert controller.registry.active_floor == "ground"
        assert device.calls[:2] == ["reset_map", "clear_segments"]
        assert device.count("start_mapping_pass") == 1
        assert device.count("start") == 0

    def test_first_floor_saved_before_new_one(self, ssh: FakeSsh, device: FakeDevice) -> None:
        store = MemoryStore()
        controller = build_controller(ssh, device, store)

        async def run() -> PendingNewFloor:
            await controller.registry.async_load()
            return await controller.mapper.begin_new_floor()

        pending = asyncio.run(run())
        assert pending.name == "Floor 2"
        assert [f.id for f in controller.registry.floors] == ["floor_1", "floor_2"]
        assert controller.registry.active_floor == "floor_1"
        assert ssh.files[f"{FLOORS_DIR}/floor_1/last_map"] == b"live:last_map"

    def test_custom_name(self, ssh: FakeSsh, device: FakeDevice) -> None:
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> PendingNewFloor:
            await controller.async_setup()
            return await controller.mapper.begin_new_floor(name="Attic")

        assert asyncio.run(run()).name == "Attic"
        assert controller.registry.get("attic") is not None

    def test_next_floor_name_skips_taken(self, ssh: FakeSsh, device: FakeDevice) -> None:
        store = MemoryStore(
            {"floors": [{"id": "floor_1", "name": "Floor 1"}, {"id": "floor_3", "name": "Floor 3"}]}
        )
        controller = build_controller(ssh, device, store)
        asyncio.run(controller.registry.async_load())
        assert controller.mapper.next_floor_name() == "Floor 4"

    def test_pending_blocks_second_new_floor(self, ssh: FakeSsh, device: FakeDevice) -> None:
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> None:
            await controller.async_setup()
            await controller.mapper.begin_new_floor()
            ssh.calls.clear()
            await controller.mapper.begin_new_floor()

        with pytest.raises(MappingInProgress):
            asyncio.run(run())
        assert ssh.calls == []
        assert len(controller.registry.floors) == 3

    def test_backup_failure_is_fatal(self, ssh: FakeSsh, device: FakeDevice) -> None:
        ssh.fail_copy_to.add(f"{FLOORS_DIR}/ground/last_map")
        store = two_floor_store()
        controller = build_controller(ssh, device, store)

        async def run() -> None:
            await controller.async_setup()
            await controller.mapper.begin_new_floor()

        with pytest.raises(SshError):
            asyncio.run(run())
        assert controller.pending is None
        assert not controller.slot.busy
        assert controller.registry.floor_ids == {"ground", "upstairs"}
        assert device.count("reset_map") == 0

    def test_mapping_start_failure_rolls_back(self, ssh: FakeSsh, device: FakeDevice) -> None:
        device.mapping_pass_error = _error()
        store = two_floor_store()
        controller = build_controller(ssh, device, store)

        async def run() -> None:
            await controller.async_setup()
            await controller.mapper.begin_new_floor()

        with pytest.raises(ValetudoApiError):
            asyncio.run(run())
        assert controller.pending is None
        assert controller.registry.get("floor_3") is None
        assert store.data["floors"] == two_floor_store().data["floors"]

    def test_unknown_mapping_pass_falls_back_to_start(
        self, ssh: FakeSsh, device: FakeDevice
    ) -> None:
        device.mapping_pass_support = CapabilitySupport.UNKNOWN
        device.mapping_pass_error = _error()
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> None:
            await controller.async_setup()
            await controller.mapper.begin_new_floor()

        asyncio.run(run())
        assert device.marked_unsupported == [CAPABILITY_MAPPING_PASS]
        assert device.count("start") == 1
        assert controller.pending is not None

    def test_unsupported_mapping_pass_uses_start(self, ssh: FakeSsh, device: FakeDevice) -> None:
        device.mapping_pass_support = CapabilitySupport.UNSUPPORTED
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> None:
            await controller.async_setup()
            await controller.mapper.begin_new_floor()

        asyncio.run(run())
        assert device.count("start_mapping_pass") == 0
        assert device.count("start") == 1


class TestAutoSave:
    """Tests for the end-of-run save."""

    def test_segments_found_before_trigger(self, ssh: FakeSsh, device: FakeDevice) -> None:
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run():
            await controller.async_setup()
            await mapper.begin_new_floor()
            device.layer_script = [[FLOOR_LAYER], [FLOOR_LAYER, segment_layer()]]
            assert await mapper.handle_status(RobotStatus.CLEANING) is None
            result = await mapper.handle_status(RobotStatus.DOCKED)
            again = await mapper.handle_status(RobotStatus.DOCKED)
            return result, again

        result, again = asyncio.run(run())
        assert result.floor.id == "floor_3"
        assert result.segments_found
        assert not result.segmentation_triggered
        assert result.polls == 2
        assert result.warnings == []
        assert again is None
        assert controller.pending is None
        assert controller.registry.active_floor == "floor_3"
        assert f"{FLOORS_DIR}/floor_3/last_map" in ssh.files
        assert ssh.reboots == 0
        assert device.count("trigger_segmentation_quirk") == 0

    def test_no_segments_triggers_once_and_saves_at_timeout(
        self, ssh: FakeSsh, device: FakeDevice
    ) -> None:
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run():
            await controller.async_setup()
            await mapper.begin_new_floor()
            await mapper.handle_status(RobotStatus.RETURNING)
            return await mapper.handle_status(RobotStatus.IDLE)

        result = asyncio.run(run())
        assert result.segmentation_triggered
        assert not result.segments_found
        assert result.polls == 10
        assert len(result.warnings) == 1
        assert "without segments" in result.warnings[0]
        assert ssh.reboots == 1
        assert "need_segment_map=1" in ssh.files[ROBO_CONFIG].decode()
        assert controller.registry.active_floor == "floor_3"
        assert controller.pending is None

    def test_quirk_used_when_supported(self, ssh: FakeSsh, device: FakeDevice) -> None:
        device.quirk_support = CapabilitySupport.SUPPORTED
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run():
            await controller.async_setup()
            await mapper.begin_new_floor()
            device.layer_script = [[], [], [], [segment_layer()]]
            await mapper.handle_status(RobotStatus.CLEANING)
            return await mapper.handle_status(RobotStatus.DOCKED)

        result = asyncio.run(run())
        assert result.segmentation_triggered
        assert result.segments_found
        assert device.count("trigger_segmentation_quirk") == 1
        assert ssh.reboots == 0

    def test_configured_quirk_id(self, ssh: FakeSsh, device: FakeDevice) -> None:
        device.quirk_support = CapabilitySupport.SUPPORTED
        controller = FloorController(
            ssh,  # type: ignore[arg-type]
            device,  # type: ignore[arg-type]
            two_floor_store(),
            mapper_options={**FAST_MAPPER_OPTIONS, "segmentation_quirk_id": "robot-quirk"},
        )

        async def run() -> str:
            await controller.async_setup()
            return await controller.mapper.trigger_segmentation()

        assert asyncio.run(run()) == "quirk"
        assert device.quirk_ids == ["robot-quirk"]

    def test_unknown_quirk_failure_falls_back_to_reboot(
        self, ssh: FakeSsh, device: FakeDevice
    ) -> None:
        device.quirk_support = CapabilitySupport.UNKNOWN
        device.quirk_error = _error()
        controller = build_controller(ssh, device, two_floor_store())

        async def run() -> str:
            await controller.async_setup()
            return await controller.mapper.trigger_segmentation()

        assert asyncio.run(run()) == "reboot"
        assert device.quirk_support == CapabilitySupport.UNSUPPORTED
        assert ssh.reboots == 1

    def test_trigger_failure_is_not_fatal(self, ssh: FakeSsh, device: FakeDevice) -> None:
        del ssh.files[ROBO_CONFIG]
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run():
            await controller.async_setup()
            await mapper.begin_new_floor()
            await mapper.handle_status(RobotStatus.CLEANING)
            return await mapper.handle_status(RobotStatus.DOCKED)

        result = asyncio.run(run())
        assert result.segmentation_triggered
        assert result.floor.id == "floor_3"

    def test_map_poll_errors_keep_polling(self, ssh: FakeSsh, device: FakeDevice) -> None:
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run():
            await controller.async_setup()
            await mapper.begin_new_floor()
            device.map_errors = 1
            device.layer_script = [[segment_layer()]]
            await mapper.handle_status(RobotStatus.CLEANING)
            return await mapper.handle_status(RobotStatus.DOCKED)

        result = asyncio.run(run())
        assert result.segments_found
        assert result.polls == 2

    def test_save_failure_clears_pending(self, ssh: FakeSsh, device: FakeDevice) -> None:
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run() -> None:
            await controller.async_setup()
            await mapper.begin_new_floor()
            device.layer_script = [[segment_layer()]]
            ssh.fail_copy_to.add(f"{FLOORS_DIR}/floor_3/last_map")
            await mapper.handle_status(RobotStatus.CLEANING)
            await mapper.handle_status(RobotStatus.DOCKED)

        with pytest.raises(SshError):
            asyncio.run(run())
        assert controller.pending is None
        assert not controller.slot.busy

    def test_cleared_pending_aborts_wait(self, ssh: FakeSsh) -> None:
        class CancellingDevice(FakeDevice):
            async def get_map_layers(self):
                layers = await super().get_map_layers()
                if self.count("get_map_layers") == 2:
                    controller.mapper.cancel_pending()
                return layers

        device = CancellingDevice()
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run():
            await controller.async_setup()
            await mapper.begin_new_floor()
            return await mapper.auto_save()

        assert asyncio.run(run()) is None
        assert controller.registry.active_floor == "ground"
        assert f"{FLOORS_DIR}/floor_3/last_map" not in ssh.files
        assert device.count("get_map_layers") == 2

    def test_non_run_transitions_ignored(self, ssh: FakeSsh, device: FakeDevice) -> None:
        controller = build_controller(ssh, device, two_floor_store())
        mapper = controller.mapper

        async def run():
            await controller.async_setup()
            await mapper.begin_new_floor()
            results = [
                await mapper.handle_status(RobotStatus.PAUSED),
                await mapper.handle_status(RobotStatus.DOCKED),
            ]
            return results

        assert asyncio.run(run()) == [None, None]
        assert controller.pending is not None
