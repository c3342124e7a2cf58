"""Vacuum entity for a Valetudo robot with floor-aware docking."""

from __future__ import annotations

import logging

from homeassistant.components.vacuum import (
    StateVacuumEntity,
    VacuumActivity,
    VacuumEntityFeature,
)
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback

from .valetudo_client import FloorError, RobotStatus, ValetudoApiError, ValetudoMqttError
from . import ValetudoConfigEntry
from .const import FAN_SPEED_LIST
from .coordinator import ValetudoFloorsCoordinator
from .entity import ValetudoFloorsEntity

_LOGGER = logging.getLogger(__name__)

STATUS_TO_ACTIVITY: dict[RobotStatus, VacuumActivity] = {
    RobotStatus.DOCKED: VacuumActivity.DOCKED,
    RobotStatus.IDLE: VacuumActivity.IDLE,
    RobotStatus.CLEANING: VacuumActivity.CLEANING,
    RobotStatus.MOVING: VacuumActivity.CLEANING,
    RobotStatus.MANUAL_CONTROL: VacuumActivity.CLEANING,
    RobotStatus.RETURNING: VacuumActivity.RETURNING,
    RobotStatus.PAUSED: VacuumActivity.PAUSED,
    RobotStatus.ERROR: VacuumActivity.ERROR,
}

_COMMAND_ERRORS = (FloorError, ValetudoApiError, ValetudoMqttError)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ValetudoConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up the Valetudo vacuum entity."""
    coordinator = entry.runtime_data
    async_add_entities([ValetudoVacuum(coordinator)])


class ValetudoVacuum(ValetudoFloorsEntity, StateVacuumEntity):
    """Representation of a Valetudo robot vacuum."""

    _attr_translation_key = "vacuum"
    _attr_name = None
    _attr_supported_features = (
        VacuumEntityFeature.STATE
        | VacuumEntityFeature.START
        | VacuumEntityFeature.STOP
        | VacuumEntityFeature.PAUSE
        | VacuumEntityFeature.RETURN_HOME
        | VacuumEntityFeature.FAN_SPEED
        | VacuumEntityFeature.LOCATE
    )
    _attr_fan_speed_list = FAN_SPEED_LIST

    def __init__(self, coordinator: ValetudoFloorsCoordinator) -> None:
        """Initialize the vacuum entity."""
        super().__init__(coordinator, "vacuum")

    @property
    def activity(self) -> VacuumActivity:
        return STATUS_TO_ACTIVITY.get(self.coordinator.state.status, VacuumActivity.IDLE)

    @property
    def fan_speed(self) -> str | None:
        return self.coordinator.state.fan_speed

    async def async_start(self) -> None:
        """Start cleaning; refused while a new floor is being mapped."""
        try:
            await self.controller.dispatch("start_cleaning")
        except _COMMAND_ERRORS as err:
            raise HomeAssistantError(str(err)) from err

    async def async_stop(self, **kwargs) -> None:
        await self._send(self.coordinator.device.stop)

    async def async_pause(self) -> None:
        await self._send(self.coordinator.device.pause)

    async def async_return_to_base(self, **kwargs) -> None:
        """Return to the dock, or stop on floors without one."""
        try:
            await self.controller.dispatch("return_to_dock")
        except _COMMAND_ERRORS as err:
            raise HomeAssistantError(str(err)) from err

    async def async_locate(self, **kwargs) -> None:
        await self._send(self.coordinator.api.locate)

    async def async_set_fan_speed(self, fan_speed: str, **kwargs) -> None:
        if fan_speed not in FAN_SPEED_LIST:
            raise HomeAssistantError(f"Unsupported fan speed: {fan_speed}")
        await self._send(self.coordinator.api.set_fan_speed, fan_speed)
        self.coordinator.state.fan_speed = fan_speed
        self.async_write_ha_state()

    async def _send(self, command, *args) -> None:
        try:
            await command(*args)
        except _COMMAND_ERRORS as err:
            raise HomeAssistantError(f"Command failed: {err}") from err
