"""Sensor entities for Valetudo Floors."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
    SensorStateClass,
)
from homeassistant.const import PERCENTAGE
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback

from . import ValetudoConfigEntry
from .coordinator import ValetudoFloorsCoordinator
from .entity import ValetudoFloorsEntity


@dataclass(frozen=True, kw_only=True)
class ValetudoSensorEntityDescription(SensorEntityDescription):
    """Describes a Valetudo Floors sensor entity."""

    value_fn: Callable[[ValetudoFloorsCoordinator], float | str | None]
    attributes_fn: Callable[[ValetudoFloorsCoordinator], dict[str, Any]] | None = None


def _floor_attributes(coordinator: ValetudoFloorsCoordinator) -> dict[str, Any]:
    registry = coordinator.controller.registry
    return {
        "floor_id": registry.active_floor,
        "has_dock": registry.active_floor_has_dock,
        "floors": [floor.as_dict() for floor in registry.floors],
        "mapping": coordinator.controller.mapping,
        "warning": coordinator.last_warning,
    }


SENSOR_DESCRIPTIONS: tuple[ValetudoSensorEntityDescription, ...] = (
    ValetudoSensorEntityDescription(
        key="current_floor",
        translation_key="current_floor",
        value_fn=lambda c: c.controller.registry.active_floor_name,
        attributes_fn=_floor_attributes,
    ),
    ValetudoSensorEntityDescription(
        key="battery",
        device_class=SensorDeviceClass.BATTERY,
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        value_fn=lambda c: c.state.battery_level,
    ),
    ValetudoSensorEntityDescription(
        key="status",
        translation_key="status",
        value_fn=lambda c: c.state.status.value,
    ),
)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ValetudoConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up Valetudo Floors sensor entities."""
    coordinator = entry.runtime_data
    async_add_entities(
        ValetudoSensor(coordinator, description) for description in SENSOR_DESCRIPTIONS
    )


class ValetudoSensor(ValetudoFloorsEntity, SensorEntity):
    """A Valetudo Floors sensor entity."""

    entity_description: ValetudoSensorEntityDescription

    def __init__(
        self,
        coordinator: ValetudoFloorsCoordinator,
        description: ValetudoSensorEntityDescription,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator, description.key)
        self.entity_description = description

    @property
    def native_value(self) -> float | str | None:
        return self.entity_description.value_fn(self.coordinator)

    @property
    def extra_state_attributes(self) -> dict[str, Any] | None:
        if self.entity_description.attributes_fn is None:
            return None
        return self.entity_description.attributes_fn(self.coordinator)
