"""Binary sensor entities for Valetudo Floors."""

from __future__ import annotations

from homeassistant.components.binary_sensor import BinarySensorEntity
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback

from . import ValetudoConfigEntry
from .coordinator import ValetudoFloorsCoordinator
from .entity import ValetudoFloorsEntity


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ValetudoConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up Valetudo Floors binary sensor entities."""
    coordinator = entry.runtime_data
    async_add_entities([
        ValetudoMappingSensor(coordinator),
        ValetudoDockedSensor(coordinator),
    ])


class ValetudoMappingSensor(ValetudoFloorsEntity, BinarySensorEntity):
    """On while a new floor is being mapped and waits to be auto-saved."""

    _attr_translation_key = "mapping"

    def __init__(self, coordinator: ValetudoFloorsCoordinator) -> None:
        """Initialize the mapping sensor."""
        super().__init__(coordinator, "mapping")

    @property
    def is_on(self) -> bool:
        return self.controller.mapping

    @property
    def extra_state_attributes(self) -> dict[str, str | bool | None]:
        pending = self.controller.pending
        return {
            "pending_floor": pending.name if pending else None,
            "saving": self.controller.mapper.saving,
        }


class ValetudoDockedSensor(ValetudoFloorsEntity, BinarySensorEntity):
    """Binary sensor that reports whether the vacuum is on the dock."""

    _attr_translation_key = "docked"

    def __init__(self, coordinator: ValetudoFloorsCoordinator) -> None:
        """Initialize the docked sensor."""
        super().__init__(coordinator, "docked")

    @property
    def is_on(self) -> bool | None:
        state = self.coordinator.data
        if state is None:
            return None
        return state.is_docked
