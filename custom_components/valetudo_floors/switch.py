"""Switch entities for Valetudo Floors."""

from __future__ import annotations

from typing import Any

from homeassistant.components.switch import SwitchEntity
from homeassistant.const import EntityCategory
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback
from homeassistant.helpers.restore_state import RestoreEntity

from . import ValetudoConfigEntry
from .coordinator import ValetudoFloorsCoordinator
from .entity import ValetudoFloorsEntity


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ValetudoConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up Valetudo Floors switch entities."""
    coordinator = entry.runtime_data
    async_add_entities([ValetudoNewFloorDockSwitch(coordinator)])


class ValetudoNewFloorDockSwitch(ValetudoFloorsEntity, SwitchEntity, RestoreEntity):
    """Whether the next floor created with the button has a dock."""

    _attr_translation_key = "new_floor_has_dock"
    _attr_entity_category = EntityCategory.CONFIG

    def __init__(self, coordinator: ValetudoFloorsCoordinator) -> None:
        """Initialize the dock switch."""
        super().__init__(coordinator, "new_floor_has_dock")

    async def async_added_to_hass(self) -> None:
        await super().async_added_to_hass()
        if (last := await self.async_get_last_state()) is not None:
            self.coordinator.new_floor_has_dock = last.state != "off"

    @property
    def is_on(self) -> bool:
        return self.coordinator.new_floor_has_dock

    async def async_turn_on(self, **kwargs: Any) -> None:
        self.coordinator.new_floor_has_dock = True
        self.async_write_ha_state()

    async def async_turn_off(self, **kwargs: Any) -> None:
        self.coordinator.new_floor_has_dock = False
        self.async_write_ha_state()
