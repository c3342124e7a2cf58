"""Floor picker select entity."""

from __future__ import annotations

import logging

from homeassistant.components.select import SelectEntity
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback

from .valetudo_client import FloorError, SshError
from . import ValetudoConfigEntry
from .coordinator import ValetudoFloorsCoordinator
from .entity import ValetudoFloorsEntity

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ValetudoConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up the floor select."""
    coordinator = entry.runtime_data
    async_add_entities([ValetudoFloorSelect(coordinator)])


class ValetudoFloorSelect(ValetudoFloorsEntity, SelectEntity):
    """Pick the floor the robot should be on; selecting one switches maps."""

    _attr_translation_key = "floor"

    def __init__(self, coordinator: ValetudoFloorsCoordinator) -> None:
        """Initialize the floor select."""
        super().__init__(coordinator, "floor")

    @property
    def options(self) -> list[str]:
        return [floor.name for floor in self.controller.registry.floors]

    @property
    def current_option(self) -> str | None:
        return self.controller.registry.active_floor_name

    async def async_select_option(self, option: str) -> None:
        """Switch to the floor with this display name."""
        floor = next(
            (f for f in self.controller.registry.floors if f.name == option), None
        )
        if floor is None:
            raise HomeAssistantError(f'Unknown floor "{option}"')
        try:
            await self.controller.dispatch("switch_floor", floor_id=floor.id)
        except (FloorError, SshError) as err:
            raise HomeAssistantError(str(err)) from err
        finally:
            self.async_write_ha_state()
