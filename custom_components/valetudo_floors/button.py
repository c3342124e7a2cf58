"""Button entities for Valetudo Floors."""

from __future__ import annotations

import logging

from homeassistant.components.button import ButtonEntity
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback

from .valetudo_client import FloorError, SshError, ValetudoApiError
from . import ValetudoConfigEntry
from .coordinator import ValetudoFloorsCoordinator
from .entity import ValetudoFloorsEntity

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ValetudoConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up Valetudo Floors button entities."""
    coordinator = entry.runtime_data
    async_add_entities([ValetudoNewFloorButton(coordinator)])


class ValetudoNewFloorButton(ValetudoFloorsEntity, ButtonEntity):
    """Back up the current floor, reset the map and map a new floor.

    Uses the "new floor has dock" switch for the dock flag.
    """

    _attr_translation_key = "new_floor"

    def __init__(self, coordinator: ValetudoFloorsCoordinator) -> None:
        """Initialize the new floor button."""
        super().__init__(coordinator, "new_floor")

    @property
    def available(self) -> bool:
        return super().available and not self.controller.slot.busy

    async def async_press(self) -> None:
        has_dock = self.coordinator.new_floor_has_dock
        try:
            pending = await self.controller.dispatch("new_floor", has_dock=has_dock)
        except (FloorError, SshError, ValetudoApiError) as err:
            raise HomeAssistantError(str(err)) from err
        finally:
            self.coordinator.async_update_listeners()
        _LOGGER.info('Mapping new floor "%s"', pending.name)
