"""Base entity for the Valetudo Floors integration."""

from __future__ import annotations

from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .valetudo_client import FloorController
from .const import DEFAULT_MODEL, DOMAIN, MANUFACTURER
from .coordinator import ValetudoFloorsCoordinator


class ValetudoFloorsEntity(CoordinatorEntity[ValetudoFloorsCoordinator]):
    """Base class for Valetudo Floors entities."""

    _attr_has_entity_name = True

    def __init__(self, coordinator: ValetudoFloorsCoordinator, key: str) -> None:
        """Initialize the entity."""
        super().__init__(coordinator)
        entry = coordinator.config_entry
        info = coordinator.robot_info
        self._attr_unique_id = f"{entry.entry_id}_{key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, entry.entry_id)},
            manufacturer=info.get("manufacturer") or MANUFACTURER,
            model=info.get("modelName") or DEFAULT_MODEL,
            name=entry.title,
        )

    @property
    def controller(self) -> FloorController:
        return self.coordinator.controller
