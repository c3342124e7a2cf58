"""The Valetudo Floors integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry, ConfigEntryState
from homeassistant.core import HomeAssistant, ServiceCall, ServiceResponse, SupportsResponse
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.storage import Store

from .valetudo_client import FloorError, SshError, ValetudoApiError, ValetudoMqttError
from .const import (
    ATTR_ENTRY_ID,
    ATTR_FLOOR_ID,
    ATTR_HAS_DOCK,
    ATTR_NAME,
    DOMAIN,
    PLATFORMS,
    SERVICE_DELETE_FLOOR,
    SERVICE_GET_MAP_SNAPSHOT,
    SERVICE_LIST_FLOORS,
    SERVICE_NEW_FLOOR,
    SERVICE_RENAME_FLOOR,
    SERVICE_SAVE_FLOOR,
    SERVICE_SET_FLOOR_DOCK,
    SERVICE_SWITCH_FLOOR,
    STORAGE_VERSION,
)
from .coordinator import ValetudoFloorsCoordinator

_LOGGER = logging.getLogger(__name__)

type ValetudoConfigEntry = ConfigEntry[ValetudoFloorsCoordinator]

_ENTRY = {vol.Optional(ATTR_ENTRY_ID): cv.string}
_FLOOR = {**_ENTRY, vol.Required(ATTR_FLOOR_ID): cv.string}

SERVICE_SCHEMAS: dict[str, vol.Schema] = {
    SERVICE_SWITCH_FLOOR: vol.Schema(_FLOOR),
    SERVICE_SAVE_FLOOR: vol.Schema(
        {
            **_ENTRY,
            vol.Required(ATTR_NAME): cv.string,
            vol.Optional(ATTR_HAS_DOCK, default=True): cv.boolean,
        }
    ),
    SERVICE_RENAME_FLOOR: vol.Schema({**_FLOOR, vol.Required(ATTR_NAME): cv.string}),
    SERVICE_DELETE_FLOOR: vol.Schema(_FLOOR),
    SERVICE_SET_FLOOR_DOCK: vol.Schema({**_FLOOR, vol.Required(ATTR_HAS_DOCK): cv.boolean}),
    SERVICE_NEW_FLOOR: vol.Schema(
        {
            **_ENTRY,
            vol.Optional(ATTR_HAS_DOCK, default=True): cv.boolean,
            vol.Optional(ATTR_NAME): cv.string,
        }
    ),
    SERVICE_LIST_FLOORS: vol.Schema(_ENTRY),
    SERVICE_GET_MAP_SNAPSHOT: vol.Schema(_FLOOR),
}

# Services that hand data back to the caller
RESPONSE_SERVICES = {SERVICE_LIST_FLOORS, SERVICE_GET_MAP_SNAPSHOT}


async def async_setup_entry(hass: HomeAssistant, entry: ValetudoConfigEntry) -> bool:
    """Set up a Valetudo robot from a config entry."""
    store: Store = Store(hass, STORAGE_VERSION, f"{DOMAIN}.{entry.entry_id}")
    coordinator = ValetudoFloorsCoordinator(hass, entry, store)

    await coordinator.async_setup()
    await coordinator.async_config_entry_first_refresh()

    entry.runtime_data = coordinator
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _async_register_services(hass)
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ValetudoConfigEntry) -> bool:
    """Unload a config entry."""
    if unload_ok := await hass.config_entries.async_unload_platforms(entry, PLATFORMS):
        await entry.runtime_data.async_shutdown()
    return unload_ok


async def async_remove_entry(hass: HomeAssistant, entry: ValetudoConfigEntry) -> None:
    """Drop the floor registry when the robot is removed."""
    await Store(hass, STORAGE_VERSION, f"{DOMAIN}.{entry.entry_id}").async_remove()


async def _async_update_listener(hass: HomeAssistant, entry: ValetudoConfigEntry) -> None:
    await entry.runtime_data.async_apply_options(entry)


def _resolve_coordinator(hass: HomeAssistant, call: ServiceCall) -> ValetudoFloorsCoordinator:
    """Pick the robot a service call targets (the only one when unambiguous)."""
    entries = [
        entry
        for entry in hass.config_entries.async_entries(DOMAIN)
        if entry.state is ConfigEntryState.LOADED
    ]
    entry_id = call.data.get(ATTR_ENTRY_ID)
    if entry_id:
        entries = [entry for entry in entries if entry.entry_id == entry_id]
    if len(entries) != 1:
        raise ServiceValidationError(
            "Specify entry_id to choose a robot" if entries else "No matching Valetudo robot loaded"
        )
    return entries[0].runtime_data


def _async_register_services(hass: HomeAssistant) -> None:
    """Register floor services once; every command maps onto the controller."""
    if hass.services.has_service(DOMAIN, SERVICE_SWITCH_FLOOR):
        return

    async def handle(call: ServiceCall) -> ServiceResponse:
        coordinator = _resolve_coordinator(hass, call)
        params: dict[str, Any] = {k: v for k, v in call.data.items() if k != ATTR_ENTRY_ID}
        try:
            result = await coordinator.controller.dispatch(call.service, **params)
        except FloorError as err:
            raise HomeAssistantError(str(err)) from err
        except (SshError, ValetudoApiError, ValetudoMqttError) as err:
            raise HomeAssistantError(f"Robot communication failed: {err}") from err
        finally:
            coordinator.async_update_listeners()

        if call.service == SERVICE_LIST_FLOORS:
            return result
        if call.service == SERVICE_GET_MAP_SNAPSHOT:
            return {"floor_id": params[ATTR_FLOOR_ID], "map": result}
        return None

    for service, schema in SERVICE_SCHEMAS.items():
        hass.services.async_register(
            DOMAIN,
            service,
            handle,
            schema=schema,
            supports_response=(
                SupportsResponse.ONLY if service in RESPONSE_SERVICES else SupportsResponse.NONE
            ),
        )
