"""DataUpdateCoordinator for a Valetudo robot with floor management."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_HOST
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.storage import Store
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .valetudo_client import (
    AutoSaveResult,
    FloorController,
    RobotState,
    SshChannel,
    ValetudoApi,
    ValetudoApiError,
    ValetudoDevice,
    ValetudoMqtt,
)
from .const import (
    CONF_AUTH_PASS,
    CONF_AUTH_USER,
    CONF_MQTT_HOST,
    CONF_MQTT_IDENTIFIER,
    CONF_MQTT_PASSWORD,
    CONF_MQTT_PORT,
    CONF_MQTT_TOPIC_PREFIX,
    CONF_MQTT_USERNAME,
    CONF_SEGMENT_WAIT_TIMEOUT,
    CONF_SSH_HOST,
    CONF_SSH_PASSWORD,
    CONF_SSH_PORT,
    CONF_SSH_PRIVATE_KEY,
    CONF_SSH_USER,
    DEFAULT_SEGMENT_WAIT_TIMEOUT,
    DOMAIN,
)

_LOGGER = logging.getLogger(__name__)

# REST poll; with MQTT up this only checks reachability
POLL_INTERVAL = timedelta(seconds=30)


class ValetudoFloorsCoordinator(DataUpdateCoordinator[RobotState]):
    """Push-mode coordinator for one Valetudo robot.

    Primary data source is the robot's MQTT topics when a broker is
    configured. REST polling every 30s keeps state fresh otherwise, and
    feeds status transitions to the floor controller in that case.
    Floor data lives in the controller's registry; registry changes push
    an entity refresh without a new robot state.
    """

    config_entry: ConfigEntry

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry, store: Store) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name=DOMAIN,
            update_interval=POLL_INTERVAL,
        )
        conf = self.merged_config(entry)
        self.api = ValetudoApi(
            conf[CONF_HOST],
            session=async_get_clientsession(hass),
            auth_user=conf.get(CONF_AUTH_USER),
            auth_pass=conf.get(CONF_AUTH_PASS),
        )
        self.mqtt = ValetudoMqtt(
            broker=conf.get(CONF_MQTT_HOST),
            identifier=conf.get(CONF_MQTT_IDENTIFIER),
            port=conf.get(CONF_MQTT_PORT),
            username=conf.get(CONF_MQTT_USERNAME),
            password=conf.get(CONF_MQTT_PASSWORD),
            topic_prefix=conf.get(CONF_MQTT_TOPIC_PREFIX),
        )
        self.ssh = SshChannel(
            host=conf.get(CONF_SSH_HOST) or conf[CONF_HOST],
            port=conf.get(CONF_SSH_PORT),
            username=conf.get(CONF_SSH_USER),
            password=conf.get(CONF_SSH_PASSWORD),
            private_key=conf.get(CONF_SSH_PRIVATE_KEY),
        )
        self.device = ValetudoDevice(self.api, self.mqtt)
        self.controller = FloorController(
            self.ssh,
            self.device,
            store,
            mapper_options={
                "segment_wait_timeout": float(
                    conf.get(CONF_SEGMENT_WAIT_TIMEOUT, DEFAULT_SEGMENT_WAIT_TIMEOUT)
                ),
            },
        )
        self.robot_info: dict[str, Any] = {}
        # Dock flag used by the "new floor" button
        self.new_floor_has_dock = True
        self.last_warning: str | None = None
        self._rest_state = RobotState()
        self._robot_online: bool | None = None
        self._listen_task: asyncio.Task[None] | None = None

    @staticmethod
    def merged_config(entry: ConfigEntry) -> dict[str, Any]:
        """Entry data with options layered on top."""
        return {**entry.data, **entry.options}

    async def async_setup(self) -> None:
        """Load floors, hook up callbacks and start the MQTT listener."""
        await self.controller.async_setup()

        self.controller.registry.on_change = self._on_registry_change
        self.controller.on_auto_save = self._on_auto_save
        self.controller.on_auto_save_error = self._on_auto_save_error
        self.mqtt.on_status = self.controller.on_status
        self.mqtt.on_state_update = self._on_state_update

        self._start_listener()

        try:
            self.robot_info = await self.api.get_robot_info()
        except ValetudoApiError:
            _LOGGER.debug("Could not fetch robot info")

    def _start_listener(self) -> None:
        if not self.mqtt.configured:
            return
        self._listen_task = self.config_entry.async_create_background_task(
            self.hass,
            self.mqtt.start_listening(),
            f"{DOMAIN}_mqtt_listener",
        )

    async def _stop_listener(self) -> None:
        self.mqtt.disconnect()
        if self._listen_task and not self._listen_task.done():
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
        self._listen_task = None

    @property
    def state(self) -> RobotState:
        """Latest robot state from whichever source is live."""
        if self.mqtt.connected:
            return self.mqtt.state
        return self._rest_state

    @callback
    def _on_state_update(self, state: RobotState) -> None:
        """Handle a push state update from the MQTT listener."""
        self.async_set_updated_data(state)

    @callback
    def _on_registry_change(self, _config: Any) -> None:
        self.async_update_listeners()

    @callback
    def _on_auto_save(self, result: AutoSaveResult) -> None:
        self.last_warning = result.warnings[-1] if result.warnings else None
        self.async_update_listeners()

    def _on_auto_save_error(self, message: str) -> None:
        self.last_warning = message
        self.async_update_listeners()

    async def _async_update_data(self) -> RobotState:
        """Polling fallback: refresh state over REST unless MQTT is pushing."""
        if self.mqtt.connected:
            online = await self.api.is_reachable()
            await self._track_online(online)
            return self.mqtt.state

        try:
            attributes = await self.api.get_state_attributes()
        except ValetudoApiError as err:
            await self._track_online(False)
            raise UpdateFailed(f"Failed to get robot state: {err}") from err

        self._rest_state.update_from_attributes(attributes)
        await self._track_online(True)
        self.controller.on_status(self._rest_state.status)
        _LOGGER.debug(
            "Poll update: status=%s, battery=%s",
            self._rest_state.status.value,
            self._rest_state.battery_level,
        )
        return self._rest_state

    async def _track_online(self, online: bool) -> None:
        """Preserve an unsaved live map whenever the robot (re)appears."""
        came_online = online and self._robot_online is not True
        self._robot_online = online
        if came_online:
            _LOGGER.debug("Robot reachable, checking active floor backup")
            await self.controller.async_preserve_backup()

    async def async_apply_options(self, entry: ConfigEntry) -> None:
        """Apply changed connection settings without reloading the entry."""
        conf = self.merged_config(entry)
        self.api.update_host(conf[CONF_HOST])
        self.api.update_auth(conf.get(CONF_AUTH_USER), conf.get(CONF_AUTH_PASS))
        if self.ssh.update_config(
            host=conf.get(CONF_SSH_HOST) or conf[CONF_HOST],
            port=conf.get(CONF_SSH_PORT),
            username=conf.get(CONF_SSH_USER),
            password=conf.get(CONF_SSH_PASSWORD),
            private_key=conf.get(CONF_SSH_PRIVATE_KEY),
        ):
            _LOGGER.info("SSH settings updated")
        if self.mqtt.update_config(
            broker=conf.get(CONF_MQTT_HOST),
            identifier=conf.get(CONF_MQTT_IDENTIFIER),
            port=conf.get(CONF_MQTT_PORT),
            username=conf.get(CONF_MQTT_USERNAME),
            password=conf.get(CONF_MQTT_PASSWORD),
            topic_prefix=conf.get(CONF_MQTT_TOPIC_PREFIX),
        ):
            _LOGGER.info("MQTT settings updated, restarting listener")
            await self._stop_listener()
            self._start_listener()
        self.controller.mapper.segment_wait_timeout = float(
            conf.get(CONF_SEGMENT_WAIT_TIMEOUT, DEFAULT_SEGMENT_WAIT_TIMEOUT)
        )

    async def async_shutdown(self) -> None:
        """Stop the listener and close the SSH channel."""
        await self._stop_listener()
        await self.controller.async_shutdown()
        await super().async_shutdown()
