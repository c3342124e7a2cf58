"""Config flow for the Valetudo Floors integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry, ConfigFlow, ConfigFlowResult, OptionsFlow
from homeassistant.const import CONF_HOST
from homeassistant.core import callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .valetudo_client import ChannelUnavailable, SshChannel, SshError, ValetudoApi, ValetudoApiError
from .valetudo_client.const import DEFAULT_MQTT_PORT, DEFAULT_MQTT_TOPIC_PREFIX, DEFAULT_SSH_PORT, DEFAULT_SSH_USER
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

STEP_USER_DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): str,
        vol.Optional(CONF_AUTH_USER): str,
        vol.Optional(CONF_AUTH_PASS): str,
        vol.Optional(CONF_SSH_PORT, default=DEFAULT_SSH_PORT): int,
        vol.Optional(CONF_SSH_USER, default=DEFAULT_SSH_USER): str,
        vol.Optional(CONF_SSH_PASSWORD): str,
        vol.Optional(CONF_SSH_PRIVATE_KEY): str,
    }
)


def _options_schema(conf: dict[str, Any]) -> vol.Schema:
    """Connection and timing options, prefilled from the current settings."""

    def current(key: str, default: Any = vol.UNDEFINED) -> dict[str, Any]:
        value = conf.get(key)
        if value is None:
            return {} if default is vol.UNDEFINED else {"default": default}
        return {"default": value}

    return vol.Schema(
        {
            vol.Optional(CONF_SSH_HOST, **current(CONF_SSH_HOST)): str,
            vol.Optional(CONF_SSH_PORT, **current(CONF_SSH_PORT, DEFAULT_SSH_PORT)): int,
            vol.Optional(CONF_SSH_USER, **current(CONF_SSH_USER, DEFAULT_SSH_USER)): str,
            vol.Optional(CONF_SSH_PASSWORD, **current(CONF_SSH_PASSWORD)): str,
            vol.Optional(CONF_SSH_PRIVATE_KEY, **current(CONF_SSH_PRIVATE_KEY)): str,
            vol.Optional(CONF_MQTT_HOST, **current(CONF_MQTT_HOST)): str,
            vol.Optional(CONF_MQTT_PORT, **current(CONF_MQTT_PORT, DEFAULT_MQTT_PORT)): int,
            vol.Optional(CONF_MQTT_USERNAME, **current(CONF_MQTT_USERNAME)): str,
            vol.Optional(CONF_MQTT_PASSWORD, **current(CONF_MQTT_PASSWORD)): str,
            vol.Optional(
                CONF_MQTT_TOPIC_PREFIX,
                **current(CONF_MQTT_TOPIC_PREFIX, DEFAULT_MQTT_TOPIC_PREFIX),
            ): str,
            vol.Optional(CONF_MQTT_IDENTIFIER, **current(CONF_MQTT_IDENTIFIER)): str,
            vol.Optional(
                CONF_SEGMENT_WAIT_TIMEOUT,
                **current(CONF_SEGMENT_WAIT_TIMEOUT, DEFAULT_SEGMENT_WAIT_TIMEOUT),
            ): vol.All(vol.Coerce(int), vol.Range(min=30, max=3600)),
        }
    )


class ValetudoFloorsConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for a Valetudo robot."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step: robot address, REST auth and SSH login."""
        errors: dict[str, str] = {}

        if user_input is not None:
            host = user_input[CONF_HOST]
            await self.async_set_unique_id(host)
            self._abort_if_unique_id_configured()

            api = ValetudoApi(
                host,
                session=async_get_clientsession(self.hass),
                auth_user=user_input.get(CONF_AUTH_USER),
                auth_pass=user_input.get(CONF_AUTH_PASS),
            )
            ssh = SshChannel(
                host=host,
                port=user_input.get(CONF_SSH_PORT, DEFAULT_SSH_PORT),
                username=user_input.get(CONF_SSH_USER, DEFAULT_SSH_USER),
                password=user_input.get(CONF_SSH_PASSWORD),
                private_key=user_input.get(CONF_SSH_PRIVATE_KEY),
            )
            try:
                robot_info = await api.get_robot_info()
                await ssh.exec("true")
            except ValetudoApiError as err:
                _LOGGER.debug("Valetudo API check failed: %s", err)
                errors["base"] = "cannot_connect"
            except ChannelUnavailable as err:
                _LOGGER.debug("SSH check failed: %s", err)
                errors["base"] = "ssh_unavailable"
            except SshError as err:
                _LOGGER.debug("SSH command failed: %s", err)
                errors["base"] = "ssh_failed"
            else:
                model = robot_info.get("modelName") or "Valetudo robot"
                manufacturer = robot_info.get("manufacturer")
                title = f"{manufacturer} {model}" if manufacturer else model
                return self.async_create_entry(title=title, data=user_input)
            finally:
                await ssh.disconnect()

        return self.async_show_form(
            step_id="user",
            data_schema=STEP_USER_DATA_SCHEMA,
            errors=errors,
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> ValetudoFloorsOptionsFlow:
        return ValetudoFloorsOptionsFlow()


class ValetudoFloorsOptionsFlow(OptionsFlow):
    """SSH, MQTT and auto-save settings; applied without a reload."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        if user_input is not None:
            return self.async_create_entry(data=user_input)

        conf = {**self.config_entry.data, **self.config_entry.options}
        return self.async_show_form(step_id="init", data_schema=_options_schema(conf))
