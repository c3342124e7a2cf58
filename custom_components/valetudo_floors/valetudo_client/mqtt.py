"""MQTT client for Valetudo status pushes and commands."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import Callable
from typing import Any

import aiomqtt

from .const import (
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_TOPIC_PREFIX,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_INITIAL_DELAY,
    RECONNECT_MAX_DELAY,
    SUBSCRIBED_TOPICS,
    TOPIC_BATTERY_LEVEL,
    TOPIC_CMD_BASIC_CONTROL,
    TOPIC_CMD_FAN_SPEED,
    TOPIC_CMD_LOCATE,
    TOPIC_ERROR,
    TOPIC_FAN_SPEED,
    TOPIC_MAP_DATA,
    TOPIC_SEGMENTS,
    TOPIC_STATUS,
    BasicAction,
    RobotStatus,
)
from .models import MapData, RobotState

_LOGGER = logging.getLogger(__name__)


class ValetudoMqttError(Exception):
    """Raised when a command cannot be published to the broker."""


class ValetudoMqtt:
    """Listens to a robot's Valetudo MQTT topics and publishes commands.

    Usage:
        mqtt = ValetudoMqtt(broker="192.168.1.2", identifier="rockrobo")
        mqtt.on_status = my_status_callback
        await mqtt.start_listening()  # runs until disconnect()
    """

    def __init__(
        self,
        broker: str | None,
        identifier: str | None,
        port: int = DEFAULT_MQTT_PORT,
        username: str | None = None,
        password: str | None = None,
        topic_prefix: str = DEFAULT_MQTT_TOPIC_PREFIX,
    ) -> None:
        self.broker = broker
        self.port = port or DEFAULT_MQTT_PORT
        self.identifier = identifier
        self.username = username
        self.password = password
        self.topic_prefix = topic_prefix or DEFAULT_MQTT_TOPIC_PREFIX
        self.state = RobotState()

        self.on_status: Callable[[RobotStatus], None] | None = None
        self.on_state_update: Callable[[RobotState], None] | None = None

        self._client: aiomqtt.Client | None = None
        self._connected = False
        self._should_reconnect = True

    @property
    def configured(self) -> bool:
        return bool(self.broker and self.identifier)

    @property
    def connected(self) -> bool:
        return self._connected and self._client is not None

    @property
    def topic_base(self) -> str:
        return f"{self.topic_prefix}/{self.identifier}"

    def update_config(
        self,
        broker: str | None,
        identifier: str | None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        topic_prefix: str | None = None,
    ) -> bool:
        """Apply new settings. Returns True if the listener must reconnect."""
        need_reconnect = (
            broker != self.broker
            or (port or DEFAULT_MQTT_PORT) != self.port
            or username != self.username
            or password != self.password
            or identifier != self.identifier
            or (topic_prefix or DEFAULT_MQTT_TOPIC_PREFIX) != self.topic_prefix
        )
        self.broker = broker
        self.port = port or DEFAULT_MQTT_PORT
        self.identifier = identifier
        self.username = username
        self.password = password
        self.topic_prefix = topic_prefix or DEFAULT_MQTT_TOPIC_PREFIX
        return need_reconnect

    async def start_listening(self) -> None:
        """Run the subscribe/receive loop with auto-reconnect.

        Runs until disconnect() is called or the task is cancelled.
        """
        if not self.configured:
            _LOGGER.info("MQTT not configured, relying on REST polling")
            return

        self._should_reconnect = True
        retry_delay = RECONNECT_INITIAL_DELAY

        while self._should_reconnect:
            try:
                async with aiomqtt.Client(
                    hostname=self.broker,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                ) as client:
                    self._client = client
                    self._connected = True
                    retry_delay = RECONNECT_INITIAL_DELAY  # reset on success
                    _LOGGER.info("MQTT connected to %s:%d", self.broker, self.port)

                    for topic in SUBSCRIBED_TOPICS:
                        await client.subscribe(f"{self.topic_base}/{topic}")

                    async for message in client.messages:
                        self.handle_message(str(message.topic), message.payload)

            except aiomqtt.MqttError as e:
                _LOGGER.warning("MQTT connection lost: %s", e)
            except asyncio.CancelledError:
                _LOGGER.debug("MQTT listener cancelled")
                return
            except Exception:
                _LOGGER.exception("Unexpected error in MQTT listener")
            finally:
                self._connected = False
                self._client = None

            if not self._should_reconnect:
                break

            # Exponential backoff with jitter
            wait = retry_delay + random.uniform(0, 1)
            _LOGGER.info("MQTT reconnecting in %.1fs...", wait)
            await asyncio.sleep(wait)
            retry_delay = min(retry_delay * RECONNECT_BACKOFF_FACTOR, RECONNECT_MAX_DELAY)

    def disconnect(self) -> None:
        """Stop reconnecting; the running listener task should be cancelled by its owner."""
        self._should_reconnect = False
        self._connected = False

    def handle_message(self, topic: str, payload: bytes | bytearray | str | Any) -> None:
        """Decode one pushed message and update state."""
        prefix = f"{self.topic_base}/"
        if not topic.startswith(prefix):
            return
        relative = topic[len(prefix):]
        if isinstance(payload, (bytes, bytearray)):
            text = payload.decode("utf-8", errors="replace")
        else:
            text = str(payload)

        if relative == TOPIC_STATUS:
            status = RobotStatus.parse(text)
            self.state.status = status
            if self.on_status:
                self.on_status(status)
        elif relative == TOPIC_ERROR:
            self.state.error = "" if text.lower() == "none" else text
        elif relative == TOPIC_BATTERY_LEVEL:
            try:
                self.state.battery_level = int(text)
            except ValueError:
                _LOGGER.debug("Ignoring battery level %r", text)
        elif relative == TOPIC_FAN_SPEED:
            self.state.fan_speed = text.lower()
        elif relative == TOPIC_SEGMENTS:
            try:
                self.state.update_segments(json.loads(text))
            except ValueError:
                _LOGGER.debug("Failed to parse segments payload")
        elif relative == TOPIC_MAP_DATA:
            try:
                self.state.map_data = MapData.from_response(json.loads(text))
            except ValueError:
                _LOGGER.debug("Failed to parse map data payload")
        else:
            return

        if self.on_state_update:
            self.on_state_update(self.state)

    # --- Commands ---

    async def publish(self, subtopic: str, payload: str) -> None:
        if not self.connected or self._client is None:
            raise ValetudoMqttError(f"MQTT not connected, cannot publish {subtopic}")
        try:
            await self._client.publish(f"{self.topic_base}/{subtopic}", payload=payload)
        except aiomqtt.MqttError as err:
            raise ValetudoMqttError(f"MQTT publish of {subtopic} failed: {err}") from err
        _LOGGER.debug("MQTT published %s=%s", subtopic, payload)

    async def basic_control(self, action: BasicAction | str) -> None:
        action = action.value if isinstance(action, BasicAction) else action
        await self.publish(TOPIC_CMD_BASIC_CONTROL, action.upper())

    async def set_fan_speed(self, preset: str) -> None:
        await self.publish(TOPIC_CMD_FAN_SPEED, preset)

    async def locate(self) -> None:
        await self.publish(TOPIC_CMD_LOCATE, "PERFORM")
