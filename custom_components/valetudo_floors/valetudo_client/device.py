"""Device control surface: state sources and capability probes.

Status reads and basic control go through one StateSource. MQTT is the
low-latency push source and is used while its broker connection is up;
REST is the pull fallback. Map payloads are pulled over REST unless MQTT
has already pushed one.
"""

from __future__ import annotations

import abc
import logging

from .api import ValetudoApi, ValetudoApiError
from .const import (
    CAPABILITY_MAPPING_PASS,
    CAPABILITY_QUIRKS,
    BasicAction,
    CapabilitySupport,
    RobotStatus,
)
from .models import MapData, MapLayer, RobotState
from .mqtt import ValetudoMqtt

_LOGGER = logging.getLogger(__name__)


class StateSource(abc.ABC):
    """Where status comes from and where basic commands go."""

    name: str = ""

    @abc.abstractmethod
    async def get_status(self) -> RobotStatus:
        """Return the current cleaning status."""

    @abc.abstractmethod
    async def get_map(self) -> MapData:
        """Return the current live map."""

    @abc.abstractmethod
    async def basic_control(self, action: BasicAction) -> None:
        """Send start/stop/pause/home."""


class RestStateSource(StateSource):
    """Pull status and map from the REST API."""

    name = "rest"

    def __init__(self, api: ValetudoApi) -> None:
        self._api = api

    async def get_status(self) -> RobotStatus:
        return await self._api.get_status()

    async def get_map(self) -> MapData:
        return await self._api.get_map()

    async def basic_control(self, action: BasicAction) -> None:
        await self._api.basic_control(action)


class MqttStateSource(StateSource):
    """Serve status from the MQTT push cache, publish commands over MQTT.

    Reads the cache cannot answer yet (nothing pushed so far) are
    delegated to the pull source.
    """

    name = "mqtt"

    def __init__(self, mqtt: ValetudoMqtt, fallback: StateSource) -> None:
        self._mqtt = mqtt
        self._fallback = fallback

    async def get_status(self) -> RobotStatus:
        status = self._mqtt.state.status
        if status == RobotStatus.UNKNOWN:
            return await self._fallback.get_status()
        return status

    async def get_map(self) -> MapData:
        if self._mqtt.state.map_data is not None:
            return self._mqtt.state.map_data
        return await self._fallback.get_map()

    async def basic_control(self, action: BasicAction) -> None:
        await self._mqtt.basic_control(action)


class ValetudoDevice:
    """The robot's control surface as seen by the floor workflows."""

    def __init__(self, api: ValetudoApi, mqtt: ValetudoMqtt | None = None) -> None:
        self.api = api
        self.mqtt = mqtt
        self._rest = RestStateSource(api)
        self._mqtt_source = MqttStateSource(mqtt, self._rest) if mqtt is not None else None
        self._capabilities: list[str] | None = None
        self._support_overrides: dict[str, CapabilitySupport] = {}
        self._quirk_support: dict[str, CapabilitySupport] = {}

    @property
    def source(self) -> StateSource:
        """The live source: MQTT while connected, otherwise REST."""
        if self._mqtt_source is not None and self.mqtt is not None and self.mqtt.connected:
            return self._mqtt_source
        return self._rest

    @property
    def state(self) -> RobotState:
        if self.mqtt is not None:
            return self.mqtt.state
        return RobotState()

    # --- Probe ---

    async def get_status(self) -> RobotStatus:
        return await self.source.get_status()

    async def get_map(self) -> MapData:
        return await self.source.get_map()

    async def get_map_layers(self) -> list[MapLayer]:
        return (await self.get_map()).layers

    async def is_reachable(self) -> bool:
        return await self.api.is_reachable()

    # --- Control ---

    async def start(self) -> None:
        await self.source.basic_control(BasicAction.START)

    async def stop(self) -> None:
        await self.source.basic_control(BasicAction.STOP)

    async def pause(self) -> None:
        await self.source.basic_control(BasicAction.PAUSE)

    async def return_to_dock(self) -> None:
        await self.source.basic_control(BasicAction.HOME)

    async def reset_map(self) -> None:
        await self.api.reset_map()

    async def start_mapping_pass(self) -> None:
        await self.api.start_mapping_pass()

    async def trigger_segmentation_quirk(self, quirk_id: str, value: str) -> None:
        await self.api.set_quirk(quirk_id, value)

    def clear_segments(self) -> None:
        """Forget cached room names (they belong to the previous floor)."""
        if self.mqtt is not None:
            self.mqtt.state.segments = {}
            self.mqtt.state.map_data = None

    # --- Capability probes ---

    async def _load_capabilities(self) -> list[str] | None:
        if self._capabilities is None:
            try:
                self._capabilities = await self.api.get_capabilities()
            except ValetudoApiError as err:
                _LOGGER.debug("Capability list unavailable: %s", err)
                return None
        return self._capabilities

    async def supports(self, capability: str) -> CapabilitySupport:
        """Probe a capability: supported, unsupported, or unknown-until-tried."""
        if capability in self._support_overrides:
            return self._support_overrides[capability]
        capabilities = await self._load_capabilities()
        if capabilities is None:
            return CapabilitySupport.UNKNOWN
        if capability in capabilities:
            return CapabilitySupport.SUPPORTED
        return CapabilitySupport.UNSUPPORTED

    async def supports_mapping_pass(self) -> CapabilitySupport:
        return await self.supports(CAPABILITY_MAPPING_PASS)

    async def supports_quirk(self, quirk_id: str) -> CapabilitySupport:
        """Probe a single firmware quirk through QuirksCapability."""
        if quirk_id in self._quirk_support:
            return self._quirk_support[quirk_id]
        support = await self.supports(CAPABILITY_QUIRKS)
        if support != CapabilitySupport.SUPPORTED:
            return support
        try:
            quirks = await self.api.get_quirks()
        except ValetudoApiError as err:
            _LOGGER.debug("Quirk list unavailable: %s", err)
            return CapabilitySupport.UNKNOWN
        found = any(q.get("id") == quirk_id for q in quirks if isinstance(q, dict))
        result = CapabilitySupport.SUPPORTED if found else CapabilitySupport.UNSUPPORTED
        self._quirk_support[quirk_id] = result
        return result

    def mark_unsupported(self, capability: str) -> None:
        """Record that a call against an unknown capability failed."""
        self._support_overrides[capability] = CapabilitySupport.UNSUPPORTED

    def mark_quirk_unsupported(self, quirk_id: str) -> None:
        self._quirk_support[quirk_id] = CapabilitySupport.UNSUPPORTED

    def reset_capabilities(self) -> None:
        """Forget probe results (e.g. after a firmware update or reboot)."""
        self._capabilities = None
        self._support_overrides.clear()
        self._quirk_support.clear()
