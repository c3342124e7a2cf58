"""REST client for the Valetudo v2 HTTP API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from .const import (
    API_CAPABILITIES,
    API_MAP,
    API_MAP_TIMEOUT,
    API_REACHABLE_TIMEOUT,
    API_ROBOT,
    API_STATE_ATTRIBUTES,
    API_TIMEOUT,
    CAPABILITY_BASIC_CONTROL,
    CAPABILITY_FAN_SPEED,
    CAPABILITY_LOCATE,
    CAPABILITY_MAP_RESET,
    CAPABILITY_MAP_SEGMENTATION,
    CAPABILITY_MAPPING_PASS,
    CAPABILITY_QUIRKS,
    BasicAction,
    RobotStatus,
)
from .models import MapData, status_from_attributes

_LOGGER = logging.getLogger(__name__)


class ValetudoApiError(Exception):
    """Raised when a REST call fails or returns an error status."""

    def __init__(self, method: str, path: str, reason: str, status: int | None = None) -> None:
        super().__init__(f"{method} {path} failed: {reason}")
        self.method = method
        self.path = path
        self.reason = reason
        self.status = status


class ValetudoApi:
    """Async client for a robot's Valetudo REST API.

    Usage:
        async with aiohttp.ClientSession() as session:
            api = ValetudoApi("192.168.1.50", session)
            status = await api.get_status()
    """

    def __init__(
        self,
        host: str,
        session: aiohttp.ClientSession | None = None,
        auth_user: str | None = None,
        auth_pass: str | None = None,
    ) -> None:
        self.host = host
        self.base_url = f"http://{host}"
        self._session = session
        self._owns_session = session is None
        self._auth = aiohttp.BasicAuth(auth_user, auth_pass or "") if auth_user else None

    def update_host(self, host: str) -> None:
        self.host = host
        self.base_url = f"http://{host}"

    def update_auth(self, auth_user: str | None, auth_pass: str | None) -> None:
        self._auth = aiohttp.BasicAuth(auth_user, auth_pass or "") if auth_user else None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        timeout: float = API_TIMEOUT,
    ) -> Any:
        session = self._get_session()
        try:
            async with session.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                auth=self._auth,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise ValetudoApiError(method, path, text or resp.reason or "error", resp.status)
                if resp.content_type == "application/json":
                    return await resp.json()
                return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise ValetudoApiError(method, path, str(err) or type(err).__name__) from err

    async def _get(self, path: str, timeout: float = API_TIMEOUT) -> Any:
        return await self._request("GET", path, timeout=timeout)

    async def _put(self, path: str, body: dict[str, Any]) -> Any:
        _LOGGER.debug("PUT %s %s", path, body)
        return await self._request("PUT", path, json=body)

    @staticmethod
    def _capability(name: str, suffix: str = "") -> str:
        return f"{API_CAPABILITIES}/{name}{suffix}"

    # --- Queries ---

    async def get_robot_info(self) -> dict[str, Any]:
        return await self._get(API_ROBOT)

    async def get_capabilities(self) -> list[str]:
        data = await self._get(API_CAPABILITIES)
        return [str(name) for name in data] if isinstance(data, list) else []

    async def get_state_attributes(self) -> list[dict[str, Any]]:
        data = await self._get(API_STATE_ATTRIBUTES)
        return data if isinstance(data, list) else []

    async def get_status(self) -> RobotStatus:
        """Current cleaning status from the state attributes."""
        return status_from_attributes(await self.get_state_attributes())

    async def get_map(self) -> MapData:
        """Fetch the live map (large payload, extended timeout)."""
        return MapData.from_response(await self._get(API_MAP, timeout=API_MAP_TIMEOUT))

    async def get_segments(self) -> list[dict[str, Any]]:
        data = await self._get(self._capability(CAPABILITY_MAP_SEGMENTATION))
        return data if isinstance(data, list) else []

    async def get_quirks(self) -> list[dict[str, Any]]:
        data = await self._get(self._capability(CAPABILITY_QUIRKS))
        return data if isinstance(data, list) else []

    async def is_reachable(self) -> bool:
        """Return True if the robot answers within a short timeout. Never raises."""
        try:
            await self._request("GET", API_ROBOT, timeout=API_REACHABLE_TIMEOUT)
        except ValetudoApiError:
            return False
        return True

    # --- Commands ---

    async def basic_control(self, action: BasicAction | str) -> Any:
        action = action.value if isinstance(action, BasicAction) else action
        return await self._put(self._capability(CAPABILITY_BASIC_CONTROL), {"action": action})

    async def reset_map(self) -> Any:
        return await self._put(self._capability(CAPABILITY_MAP_RESET), {"action": "reset"})

    async def start_mapping_pass(self) -> Any:
        return await self._put(self._capability(CAPABILITY_MAPPING_PASS), {"action": "start"})

    async def set_quirk(self, quirk_id: str, value: str) -> Any:
        return await self._put(self._capability(CAPABILITY_QUIRKS), {"id": quirk_id, "value": value})

    async def clean_segments(self, segment_ids: list[str], iterations: int = 1) -> Any:
        return await self._put(
            self._capability(CAPABILITY_MAP_SEGMENTATION),
            {
                "action": "start_segment_action",
                "segment_ids": segment_ids,
                "iterations": iterations,
            },
        )

    async def locate(self) -> Any:
        return await self._put(self._capability(CAPABILITY_LOCATE), {"action": "locate"})

    async def set_fan_speed(self, preset: str) -> Any:
        return await self._put(self._capability(CAPABILITY_FAN_SPEED, "/preset"), {"name": preset})
