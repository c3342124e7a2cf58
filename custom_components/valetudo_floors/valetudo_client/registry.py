"""Durable registry of floors and the active-floor pointer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from .models import Floor, FloorConfig

_LOGGER = logging.getLogger(__name__)


class FloorError(Exception):
    """Base class for floor workflow failures."""


class NotFound(FloorError):
    """Raised when a floor id is not registered."""

    def __init__(self, floor_id: str) -> None:
        super().__init__(f'Floor "{floor_id}" not found')
        self.floor_id = floor_id


class DuplicateFloor(FloorError):
    """Raised when adding a floor whose id is already registered."""

    def __init__(self, floor_id: str) -> None:
        super().__init__(f'Floor "{floor_id}" already exists')
        self.floor_id = floor_id


class InvalidName(FloorError):
    """Raised when a floor name yields an empty id."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid floor name: {name!r}")
        self.name = name


class RegistryStore(Protocol):
    """One persisted value per robot (Home Assistant's Store fits as-is)."""

    async def async_load(self) -> dict[str, Any] | None: ...

    async def async_save(self, data: dict[str, Any]) -> None: ...


class FloorRegistry:
    """Floors known for one robot plus which one is active.

    Reads come from the in-memory copy and never wait. Every mutation
    works on a copy, persists it, and only then replaces the in-memory copy,
    so a failed save leaves the registry as it was.
    """

    def __init__(self, store: RegistryStore) -> None:
        self._store = store
        self._config = FloorConfig()
        self._lock = asyncio.Lock()
        self.on_change: Callable[[FloorConfig], None] | None = None

    async def async_load(self) -> FloorConfig:
        self._config = FloorConfig.from_dict(await self._store.async_load())
        _LOGGER.debug(
            "Loaded %d floor(s), active=%s", len(self._config.floors), self._config.active_floor
        )
        return self._config

    # --- Reads ---

    @property
    def config(self) -> FloorConfig:
        return self._config

    @property
    def floors(self) -> list[Floor]:
        return list(self._config.floors)

    @property
    def floor_ids(self) -> set[str]:
        return {floor.id for floor in self._config.floors}

    @property
    def active_floor(self) -> str | None:
        return self._config.active_floor

    @property
    def active_floor_name(self) -> str | None:
        if not self._config.active_floor:
            return None
        floor = self._config.find(self._config.active_floor)
        return floor.name if floor else None

    @property
    def active_floor_has_dock(self) -> bool:
        """Dock flag of the active floor; True when nothing is configured."""
        if not self._config.active_floor:
            return True
        floor = self._config.find(self._config.active_floor)
        return floor.has_dock if floor else True

    def get(self, floor_id: str) -> Floor | None:
        return self._config.find(floor_id)

    def require(self, floor_id: str) -> Floor:
        floor = self._config.find(floor_id)
        if floor is None:
            raise NotFound(floor_id)
        return floor

    def name_for(self, floor_id: str) -> str:
        floor = self._config.find(floor_id)
        return floor.name if floor else floor_id

    # --- Mutations ---

    async def _commit(self, mutate: Callable[[FloorConfig], Any]) -> Any:
        async with self._lock:
            config = self._config.copy()
            result = mutate(config)
            await self._store.async_save(config.as_dict())
            self._config = config
        if self.on_change:
            self.on_change(config)
        return result

    async def add(self, floor_id: str, name: str, has_dock: bool = True) -> Floor:
        def mutate(config: FloorConfig) -> Floor:
            if config.find(floor_id) is not None:
                raise DuplicateFloor(floor_id)
            floor = Floor(floor_id, name, has_dock)
            config.floors.append(floor)
            return floor

        return await self._commit(mutate)

    async def upsert(self, floor_id: str, name: str, has_dock: bool, activate: bool = False) -> Floor:
        """Insert the floor or update its dock flag; optionally make it active."""

        def mutate(config: FloorConfig) -> Floor:
            floor = config.find(floor_id)
            if floor is None:
                floor = Floor(floor_id, name, has_dock)
                config.floors.append(floor)
            else:
                floor.has_dock = has_dock
            if activate:
                config.active_floor = floor_id
            return floor

        return await self._commit(mutate)

    async def rename(self, floor_id: str, name: str) -> Floor:
        def mutate(config: FloorConfig) -> Floor:
            floor = config.find(floor_id)
            if floor is None:
                raise NotFound(floor_id)
            floor.name = name
            return floor

        return await self._commit(mutate)

    async def set_dock(self, floor_id: str, has_dock: bool) -> Floor:
        def mutate(config: FloorConfig) -> Floor:
            floor = config.find(floor_id)
            if floor is None:
                raise NotFound(floor_id)
            floor.has_dock = has_dock
            return floor

        return await self._commit(mutate)

    async def remove(self, floor_id: str) -> None:
        """Drop a floor; clears the active pointer if it pointed here."""

        def mutate(config: FloorConfig) -> None:
            config.floors = [floor for floor in config.floors if floor.id != floor_id]
            if config.active_floor == floor_id:
                config.active_floor = None

        await self._commit(mutate)

    async def set_active(self, floor_id: str) -> None:
        def mutate(config: FloorConfig) -> None:
            if config.find(floor_id) is None:
                raise NotFound(floor_id)
            config.active_floor = floor_id

        await self._commit(mutate)
