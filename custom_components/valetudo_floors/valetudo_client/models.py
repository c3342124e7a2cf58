"""Data models for floors, map data and robot state."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any

from .const import LAYER_TYPE_SEGMENT, RobotStatus

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify_floor_name(name: str) -> str:
    """Derive a floor id from a display name.

    'Floor 1' → 'floor_1', '  Upstairs / Attic! ' → 'upstairs_attic'.
    Returns an empty string when nothing alphanumeric is left.
    """
    return _NON_ALNUM.sub("_", name.lower()).strip("_")


@dataclass
class Floor:
    """A logical cleaning area with its own map backup."""

    id: str
    name: str
    has_dock: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Floor:
        # Entries written before the dock flag existed have no key at all
        has_dock = data.get("has_dock", data.get("hasDock", True))
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            has_dock=has_dock is not False,
        )

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "has_dock": self.has_dock}


@dataclass
class FloorConfig:
    """Persisted floor registry: ordered floors plus the active pointer."""

    floors: list[Floor] = field(default_factory=list)
    active_floor: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FloorConfig:
        """Build from stored data, tolerating missing or legacy keys."""
        if not data:
            return cls()
        floors = [
            Floor.from_dict(entry)
            for entry in data.get("floors", [])
            if isinstance(entry, dict) and entry.get("id")
        ]
        active = data.get("active_floor", data.get("activeFloor"))
        return cls(floors=floors, active_floor=active or None)

    def as_dict(self) -> dict[str, Any]:
        return {
            "floors": [floor.as_dict() for floor in self.floors],
            "active_floor": self.active_floor,
        }

    def copy(self) -> FloorConfig:
        """Deep enough copy for a read-modify-write cycle."""
        return FloorConfig(
            floors=[replace(floor) for floor in self.floors],
            active_floor=self.active_floor,
        )

    def find(self, floor_id: str) -> Floor | None:
        for floor in self.floors:
            if floor.id == floor_id:
                return floor
        return None


@dataclass(frozen=True)
class PendingNewFloor:
    """A floor being mapped; auto-saved under this name when the run ends."""

    name: str
    has_dock: bool = True


@dataclass
class MapLayer:
    """One layer of a Valetudo map (floor, wall or segment)."""

    type: str = ""
    segment_id: str | None = None
    name: str | None = None
    active: bool = False

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> MapLayer:
        meta = data.get("metaData") or {}
        segment_id = meta.get("segmentId")
        return cls(
            type=str(data.get("type", "")),
            segment_id=str(segment_id) if segment_id is not None else None,
            name=meta.get("name"),
            active=meta.get("active") is True,
        )


@dataclass
class MapData:
    """Map payload from /robot/state/map or the map-data-hass topic."""

    layers: list[MapLayer] = field(default_factory=list)
    pixel_size: int = 0
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: dict[str, Any] | None) -> MapData:
        if not isinstance(data, dict):
            return cls()
        layers = [
            MapLayer.from_response(layer)
            for layer in data.get("layers") or []
            if isinstance(layer, dict)
        ]
        try:
            pixel_size = int(data.get("pixelSize", 0))
        except (ValueError, TypeError):
            pixel_size = 0
        return cls(layers=layers, pixel_size=pixel_size, raw=data)

    @property
    def has_segments(self) -> bool:
        """True once firmware has split the map into rooms."""
        return any(layer.type == LAYER_TYPE_SEGMENT for layer in self.layers)

    @property
    def segments(self) -> dict[str, str]:
        """Segment id → display name for every segment layer."""
        return {
            layer.segment_id: layer.name or f"Segment {layer.segment_id}"
            for layer in self.layers
            if layer.type == LAYER_TYPE_SEGMENT and layer.segment_id is not None
        }

    @property
    def active_segment_ids(self) -> set[str]:
        return {
            layer.segment_id
            for layer in self.layers
            if layer.type == LAYER_TYPE_SEGMENT and layer.active and layer.segment_id
        }


@dataclass
class RobotState:
    """Latest known state of the robot.

    Updated incrementally from MQTT pushes or REST attribute polls.
    """

    status: RobotStatus = RobotStatus.UNKNOWN
    battery_level: int | None = None
    error: str = ""
    fan_speed: str | None = None
    segments: dict[str, str] = field(default_factory=dict)
    map_data: MapData | None = None

    @property
    def is_cleaning(self) -> bool:
        return self.status == RobotStatus.CLEANING

    @property
    def is_docked(self) -> bool:
        return self.status == RobotStatus.DOCKED

    def update_from_attributes(self, attributes: list[dict[str, Any]]) -> None:
        """Update from a /robot/state/attributes response."""
        for attr in attributes:
            if not isinstance(attr, dict):
                continue
            kind = attr.get("__class")
            if kind == "StatusStateAttribute" and attr.get("value"):
                self.status = RobotStatus.parse(attr["value"])
            elif kind == "BatteryStateAttribute" and isinstance(attr.get("level"), (int, float)):
                self.battery_level = int(attr["level"])
            elif kind == "PresetSelectionStateAttribute" and attr.get("type") == "fan_speed":
                self.fan_speed = attr.get("value")

    def update_segments(self, payload: Any) -> None:
        """Replace the segment cache from a list or dict of segments."""
        segments: dict[str, str] = {}
        if isinstance(payload, list):
            for seg in payload:
                if isinstance(seg, dict) and "id" in seg:
                    seg_id = str(seg["id"])
                    segments[seg_id] = seg.get("name") or f"Segment {seg_id}"
        elif isinstance(payload, dict):
            for seg_id, name in payload.items():
                segments[str(seg_id)] = name or f"Segment {seg_id}"
        self.segments = segments


def status_from_attributes(attributes: list[dict[str, Any]]) -> RobotStatus:
    """Extract the cleaning status from a state attribute list."""
    state = RobotState()
    state.update_from_attributes(attributes)
    return state.status
