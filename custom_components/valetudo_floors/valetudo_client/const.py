"""Constants, paths, and status vocabulary for Valetudo robots."""

from enum import Enum

# Connection defaults
DEFAULT_SSH_PORT = 22
DEFAULT_SSH_USER = "root"
SSH_CONNECT_TIMEOUT = 10.0
SSH_KEEPALIVE_INTERVAL = 30

DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_TOPIC_PREFIX = "valetudo"

API_TIMEOUT = 10.0
API_MAP_TIMEOUT = 30.0
API_REACHABLE_TIMEOUT = 5.0

# MQTT reconnect backoff
RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 60.0
RECONNECT_BACKOFF_FACTOR = 2.0

# --- Robot filesystem (Roborock firmware layout) ---
MAP_BASE = "/mnt/data/rockrobo"
FLOORS_DIR = f"{MAP_BASE}/floors"

# Firmware keeps extra maps in numbered slots on multi-map capable builds
MULTI_MAP_DIR = f"{MAP_BASE}/multi_map"

PRIMARY_MAP_FILE = "last_map"

# Live map slot; the primary map container comes first
MAP_FILES: tuple[str, ...] = (
    PRIMARY_MAP_FILE,
    "ChargerPos.data",
    "PersistentData_1.data",
    "PersistentData_2.data",
)

# Left behind in the live slot these make firmware merge the old and new map
CONFLICT_FILES: tuple[str, ...] = (
    "StartPos.data",
    "user_map0",
)

# Alternate names the firmware uses for the primary map (rotation/backup)
ALTERNATE_MAP_FILES: tuple[str, ...] = (
    "last_map.bak",
    "last_map.old",
)

ROBO_CONFIG = f"{MAP_BASE}/RoboController.cfg"
RECOVER_MAP_KEY = "need_recover_map"
SEGMENT_MAP_KEY = "need_segment_map"

# --- Workflow timing ---
STOP_SETTLE_DELAY = 3.0
REBOOT_POLL_INTERVAL = 10.0
REBOOT_MAX_POLL_ATTEMPTS = 60  # 10 minutes

SEGMENT_POLL_INTERVAL = 10.0
SEGMENT_WAIT_TIMEOUT = 300.0
SEGMENT_TRIGGER_AFTER = 30.0

DEFAULT_FIRST_FLOOR_NAME = "Floor 1"

# --- REST API (Valetudo v2) ---
API_ROBOT = "/api/v2/robot"
API_CAPABILITIES = "/api/v2/robot/capabilities"
API_STATE_ATTRIBUTES = "/api/v2/robot/state/attributes"
API_MAP = "/api/v2/robot/state/map"

CAPABILITY_BASIC_CONTROL = "BasicControlCapability"
CAPABILITY_MAP_RESET = "MapResetCapability"
CAPABILITY_MAPPING_PASS = "MappingPassCapability"
CAPABILITY_QUIRKS = "QuirksCapability"
CAPABILITY_MAP_SEGMENTATION = "MapSegmentationCapability"
CAPABILITY_LOCATE = "LocateCapability"
CAPABILITY_FAN_SPEED = "FanSpeedControlCapability"

# Placeholder, not a real Valetudo quirk id. The segmentation quirk id is
# firmware specific; pass the robot's id as NewFloorMapper(segmentation_quirk_id=...).
# Unmatched ids fall back to the segment flag and reboot.
SEGMENTATION_QUIRK_ID = "7f2c4a9e-3f5d-4e0c-9b1a-2d6a1c8b5e40"
SEGMENTATION_QUIRK_VALUE = "trigger"

# --- MQTT topics (relative to <prefix>/<identifier>/) ---
TOPIC_STATUS = "StatusStateAttribute/status"
TOPIC_ERROR = "StatusStateAttribute/error"
TOPIC_BATTERY_LEVEL = "BatteryStateAttribute/level"
TOPIC_FAN_SPEED = "FanSpeedControlCapability/preset"
TOPIC_SEGMENTS = "MapData/segments"
TOPIC_MAP_DATA = "MapData/map-data-hass"

TOPIC_CMD_BASIC_CONTROL = "BasicControlCapability/operation/set"
TOPIC_CMD_FAN_SPEED = "FanSpeedControlCapability/preset/set"
TOPIC_CMD_LOCATE = "LocateCapability/locate/set"

SUBSCRIBED_TOPICS: tuple[str, ...] = (
    TOPIC_STATUS,
    TOPIC_ERROR,
    TOPIC_BATTERY_LEVEL,
    TOPIC_FAN_SPEED,
    TOPIC_SEGMENTS,
    TOPIC_MAP_DATA,
)

LAYER_TYPE_SEGMENT = "segment"


class RobotStatus(str, Enum):
    """Cleaning status reported by Valetudo (REST and MQTT share it)."""

    UNKNOWN = "unknown"
    IDLE = "idle"
    DOCKED = "docked"
    CLEANING = "cleaning"
    RETURNING = "returning"
    PAUSED = "paused"
    MOVING = "moving"
    MANUAL_CONTROL = "manual_control"
    ERROR = "error"

    @classmethod
    def parse(cls, value: object) -> "RobotStatus":
        """Map a raw status string onto the enum, UNKNOWN for anything else."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_active(self) -> bool:
        """True while the robot is driving around."""
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        """True once a run has ended (with or without a dock)."""
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({RobotStatus.CLEANING, RobotStatus.RETURNING, RobotStatus.MOVING})
TERMINAL_STATUSES = frozenset({RobotStatus.IDLE, RobotStatus.DOCKED, RobotStatus.ERROR})


class BasicAction(str, Enum):
    """Actions accepted by BasicControlCapability."""

    START = "start"
    STOP = "stop"
    PAUSE = "pause"
    HOME = "home"


class CapabilitySupport(Enum):
    """Tri-state result of a capability probe."""

    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"
