"""Constants for the Valetudo Floors integration."""

from homeassistant.const import Platform

from .valetudo_client.const import SEGMENT_WAIT_TIMEOUT

DOMAIN = "valetudo_floors"

MANUFACTURER = "Valetudo"
DEFAULT_MODEL = "Valetudo robot"

PLATFORMS: list[Platform] = [
    Platform.VACUUM,
    Platform.SENSOR,
    Platform.BINARY_SENSOR,
    Platform.SELECT,
    Platform.BUTTON,
    Platform.SWITCH,
]

STORAGE_VERSION = 1

# Config entry keys
CONF_AUTH_USER = "auth_user"
CONF_AUTH_PASS = "auth_pass"
CONF_SSH_HOST = "ssh_host"
CONF_SSH_PORT = "ssh_port"
CONF_SSH_USER = "ssh_user"
CONF_SSH_PASSWORD = "ssh_password"
CONF_SSH_PRIVATE_KEY = "ssh_private_key"
CONF_MQTT_HOST = "mqtt_host"
CONF_MQTT_PORT = "mqtt_port"
CONF_MQTT_USERNAME = "mqtt_username"
CONF_MQTT_PASSWORD = "mqtt_password"
CONF_MQTT_TOPIC_PREFIX = "mqtt_topic_prefix"
CONF_MQTT_IDENTIFIER = "mqtt_identifier"
CONF_SEGMENT_WAIT_TIMEOUT = "segment_wait_timeout"

DEFAULT_SEGMENT_WAIT_TIMEOUT = int(SEGMENT_WAIT_TIMEOUT)

# Services (names double as controller command names)
SERVICE_SWITCH_FLOOR = "switch_floor"
SERVICE_SAVE_FLOOR = "save_floor"
SERVICE_RENAME_FLOOR = "rename_floor"
SERVICE_DELETE_FLOOR = "delete_floor"
SERVICE_SET_FLOOR_DOCK = "set_floor_dock"
SERVICE_NEW_FLOOR = "new_floor"
SERVICE_LIST_FLOORS = "list_floors"
SERVICE_GET_MAP_SNAPSHOT = "get_map_snapshot"

ATTR_ENTRY_ID = "entry_id"
ATTR_FLOOR_ID = "floor_id"
ATTR_NAME = "name"
ATTR_HAS_DOCK = "has_dock"

# Valetudo fan speed presets exposed on the vacuum entity
FAN_SPEED_LIST: list[str] = ["low", "medium", "high", "max"]
