"""Valetudo multi-floor client library: map backups and floor switching over SSH."""

from .api import ValetudoApi, ValetudoApiError
from .const import BasicAction, CapabilitySupport, RobotStatus
from .controller import ActiveFloorError, FloorController, MapSnapshotCache, UnknownCommand
from .device import MqttStateSource, RestStateSource, StateSource, ValetudoDevice
from .floors import (
    FloorManager,
    MappingInProgress,
    NoSavedMap,
    RebootTimeout,
    SwitchInProgress,
    WorkflowSlot,
)
from .maps import MapStorage, NoMapFilesFound, VerificationFailed
from .mapping import AutoSaveResult, NewFloorMapper
from .models import Floor, FloorConfig, MapData, MapLayer, PendingNewFloor, RobotState, slugify_floor_name
from .mqtt import ValetudoMqtt, ValetudoMqttError
from .registry import DuplicateFloor, FloorError, FloorRegistry, InvalidName, NotFound
from .ssh import ChannelUnavailable, ExecError, SshChannel, SshError

__all__ = [
    "ActiveFloorError",
    "AutoSaveResult",
    "BasicAction",
    "CapabilitySupport",
    "ChannelUnavailable",
    "DuplicateFloor",
    "ExecError",
    "Floor",
    "FloorConfig",
    "FloorController",
    "FloorError",
    "FloorManager",
    "FloorRegistry",
    "InvalidName",
    "MapData",
    "MapLayer",
    "MapSnapshotCache",
    "MapStorage",
    "MappingInProgress",
    "MqttStateSource",
    "NewFloorMapper",
    "NoMapFilesFound",
    "NoSavedMap",
    "NotFound",
    "PendingNewFloor",
    "RebootTimeout",
    "RestStateSource",
    "RobotState",
    "RobotStatus",
    "SshChannel",
    "SshError",
    "StateSource",
    "SwitchInProgress",
    "UnknownCommand",
    "ValetudoApi",
    "ValetudoApiError",
    "ValetudoDevice",
    "ValetudoMqtt",
    "ValetudoMqttError",
    "VerificationFailed",
    "WorkflowSlot",
    "slugify_floor_name",
]
