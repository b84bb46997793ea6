"""
CamPush - publish local cameras and microphones to a streaming hub.

A Python library and command-line publisher that declares each capture
source to a remote hub as its own stream and starts or stops publishing on
the hub's command.
"""

__version__ = "0.1.0"

from .models import (
    CaptureDevice,
    ControlCommand,
    PublisherIdentity,
    Source,
    SourceKind,
    StreamAssignment,
    StreamState,
    config_key,
)
from .exceptions import (
    CamPushError,
    ConfigError,
    DeviceUnavailable,
    PermissionDenied,
    PlatformDetectionError,
    ProtocolError,
    TransportError,
)
from .config import PublisherSettings
from .manager import Publisher
from .hub import HubClient
from .registry import SourceRegistry
from .store import ConfigStore, StoreError, StoreCorruptionError
from .backends import CaptureDeviceProvider

__all__ = [
    "CaptureDevice",
    "ControlCommand",
    "PublisherIdentity",
    "Source",
    "SourceKind",
    "StreamAssignment",
    "StreamState",
    "config_key",
    "CamPushError",
    "ConfigError",
    "DeviceUnavailable",
    "PermissionDenied",
    "PlatformDetectionError",
    "ProtocolError",
    "TransportError",
    "PublisherSettings",
    "Publisher",
    "HubClient",
    "SourceRegistry",
    "ConfigStore",
    "StoreError",
    "StoreCorruptionError",
    "CaptureDeviceProvider",
]
