"""
Core data models for CamPush.

This module defines the data structures shared by the publisher components:
capture sources, the publisher identity issued by the hub, control commands
and the per-stream state reported back to the hub.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import re
import uuid


class SourceKind(Enum):
    """Kind of media a capture source produces."""
    VIDEO = "video"
    AUDIO = "audio"


class StreamState(Enum):
    """Per-stream state reported to the hub."""
    STARTING = "starting"
    LIVE = "live"
    IDLE = "idle"


class CommandAction(Enum):
    """Actions the hub may push over the control channel."""
    START = "start"
    STOP = "stop"


# Human-readable source statuses
STATUS_READY = "ready"
STATUS_PENDING = "pending"
STATUS_DISABLED = "disabled"
STATUS_WAITING = "waiting viewer"
STATUS_STARTING = "starting"
STATUS_LIVE = "live"
STATUS_DEVICE_UNAVAILABLE = "device unavailable"

_DEFAULT_AUDIO_PREFIXES = (
    re.compile(r"^default\s*-\s*"),
    re.compile(r"^默认\s*-\s*"),
)
_SLUG_INVALID = re.compile(r"[^a-z0-9._-]+")
_SLUG_EDGES = re.compile(r"^-+|-+$")


@dataclass
class CaptureDevice:
    """
    A physical capture input reported by a capture device provider.

    ``unique_id`` is whatever the platform uses to address the device and is
    not guaranteed to be stable across enumerations; the stable join key is
    derived from ``kind`` and ``label`` by :func:`config_key`.
    """
    unique_id: str
    label: str
    kind: SourceKind
    platform_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Source:
    """
    One capture input the device offers as a stream.

    Configuration (``enabled``, ``title``, ``name``) is persisted and merged
    across re-enumeration by ``id``; ``stream_id`` and ``path`` are only ever
    assigned by the hub.
    """
    id: str
    device_id: str
    label: str
    kind: SourceKind
    name: str
    title: str
    enabled: bool = False
    stream_id: str = ""
    path: str = ""
    is_publishing: bool = False
    status: str = STATUS_READY

    @property
    def media(self) -> str:
        """Media type string used in the hub payload."""
        return "audio" if self.kind == SourceKind.AUDIO else "video"

    def to_dict(self) -> Dict[str, Any]:
        """Convert the source to a JSON-serializable dictionary."""
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        """
        Rebuild a source from its stored dictionary form.

        Raises:
            KeyError: If a required field is missing
            ValueError: If the stored kind is unknown
        """
        return cls(
            id=data["id"],
            device_id=data.get("device_id", ""),
            label=data.get("label", ""),
            kind=SourceKind(data["kind"]),
            name=data.get("name") or data["id"],
            title=data.get("title", ""),
            enabled=bool(data.get("enabled", False)),
            stream_id=data.get("stream_id", ""),
            path=data.get("path", ""),
            is_publishing=bool(data.get("is_publishing", False)),
            status=data.get("status", STATUS_READY),
        )


@dataclass
class PublisherIdentity:
    """Identity issued by the hub plus the locally generated client id."""
    publisher_id: str = ""
    token: str = ""
    client_id: str = ""

    @property
    def is_registered(self) -> bool:
        return bool(self.token)

    def clear(self) -> None:
        """Forget the hub-issued identity; the client id is kept."""
        self.publisher_id = ""
        self.token = ""


@dataclass(frozen=True)
class StreamAssignment:
    """A stream id and publish path assigned by the hub to a declared stream name."""
    id: str
    name: str
    path: str


@dataclass(frozen=True)
class ControlCommand:
    """A start/stop intent pushed by the hub."""
    action: CommandAction
    stream_id: str
    path: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["ControlCommand"]:
        """
        Parse a decoded control event.

        Returns:
            Optional[ControlCommand]: The command, or None when the payload is
            malformed (unknown action, missing stream id, wrong types)
        """
        if not isinstance(payload, dict):
            return None
        stream_id = payload.get("stream_id")
        if not isinstance(stream_id, str) or not stream_id:
            return None
        try:
            action = CommandAction(payload.get("action"))
        except ValueError:
            return None
        path = payload.get("path")
        if path is not None and not isinstance(path, str):
            return None
        return cls(action=action, stream_id=stream_id, path=path)


def sanitize_slug(raw: str) -> str:
    """
    Turn an arbitrary string into a lowercase slug.

    Runs of characters outside ``[a-z0-9._-]`` collapse into a single dash and
    leading/trailing dashes are removed. An empty result becomes ``"stream"``.
    """
    s = raw.strip().lower()
    s = _SLUG_INVALID.sub("-", s)
    s = _SLUG_EDGES.sub("", s)
    return s or "stream"


def config_key(kind: SourceKind, label: str, device_id: str) -> str:
    """
    Derive the stable identity key of a capture source.

    The key joins local configuration across device re-enumeration and is the
    declared stream name sent to the hub, so it must not depend on the
    platform's device id unless the label is empty.

    Args:
        kind: Source kind
        label: Human label reported by the platform
        device_id: Platform device id, used only when the label is empty

    Returns:
        str: Slug of the form ``<kind>-<normalized label>``
    """
    raw_label = label.strip().lower()
    clean = raw_label
    if kind == SourceKind.AUDIO:
        for prefix in _DEFAULT_AUDIO_PREFIXES:
            clean = prefix.sub("", clean)
        clean = clean.strip()
    stable = clean if clean else device_id.lower()
    return sanitize_slug(f"{kind.value}-{stable}")


def default_title(display_name: str, label: str) -> str:
    """Title given to a newly discovered source."""
    who = display_name.strip() or "User"
    return f"{who} / {label}"


def generate_client_id() -> str:
    """Generate the persistent client id used to correlate re-registration."""
    return f"pc-{uuid.uuid4().hex[:10]}"
