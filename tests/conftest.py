"""
Pytest configuration and shared fixtures for CamPush tests.

The fakes here replace the platform, the hub and the media transport so the
control plane can be driven deterministically on a single event loop.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from campush.backends.base import CaptureDeviceProvider
from campush.exceptions import TransportError
from campush.models import CaptureDevice, ControlCommand, SourceKind, StreamAssignment
from campush.transport import DryRunSession, DryRunTransportFactory, SessionMode

# Control stream script entry: accept the connection and never close it
HOLD = object()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def temp_store_path(temp_dir):
    """Create a temporary config store path."""
    return temp_dir / "config.json"


@pytest.fixture
def camera_device():
    """Create a sample video capture device."""
    return CaptureDevice(
        unique_id="/dev/video0",
        label="cam1",
        kind=SourceKind.VIDEO,
        platform_data={"device_node": "/dev/video0"},
    )


@pytest.fixture
def microphone_device():
    """Create a sample audio capture device."""
    return CaptureDevice(
        unique_id="hw:1",
        label="Default - USB Mic",
        kind=SourceKind.AUDIO,
        platform_data={"device_node": "/dev/snd/pcmC1D0c"},
    )


class FakeProvider(CaptureDeviceProvider):
    """Capture provider serving a configurable device list."""

    def __init__(self, devices: Optional[List[CaptureDevice]] = None, access: bool = True):
        self.devices = list(devices or [])
        self.access = access
        self.attachments = []

    @property
    def platform_name(self) -> str:
        return "fake"

    def enumerate(self, kind: SourceKind) -> List[CaptureDevice]:
        return [d for d in self.devices if d.kind == kind]

    async def request_access(self, kind: SourceKind) -> bool:
        return self.access

    def attach(self, device, session):
        attachment = super().attach(device, session)
        self.attachments.append(attachment)
        return attachment


class SlowCloseSession(DryRunSession):
    """Dry-run session whose close takes ``close_delay`` seconds."""

    close_delay = 0.2

    def __init__(self, target_url: str, mode: SessionMode = SessionMode.PUBLISH):
        super().__init__(target_url, mode)
        self.close_started = False

    async def close(self) -> None:
        self.close_started = True
        await asyncio.sleep(self.close_delay)
        await super().close()


class SlowCloseTransportFactory(DryRunTransportFactory):
    """Factory building :class:`SlowCloseSession` instances."""

    def build(self, target_url: str, mode: SessionMode = SessionMode.PUBLISH) -> SlowCloseSession:
        session = SlowCloseSession(target_url, mode)
        self.sessions.append(session)
        return session


class FakeControlStream:
    """Plays back one scripted control connection."""

    def __init__(self, hub: "FakeHub", script):
        self.hub = hub
        self.script = script

    async def __aenter__(self):
        if isinstance(self.script, Exception):
            raise self.script
        self.hub.connected += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.hub.closed_streams += 1

    def __aiter__(self):
        return self._commands()

    async def _commands(self):
        if self.script is HOLD:
            await asyncio.Event().wait()
        for command in self.script:
            yield command


class FakeHub:
    """
    In-process stand-in for HubClient.

    Stream ids are taken from ``stream_ids`` (declared name -> id) or minted
    as ``s1``, ``s2``... in order of first declaration. Control connections
    replay ``control_script`` entries in order and hold open once it is
    exhausted.
    """

    def __init__(self):
        self.registrations = 0
        self.sync_calls: List[List[Dict]] = []
        self.reports = []
        self.unregistered = []
        self.stream_ids: Dict[str, str] = {}
        self.fail_sync: Optional[Exception] = None
        self.fail_register: Optional[Exception] = None
        self.sync_gate: Optional[asyncio.Event] = None
        self.control_script: list = []
        self.control_tokens: List[str] = []
        self.connected = 0
        self.closed_streams = 0
        self.closed = False

    async def register(self, display_name: str, client_id: str):
        if self.fail_register is not None:
            raise self.fail_register
        self.registrations += 1
        return f"pub-{self.registrations}", f"tok-{self.registrations}"

    async def sync_streams(self, token: str, streams):
        self.sync_calls.append([dict(s) for s in streams])
        if self.sync_gate is not None:
            await self.sync_gate.wait()
        if self.fail_sync is not None:
            raise self.fail_sync
        assignments = {}
        for entry in streams:
            name = entry["name"]
            if name not in self.stream_ids:
                self.stream_ids[name] = f"s{len(self.stream_ids) + 1}"
            assignments[name] = StreamAssignment(
                id=self.stream_ids[name],
                name=name,
                path=f"live/{name}",
            )
        return assignments

    async def report_stream_state(self, token: str, stream_id: str, state):
        self.reports.append((stream_id, state))

    async def unregister(self, token: str, client_id: str):
        self.unregistered.append((token, client_id))

    def open_control_stream(self, token: str):
        self.control_tokens.append(token)
        script = self.control_script.pop(0) if self.control_script else HOLD
        return FakeControlStream(self, script)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_hub():
    """Create a fresh in-process hub."""
    return FakeHub()


@pytest.fixture
def fake_provider(camera_device, microphone_device):
    """Create a provider with one camera and one microphone."""
    return FakeProvider([camera_device, microphone_device])


@pytest.fixture
def transport_factory():
    """Create a dry-run transport factory that records its sessions."""
    return DryRunTransportFactory()


@pytest.fixture
def control_failure():
    """Factory for control connection failures."""
    return lambda text="connection refused": TransportError(text)


@pytest.fixture
def start_command():
    return lambda stream_id, path=None: ControlCommand.from_payload(
        {"action": "start", "stream_id": stream_id, "path": path}
    )


@pytest.fixture
def stop_command():
    return lambda stream_id: ControlCommand.from_payload({"action": "stop", "stream_id": stream_id})


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds or fail after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def until():
    """Expose :func:`wait_until` to tests."""
    return wait_until


@pytest.fixture
def slow_close_factory():
    """Create a transport factory whose sessions close slowly."""
    return SlowCloseTransportFactory()
