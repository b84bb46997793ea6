"""
Base classes and interfaces for capture device providers.
"""

import logging
import platform
from abc import ABC, abstractmethod
from typing import List

from ..exceptions import DeviceUnavailable, PlatformDetectionError
from ..models import CaptureDevice, Source, SourceKind
from ..transport import TransportSession

logger = logging.getLogger(__name__)


class CaptureAttachment:
    """
    A capture device bound to one transport session.

    The publish session manager drives it through ``start()``, then on
    teardown ``detach()`` followed by ``stop()``. Providers with a real media
    pipeline subclass this and extend the three steps.
    """

    def __init__(self, device: CaptureDevice, session: TransportSession):
        self.device = device
        self.session = session
        self.running = False
        self.attached = True
        session.add_input(device)

    async def start(self) -> None:
        """Begin running the capture pipeline."""
        self.running = True
        logger.debug(f"Capture started for {self.device.label}")

    async def detach(self) -> None:
        """Unbind the device from the session. Safe to call twice."""
        if not self.attached:
            return
        self.attached = False
        self.session.remove_input(self.device)

    async def stop(self) -> None:
        """Stop the capture pipeline. Safe to call twice."""
        if self.running:
            self.running = False
            logger.debug(f"Capture stopped for {self.device.label}")


class CaptureDeviceProvider(ABC):
    """
    Abstract base class for capture device providers.

    Each platform implements enumeration and access checks; resolving a
    source and attaching a device share the default implementation below.
    """

    @abstractmethod
    def enumerate(self, kind: SourceKind) -> List[CaptureDevice]:
        """
        Enumerate the capture devices of one kind.

        Raises:
            PlatformDetectionError: If enumeration fails
        """

    @abstractmethod
    async def request_access(self, kind: SourceKind) -> bool:
        """Return True when capture of ``kind`` is permitted."""

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Get the name of the platform this provider supports."""

    def resolve(self, source: Source) -> CaptureDevice:
        """
        Find the live device backing a source.

        Raises:
            DeviceUnavailable: If no device with the source's id is present
        """
        try:
            devices = self.enumerate(source.kind)
        except PlatformDetectionError as e:
            raise DeviceUnavailable(f"cannot enumerate {source.kind.value} devices",
                                    device_id=source.device_id, cause=e)
        for device in devices:
            if device.unique_id == source.device_id:
                return device
        raise DeviceUnavailable(f"device {source.device_id} not present", device_id=source.device_id)

    def attach(self, device: CaptureDevice, session: TransportSession) -> CaptureAttachment:
        """Bind a device to a transport session."""
        return CaptureAttachment(device, session)


def get_default_provider() -> CaptureDeviceProvider:
    """
    Select the capture device provider for the current platform.

    Raises:
        PlatformDetectionError: If the current platform is not supported
    """
    system = platform.system().lower()

    if system == "linux":
        from .linux import LinuxCaptureProvider
        return LinuxCaptureProvider()
    raise PlatformDetectionError(f"Unsupported platform: {system}", platform=system)
