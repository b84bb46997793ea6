"""
Linux capture device provider using udev.

Video sources are video4linux nodes with capture capability; audio sources
are ALSA cards that expose at least one capture PCM.
"""

import logging
import os
from typing import Iterable, List, Optional

import pyudev

from ..exceptions import PlatformDetectionError
from ..models import CaptureDevice, SourceKind
from .base import CaptureDeviceProvider

logger = logging.getLogger(__name__)


class LinuxCaptureProvider(CaptureDeviceProvider):
    """
    Linux provider enumerating capture devices through pyudev.

    Access is considered granted when the user can open the device nodes of
    the requested kind, which on most distributions means membership of the
    ``video`` and ``audio`` groups.
    """

    def __init__(self, context: Optional["pyudev.Context"] = None):
        self._context = context

    @property
    def platform_name(self) -> str:
        return "linux"

    @property
    def context(self) -> "pyudev.Context":
        if self._context is None:
            self._context = pyudev.Context()
        return self._context

    def enumerate(self, kind: SourceKind) -> List[CaptureDevice]:
        """
        Enumerate capture devices of one kind.

        Raises:
            PlatformDetectionError: If udev enumeration fails
        """
        try:
            if kind == SourceKind.VIDEO:
                devices = self._enumerate_video()
            else:
                devices = self._enumerate_audio()
        except PlatformDetectionError:
            raise
        except Exception as e:
            raise PlatformDetectionError(f"Failed to enumerate {kind.value} devices on Linux: {e}",
                                         platform="linux", cause=e)
        logger.debug(f"Enumerated {len(devices)} {kind.value} devices")
        return devices

    async def request_access(self, kind: SourceKind) -> bool:
        nodes = [d.platform_data.get("device_node") for d in self.enumerate(kind)]
        nodes = [n for n in nodes if n]
        if not nodes:
            # Nothing to open; enumeration decides whether sources exist
            return True
        granted = any(os.access(node, os.R_OK) for node in nodes)
        if not granted:
            logger.warning(f"No readable {kind.value} device nodes: {nodes}")
        return granted

    def _enumerate_video(self) -> List[CaptureDevice]:
        devices = []
        for device in self.context.list_devices(subsystem="video4linux"):
            node = device.device_node
            if not node or not self._is_video_capture(device):
                continue
            label = (
                self._attribute(device, "name")
                or device.properties.get("ID_V4L_PRODUCT")
                or device.properties.get("ID_MODEL")
                or f"Camera {os.path.basename(node)}"
            )
            devices.append(CaptureDevice(
                unique_id=node,
                label=label,
                kind=SourceKind.VIDEO,
                platform_data={
                    "device_node": node,
                    "id_path": device.properties.get("ID_PATH"),
                    "driver": device.properties.get("ID_V4L_DRIVER") or device.driver,
                },
            ))
        devices.sort(key=lambda d: d.unique_id)
        return devices

    def _enumerate_audio(self) -> List[CaptureDevice]:
        devices = []
        for card in self.context.list_devices(subsystem="sound"):
            if not card.sys_name.startswith("card"):
                continue
            capture_nodes = self._capture_pcms(card.children)
            if not capture_nodes:
                continue
            label = (
                card.properties.get("ID_MODEL_FROM_DATABASE")
                or card.properties.get("ID_MODEL")
                or self._attribute(card, "id")
                or card.sys_name
            )
            devices.append(CaptureDevice(
                unique_id=f"hw:{card.sys_number}",
                label=label,
                kind=SourceKind.AUDIO,
                platform_data={
                    "device_node": capture_nodes[0],
                    "capture_nodes": capture_nodes,
                    "id_path": card.properties.get("ID_PATH"),
                },
            ))
        devices.sort(key=lambda d: d.unique_id)
        return devices

    @staticmethod
    def _is_video_capture(device) -> bool:
        caps = device.properties.get("ID_V4L_CAPABILITIES")
        # Older udev versions do not tag capabilities; treat those as capture nodes
        return caps is None or ":capture:" in caps

    @staticmethod
    def _capture_pcms(children: Iterable) -> List[str]:
        nodes = []
        for child in children:
            name = child.sys_name or ""
            if name.startswith("pcmC") and name.endswith("c") and child.device_node:
                nodes.append(child.device_node)
        return sorted(nodes)

    @staticmethod
    def _attribute(device, name: str) -> Optional[str]:
        try:
            value = device.attributes.asstring(name).strip()
        except (KeyError, UnicodeDecodeError):
            return None
        return value or None
