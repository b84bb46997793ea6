"""
Capture device providers.

This package contains the provider interface consumed by the publisher and
the platform implementations:
- Linux: Uses udev to enumerate video4linux cameras and ALSA capture cards
"""

from .base import CaptureAttachment, CaptureDeviceProvider, get_default_provider

__all__ = [
    "CaptureAttachment",
    "CaptureDeviceProvider",
    "get_default_provider",
]
