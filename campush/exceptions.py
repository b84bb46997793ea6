"""
Exception classes for CamPush publisher operations.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CamPushError(Exception):
    """Base exception class for all CamPush errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None, context: Optional[dict] = None):
        """
        Initialize CamPush error.

        Args:
            message: Error message
            cause: Original exception that caused this error
            context: Additional context information
        """
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

        # Log the error with context
        logger.debug(f"{self.__class__.__name__}: {message}", extra={
            'cause': str(cause) if cause else None,
            'context': self.context
        })


class TransportError(CamPushError):
    """Raised when the hub cannot be reached or a connection drops."""

    def __init__(self, message: str, url: Optional[str] = None, cause: Optional[Exception] = None):
        context = {'url': url} if url else {}
        super().__init__(message, cause, context)


class ProtocolError(CamPushError):
    """Raised when the hub answers with a non-success status or an unreadable body."""

    def __init__(self, message: str, status: Optional[int] = None, url: Optional[str] = None,
                 cause: Optional[Exception] = None):
        context = {}
        if status is not None:
            context['status'] = status
        if url:
            context['url'] = url
        super().__init__(message, cause, context)
        self.status = status


class PermissionDenied(CamPushError):
    """Raised when access to a capture device kind is refused."""

    def __init__(self, message: str, kind: Optional[str] = None, cause: Optional[Exception] = None):
        context = {'kind': kind} if kind else {}
        super().__init__(message, cause, context)


class ConfigError(CamPushError):
    """Raised when configuration is invalid or missing (base URL, stream path)."""

    def __init__(self, message: str, config_key: Optional[str] = None, cause: Optional[Exception] = None):
        context = {'config_key': config_key} if config_key else {}
        super().__init__(message, cause, context)


class DeviceUnavailable(CamPushError):
    """Raised when a source has no matching physical capture device."""

    def __init__(self, message: str, device_id: Optional[str] = None, cause: Optional[Exception] = None):
        context = {'device_id': device_id} if device_id else {}
        super().__init__(message, cause, context)


class PlatformDetectionError(CamPushError):
    """Raised when capture device enumeration fails."""

    def __init__(self, message: str, platform: Optional[str] = None, cause: Optional[Exception] = None):
        context = {'platform': platform} if platform else {}
        super().__init__(message, cause, context)
