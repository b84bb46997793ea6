"""
Transport session interfaces.

Media encoding and the publish protocol itself live outside CamPush. The
publisher only needs a session it can connect, observe and close; this module
defines that contract and a dry-run implementation that exercises the control
plane without moving any media.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional

logger = logging.getLogger(__name__)


class ReadyState(Enum):
    """Readiness of a transport session."""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class SessionMode(Enum):
    PUBLISH = "publish"
    PLAYBACK = "playback"


class TransportSession(ABC):
    """A connectable, closable media session towards one target URL."""

    @abstractmethod
    async def connect(self, on_disconnect: Callable[[], None]) -> None:
        """
        Open the session.

        Args:
            on_disconnect: Called once when the session drops after connecting

        Raises:
            TransportError: If the connection cannot be established
        """

    @abstractmethod
    def ready_state_updates(self) -> AsyncIterator[ReadyState]:
        """Async iterator of readiness transitions; ends when the session closes."""

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Must be safe to call more than once."""

    def add_input(self, device) -> None:
        """Hook called when a capture device is attached to this session."""

    def remove_input(self, device) -> None:
        """Hook called when a capture device is detached from this session."""


class TransportFactory(ABC):
    """Builds transport sessions for publish targets."""

    @abstractmethod
    def build(self, target_url: str, mode: SessionMode = SessionMode.PUBLISH) -> TransportSession:
        """Create an unconnected session for ``target_url``."""


class DryRunSession(TransportSession):
    """
    Session that reaches ``open`` as soon as it connects and carries no media.

    ``drop()`` simulates a remote disconnect.
    """

    def __init__(self, target_url: str, mode: SessionMode = SessionMode.PUBLISH):
        self.target_url = target_url
        self.mode = mode
        self.inputs: List[object] = []
        self.state = ReadyState.CONNECTING
        self._queue: "asyncio.Queue[ReadyState]" = asyncio.Queue()
        self._queue.put_nowait(ReadyState.CONNECTING)
        self._on_disconnect: Optional[Callable[[], None]] = None

    async def connect(self, on_disconnect: Callable[[], None]) -> None:
        self._on_disconnect = on_disconnect
        self._set_state(ReadyState.OPEN)
        logger.info(f"Dry-run session open: {self._redacted_url()}")

    async def ready_state_updates(self) -> AsyncIterator[ReadyState]:
        while True:
            state = await self._queue.get()
            yield state
            if state == ReadyState.CLOSED:
                return

    async def close(self) -> None:
        if self.state == ReadyState.CLOSED:
            return
        self._on_disconnect = None
        self._set_state(ReadyState.CLOSED)
        logger.info(f"Dry-run session closed: {self._redacted_url()}")

    def drop(self) -> None:
        """Close from the remote side and fire the disconnect callback."""
        callback = self._on_disconnect
        self._on_disconnect = None
        self._set_state(ReadyState.CLOSED)
        if callback is not None:
            callback()

    def add_input(self, device) -> None:
        self.inputs.append(device)

    def remove_input(self, device) -> None:
        if device in self.inputs:
            self.inputs.remove(device)

    def _set_state(self, state: ReadyState) -> None:
        self.state = state
        self._queue.put_nowait(state)

    def _redacted_url(self) -> str:
        return self.target_url.split("?", 1)[0]


class DryRunTransportFactory(TransportFactory):
    """Factory for :class:`DryRunSession`; keeps every session it built."""

    def __init__(self):
        self.sessions: List[DryRunSession] = []

    def build(self, target_url: str, mode: SessionMode = SessionMode.PUBLISH) -> DryRunSession:
        session = DryRunSession(target_url, mode)
        self.sessions.append(session)
        return session
