"""
Control channel subscription.

Keeps one long-lived connection to the hub's control stream, dispatches
start/stop commands in arrival order, reconnects with a fixed backoff and
escalates to a full recovery (new registration, re-sync) after repeated
failures.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .asyncio_utils import cancel_and_wait, create_logged_task
from .exceptions import CamPushError, TransportError
from .hub import HubClient
from .models import CommandAction, ControlCommand

logger = logging.getLogger(__name__)

STATUS_CONNECTED = "publisher: connected"
STATUS_RECONNECTING = "publisher: reconnecting"


class CommandSubscriber:
    """
    Auto-reconnecting reader of the hub control channel.

    Only one loop runs at a time; ``start()`` cancels any previous loop.
    ``consecutive_failures`` counts connection attempts that ended in an error
    or a server close since the last successful connect.
    """

    def __init__(
        self,
        hub: HubClient,
        token: Callable[[], str],
        is_active: Callable[[], bool],
        on_start: Callable[[str, Optional[str]], Awaitable[None]],
        on_stop: Callable[[str], Awaitable[None]],
        recover: Callable[[], Awaitable[None]],
        on_status: Optional[Callable[[str], None]] = None,
        backoff: float = 1.0,
        recovery_threshold: int = 2,
    ):
        """
        Initialize the subscriber.

        Args:
            hub: Hub client opening the control stream
            token: Current publisher token, read on every connection attempt
            is_active: Whether the publisher is still on
            on_start: Handler for start commands ``(stream_id, path)``
            on_stop: Handler for stop commands ``(stream_id)``
            recover: Forced re-registration and re-sync
            on_status: Receives publisher status text
            backoff: Seconds to wait before reconnecting
            recovery_threshold: Consecutive failures that trigger recovery
        """
        self.hub = hub
        self._token = token
        self._is_active = is_active
        self._on_start = on_start
        self._on_stop = on_stop
        self._recover = recover
        self._on_status = on_status
        self.backoff = backoff
        self.recovery_threshold = recovery_threshold
        self.consecutive_failures = 0
        self.recoveries = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the subscription loop, superseding a running one."""
        await self.stop()
        self.consecutive_failures = 0
        self._task = create_logged_task(self._run(), name="control-subscriber")

    async def stop(self) -> None:
        """Cancel the loop, interrupting any pending read, and wait for it."""
        task, self._task = self._task, None
        await cancel_and_wait(task)

    async def _run(self) -> None:
        logger.info("Control subscription started")
        while self._is_active():
            try:
                await self._stream_once()
                raise TransportError("control stream closed by server")
            except CamPushError as e:
                if not self._is_active():
                    break
                self.consecutive_failures += 1
                logger.warning(f"Control channel lost ({self.consecutive_failures} in a row): {e}")
                self._status(STATUS_RECONNECTING)
                if self.consecutive_failures >= self.recovery_threshold:
                    self.recoveries += 1
                    await self._recover()
                    self.consecutive_failures = 0
            await asyncio.sleep(self.backoff)
        logger.info("Control subscription ended")

    async def _stream_once(self) -> None:
        """One connection attempt: connect, then dispatch until the stream ends."""
        async with self.hub.open_control_stream(self._token()) as stream:
            self.consecutive_failures = 0
            self._status(STATUS_CONNECTED)
            logger.info("Control channel connected")
            async for command in stream:
                if not self._is_active():
                    return
                await self.dispatch(command)

    async def dispatch(self, command: ControlCommand) -> None:
        """Route one command to the session handlers."""
        if not command.stream_id:
            return
        logger.debug(f"Control command {command.action.value} {command.stream_id}")
        if command.action == CommandAction.START:
            await self._on_start(command.stream_id, command.path)
        elif command.action == CommandAction.STOP:
            await self._on_stop(command.stream_id)

    def _status(self, text: str) -> None:
        if self._on_status is not None:
            self._on_status(text)
