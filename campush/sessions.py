"""
Per-stream publish sessions.

The PublishSessionManager owns the map of live sessions keyed by hub stream
id. Starting a session binds a capture device to a transport session and
watches its readiness; stopping tears the pair down in a fixed order before
the map entry is released. All state changes happen on the event loop that
owns the publisher.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from .asyncio_utils import cancel_and_wait, create_logged_task, wait_finished
from .backends.base import CaptureAttachment, CaptureDeviceProvider
from .config import build_whip_url
from .exceptions import DeviceUnavailable
from .hub import HubClient
from .models import (
    CaptureDevice,
    StreamState,
    STATUS_DEVICE_UNAVAILABLE,
    STATUS_DISABLED,
    STATUS_LIVE,
    STATUS_READY,
    STATUS_STARTING,
    STATUS_WAITING,
)
from .registry import SourceRegistry
from .transport import ReadyState, SessionMode, TransportFactory, TransportSession

logger = logging.getLogger(__name__)


class ActivePublish:
    """Live resources of one stream: transport session, capture attachment, readiness watcher."""

    def __init__(self, stream_id: str, source_id: str, device: CaptureDevice):
        self.stream_id = stream_id
        self.source_id = source_id
        self.device = device
        self.session: Optional[TransportSession] = None
        self.attachment: Optional[CaptureAttachment] = None
        self.ready_task: Optional[asyncio.Task] = None
        self.teardown: Optional[asyncio.Task] = None
        self.stopping = False

    async def shutdown(self) -> None:
        """
        Release everything this session holds.

        The transport is closed before the device is detached so no frames
        are delivered to a closing transport. A failing step is logged and
        the remaining steps still run.
        """
        await cancel_and_wait(self.ready_task)
        self.ready_task = None

        if self.session is not None:
            try:
                await self.session.close()
            except Exception as e:
                logger.warning(f"Closing transport for {self.stream_id} failed: {e}")
        if self.attachment is not None:
            try:
                await self.attachment.detach()
            except Exception as e:
                logger.warning(f"Detaching device for {self.stream_id} failed: {e}")
            try:
                await self.attachment.stop()
            except Exception as e:
                logger.warning(f"Stopping capture for {self.stream_id} failed: {e}")


class PublishSessionManager:
    """
    Starts and stops publish sessions in response to hub commands.

    Start and stop are idempotent: a second start for a stream that already
    has a session (live or still tearing down) does nothing, and stopping a
    stream without a session does nothing.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        provider: CaptureDeviceProvider,
        transport_factory: TransportFactory,
        hub: HubClient,
        is_active: Callable[[], bool],
        token: Callable[[], str],
        base_url: Callable[[], str],
        on_change: Optional[Callable[[], None]] = None,
        on_stream_state: Optional[Callable[[str, StreamState], None]] = None,
    ):
        """
        Initialize the session manager.

        Args:
            registry: Source table shared with the publisher
            provider: Capture device provider used to resolve and attach devices
            transport_factory: Builds publish transport sessions
            hub: Client used for best-effort state reports
            is_active: Whether the publisher is currently on
            token: Current publisher token
            base_url: Current hub base URL
            on_change: Called after any source status change
            on_stream_state: Called with every state reported to the hub
        """
        self.registry = registry
        self.provider = provider
        self.transport_factory = transport_factory
        self.hub = hub
        self._is_active = is_active
        self._token = token
        self._base_url = base_url
        self._on_change = on_change
        self._on_stream_state = on_stream_state
        self._sessions: Dict[str, ActivePublish] = {}
        self._reports: Set[asyncio.Task] = set()

    @property
    def active_stream_ids(self) -> List[str]:
        return list(self._sessions)

    def has_session(self, stream_id: str) -> bool:
        return stream_id in self._sessions

    async def start(self, stream_id: str, path: Optional[str] = None) -> None:
        """
        Start publishing ``stream_id``.

        Commands for unknown, unmapped or disabled streams are ignored. A
        start failure is recorded on the source status and never retried.

        Args:
            stream_id: Hub stream id from the start command
            path: Publish path from the command; the source's assigned path
                  is used when omitted
        """
        if not self._is_active() or not self._token():
            logger.debug(f"Ignoring start {stream_id}: publisher inactive")
            return
        if stream_id in self._sessions:
            logger.debug(f"Ignoring start {stream_id}: session exists")
            return

        source = self.registry.by_stream_id(stream_id)
        if source is None:
            logger.info(f"Ignoring start for unmapped stream {stream_id}")
            return
        if not source.enabled:
            logger.info(f"Ignoring start for disabled source {source.id}")
            return

        try:
            device = self.provider.resolve(source)
        except DeviceUnavailable as e:
            logger.warning(f"No device for {source.id}: {e}")
            source.status = STATUS_DEVICE_UNAVAILABLE
            self._changed()
            return

        # Claim the slot before the first await so overlapping starts are no-ops
        active = ActivePublish(stream_id, source.id, device)
        self._sessions[stream_id] = active

        try:
            url = build_whip_url(self._base_url(), path or source.path, self._token())
            session = self.transport_factory.build(url, mode=SessionMode.PUBLISH)
            active.session = session
            active.attachment = self.provider.attach(device, session)
            await active.attachment.start()
            if active.stopping:
                return

            source.is_publishing = True
            source.status = STATUS_STARTING
            self._changed()
            self._report(stream_id, StreamState.STARTING)

            active.ready_task = create_logged_task(
                self._watch_ready(active, session),
                name=f"ready-{stream_id}",
            )

            await session.connect(lambda: self._on_disconnect(active))
            if active.stopping:
                return
            logger.info(f"Publishing {source.id} as stream {stream_id}")

        except Exception as e:
            if active.stopping:
                # The stop that closed the transport owns the teardown and status
                logger.debug(f"Start of stream {stream_id} aborted by stop: {e}")
                return
            logger.error(f"Start of stream {stream_id} failed: {e}")
            await active.shutdown()
            if self._sessions.get(stream_id) is active:
                del self._sessions[stream_id]
            source.is_publishing = False
            source.status = f"start failed: {e}"
            self._changed()
            self._report(stream_id, StreamState.IDLE)

    async def stop(self, stream_id: str) -> None:
        """
        Stop publishing ``stream_id``; a no-op when no session exists.

        The teardown runs in its own task so it completes even when the
        caller is cancelled; every caller, including a concurrent second
        stop, returns only after it is done and the map entry is removed.
        """
        active = self._sessions.get(stream_id)
        if active is None:
            return
        if active.teardown is None:
            active.stopping = True
            active.teardown = create_logged_task(self._teardown(active), name=f"teardown-{stream_id}")
        await wait_finished(active.teardown)

    async def _teardown(self, active: ActivePublish) -> None:
        try:
            await active.shutdown()
        finally:
            if self._sessions.get(active.stream_id) is active:
                del self._sessions[active.stream_id]

            source = self.registry.get(active.source_id)
            if source is not None:
                source.is_publishing = False
                source.status = STATUS_WAITING if source.enabled else STATUS_DISABLED
            logger.info(f"Stopped stream {active.stream_id}")
            self._changed()
            self._report(active.stream_id, StreamState.IDLE)

    async def stop_all_and_reset(self) -> None:
        """Stop every session and return every source to "ready"."""
        for stream_id in list(self._sessions):
            await self.stop(stream_id)
        for source in self.registry:
            source.is_publishing = False
            source.status = STATUS_READY
        self._changed()

    async def flush_reports(self) -> None:
        """Wait for outstanding state reports to finish."""
        if self._reports:
            await asyncio.gather(*list(self._reports), return_exceptions=True)

    async def _watch_ready(self, active: ActivePublish, session: TransportSession) -> None:
        async for state in session.ready_state_updates():
            if state != ReadyState.OPEN:
                continue
            if self._sessions.get(active.stream_id) is not active or active.stopping:
                return
            source = self.registry.get(active.source_id)
            if source is not None:
                source.is_publishing = True
                source.status = STATUS_LIVE
                self._changed()
            self._report(active.stream_id, StreamState.LIVE)

    def _on_disconnect(self, active: ActivePublish) -> None:
        """Transport dropped: treat it like a stop command for that session."""
        if self._sessions.get(active.stream_id) is not active or active.stopping:
            return
        logger.info(f"Transport for stream {active.stream_id} disconnected")
        create_logged_task(self.stop(active.stream_id), name=f"disconnect-{active.stream_id}")

    def _report(self, stream_id: str, state: StreamState) -> None:
        if self._on_stream_state is not None:
            self._on_stream_state(stream_id, state)
        token = self._token()
        if not token:
            return
        create_logged_task(
            self.hub.report_stream_state(token, stream_id, state),
            name=f"report-{stream_id}-{state.value}",
            pending=self._reports,
        )

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
