"""
Stream set synchronization with the hub.

Declares the enabled sources to the hub and adopts the stream ids and paths
it assigns. Overlapping requests are coalesced: while one call is in flight,
further requests only mark a re-run, so the hub sees the latest declared
state without a growing queue of superseded calls.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from .exceptions import CamPushError
from .hub import HubClient
from .models import StreamAssignment, STATUS_DISABLED, STATUS_PENDING, STATUS_WAITING
from .registry import SourceRegistry

logger = logging.getLogger(__name__)


class StreamSynchronizer:
    """
    Reconciles the registry's declared streams with the hub.

    The declared payload and token are read when each network call is made,
    so a coalesced re-run sends whatever is current at that moment.
    """

    def __init__(
        self,
        hub: HubClient,
        registry: SourceRegistry,
        stop_stream: Callable[[str], Awaitable[None]],
        is_active: Callable[[], bool],
        token: Callable[[], str],
        on_status: Optional[Callable[[str], None]] = None,
        on_applied: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the synchronizer.

        Args:
            hub: Hub client performing the streams exchange
            registry: Source table to read from and update
            stop_stream: Stops the session of a stream id
            is_active: Whether the publisher is currently on
            token: Current publisher token
            on_status: Receives publisher status text on failure
            on_applied: Called after a response has been applied (persist, notify)
        """
        self.hub = hub
        self.registry = registry
        self._stop_stream = stop_stream
        self._is_active = is_active
        self._token = token
        self._on_status = on_status
        self._on_applied = on_applied
        self._in_flight = False
        self._rerun = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def sync(self) -> Optional[Dict[str, StreamAssignment]]:
        """
        Run or schedule a synchronization.

        Returns:
            Optional[Dict[str, StreamAssignment]]: The last applied assignments
            by stream name, or None when skipped, coalesced into a running call,
            or failed
        """
        if not self._is_active() or not self._token():
            return None
        if self._in_flight:
            self._rerun = True
            logger.debug("Sync in flight, scheduling re-run")
            return None

        self._in_flight = True
        result = None
        try:
            while True:
                self._rerun = False
                if not self._is_active() or not self._token():
                    break
                try:
                    assignments = await self.hub.sync_streams(self._token(), self.registry.declared_streams())
                except CamPushError as e:
                    logger.warning(f"Stream sync failed: {e}")
                    self._status(f"sync failed: {e}")
                    result = None
                else:
                    await self._apply(assignments)
                    result = assignments
                if not self._rerun:
                    break
        finally:
            self._in_flight = False
        return result

    async def _apply(self, assignments: Dict[str, StreamAssignment]) -> None:
        """
        Adopt the hub's assignments, stopping sessions whose mapping goes away.

        Stale stream ids are unmapped before their sessions are stopped, so
        start commands arriving meanwhile are ignored for them but still
        resolve for every unchanged stream. The new mapping is installed
        with no await in between.
        """
        stale = []
        for source in self.registry.sources:
            mapped = assignments.get(source.name)
            if source.stream_id and (mapped is None or mapped.id != source.stream_id):
                stale.append(source.stream_id)
        for stream_id in stale:
            self.registry.stream_to_source.pop(stream_id, None)
        for stream_id in stale:
            await self._stop_stream(stream_id)

        mapping = {}
        for source in list(self.registry.sources):
            mapped = assignments.get(source.name)
            if mapped is not None:
                source.stream_id = mapped.id
                source.path = mapped.path
                mapping[mapped.id] = source.id
                if source.enabled:
                    if not source.is_publishing:
                        source.status = STATUS_WAITING
                else:
                    source.status = STATUS_DISABLED
            else:
                source.stream_id = ""
                source.path = ""
                source.is_publishing = False
                source.status = STATUS_PENDING if source.enabled else STATUS_DISABLED
        self.registry.stream_to_source = mapping

        logger.info(f"Synchronized streams: {len(self.registry.stream_to_source)} mapped")
        if self._on_applied is not None:
            self._on_applied()

    def _status(self, text: str) -> None:
        if self._on_status is not None:
            self._on_status(text)
