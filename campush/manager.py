"""
CamPush publisher - main orchestrator for the CamPush system.

This module contains the Publisher class that ties together the source
registry, config store, hub client, stream synchronizer, control subscriber
and publish sessions behind the commands a UI or CLI invokes.
"""

import logging
from typing import Callable, List, Optional

from .backends.base import CaptureDeviceProvider, get_default_provider
from .config import PublisherSettings, require_base_url
from .control import CommandSubscriber, STATUS_CONNECTED
from .events import EventManager, EventType
from .exceptions import CamPushError, PermissionDenied, PlatformDetectionError
from .hub import HubClient
from .models import (
    PublisherIdentity,
    Source,
    SourceKind,
    StreamState,
    default_title,
    generate_client_id,
)
from .registry import SourceRegistry
from .sessions import PublishSessionManager
from .store import ConfigStore, StoreError, StoreSnapshot
from .sync import StreamSynchronizer
from .transport import DryRunTransportFactory, TransportFactory

logger = logging.getLogger(__name__)


class Publisher:
    """
    Main CamPush publisher that orchestrates all system components.

    All mutable state (sources, session map, identity, status) belongs to the
    event loop running the publisher's coroutines. The control subscriber and
    readiness watchers are separate tasks on the same loop, so their changes
    interleave only at await points.
    """

    def __init__(
        self,
        settings: Optional[PublisherSettings] = None,
        provider: Optional[CaptureDeviceProvider] = None,
        transport_factory: Optional[TransportFactory] = None,
        store: Optional[ConfigStore] = None,
        hub: Optional[HubClient] = None,
    ):
        """
        Initialize the publisher.

        Args:
            settings: Publisher settings; defaults are used when omitted
            provider: Capture device provider; the platform default when omitted
            transport_factory: Transport session factory; dry-run when omitted
            store: Config store; one at ``settings.store_path`` when omitted
            hub: Hub client; built from the settings when omitted
        """
        self.settings = settings or PublisherSettings()
        self.provider = provider or get_default_provider()
        self.transport_factory = transport_factory or DryRunTransportFactory()
        self.store = store or ConfigStore(self.settings.store_path)
        self.hub = hub or HubClient(
            lambda: self.base_url,
            api_prefix=self.settings.api_prefix,
            request_timeout=self.settings.request_timeout,
        )
        self.events = EventManager()

        self.base_url = self.settings.base_url
        self.display_name = self.settings.display_name
        self.publisher_active = False
        self.publisher_status = "idle"
        self.registry = SourceRegistry()
        self.identity = PublisherIdentity()

        self.sessions = PublishSessionManager(
            self.registry,
            self.provider,
            self.transport_factory,
            self.hub,
            is_active=lambda: self.publisher_active,
            token=lambda: self.identity.token,
            base_url=lambda: self.base_url,
            on_change=self._sources_changed,
            on_stream_state=self._stream_state,
        )
        self.synchronizer = StreamSynchronizer(
            self.hub,
            self.registry,
            stop_stream=self.sessions.stop,
            is_active=lambda: self.publisher_active,
            token=lambda: self.identity.token,
            on_status=self._set_status,
            on_applied=self._persist_and_notify,
        )
        self.subscriber = CommandSubscriber(
            self.hub,
            token=lambda: self.identity.token,
            is_active=lambda: self.publisher_active,
            on_start=self.sessions.start,
            on_stop=self.sessions.stop,
            recover=self._recover,
            on_status=self._set_status,
            backoff=self.settings.reconnect_backoff,
            recovery_threshold=self.settings.recovery_threshold,
        )

        logger.info("Publisher initialized")

    @property
    def sources(self) -> List[Source]:
        return self.registry.sources

    @property
    def summary(self) -> str:
        return self.registry.summary()

    def on(self, event_type: str, callback: Callable) -> None:
        """
        Subscribe to publisher events.

        Args:
            event_type: on_sources_changed, on_publisher_status or on_stream_state
            callback: Function to call when the event occurs
        """
        self.events.subscribe(event_type, callback)

    async def bootstrap(self) -> None:
        """Load persisted state, enumerate devices, and auto-start if configured."""
        self.load_persisted()
        await self.reload_devices(force_sync=False)
        if self.publisher_active:
            self.publisher_active = False
            await self.start_publisher()

    async def toggle_publisher(self) -> None:
        if self.publisher_active:
            await self.stop_publisher()
        else:
            await self.start_publisher()

    async def start_publisher(self) -> None:
        """
        Turn the publisher on.

        Requests capture access, registers with a fresh identity, declares the
        stream set and opens the control channel. Any failure leaves the
        publisher off with the reason in ``publisher_status``.
        """
        try:
            for kind in (SourceKind.VIDEO, SourceKind.AUDIO):
                if not await self.provider.request_access(kind):
                    raise PermissionDenied(f"{kind.value} access denied", kind=kind.value)
        except PermissionDenied:
            self._set_status("camera/microphone permission denied")
            return
        except PlatformDetectionError as e:
            self._set_status(f"publisher start failed: {e}")
            return

        try:
            require_base_url(self.base_url)
            self.publisher_active = True
            self.persist()
            await self.reload_devices(force_sync=False)
            await self.ensure_registered(force_new=True)
            await self.synchronizer.sync()
            await self.subscriber.start()
            self._set_status(STATUS_CONNECTED)
        except CamPushError as e:
            logger.error(f"Publisher start failed: {e}")
            self.publisher_active = False
            await self.subscriber.stop()
            self.identity.clear()
            self.persist()
            self._set_status(f"publisher start failed: {e}")

    async def stop_publisher(self) -> None:
        """Turn the publisher off; no session outlives this call."""
        await self._teardown()
        self.persist()
        self._set_status("publisher stopped")
        self._sources_changed()

    async def shutdown(self) -> None:
        """
        Tear down for process exit.

        Same as stopping, except the persisted auto-start flag keeps its value
        so the next bootstrap resumes publishing.
        """
        was_active = self.publisher_active
        await self._teardown()
        self.persist(auto_start=was_active)
        await self.hub.close()
        self._set_status("publisher stopped")

    async def _teardown(self) -> None:
        self.publisher_active = False
        await self.subscriber.stop()
        await self.sessions.stop_all_and_reset()
        await self.sessions.flush_reports()
        await self.hub.unregister(self.identity.token, self.identity.client_id)
        self.identity.clear()

    async def ensure_registered(self, force_new: bool = False) -> None:
        """
        Make sure the publisher holds a token.

        Args:
            force_new: Drop the current identity and register again

        Raises:
            TransportError: If the hub cannot be reached
            ProtocolError: If the hub rejects the registration
        """
        if not force_new and self.identity.is_registered:
            return
        if force_new:
            self.identity.clear()
        if not self.identity.client_id:
            self.identity.client_id = generate_client_id()
        publisher_id, token = await self.hub.register(self.display_name, self.identity.client_id)
        self.identity.publisher_id = publisher_id
        self.identity.token = token

    async def _recover(self) -> None:
        """Recovery path of the control subscriber: new identity, then re-sync."""
        if not self.publisher_active:
            return
        self._set_status("publisher: recovering")
        try:
            await self.ensure_registered(force_new=True)
            await self.synchronizer.sync()
        except CamPushError as e:
            logger.error(f"Publisher recovery failed: {e}")
            self._set_status(f"publisher recover failed: {e}")

    async def sync(self) -> None:
        """Request a stream synchronization (coalesced with one in flight)."""
        await self.synchronizer.sync()

    async def reload_devices(self, force_sync: bool = False) -> None:
        """
        Re-enumerate capture devices and merge them into the source list.

        Every running session is stopped first because device handles are
        about to be replaced.

        Args:
            force_sync: Synchronize with the hub afterwards if the publisher is on
        """
        if self.sessions.active_stream_ids:
            await self.sessions.stop_all_and_reset()

        devices = []
        for kind in (SourceKind.VIDEO, SourceKind.AUDIO):
            try:
                devices.extend(self.provider.enumerate(kind))
            except PlatformDetectionError as e:
                logger.error(f"Device enumeration failed: {e}")
                self._set_status(f"device enumeration failed: {e}")

        self.registry.merge(devices, lambda label: default_title(self.display_name, label))
        if not self.registry.sources:
            self._set_status("no input devices")
        self._persist_and_notify()

        if force_sync and self.publisher_active:
            await self.synchronizer.sync()

    async def source_toggled(self, source_id: str) -> None:
        """
        React to a change of a source's configuration.

        A disabled source with a stream id stops publishing immediately; the
        stream set is then re-declared if the publisher is on.
        """
        source = self.registry.get(source_id)
        if source is None:
            return
        self.persist()
        if not source.enabled and source.stream_id:
            await self.sessions.stop(source.stream_id)
        if self.publisher_active:
            await self.synchronizer.sync()
        self._sources_changed()

    async def set_source_enabled(self, source_id: str, enabled: bool) -> bool:
        """
        Enable or disable a source.

        Returns:
            bool: False if no source has this id
        """
        source = self.registry.get(source_id)
        if source is None:
            return False
        source.enabled = enabled
        await self.source_toggled(source_id)
        return True

    async def set_source_title(self, source_id: str, title: str) -> bool:
        source = self.registry.get(source_id)
        if source is None:
            return False
        source.title = title.strip() or source.title
        await self.source_toggled(source_id)
        return True

    def update_settings(self, base_url: Optional[str] = None, display_name: Optional[str] = None) -> None:
        """
        Change the base URL or display name and persist them.

        Raises:
            ConfigError: If the base URL is invalid
        """
        if base_url is not None:
            self.base_url = require_base_url(base_url)
        if display_name is not None and display_name.strip():
            self.display_name = display_name.strip()
        self.persist()

    def load_persisted(self) -> None:
        """Load settings, client id and sources from the config store."""
        try:
            snapshot = self.store.load()
        except StoreError as e:
            logger.error(f"Failed to load persisted state: {e}")
            snapshot = StoreSnapshot()

        if snapshot.base_url:
            self.base_url = snapshot.base_url
        if snapshot.display_name:
            self.display_name = snapshot.display_name
        self.identity.client_id = snapshot.client_id or generate_client_id()
        self.publisher_active = snapshot.auto_start
        self.registry.sources = snapshot.sources
        self.registry.stream_to_source.clear()
        if not snapshot.client_id:
            self.persist()

    def persist(self, auto_start: Optional[bool] = None) -> None:
        """Write the current settings and sources to the config store."""
        snapshot = StoreSnapshot(
            base_url=self.base_url,
            display_name=self.display_name,
            auto_start=self.publisher_active if auto_start is None else auto_start,
            client_id=self.identity.client_id,
            sources=self.registry.sources,
        )
        try:
            self.store.save(snapshot)
        except StoreError as e:
            logger.error(f"Failed to persist state: {e}")

    def _persist_and_notify(self) -> None:
        self.persist()
        self._sources_changed()

    def _set_status(self, text: str) -> None:
        if text == self.publisher_status:
            return
        self.publisher_status = text
        logger.info(f"Publisher status: {text}")
        self.events.emit(EventType.ON_PUBLISHER_STATUS.value, text)

    def _sources_changed(self) -> None:
        self.events.emit(EventType.ON_SOURCES_CHANGED.value, list(self.registry.sources))

    def _stream_state(self, stream_id: str, state: StreamState) -> None:
        self.events.emit(EventType.ON_STREAM_STATE.value, stream_id, state)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
