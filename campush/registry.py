"""
In-memory table of configured capture sources.

The SourceRegistry merges fresh device enumerations with prior configuration
by stable identity key and tracks the hub-assigned stream mapping. It never
generates stream ids itself.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from .models import CaptureDevice, Source, config_key

logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Ordered list of sources plus the ``stream_id -> source id`` mapping.

    The registry is owned by a single publisher; callers mutate sources in
    place and are expected to persist through the config store afterwards.
    """

    def __init__(self, sources: Optional[Iterable[Source]] = None):
        self.sources: List[Source] = list(sources or [])
        self.stream_to_source: Dict[str, str] = {}

    def __iter__(self):
        return iter(self.sources)

    def __len__(self) -> int:
        return len(self.sources)

    def get(self, source_id: str) -> Optional[Source]:
        """Look up a source by identity key."""
        for source in self.sources:
            if source.id == source_id:
                return source
        return None

    def by_stream_id(self, stream_id: str) -> Optional[Source]:
        """Resolve a hub stream id to its local source, if mapped."""
        source_id = self.stream_to_source.get(stream_id)
        if source_id is None:
            return None
        return self.get(source_id)

    def merge(self, devices: Iterable[CaptureDevice], title_for: Callable[[str], str]) -> List[Source]:
        """
        Replace the source list with a fresh enumeration.

        Prior configuration is carried over for every device whose identity
        key was already known; sources whose device disappeared are dropped.

        Args:
            devices: Enumerated capture devices of every kind
            title_for: Builds the default title for a new label

        Returns:
            List[Source]: The new, sorted source list
        """
        previous = {s.id: s for s in self.sources}
        merged: Dict[str, Source] = {}

        for device in devices:
            key = config_key(device.kind, device.label, device.unique_id)
            if key in merged:
                logger.debug(f"Duplicate source key {key} for device {device.unique_id}, keeping first")
                continue
            old = previous.get(key)
            merged[key] = Source(
                id=key,
                device_id=device.unique_id,
                label=device.label,
                kind=device.kind,
                name=old.name if old else key,
                title=old.title if old else title_for(device.label),
                enabled=old.enabled if old else False,
                stream_id=old.stream_id if old else "",
                path=old.path if old else "",
                is_publishing=old.is_publishing if old else False,
                status=old.status if old else "ready",
            )

        dropped = set(previous) - set(merged)
        if dropped:
            logger.info(f"Dropped sources without a device: {sorted(dropped)}")

        self.sources = sorted(
            merged.values(),
            key=lambda s: (s.kind.value, s.label.casefold())
        )
        known = {s.id for s in self.sources}
        self.stream_to_source = {
            sid: src for sid, src in self.stream_to_source.items() if src in known
        }
        return self.sources

    def declared_streams(self) -> List[Dict[str, object]]:
        """Payload entries for every enabled source, in registry order."""
        return [
            {
                "name": s.name,
                "title": s.title,
                "media": s.media,
                "enabled": s.enabled,
            }
            for s in self.sources
            if s.enabled
        ]

    def live_count(self) -> int:
        return sum(1 for s in self.sources if s.is_publishing)

    def summary(self) -> str:
        """Aggregate summary shown next to the source list."""
        return f"{self.live_count()} live / {len(self.sources)} total"
