"""
Persistent publisher configuration with JSON storage.

This module provides the ConfigStore class that keeps the hub base URL,
display name, auto-start flag, client id and the configured source list
across restarts, using atomic writes and backup-based recovery.
"""

import json
import os
import tempfile
import shutil
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .config import DEFAULT_STORE_PATH
from .exceptions import CamPushError
from .models import Source, STATUS_READY

logger = logging.getLogger(__name__)


class StoreError(CamPushError):
    """Base exception for config store operations."""

    def __init__(self, message: str, store_path: Optional[Path] = None, cause: Optional[Exception] = None):
        context = {'store_path': str(store_path)} if store_path else {}
        super().__init__(message, cause, context)


class StoreCorruptionError(StoreError):
    """Raised when the store file is corrupted and cannot be recovered."""
    pass


@dataclass
class StoreSnapshot:
    """Everything the publisher persists."""
    base_url: Optional[str] = None
    display_name: Optional[str] = None
    auto_start: bool = False
    client_id: str = ""
    sources: List[Source] = field(default_factory=list)


class ConfigStore:
    """
    Loads and saves publisher snapshots as a JSON document.

    Writes go to a temporary file that replaces the store atomically. A file
    that cannot be parsed is backed up and the newest readable backup is
    restored; if none exists an empty store is written.
    """

    STORE_VERSION = "1.0"

    def __init__(self, store_path: Optional[Path] = None):
        """
        Initialize the config store.

        Args:
            store_path: Optional custom path for the store file.
                        Defaults to ~/.campush/config.json
        """
        self.store_path = Path(store_path) if store_path else DEFAULT_STORE_PATH
        self.store_dir = self.store_path.parent

        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(
                f"Cannot create store directory: {self.store_dir}",
                store_path=self.store_path,
                cause=e
            )

    def load(self) -> StoreSnapshot:
        """
        Read the persisted snapshot.

        A missing file yields an empty snapshot. Sources come back idle: the
        publishing flag is cleared and the status reset to "ready".

        Returns:
            StoreSnapshot: The persisted state

        Raises:
            StoreCorruptionError: If the file is unreadable and recovery fails
        """
        data = self._read_document()
        settings = data.get("settings", {})

        sources = []
        for entry in data.get("sources", []):
            try:
                source = Source.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid stored source {entry!r}: {e}")
                continue
            source.is_publishing = False
            source.status = STATUS_READY
            sources.append(source)

        return StoreSnapshot(
            base_url=settings.get("base_url") or None,
            display_name=settings.get("display_name") or None,
            auto_start=bool(settings.get("auto_start", False)),
            client_id=settings.get("client_id", ""),
            sources=sources,
        )

    def save(self, snapshot: StoreSnapshot) -> None:
        """
        Persist a snapshot atomically.

        Raises:
            StoreError: If the write fails
        """
        data = {
            "version": self.STORE_VERSION,
            "settings": {
                "base_url": snapshot.base_url or "",
                "display_name": snapshot.display_name or "",
                "auto_start": snapshot.auto_start,
                "client_id": snapshot.client_id,
            },
            "sources": [s.to_dict() for s in snapshot.sources],
        }
        self._write_atomic(data)

    def _empty_document(self) -> Dict:
        return {
            "version": self.STORE_VERSION,
            "settings": {},
            "sources": [],
            "created_at": datetime.now().isoformat(),
        }

    def _read_document(self) -> Dict:
        if not self.store_path.exists():
            return self._empty_document()

        try:
            with open(self.store_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self._validate(data)
            return data
        except PermissionError as e:
            raise StoreError(
                "Permission denied reading store file",
                store_path=self.store_path,
                cause=e
            )
        except (json.JSONDecodeError, ValueError) as e:
            return self._handle_corruption(e)

    def _validate(self, data) -> None:
        """
        Check the document structure.

        Raises:
            ValueError: If a required field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("store document is not an object")
        if not isinstance(data.get("settings", {}), dict):
            raise ValueError("settings field is not an object")
        if not isinstance(data.get("sources", []), list):
            raise ValueError("sources field is not a list")
        if data.get("version") != self.STORE_VERSION:
            logger.warning(f"Store version mismatch: {data.get('version')} != {self.STORE_VERSION}")

    def _handle_corruption(self, error: Exception) -> Dict:
        """
        Back up a corrupted store and fall back to the newest valid backup.

        Returns:
            Dict: The recovered (or a fresh empty) document
        """
        logger.error(f"Store corruption detected: {error}")

        try:
            backup_path = self._create_backup()
            logger.info(f"Created backup of corrupted store: {backup_path}")

            recovered = self._attempt_recovery(exclude=backup_path)
            if recovered is None:
                recovered = self._empty_document()
                logger.warning("Could not recover store data, created new empty store")
            self._write_atomic(recovered)
            return recovered
        except (OSError, StoreError) as recovery_error:
            raise StoreCorruptionError(
                f"Store corrupted and recovery failed: {error}",
                store_path=self.store_path,
                cause=recovery_error
            )

    def _create_backup(self) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = self.store_path.with_name(f"{self.store_path.stem}.backup_{timestamp}.json")
        shutil.copy2(self.store_path, backup_path)
        return backup_path

    def _attempt_recovery(self, exclude: Optional[Path] = None) -> Optional[Dict]:
        """
        Look for a readable backup, newest first.

        Args:
            exclude: Backup to skip (the copy of the file that just failed)
        """
        backup_files = [
            p for p in self.store_dir.glob(f"{self.store_path.stem}.backup_*.json")
            if p != exclude
        ]
        backup_files.sort(key=lambda p: p.stat().st_mtime, reverse=True)

        for backup_file in backup_files:
            try:
                with open(backup_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                self._validate(data)
            except (OSError, json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Failed to recover from {backup_file}: {e}")
                continue
            logger.info(f"Successfully recovered data from {backup_file}")
            data["recovered_from"] = str(backup_file)
            return data

        return None

    def _write_atomic(self, data: Dict) -> None:
        """
        Write the store document atomically to prevent corruption.

        Raises:
            StoreError: If the write fails
        """
        data["last_modified"] = datetime.now().isoformat()
        data["version"] = self.STORE_VERSION

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode='w',
                dir=self.store_dir,
                delete=False,
                suffix='.tmp',
                encoding='utf-8'
            ) as tmp_file:
                tmp_path = tmp_file.name
                json.dump(data, tmp_file, indent=2, ensure_ascii=False)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())

            os.replace(tmp_path, self.store_path)
            logger.debug(f"Wrote store with {len(data.get('sources', []))} sources")

        except OSError as e:
            raise StoreError(
                "OS error writing store file",
                store_path=self.store_path,
                cause=e
            )
        finally:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError as e:
                    logger.warning(f"Failed to clean up temporary file {tmp_path}: {e}")
