"""
Terminal User Interface for CamPush using Textual framework.

This module provides a live view of the publisher: every source with its
stream assignment and status, the publisher status line, and keys for
toggling the publisher and individual sources.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Header, Footer, DataTable, Static, Button
from textual.reactive import reactive
from textual import events
from textual.css.query import NoMatches

from .config import PublisherSettings
from .manager import Publisher
from .models import Source

logger = logging.getLogger(__name__)


class SourceTable(DataTable):
    """DataTable listing publisher sources."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.cursor_type = "row"
        self.zebra_stripes = True

        self.add_column("On", width=4)
        self.add_column("Kind", width=6)
        self.add_column("Title", width=30)
        self.add_column("Stream", width=12)
        self.add_column("Status", width=24)


class StatusBar(Static):
    """Status bar showing the publisher status and the live summary."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.update_status("Initializing...")

    def update_status(self, message: str):
        """Update the status message."""
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.update(f"[dim]{timestamp}[/dim] {message}")


def source_row(source: Source) -> List[str]:
    """Cells shown for one source."""
    return [
        "●" if source.enabled else "○",
        source.kind.value,
        source.title,
        source.stream_id or "-",
        source.status,
    ]


class CamPushTUI(App):
    """
    Main TUI application for the CamPush publisher.

    The publisher runs on the application's event loop, so its callbacks can
    update widgets directly.
    """

    CSS = """
    .main-container {
        height: 1fr;
        margin: 1;
    }

    .source-table {
        height: 1fr;
        border: solid $primary;
        margin-bottom: 1;
    }

    .status-bar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text;
        padding: 0 1;
    }

    .controls {
        height: 3;
        background: $surface;
        padding: 1;
    }
    """

    TITLE = "CamPush - Publisher"
    SUB_TITLE = "p: publisher  space: toggle source  r: reload devices  q: quit"

    summary: reactive[str] = reactive("0 live / 0 total")

    def __init__(self, store_path: Optional[Path] = None, publisher: Optional[Publisher] = None, **kwargs):
        super().__init__(**kwargs)
        self.store_path = store_path
        self.publisher = publisher

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        with Container(classes="main-container"):
            with Vertical():
                yield SourceTable(id="source-table", classes="source-table")
                with Horizontal(classes="controls"):
                    yield Button("Publisher", id="publisher-btn", variant="primary")
                    yield Button("Reload", id="reload-btn", variant="default")
                    yield Button("Quit", id="quit-btn", variant="error")

        yield StatusBar(classes="status-bar", id="status-bar")
        yield Footer()

    async def on_mount(self) -> None:
        """Create the publisher and bootstrap it."""
        if self.publisher is None:
            settings = PublisherSettings()
            if self.store_path is not None:
                settings.store_path = Path(self.store_path)
            self.publisher = Publisher(settings)

        self.publisher.on("on_sources_changed", self._on_sources_changed)
        self.publisher.on("on_publisher_status", self._on_publisher_status)
        await self.publisher.bootstrap()
        self._refresh_table()
        self._update_status(self.publisher.publisher_status)

    async def on_unmount(self) -> None:
        if self.publisher:
            await self.publisher.shutdown()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "publisher-btn":
            self._run_action(self._toggle_publisher())
        elif event.button.id == "reload-btn":
            self._run_action(self._reload())
        elif event.button.id == "quit-btn":
            self.exit()

    def on_key(self, event: events.Key) -> None:
        if event.key == "p":
            self._run_action(self._toggle_publisher())
        elif event.key == "space":
            self._run_action(self._toggle_selected_source())
        elif event.key == "r":
            self._run_action(self._reload())
        elif event.key == "q":
            self.exit()

    def _run_action(self, work) -> None:
        # Hub calls can take seconds; keep them off the message loop
        self.run_worker(work, group="publisher", exit_on_error=False)

    async def _toggle_publisher(self) -> None:
        if self.publisher:
            await self.publisher.toggle_publisher()

    async def _reload(self) -> None:
        if self.publisher:
            await self.publisher.reload_devices(force_sync=True)

    async def _toggle_selected_source(self) -> None:
        if not self.publisher:
            return
        index = self.query_one("#source-table", SourceTable).cursor_row
        if index is None or not 0 <= index < len(self.publisher.sources):
            return
        source = self.publisher.sources[index]
        await self.publisher.set_source_enabled(source.id, not source.enabled)

    def _refresh_table(self) -> None:
        if not self.publisher:
            return
        try:
            table = self.query_one("#source-table", SourceTable)
        except NoMatches:
            # Not composed yet
            return
        table.clear()
        for source in self.publisher.sources:
            table.add_row(*source_row(source))
        self.summary = self.publisher.summary

    def _update_status(self, message: str) -> None:
        try:
            status_bar = self.query_one("#status-bar", StatusBar)
        except NoMatches:
            return
        status_bar.update_status(f"{message}  |  {self.summary}")

    def _on_sources_changed(self, sources: List[Source]) -> None:
        self._refresh_table()
        if self.publisher:
            self._update_status(self.publisher.publisher_status)

    def _on_publisher_status(self, text: str) -> None:
        self._update_status(text)


def run_tui(store_path: Optional[Path] = None) -> None:
    """
    Run the CamPush TUI application.

    Args:
        store_path: Optional custom path for the publisher config file
    """
    app = CamPushTUI(store_path=store_path)
    app.run()
