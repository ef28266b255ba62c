"""Metascope TUI - Textual host for the browser session."""

import logging
from pathlib import Path
from typing import Any, Optional

from rich.markup import escape
from rich.text import Text
from textual import events, on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.message import Message
from textual.widgets import DataTable, Header, Static

from metascope.config import MetascopeConfig
from metascope.core.cache import CacheEntry, CacheKey, MetadataCache
from metascope.core.keymap import KeyMode
from metascope.core.projector import Screen, Table, project
from metascope.core.session import BrowserSession
from metascope.engines import POLICIES, own_unit_only
from metascope.models import Environment


logger = logging.getLogger(__name__)


class BrowserPane(Vertical, can_focus=True):
    """Focus target that turns every key press into a browser message."""

    class KeyPressed(Message):
        def __init__(self, key: str, character: Optional[str]) -> None:
            super().__init__()
            self.key = key
            self.character = character

    def on_key(self, event: events.Key) -> None:
        # The session decides what every key means; keep bindings out of it
        event.stop()
        event.prevent_default()
        # Printable keys are matched by character ("/" rather than "slash")
        key = event.character if event.is_printable and event.character else event.key
        self.post_message(self.KeyPressed(key, event.character))


def render_tabs(tabs: tuple[str, ...], active: int) -> str:
    parts = []
    for index, name in enumerate(tabs):
        label = escape(name)
        parts.append(f"[reverse] {label} [/reverse]" if index == active else f" {label} ")
    return "|".join(parts)


def fill_table(table: DataTable, data: Table) -> None:
    """Replace the contents of a DataTable with one projected page."""
    table.clear(columns=True)
    if data.placeholder is not None:
        table.display = False
        return
    table.display = True
    # Remote values are plain text, never markup
    table.add_columns(*(Text(column) for column in data.columns))
    table.add_rows([Text(cell) for cell in row] for row in data.rows)
    table.move_cursor(row=data.cursor, animate=False)


def placeholder_text(data: Table) -> str:
    text = data.placeholder or ""
    if data.error:
        text = f"[b red]{escape(text)}[/]"
        if data.hint:
            text += f"\n[dim]{escape(data.hint)}[/]"
    return text


class MetascopeApp(App):
    """Main Metascope TUI application."""

    TITLE = "Metascope"
    SUB_TITLE = "Dataverse Metadata Browser"

    CSS = """
    Screen {
        layers: base overlay;
    }

    #breadcrumb {
        height: 1;
        background: $primary-darken-2;
        padding: 0 1;
    }

    #tabs {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }

    #filter {
        height: 1;
        padding: 0 1;
        color: $warning;
    }

    #browser {
        height: 1fr;
    }

    #main-placeholder {
        padding: 1 2;
        color: $text-muted;
    }

    #main-table {
        height: 1fr;
    }

    #popup {
        layer: overlay;
        display: none;
        width: 80%;
        height: auto;
        max-height: 70%;
        offset: 10% 4;
        background: $surface;
        border: round $accent;
        padding: 0 1;
    }

    #popup-title {
        text-style: bold;
    }

    #popup-input {
        background: $boost;
    }

    #popup-message {
        color: $error;
    }

    #popup-table {
        height: auto;
        max-height: 20;
    }

    #status-bar {
        height: 1;
        background: $surface-darken-1;
        padding: 0 1;
    }

    #key-hints {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(
        self,
        client: Any,
        env: Environment,
        config: Optional[MetascopeConfig] = None,
        save_config: bool = True,
        mode: Optional[KeyMode] = None,
    ):
        """Initialize the app.

        Args:
            client: Object with ``async fetch(env, query)``, normally a
                :class:`~metascope.client.DataverseClient`.
            env: The environment to open.
            config: Loaded configuration (defaults when omitted).
            save_config: Persist environment switches to the config file.
            mode: Key mode for this run; defaults to the configured one.
        """
        super().__init__()
        self.client = client
        self._config = config or MetascopeConfig()
        self._save_config = save_config

        self.cache = MetadataCache(client.fetch, env, spawn=self._spawn_fetch)
        self.session = BrowserSession(
            self.cache,
            env,
            mode=mode or (KeyMode.VIM if self._config.vim_mode else KeyMode.ARROWS),
            environments=self._config.environments,
            bu_policy=POLICIES.get(self._config.business_unit_policy, own_unit_only),
            fuzzy=self._config.fuzzy_search,
            export_format=self._config.export_format,
            export_dir=Path(self._config.export_directory) if self._config.export_directory else None,
        )
        self.session.on_environment_change(self._remember_environment)
        self.last_screen: Optional[Screen] = None
        self._browser_ready = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="breadcrumb")
        yield Static("", id="tabs")
        yield Static("", id="filter")
        with BrowserPane(id="browser"):
            yield Static("", id="main-placeholder")
            yield DataTable(id="main-table", cursor_type="row", zebra_stripes=True)
        with Vertical(id="popup"):
            yield Static("", id="popup-title")
            yield Static("", id="popup-input", markup=False)
            yield Static("", id="popup-message")
            yield DataTable(id="popup-table", cursor_type="row")
        yield Static("", id="status-bar")
        yield Static("", id="key-hints")

    def on_mount(self) -> None:
        self.theme = self._config.theme
        for table in self.query(DataTable):
            table.can_focus = False
        self.cache.add_listener(self._on_cache_update)
        self.query_one("#browser", BrowserPane).focus()
        self._browser_ready = True
        self.refresh_view()

    async def on_unmount(self) -> None:
        self.cache.remove_listener(self._on_cache_update)
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    def on_resize(self) -> None:
        self.refresh_view()

    def _spawn_fetch(self, coro) -> Any:
        return self.run_worker(coro, group="fetch", exit_on_error=False)

    def _on_cache_update(self, key: CacheKey, entry: CacheEntry) -> None:
        self.call_later(self.refresh_view)

    def _remember_environment(self, env: Environment) -> None:
        self._config.add_environment(env.url)
        if self._save_config:
            try:
                self._config.save()
            except OSError as e:
                logger.warning("Could not save config: %s", e)
                self.notify(f"Could not save config: {e}", severity="warning")

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    @on(BrowserPane.KeyPressed)
    def handle_browser_key(self, event: BrowserPane.KeyPressed) -> None:
        if not self.session.handle_key(event.key, event.character):
            self.exit()
            return
        self.refresh_view()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _page_height(self) -> int:
        height = self.query_one("#browser", BrowserPane).size.height
        return height - 1 if height > 2 else 20

    def refresh_view(self) -> None:
        """Project the session and push the result into the widgets."""
        if not self._browser_ready:
            return
        screen = project(self.session.snapshot(), height=self._page_height())
        self.last_screen = screen
        self.sub_title = self.session.env.host

        self.query_one("#breadcrumb", Static).update(escape(screen.breadcrumb))
        tabs = self.query_one("#tabs", Static)
        tabs.display = bool(screen.tabs)
        tabs.update(render_tabs(screen.tabs, screen.active_tab))
        filter_line = self.query_one("#filter", Static)
        filter_line.display = bool(screen.filter)
        filter_line.update(f"Filter: {escape(screen.filter)}")

        placeholder = self.query_one("#main-placeholder", Static)
        placeholder.display = screen.table.placeholder is not None
        placeholder.update(placeholder_text(screen.table))
        fill_table(self.query_one("#main-table", DataTable), screen.table)

        self._render_popup(screen)
        self.query_one("#status-bar", Static).update(escape(screen.status))
        self.query_one("#key-hints", Static).update(escape(screen.keys))

    def _render_popup(self, screen: Screen) -> None:
        popup = self.query_one("#popup", Vertical)
        if screen.popup is None:
            popup.display = False
            return
        popup.display = True
        self.query_one("#popup-title", Static).update(escape(screen.popup.title))
        popup_input = self.query_one("#popup-input", Static)
        popup_input.display = screen.popup.input is not None
        popup_input.update(f"> {screen.popup.input or ''}_")
        message = self.query_one("#popup-message", Static)
        message.display = bool(screen.popup.message)
        message.update(escape(screen.popup.message or ""))

        table = self.query_one("#popup-table", DataTable)
        if screen.popup.table is None:
            table.display = False
            return
        if screen.popup.table.placeholder is not None:
            message.display = True
            message.update(placeholder_text(screen.popup.table))
        fill_table(table, screen.popup.table)
