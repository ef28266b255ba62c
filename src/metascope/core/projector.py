"""Pure projection of browser state onto a drawable screen description.

:func:`project` never touches the cache or the toolkit. The Textual app
turns the returned :class:`Screen` into widgets; tests assert on it
directly.
"""

from dataclasses import dataclass, field
from typing import Optional

from metascope.core.keymap import TEXT_ENTRY_KINDS, KeyMode, key_hints
from metascope.core.navigation import ViewFrame, ViewKind
from metascope.core.sources import ViewData


LOADING_TEXT = "Loading..."


@dataclass
class FrameView:
    """A frame together with its resolved data and visible indices."""

    frame: ViewFrame
    data: ViewData
    visible: list[int]


@dataclass
class Snapshot:
    """Everything :func:`project` reads."""

    base: FrameView
    breadcrumb: list[str]
    env_url: str
    mode: KeyMode
    modal: Optional[FrameView] = None
    status: Optional[str] = None


@dataclass
class Table:
    """The visible window of a table.

    ``rows`` only holds the rows of the current page; ``cursor`` is relative
    to ``rows`` and ``offset`` is the index of the first one.
    """

    columns: tuple[str, ...] = ()
    rows: list[tuple[str, ...]] = field(default_factory=list)
    cursor: int = 0
    offset: int = 0
    total: int = 0
    matched: int = 0
    loading: bool = False
    error: Optional[str] = None
    hint: Optional[str] = None

    @property
    def placeholder(self) -> Optional[str]:
        """Text shown instead of rows (loading, error or empty)."""
        if self.error:
            return self.error
        if self.loading:
            return LOADING_TEXT
        if not self.rows:
            return "No items" if self.total == 0 else "No matches"
        return None


@dataclass
class Popup:
    title: str
    input: Optional[str] = None
    table: Optional[Table] = None
    message: Optional[str] = None


@dataclass
class Screen:
    title: str
    breadcrumb: str
    tabs: tuple[str, ...]
    active_tab: int
    table: Table
    filter: str
    popup: Optional[Popup]
    status: str
    keys: str


def viewport(cursor: int, count: int, height: int) -> tuple[int, int]:
    """``(start, end)`` of the page containing *cursor*."""
    if height <= 0 or count <= 0:
        return 0, count
    start = (cursor // height) * height
    return start, min(count, start + height)


def project_table(view: FrameView, height: int) -> Table:
    data = view.data
    entry = data.entry
    start, end = viewport(view.frame.cursor, len(view.visible), height)
    page = view.visible[start:end]
    error = None
    hint = None
    if entry.is_failed and entry.error is not None:
        error = entry.error.describe()
        hint = entry.error.hint or "Press r or Enter to retry."
    return Table(
        columns=data.columns,
        rows=data.rows(page),
        cursor=view.frame.cursor - start,
        offset=start,
        total=len(data.items),
        matched=len(view.visible),
        loading=entry.is_pending,
        error=error,
        hint=hint,
    )


def _state_label(table: Table) -> str:
    if table.error:
        return "Error"
    if table.loading:
        return LOADING_TEXT
    if table.total == 0:
        return "0 items"
    position = f"{table.offset + table.cursor + 1}/{table.matched}"
    if table.matched != table.total:
        return f"{position} (of {table.total})"
    return position


def project_popup(view: FrameView, height: int) -> Popup:
    frame = view.frame
    if frame.kind == ViewKind.SEARCH_POPUP:
        return Popup(title="Filter", input=frame.text, message=frame.message)
    table = project_table(view, height)
    text = frame.text if frame.kind in TEXT_ENTRY_KINDS else None
    return Popup(title=frame.title, input=text, table=table, message=frame.message)


def project(snapshot: Snapshot, height: int = 20) -> Screen:
    """Build the screen description for the current state.

    Args:
        snapshot: Resolved frames and session state.
        height: Number of table rows that fit on screen.
    """
    base = snapshot.base
    table = project_table(base, height)
    popup = project_popup(snapshot.modal, max(1, height // 2)) if snapshot.modal else None

    top_kind = snapshot.modal.frame.kind if snapshot.modal else base.frame.kind
    active = popup.table if popup and popup.table else table
    parts = [snapshot.env_url or "no environment", snapshot.mode.value, _state_label(active)]
    if snapshot.status:
        parts.append(snapshot.status)

    return Screen(
        title=base.frame.title,
        breadcrumb=" > ".join(snapshot.breadcrumb),
        tabs=base.frame.tabs,
        active_tab=base.frame.tab,
        table=table,
        filter=base.frame.filter,
        popup=popup,
        status=" | ".join(parts),
        keys=key_hints(top_kind, snapshot.mode),
    )
