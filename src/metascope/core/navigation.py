"""The view stack: navigation state of the browser.

Every navigation level is a :class:`ViewFrame`. The stack always holds at
least one frame; popping the root is refused and the caller treats that as
a request to quit.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ViewKind(str, Enum):
    ENTITIES = "entities"
    SOLUTIONS = "solutions"
    USERS = "users"
    OPTION_SETS = "option_sets"
    ENTITY_DETAIL = "entity_detail"
    SOLUTION_DETAIL = "solution_detail"
    USER_DETAIL = "user_detail"
    SOLUTION_LAYERS = "solution_layers"
    FETCH_XML_CONSOLE = "fetch_xml_console"
    SEARCH_POPUP = "search_popup"
    GLOBAL_SEARCH = "global_search"
    ENVIRONMENT_SWITCHER = "environment_switcher"
    DISCOVERY = "discovery"


# Root views selected by the digit keys
GLOBAL_VIEWS: dict[int, ViewKind] = {
    1: ViewKind.ENTITIES,
    2: ViewKind.SOLUTIONS,
    3: ViewKind.USERS,
    4: ViewKind.OPTION_SETS,
}

TABS: dict[ViewKind, tuple[str, ...]] = {
    ViewKind.ENTITY_DETAIL: ("Attributes", "Relationships", "Metadata"),
    ViewKind.USER_DETAIL: ("Direct Roles", "Teams", "All Roles", "Info"),
}

MODAL_KINDS = frozenset(
    {
        ViewKind.SEARCH_POPUP,
        ViewKind.GLOBAL_SEARCH,
        ViewKind.ENVIRONMENT_SWITCHER,
        ViewKind.FETCH_XML_CONSOLE,
        ViewKind.DISCOVERY,
    }
)

TITLES: dict[ViewKind, str] = {
    ViewKind.ENTITIES: "Entities",
    ViewKind.SOLUTIONS: "Solutions",
    ViewKind.USERS: "Users",
    ViewKind.OPTION_SETS: "Choices",
    ViewKind.ENTITY_DETAIL: "Entity",
    ViewKind.SOLUTION_DETAIL: "Solution",
    ViewKind.USER_DETAIL: "User",
    ViewKind.SOLUTION_LAYERS: "Solution Layers",
    ViewKind.FETCH_XML_CONSOLE: "FetchXML",
    ViewKind.SEARCH_POPUP: "Search",
    ViewKind.GLOBAL_SEARCH: "Global Search",
    ViewKind.ENVIRONMENT_SWITCHER: "Environments",
    ViewKind.DISCOVERY: "Discover Environments",
}


def tab_count(kind: ViewKind) -> int:
    return len(TABS.get(kind, ()))


@dataclass(frozen=True)
class ParentRef:
    """The selection a frame was opened from (entity, solution, user...).

    ``item`` is the selected record itself; ``detail`` carries one extra
    key where the id alone is not enough (the layer component name).
    """

    id: str
    label: str
    item: Any = field(default=None, compare=False, hash=False)
    detail: str = ""


@dataclass
class ViewFrame:
    """One level of navigation.

    ``text`` is the edit buffer of text-entry frames (search input,
    FetchXML console); ``filter`` is the filter applied to the list.
    ``query`` is the last query submitted from a console frame and
    ``message`` an inline notice such as a FetchXML validation error.
    """

    kind: ViewKind
    parent_ref: Optional[ParentRef] = None
    tab: int = 0
    cursor: int = 0
    filter: str = ""
    modal: bool = False
    text: str = ""
    message: Optional[str] = None
    query: Any = None

    @property
    def title(self) -> str:
        base = TITLES[self.kind]
        if self.parent_ref is not None:
            return f"{base}: {self.parent_ref.label}"
        return base

    @property
    def tabs(self) -> tuple[str, ...]:
        return TABS.get(self.kind, ())

    @property
    def tab_name(self) -> Optional[str]:
        return self.tabs[self.tab] if self.tabs else None


class ViewStack:
    """Ordered stack of frames; the bottom frame is the root view."""

    def __init__(self, root: ViewKind = ViewKind.ENTITIES):
        self._frames: list[ViewFrame] = [ViewFrame(root)]

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self):
        return iter(self._frames)

    @property
    def top(self) -> ViewFrame:
        return self._frames[-1]

    @property
    def root(self) -> ViewFrame:
        return self._frames[0]

    @property
    def frames(self) -> tuple[ViewFrame, ...]:
        return tuple(self._frames)

    def underlying(self) -> ViewFrame:
        """Topmost non-modal frame (what a popup is drawn over)."""
        for frame in reversed(self._frames):
            if not frame.modal:
                return frame
        return self._frames[0]

    def breadcrumb(self) -> list[str]:
        return [frame.title for frame in self._frames if not frame.modal]

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def push(self, kind: ViewKind, parent_ref: Optional[ParentRef] = None) -> ViewFrame:
        frame = ViewFrame(kind, parent_ref=parent_ref)
        self._frames.append(frame)
        return frame

    def open_modal(
        self,
        kind: ViewKind,
        parent_ref: Optional[ParentRef] = None,
        text: str = "",
    ) -> ViewFrame:
        frame = ViewFrame(kind, parent_ref=parent_ref, modal=True, text=text)
        self._frames.append(frame)
        return frame

    def pop(self) -> bool:
        """Remove the top frame. Returns False (and keeps it) at the root."""
        if len(self._frames) == 1:
            return False
        self._frames.pop()
        return True

    def jump_to_global_view(self, kind: ViewKind) -> ViewFrame:
        """Replace the whole stack with a single root frame."""
        self._frames = [ViewFrame(kind)]
        return self._frames[0]

    def switch_tab(self, delta: int) -> bool:
        frame = self.top
        count = tab_count(frame.kind)
        if count == 0:
            return False
        frame.tab = (frame.tab + delta) % count
        frame.cursor = 0
        frame.filter = ""
        return True

    def move_cursor(self, delta: int, item_count: int) -> None:
        """Move within ``[0, item_count - 1]``; no-op on an empty list."""
        frame = self.top
        if item_count <= 0:
            frame.cursor = 0
            return
        frame.cursor = max(0, min(item_count - 1, frame.cursor + delta))

    def clamp(self, item_count: int) -> None:
        """Pull the cursor back in range after the item count changed."""
        self.move_cursor(0, item_count)

    def set_filter(self, text: str) -> None:
        frame = self.top
        frame.filter = text
        frame.cursor = 0
