"""Key events to view-stack transitions.

:func:`dispatch` is a pure lookup of ``(frame kind, modal, key mode, key)``.
Global keys are checked first, then the directional table of the active
key mode. Vim mode is the arrow table plus ``h/j/k/l``. Frames with a text
input capture printable characters, so only named keys act there.

Key names follow Textual (``"up"``, ``"enter"``, ``"shift+tab"``...).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from metascope.core.navigation import GLOBAL_VIEWS, ParentRef, ViewKind


class KeyMode(str, Enum):
    ARROWS = "arrows"
    VIM = "vim"


# =============================================================================
# Transitions
# =============================================================================


@dataclass(frozen=True)
class Push:
    """Open *kind* for the current selection (or for ``parent_ref``)."""

    kind: ViewKind
    parent_ref: Optional[ParentRef] = None


@dataclass(frozen=True)
class Pop:
    """Back one level; at the root this means quit."""


@dataclass(frozen=True)
class SwitchTab:
    delta: int


@dataclass(frozen=True)
class MoveCursor:
    delta: int


@dataclass(frozen=True)
class SetFilter:
    text: str


@dataclass(frozen=True)
class JumpToGlobalView:
    kind: ViewKind


@dataclass(frozen=True)
class OpenModal:
    """Push a modal frame. ``from_selection`` seeds it from the selected row."""

    kind: ViewKind
    from_selection: bool = False


@dataclass(frozen=True)
class Activate:
    """Enter: open the selected row, apply a search, run a query."""


@dataclass(frozen=True)
class Retry:
    """Re-issue the failed fetches of the current frame."""


@dataclass(frozen=True)
class InsertText:
    text: str


@dataclass(frozen=True)
class DeleteChar:
    pass


@dataclass(frozen=True)
class Export:
    """Write the current table to a file."""


Transition = Union[
    Push,
    Pop,
    SwitchTab,
    MoveCursor,
    SetFilter,
    JumpToGlobalView,
    OpenModal,
    Activate,
    Retry,
    InsertText,
    DeleteChar,
    Export,
]


# =============================================================================
# Key tables
# =============================================================================

PAGE = 10
FAR = 1_000_000

GLOBAL_KEYS: dict[str, Transition] = {
    **{str(n): JumpToGlobalView(kind) for n, kind in GLOBAL_VIEWS.items()},
    "/": OpenModal(ViewKind.SEARCH_POPUP),
    "G": OpenModal(ViewKind.GLOBAL_SEARCH),
    "E": OpenModal(ViewKind.ENVIRONMENT_SWITCHER),
    "f": OpenModal(ViewKind.FETCH_XML_CONSOLE),
    "F": OpenModal(ViewKind.FETCH_XML_CONSOLE, from_selection=True),
    "L": Push(ViewKind.SOLUTION_LAYERS),
    "D": OpenModal(ViewKind.DISCOVERY),
    "q": Pop(),
    "escape": Pop(),
    "r": Retry(),
}

ARROW_KEYS: dict[str, Transition] = {
    "up": MoveCursor(-1),
    "down": MoveCursor(1),
    "pageup": MoveCursor(-PAGE),
    "pagedown": MoveCursor(PAGE),
    "home": MoveCursor(-FAR),
    "end": MoveCursor(FAR),
    "left": SwitchTab(-1),
    "right": SwitchTab(1),
    "tab": SwitchTab(1),
    "shift+tab": SwitchTab(-1),
    "enter": Activate(),
}

VIM_KEYS: dict[str, Transition] = {
    **ARROW_KEYS,
    "k": MoveCursor(-1),
    "j": MoveCursor(1),
    "h": SwitchTab(-1),
    "l": SwitchTab(1),
    "ctrl+u": MoveCursor(-PAGE),
    "ctrl+d": MoveCursor(PAGE),
}

MODE_KEYS: dict[KeyMode, dict[str, Transition]] = {
    KeyMode.ARROWS: ARROW_KEYS,
    KeyMode.VIM: VIM_KEYS,
}

LIST_KEYS: dict[str, Transition] = {
    "x": Export(),
}

TEXT_ENTRY_KINDS = frozenset(
    {ViewKind.SEARCH_POPUP, ViewKind.GLOBAL_SEARCH, ViewKind.FETCH_XML_CONSOLE}
)

TEXT_KEYS: dict[str, Transition] = {
    "escape": Pop(),
    "enter": Activate(),
    "backspace": DeleteChar(),
    "up": MoveCursor(-1),
    "down": MoveCursor(1),
    "pageup": MoveCursor(-PAGE),
    "pagedown": MoveCursor(PAGE),
    "ctrl+u": SetFilter(""),
    "ctrl+s": Export(),
}


def dispatch(
    kind: ViewKind,
    modal: bool,
    mode: KeyMode,
    key: str,
    character: Optional[str] = None,
) -> Optional[Transition]:
    """Map one key event to at most one transition.

    Args:
        kind: Kind of the top frame.
        modal: Whether the top frame is modal.
        mode: Active key mode.
        key: Textual key name.
        character: Printable character of the event, if any.
    """
    if kind in TEXT_ENTRY_KINDS:
        if key in TEXT_KEYS:
            return TEXT_KEYS[key]
        if character is not None and len(character) == 1 and character.isprintable():
            return InsertText(character)
        return None

    if key in GLOBAL_KEYS:
        return GLOBAL_KEYS[key]
    table = MODE_KEYS[mode]
    if key in table:
        return table[key]
    if not modal and key in LIST_KEYS:
        return LIST_KEYS[key]
    return None


def key_hints(kind: ViewKind, mode: KeyMode) -> str:
    """One-line summary of the keys that act in *kind*."""
    if kind == ViewKind.FETCH_XML_CONSOLE:
        return "Enter run  ^S export  ^U clear  Esc close"
    if kind in TEXT_ENTRY_KINDS:
        return "type to search  Enter select  ^U clear  Esc close"
    move = "j/k move  h/l tabs" if mode == KeyMode.VIM else "arrows move  Tab tabs"
    return f"{move}  Enter open  / filter  G search  1-4 views  E env  f/F fetchxml  L layers  r retry  q back"
