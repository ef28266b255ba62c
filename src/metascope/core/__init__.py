"""Navigation state machine, cache and presentation core."""

from .cache import CacheEntry, CacheState, MetadataCache
from .keymap import KeyMode, dispatch
from .navigation import ParentRef, ViewFrame, ViewKind, ViewStack
from .projector import Screen, Snapshot, project
from .search import filter_indices, global_search
from .session import BrowserSession

__all__ = [
    "BrowserSession",
    "CacheEntry",
    "CacheState",
    "KeyMode",
    "MetadataCache",
    "ParentRef",
    "Screen",
    "Snapshot",
    "ViewFrame",
    "ViewKind",
    "ViewStack",
    "dispatch",
    "filter_indices",
    "global_search",
    "project",
]
