"""Incremental filtering over in-memory lists.

Filtering runs synchronously on every keystroke, so it only ever works on
data that is already cached.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence


def default_key(item: Any) -> str:
    """Search text of an item: ``search_text``, ``display_name`` or ``str``."""
    for attr in ("search_text", "display_name"):
        value = getattr(item, attr, None)
        if isinstance(value, str):
            return value
    return str(item)


def is_subsequence(needle: str, haystack: str) -> bool:
    """True if the characters of *needle* appear in order in *haystack*."""
    it = iter(haystack)
    return all(ch in it for ch in needle)


def filter_indices(
    items: Sequence[Any],
    query: str,
    key: Callable[[Any], str] = default_key,
    fuzzy: bool = False,
) -> list[int]:
    """Return the indices of items matching *query*, in original order.

    Matching is a case-insensitive substring test (or an in-order
    subsequence test with ``fuzzy=True``). An empty or blank query matches
    everything.
    """
    needle = query.strip().lower()
    if not needle:
        return list(range(len(items)))
    match = is_subsequence if fuzzy else (lambda n, h: n in h)
    return [index for index, item in enumerate(items) if match(needle, key(item).lower())]


def filter_items(
    items: Sequence[Any],
    query: str,
    key: Callable[[Any], str] = default_key,
    fuzzy: bool = False,
) -> list[Any]:
    return [items[i] for i in filter_indices(items, query, key, fuzzy)]


@dataclass(frozen=True)
class SearchHit:
    """One result of a search across several lists."""

    category: str
    item: Any

    @property
    def label(self) -> str:
        return default_key_label(self.item)

    @property
    def search_text(self) -> str:
        return f"{self.category} {default_key(self.item)}"


def default_key_label(item: Any) -> str:
    value = getattr(item, "display_name", None)
    return value if isinstance(value, str) else str(item)


def global_search(
    sources: Iterable[tuple[str, Optional[Sequence[Any]]]],
    query: str,
    limit: int = 200,
    fuzzy: bool = False,
) -> list[SearchHit]:
    """Search several categories at once.

    Args:
        sources: ``(category, items)`` pairs; ``None`` items (not loaded
            yet) are skipped.
        query: Text to match. An empty query returns no hits.
        limit: Maximum number of hits.
        fuzzy: Use subsequence matching.
    """
    if not query.strip():
        return []
    hits: list[SearchHit] = []
    for category, items in sources:
        if not items:
            continue
        for item in filter_items(items, query, fuzzy=fuzzy):
            hits.append(SearchHit(category, item))
            if len(hits) >= limit:
                return hits
    return hits
