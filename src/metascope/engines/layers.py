"""Ordering of solution layers for one component."""

from dataclasses import dataclass
from typing import Iterable, Optional

from metascope.models import ComponentLayer


@dataclass(frozen=True)
class SolutionLayer:
    """One layer in base-to-top order. ``rank`` starts at 1 for the base."""

    rank: int
    solution: str
    managed: bool
    sequence: int
    publisher: Optional[str] = None
    applied_on: Optional[str] = None
    active: bool = False

    @property
    def managed_label(self) -> str:
        return "Managed" if self.managed else "Unmanaged"

    @property
    def search_text(self) -> str:
        return f"{self.solution} {self.publisher or ''}"


def order_layers(records: Iterable[ComponentLayer]) -> list[SolutionLayer]:
    """Sort layers from base to top and mark the last one active.

    The sequence (``msdyn_order``) is the sort key; records without one sort
    first. Equal sequences are tie-broken by solution name so the result is
    the same on every call.
    """
    ordered = sorted(records, key=lambda r: (r.order if r.order is not None else -1, r.solution_name))
    last = len(ordered) - 1
    return [
        SolutionLayer(
            rank=index + 1,
            solution=record.solution_name,
            managed=record.is_managed,
            sequence=record.order if record.order is not None else -1,
            publisher=record.publisher_name,
            applied_on=record.overwrite_time,
            active=index == last,
        )
        for index, record in enumerate(ordered)
    ]
