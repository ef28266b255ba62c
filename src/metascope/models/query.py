"""Environment identity and ad-hoc query results."""

import itertools
from dataclasses import dataclass, field
from typing import Any, Optional

from metascope.errors import MalformedData


FORMATTED_SUFFIX = "@OData.Community.Display.V1.FormattedValue"
LOOKUP_SUFFIX = "@Microsoft.Dynamics.CRM.lookuplogicalname"

_environment_ids = itertools.count(1)


def normalize_url(url: str) -> str:
    """Strip whitespace and trailing slashes from an environment URL."""
    return url.strip().rstrip("/")


@dataclass(frozen=True)
class Environment:
    """An active connection target.

    ``id`` is unique per activation, so re-activating the same URL still
    produces a fresh identity and stale completions are never mistaken for
    current ones.
    """

    url: str
    token: Optional[str] = field(default=None, repr=False)
    id: int = field(default_factory=lambda: next(_environment_ids))

    @classmethod
    def create(cls, url: str, token: Optional[str] = None) -> "Environment":
        return cls(url=normalize_url(url), token=token)

    @property
    def api_url(self) -> str:
        return f"{self.url}/api/data/v9.2"

    @property
    def host(self) -> str:
        return self.url.split("://", 1)[-1]


@dataclass(frozen=True)
class LookupInfo:
    """Target of a lookup cell in a query result."""

    id: str
    logical_name: str
    display_name: Optional[str] = None


@dataclass
class QueryResult:
    """Tabular view of an OData/FetchXML response."""

    columns: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    lookups: dict[tuple[int, int], LookupInfo] = field(default_factory=dict)
    count: Optional[int] = None
    next_link: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def records(self) -> list[dict[str, str]]:
        """Rows as column -> value mappings."""
        return [dict(zip(self.columns, row)) for row in self.rows]

    @classmethod
    def from_json(cls, payload: Any) -> "QueryResult":
        """Build a result from a Web API response body.

        Columns are the union of non-annotation keys across all records,
        sorted. Formatted values win over raw values for display.

        Raises:
            MalformedData: If the payload has no ``value`` array.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
            raise MalformedData("Invalid response format: missing 'value' array")

        records = [r for r in payload["value"] if isinstance(r, dict)]
        result = cls(
            count=payload.get("@odata.count"),
            next_link=payload.get("@odata.nextLink"),
        )

        columns: set[str] = set()
        for record in records:
            columns.update(k for k in record if "@" not in k)
        result.columns = sorted(columns)

        for row_idx, record in enumerate(records):
            row: list[str] = []
            for col_idx, column in enumerate(result.columns):
                formatted = record.get(column + FORMATTED_SUFFIX)
                display = formatted if isinstance(formatted, str) else format_value(record.get(column))
                row.append(display)

                logical_name = record.get(column + LOOKUP_SUFFIX)
                raw_id = record.get(column)
                if isinstance(logical_name, str) and isinstance(raw_id, str):
                    result.lookups[(row_idx, col_idx)] = LookupInfo(
                        id=raw_id,
                        logical_name=logical_name,
                        display_name=display,
                    )
            result.rows.append(row)

        return result


def format_value(value: Any) -> str:
    """Render a JSON scalar for a table cell."""
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return f"[{len(value)} items]"
    if isinstance(value, dict):
        return "{...}"
    return str(value)
