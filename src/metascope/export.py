"""Export tabular results to CSV, JSON or YAML."""

import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import yaml


EXPORT_FORMATS = ("csv", "json", "yaml")

EXTENSIONS = {"csv": ".csv", "json": ".json", "yaml": ".yaml"}


def table_records(columns: Sequence[str], rows: Sequence[Sequence[str]]) -> list[dict[str, str]]:
    return [dict(zip(columns, row)) for row in rows]


def render_table(
    columns: Sequence[str],
    rows: Sequence[Sequence[str]],
    fmt: str = "csv",
) -> str:
    """Serialize a table to text.

    Raises:
        ValueError: If *fmt* is not one of ``EXPORT_FORMATS``.
    """
    if fmt == "csv":
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(columns)
        writer.writerows(rows)
        return buffer.getvalue()
    if fmt == "json":
        return json.dumps(table_records(columns, rows), indent=2, ensure_ascii=False) + "\n"
    if fmt == "yaml":
        return yaml.dump(
            table_records(columns, rows),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    raise ValueError(f"Unknown export format: {fmt}")


def export_table(
    columns: Sequence[str],
    rows: Sequence[Sequence[str]],
    fmt: str = "csv",
    directory: Optional[Path] = None,
    name: str = "export",
    path: Optional[Path] = None,
) -> Path:
    """Write a table to *path*, or to a timestamped file in *directory*.

    Returns:
        The path written.
    """
    if path is None:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = Path(directory or Path.cwd()) / f"{name}_{stamp}{EXTENSIONS.get(fmt, '.txt')}"
    content = render_table(columns, rows, fmt)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
