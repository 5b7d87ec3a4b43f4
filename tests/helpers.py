"""Shared test helpers for the usage dashboard tests.

Regular functions (not fixtures) that can be imported by any test module.
"""

from __future__ import annotations

import csv
from pathlib import Path


def make_description(
    model: str | None = "gpt-4o",
    use_database: str = "True",
    documents: str = "5",
    prefix: str = "2025-06-01 08:00:00,123 - INFO - src.routes.routes - ",
) -> str:
    """Build a ResultDescription string as written by the chat backend."""
    parts = []
    if model is not None:
        parts.append(f"Model: {model}")
    parts.append(f"Use Database: {use_database}")
    parts.append(f"Relevant Documents: {documents}")
    parts.append("Mode: ")
    parts.append("Search Mode: ")
    return prefix + " | ".join(parts)


def make_log_row(time: str, description: str, layout: str = "simple") -> dict[str, str]:
    """Build a log export row in either column layout.

    Args:
        time: Timestamp cell value.
        description: ResultDescription cell value.
        layout: "simple" (time/resultDescription) or "azure"
            (TimeGenerated [UTC]/ResultDescription).
    """
    if layout == "azure":
        return {
            "TenantId": "t-1",
            "TimeGenerated [UTC]": time,
            "Level": "INFO",
            "ResultDescription": description,
        }
    return {"time": time, "resultDescription": description}


def make_usage_rows(day_configs: list[tuple[str, list[tuple[str, bool]]]]) -> list[dict[str, str]]:
    """Build usage rows for several days.

    Args:
        day_configs: List of (iso_date, [(model, use_database), ...]).
    """
    rows = []
    for date_str, events in day_configs:
        for i, (model, use_db) in enumerate(events):
            rows.append(
                make_log_row(
                    f"{date_str}T{8 + i % 10:02d}:00:00Z",
                    make_description(model, "True" if use_db else "False"),
                )
            )
    return rows


def make_visit_summary(period_name: str, visits: list[tuple[str, str, int]]) -> dict:
    """Build a period summary dict directly from (email, name, count) tuples."""
    from visit_records import aggregate_visits

    rows = [
        {"E-Mail": email, "Name": name, "Anzahl der Besuche": str(count)}
        for email, name, count in visits
    ]
    return aggregate_visits(rows, period_name)


def write_csv(path: Path, fieldnames: list[str], rows: list[dict[str, str]]) -> Path:
    """Write *rows* as a CSV file with a header and return *path*."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    return path
