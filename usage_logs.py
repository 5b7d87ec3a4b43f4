"""Usage-log aggregation for chat model exports.

Turns the rows of one monthly log export into a month summary: daily
request counts, per-model counts and knowledge-database usage.  Every
per-row extraction step degrades to "skip this row"; only an unreadable
file (see ``csv_exports``) is an error.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Iterable, Mapping

from csv_exports import read_export

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
USAGE_EVENT_MARKER = "INFO - src.routes.routes - Model:"
TOP_MODELS_LIMIT = 5

# Two export layouts: the full Azure Log Analytics export and the
# simplified one with lower-case column names.
TIMESTAMP_COLUMNS = ("TimeGenerated [UTC]", "time")
DESCRIPTION_COLUMNS = ("ResultDescription", "resultDescription")

_ISO_DATE_RE = re.compile(r"^\s*(\d{4}-\d{2}-\d{2})T")
_SLASH_DATE_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")

# Segments of "... - Model: x | Use Database: True | Relevant Documents: 5 |
# Mode:  | Search Mode: "
_MODEL_RE = re.compile(r"\bModel:\s*([^|]+)")
_USE_DATABASE_RE = re.compile(r"\bUse Database:\s*([^|]+)")
_RELEVANT_DOCS_RE = re.compile(r"\bRelevant Documents:\s*([^|]+)")
_MODE_RE = re.compile(r"(?<!Search )\bMode:\s*([^|]*)")
_SEARCH_MODE_RE = re.compile(r"\bSearch Mode:\s*([^|]*)")
_LEADING_INT_RE = re.compile(r"^[+-]?\d+")


def _first_value(row: Mapping[str, Any], columns: Iterable[str]) -> str:
    """Return the first non-empty value among *columns*, or ""."""
    for col in columns:
        value = row.get(col)
        if value:
            return str(value)
    return ""


def extract_date(timestamp: str | None) -> str | None:
    """Normalise an export timestamp to an ISO ``YYYY-MM-DD`` date.

    Supports ``2025-06-01T08:18:24.4395199Z`` and the older
    ``11/17/2025, 1:36:27.193 PM`` layout (month first).

    Returns:
        The date string, or None when neither layout matches.
    """
    if not timestamp:
        return None

    iso = _ISO_DATE_RE.match(timestamp)
    if iso:
        return iso.group(1)

    slash = _SLASH_DATE_RE.search(timestamp)
    if not slash:
        return None
    month, day, year = slash.groups()
    return f"{year}-{int(month):02d}-{int(day):02d}"


def _segment(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def extract_model(description: str) -> str | None:
    """Return the model name, or None when the segment is absent or blank."""
    return _segment(_MODEL_RE, description) or None


def extract_use_database(description: str) -> bool:
    value = _segment(_USE_DATABASE_RE, description)
    return value is not None and value.lower() == "true"


def extract_relevant_documents(description: str) -> int:
    """Parse the leading integer of the documents segment, 0 if unusable."""
    value = _segment(_RELEVANT_DOCS_RE, description)
    if not value:
        return 0
    match = _LEADING_INT_RE.match(value)
    return int(match.group(0)) if match else 0


def parse_log_description(description: str | None) -> dict[str, Any] | None:
    """Extract a usage event from a log line's description text.

    Args:
        description: The free-text ``ResultDescription`` of a log row.

    Returns:
        Dict with keys model, use_database, relevant_documents, mode and
        search_mode, or None when the required ``Model:`` segment is missing.
    """
    if not description:
        return None
    model = extract_model(description)
    if model is None:
        return None
    return {
        "model": model,
        "use_database": extract_use_database(description),
        "relevant_documents": extract_relevant_documents(description),
        "mode": _segment(_MODE_RE, description) or "",
        "search_mode": _segment(_SEARCH_MODE_RE, description) or "",
    }


def _init_daily_bucket(date: str) -> dict:
    return {
        "date": date,
        "total_requests": 0,
        "model_usage": {},
        "unique_models": [],
        "documents": 0,
    }


def _accumulate_event(daily: dict[str, dict], date: str, event: dict) -> None:
    """Add one parsed event to the bucket for *date*, creating it if needed."""
    if date not in daily:
        daily[date] = _init_daily_bucket(date)
    bucket = daily[date]
    model = event["model"]
    bucket["total_requests"] += 1
    bucket["model_usage"][model] = bucket["model_usage"].get(model, 0) + 1
    if model not in bucket["unique_models"]:
        bucket["unique_models"].append(model)
    bucket["documents"] += event["relevant_documents"]


def _build_daily_usage(daily: dict[str, dict]) -> list[dict]:
    """Finalise buckets into date-sorted records with per-day averages."""
    records = []
    for date in sorted(daily):
        bucket = daily[date]
        total = bucket["total_requests"]
        records.append(
            {
                "date": date,
                "total_requests": total,
                "model_usage": dict(bucket["model_usage"]),
                "unique_models": list(bucket["unique_models"]),
                "avg_documents_per_request": round(bucket["documents"] / total, 2) if total else 0.0,
            }
        )
    return records


def _merge_model_counts(daily: dict[str, dict], first_seen: list[str]) -> dict[str, int]:
    """Merge per-day model counts into one mapping ordered by first sighting."""
    counts = {model: 0 for model in first_seen}
    for bucket in daily.values():
        for model, count in bucket["model_usage"].items():
            counts[model] += count
    return counts


def aggregate_usage_logs(
    rows: Iterable[Mapping[str, Any]], month_label: str,
) -> dict[str, Any]:
    """Aggregate one month of usage-log rows into a month summary.

    Rows without the usage marker, without a recognisable timestamp, or
    without a ``Model:`` segment are skipped.  Database usage is tallied only
    for rows that are also counted as requests, so
    ``database_usage["total_analyzed"] == total_requests``.

    Args:
        rows: Row dicts from a log export (either column layout).
        month_label: Display label such as "Juni 2025".

    Returns:
        Dict with keys month, average_daily_usage, total_requests,
        unique_days, top_models (list of {model, count}, at most 5),
        trend_data (list of {date, requests}, ascending), database_usage
        ({with_database, without_database, total_analyzed}), daily_usage
        (per-day buckets) and model_counts (model -> count).
    """
    daily: dict[str, dict] = {}
    models_seen: list[str] = []
    with_database = 0
    without_database = 0
    seen_rows = 0
    skipped = 0

    for row in rows:
        seen_rows += 1
        description = _first_value(row, DESCRIPTION_COLUMNS)
        if USAGE_EVENT_MARKER not in description:
            continue

        date = extract_date(_first_value(row, TIMESTAMP_COLUMNS))
        event = parse_log_description(description)
        if date is None or event is None:
            skipped += 1
            continue

        if event["use_database"]:
            with_database += 1
        else:
            without_database += 1

        if event["model"] not in models_seen:
            models_seen.append(event["model"])
        _accumulate_event(daily, date, event)

    if skipped:
        logger.debug("%s: skipped %d usage rows without date or model", month_label, skipped)
    if seen_rows and not daily:
        logger.warning(
            "%s: %d rows loaded but none produced usage events. "
            "The log export format may have changed.",
            month_label,
            seen_rows,
        )

    total_requests = sum(b["total_requests"] for b in daily.values())
    unique_days = len(daily)
    model_counts = _merge_model_counts(daily, models_seen)
    # sorted() is stable, so ties keep first-seen order
    ranked = sorted(model_counts.items(), key=lambda item: item[1], reverse=True)
    daily_usage = _build_daily_usage(daily)

    return {
        "month": month_label,
        "average_daily_usage": total_requests / unique_days if unique_days else 0,
        "total_requests": total_requests,
        "unique_days": unique_days,
        "top_models": [
            {"model": model, "count": count} for model, count in ranked[:TOP_MODELS_LIMIT]
        ],
        "trend_data": [
            {"date": rec["date"], "requests": rec["total_requests"]} for rec in daily_usage
        ],
        "database_usage": {
            "with_database": with_database,
            "without_database": without_database,
            "total_analyzed": with_database + without_database,
        },
        "daily_usage": daily_usage,
        "model_counts": model_counts,
    }


def process_usage_export(path: str | Path, month_label: str) -> dict[str, Any]:
    """Read a log export from disk and aggregate it.

    Raises:
        FileNotFoundError: If the export does not exist.
        csv_exports.ExportParseError: If the file is not valid CSV.
    """
    return aggregate_usage_logs(read_export(path), month_label)
