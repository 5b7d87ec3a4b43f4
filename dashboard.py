"""Load every configured export and assemble the dashboard payload.

Used by both the CLI (usage_summary.py) and the web service (app.py).
A missing or unreadable export is logged and left out of the payload;
it never prevents the other files from loading.
"""

from __future__ import annotations

import csv
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from comparison import (
    aggregate_top_models,
    build_user_directory,
    compare_months,
    compare_periods,
    compute_month_stats,
    compute_usage_stats,
    growth_rate,
)
from csv_exports import ExportParseError
from usage_logs import process_usage_export
from visit_records import (
    compute_visit_distribution,
    engagement_level,
    process_visits_export,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
DATA_DIR = Path(
    os.environ.get("USAGE_DASHBOARD_DATA_DIR", Path(__file__).parent / "data")
)

# month key -> (file name, display label), chronological
MONTH_EXPORTS: dict[str, tuple[str, str]] = {
    "may": ("may.csv", "Mai 2025"),
    "june": ("june.csv", "Juni 2025"),
    "july": ("july.csv", "Juli 2025"),
    "august": ("august.csv", "August 2025"),
    "september": ("september.csv", "September 2025"),
    "october": ("october.csv", "Oktober 2025"),
    "november": ("november.csv", "November 2025"),
}

# period key -> (file name, display label), chronological
VISIT_EXPORTS: dict[str, tuple[str, str]] = {
    "juni-juli": ("sign_in_juni_juli.csv", "Juni-Juli"),
    "juli-august": ("sign_in_juli_august.csv", "Juli-August"),
    "oktober-november": ("sign_in_october_november.csv", "Oktober-November"),
}


def _load_exports(
    data_dir: Path,
    exports: dict[str, tuple[str, str]],
    process,
) -> tuple[dict[str, dict], list[dict[str, str]]]:
    summaries: dict[str, dict] = {}
    errors: list[dict[str, str]] = []
    for key, (filename, label) in exports.items():
        path = data_dir / filename
        try:
            summaries[key] = process(path, label)
        except (FileNotFoundError, ExportParseError) as e:
            logger.warning("Skipping %s (%s): %s", filename, label, e)
            errors.append({"file": filename, "error": str(e)})
    return summaries, errors


def load_month_summaries(
    data_dir: str | Path = DATA_DIR,
) -> tuple[dict[str, dict], list[dict[str, str]]]:
    """Aggregate every configured monthly log export under *data_dir*.

    Returns:
        A 2-tuple of (summaries, errors): summaries maps month key to
        month summary in chronological order; errors lists
        ``{"file", "error"}`` for each export that could not be loaded.
    """
    return _load_exports(Path(data_dir), MONTH_EXPORTS, process_usage_export)


def load_period_summaries(
    data_dir: str | Path = DATA_DIR,
) -> tuple[dict[str, dict], list[dict[str, str]]]:
    """Aggregate every configured sign-in export under *data_dir*.

    Same return shape as ``load_month_summaries``, keyed by period key.
    """
    return _load_exports(Path(data_dir), VISIT_EXPORTS, process_visits_export)


def _compute_overview(months: dict[str, dict]) -> dict[str, Any]:
    """Headline figures across all loaded months."""
    ordered = list(months.values())
    overall_growth = (
        growth_rate(ordered[0]["average_daily_usage"], ordered[-1]["average_daily_usage"])
        if len(ordered) >= 2
        else 0.0
    )
    return {
        "total_requests": sum(m["total_requests"] for m in ordered),
        "total_active_days": sum(m["unique_days"] for m in ordered),
        "overall_growth": overall_growth,
        "top_models": aggregate_top_models(ordered),
        "usage_stats": compute_usage_stats(ordered),
    }


def _period_detail(summary: dict[str, Any]) -> dict[str, Any]:
    """Copy a period summary with per-user engagement labels and its distribution."""
    def label(users: list[dict]) -> list[dict]:
        return [{**u, "engagement": engagement_level(u["visit_count"])} for u in users]

    return {
        **summary,
        "top_users": label(summary["top_users"]),
        "user_visits": label(summary["user_visits"]),
        "distribution": compute_visit_distribution(summary),
    }


def build_dashboard_payload(data_dir: str | Path = DATA_DIR) -> dict[str, Any]:
    """One-call entry point: load, aggregate and compare every export.

    Args:
        data_dir: Directory holding the configured CSV exports.

    Returns:
        Dict with keys: generated_at (ISO timestamp), months (key -> month
        summary with an added "stats" entry), periods (key -> period
        summary with an added "distribution" entry and an "engagement"
        label on each user), overview,
        month_table and period_table (comparison dicts, or None with fewer
        than two loaded files), user_directory and errors.

    Raises:
        FileNotFoundError: If *data_dir* does not exist.
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FileNotFoundError(f"Data directory not found: {data_dir}")

    months, month_errors = load_month_summaries(data_dir)
    periods, period_errors = load_period_summaries(data_dir)

    month_list = list(months.values())
    period_list = list(periods.values())

    return {
        "generated_at": datetime.now().isoformat(),
        "months": {
            key: {**summary, "stats": compute_month_stats(summary)}
            for key, summary in months.items()
        },
        "periods": {
            key: _period_detail(summary)
            for key, summary in periods.items()
        },
        "overview": _compute_overview(months),
        "month_table": compare_months(month_list) if len(month_list) >= 2 else None,
        "period_table": compare_periods(period_list) if len(period_list) >= 2 else None,
        "user_directory": build_user_directory(period_list),
        "errors": month_errors + period_errors,
    }


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def save_dashboard_files(payload: dict[str, Any], output_dir: str = "usage_analytics") -> None:
    """Write JSON/CSV dashboard files to output_dir.

    Creates the output directory if it doesn't exist and writes
    dashboard.json (the full payload), monthly_trend.csv (one row per
    active day per month) and user_visits.csv (one row per user per
    period).

    Args:
        payload: Dict from ``build_dashboard_payload``.
        output_dir: Directory path for output files.  Created if it
            doesn't exist.  Defaults to "usage_analytics".
    """
    os.makedirs(output_dir, exist_ok=True)

    with open(f"{output_dir}/dashboard.json", "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    with open(f"{output_dir}/monthly_trend.csv", "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["month", "date", "requests"])
        writer.writeheader()
        for summary in payload["months"].values():
            for point in summary["trend_data"]:
                writer.writerow({"month": summary["month"], **point})

    with open(f"{output_dir}/user_visits.csv", "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["period", "email", "name", "visit_count", "engagement"])
        writer.writeheader()
        for summary in payload["periods"].values():
            for visit in summary["user_visits"]:
                writer.writerow({"period": summary["period_name"], **visit})


def print_summary_report(payload: dict[str, Any]) -> None:
    """Print the CLI summary report to stdout.

    Args:
        payload: Dict from ``build_dashboard_payload``.
    """
    print(f"\n{'=' * 60}")
    print("Chat Usage Summary")
    print(f"{'=' * 60}")

    for summary in payload["months"].values():
        db = summary["database_usage"]
        print(
            f"{summary['month']:<16} {summary['total_requests']:>7,} requests  "
            f"{summary['unique_days']:>3} days  "
            f"avg {summary['average_daily_usage']:.1f}/day  "
            f"db {db['with_database']:,}/{db['total_analyzed']:,}"
        )

    overview = payload["overview"]
    if payload["months"]:
        print(f"\nTotal Requests: {overview['total_requests']:,}")
        print(f"Growth (first to last month): {overview['overall_growth']:+.1f}%")
        print("\nTop Models:")
        for entry in overview["top_models"][:5]:
            print(f"  {entry['model']}: {entry['count']:,}")

    if payload["periods"]:
        print(f"\n{'=' * 60}")
        print("User Visits")
        print(f"{'=' * 60}")
        for summary in payload["periods"].values():
            print(
                f"{summary['period_name']:<18} {summary['total_users']:>4} users  "
                f"{summary['total_visits']:>6,} visits  "
                f"avg {summary['average_visits_per_user']:.1f}"
            )
        table = payload.get("period_table")
        if table:
            print(f"\nRetention (first to last period): {table['retention']}%")

    if payload["errors"]:
        print(f"\nSkipped {len(payload['errors'])} export(s):")
        for err in payload["errors"]:
            print(f"  {err['file']}: {err['error']}")

    print(f"{'=' * 60}")
