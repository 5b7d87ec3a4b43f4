"""Sign-in (visit) export aggregation.

Normalises the two column layouts of the sign-in exports into one
``{email, name, visit_count}`` record shape and summarises a period.
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
TOP_USERS_LIMIT = 10
HIGH_ENGAGEMENT_THRESHOLD = 5

# (email, name, visits) column names per export layout.  The layout is
# picked by whichever email column is filled in.
VISIT_COLUMN_LAYOUTS = (
    ("E-Mail", "Name", "Anzahl der Besuche"),
    ("email", "name", "visitCount"),
)

# UTF-8 text that was decoded as Windows-1252 somewhere upstream.  Order
# matters: the two stray-prefix removals must run last.
ENCODING_REPAIRS = (
    ("Ã¤", "ä"),
    ("Ã¶", "ö"),
    ("Ã¼", "ü"),
    ("Ã\u009f", "ß"),
    ("Ã„", "Ä"),
    ("Ã–", "Ö"),
    ("Ãœ", "Ü"),
    ("â‚¬", "€"),
    ("Â", ""),
    ("â", ""),
)

# Label keywords -> period key.  First match wins.
KNOWN_PERIODS = (
    (("juni", "juli"), "juni-juli"),
    (("juli", "august"), "juli-august"),
    (("oktober", "november"), "oktober-november"),
)

_LEADING_INT_RE = re.compile(r"^[+-]?\d+")
_WHITESPACE_RE = re.compile(r"\s+")

# (label, lower bound) from highest to lowest
_VISIT_BUCKETS = (
    ("10+", 10),
    ("5-9", 5),
    ("2-4", 2),
    ("1", 1),
)


def repair_encoding(text: str) -> str:
    """Undo the known double-encoding artefacts in an exported cell."""
    for broken, fixed in ENCODING_REPAIRS:
        text = text.replace(broken, fixed)
    return text


def parse_visit_count(value: str | None) -> int:
    """Parse the leading integer of a visit-count cell, 0 on failure."""
    if not value:
        return 0
    match = _LEADING_INT_RE.match(value.strip())
    return int(match.group(0)) if match else 0


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return repair_encoding(str(value)).strip()


def normalize_visit_row(row: Mapping[str, Any]) -> dict[str, Any] | None:
    """Normalise one raw export row into a visit record.

    Returns:
        Dict with keys email, name and visit_count, or None when the row
        lacks any of the three fields in the layout it uses.
    """
    for email_col, name_col, visits_col in VISIT_COLUMN_LAYOUTS:
        email = _clean(row.get(email_col))
        if not email:
            continue
        name = _clean(row.get(name_col))
        visits = _clean(row.get(visits_col))
        if not name or not visits:
            return None
        return {
            "email": email,
            "name": name,
            "visit_count": parse_visit_count(visits),
        }
    return None


def period_key(period_label: str) -> str:
    """Map a period display label to its short key.

    Labels naming a known pair of German months map to a fixed key;
    anything else is lower-cased with whitespace runs turned into "-".
    """
    lower = period_label.lower()
    for keywords, key in KNOWN_PERIODS:
        if all(word in lower for word in keywords):
            return key
    return _WHITESPACE_RE.sub("-", lower)


def aggregate_visits(
    rows: Iterable[Mapping[str, Any]], period_label: str,
) -> dict[str, Any]:
    """Summarise one period's sign-in rows.

    Args:
        rows: Row dicts from a sign-in export (either column layout).
        period_label: Display name of the period, e.g. "Juni-Juli".

    Returns:
        Dict with keys period, period_name, total_users, total_visits,
        average_visits_per_user, top_users (first 10 of user_visits) and
        user_visits (records with visit_count > 0, descending, stable).
    """
    records: list[dict[str, Any]] = []
    seen_rows = 0
    for row in rows:
        seen_rows += 1
        record = normalize_visit_row(row)
        if record is not None and record["visit_count"] > 0:
            records.append(record)

    if seen_rows and not records:
        logger.warning(
            "%s: %d rows loaded but no user had any visits. "
            "The sign-in export format may have changed.",
            period_label,
            seen_rows,
        )

    user_visits = sorted(records, key=lambda r: r["visit_count"], reverse=True)
    total_users = len(user_visits)
    total_visits = sum(r["visit_count"] for r in user_visits)

    return {
        "period": period_key(period_label),
        "period_name": period_label,
        "total_users": total_users,
        "total_visits": total_visits,
        "average_visits_per_user": total_visits / total_users if total_users else 0,
        "top_users": user_visits[:TOP_USERS_LIMIT],
        "user_visits": user_visits,
    }


def process_visits_export(path: str | Path, period_label: str) -> dict[str, Any]:
    """Read a sign-in export from disk and aggregate it.

    Raises:
        FileNotFoundError: If the export does not exist.
        csv_exports.ExportParseError: If the file is not valid CSV.
    """
    return aggregate_visits(read_export(path), period_label)


# ---------------------------------------------------------------------------
# Period detail helpers
# ---------------------------------------------------------------------------

def display_name(name: str) -> str:
    """Strip the organisation suffix ("Jane Doe | ACME" -> "Jane Doe")."""
    return name.split(" | ")[0]


def engagement_level(visit_count: int) -> str:
    if visit_count >= 10:
        return "Hoch"
    if visit_count >= HIGH_ENGAGEMENT_THRESHOLD:
        return "Mittel"
    return "Niedrig"


def _visit_bucket(visit_count: int) -> str:
    for label, lower in _VISIT_BUCKETS:
        if visit_count >= lower:
            return label
    return "1"


def compute_visit_distribution(summary: Mapping[str, Any]) -> dict[str, Any]:
    """Compute the spread of visit counts within one period summary.

    Args:
        summary: A period summary from ``aggregate_visits``.

    Returns:
        Dict with keys max_visits, median_visits, min_visits (all 0 for an
        empty period), buckets (list of {bucket, users, share, avg_visits}
        in descending bucket order, empty buckets omitted),
        high_engagement_users (visit_count >= 5) and
        high_engagement_pct (0-100, one decimal).
    """
    counts = [u["visit_count"] for u in summary["user_visits"]]
    total_users = len(counts)
    if not counts:
        return {
            "max_visits": 0,
            "median_visits": 0,
            "min_visits": 0,
            "buckets": [],
            "high_engagement_users": 0,
            "high_engagement_pct": 0.0,
        }

    ascending = sorted(counts)
    grouped: dict[str, list[int]] = {}
    for count in counts:
        grouped.setdefault(_visit_bucket(count), []).append(count)

    buckets = []
    for label, _ in _VISIT_BUCKETS:
        members = grouped.get(label)
        if not members:
            continue
        buckets.append(
            {
                "bucket": label,
                "users": len(members),
                "share": round(len(members) / total_users * 100, 1),
                "avg_visits": round(sum(members) / len(members), 1),
            }
        )

    high = sum(1 for c in counts if c >= HIGH_ENGAGEMENT_THRESHOLD)
    return {
        "max_visits": ascending[-1],
        "median_visits": ascending[total_users // 2],
        "min_visits": ascending[0],
        "buckets": buckets,
        "high_engagement_users": high,
        "high_engagement_pct": round(high / total_users * 100, 1),
    }
