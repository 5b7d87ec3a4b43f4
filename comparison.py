"""Cross-file comparisons over month and period summaries.

Pure functions over the dicts produced by ``usage_logs.aggregate_usage_logs``
and ``visit_records.aggregate_visits``.  Callers pass summaries in
chronological order; nothing here re-sorts by label.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from visit_records import display_name

logger = logging.getLogger(__name__)

INTERNET_MODEL_KEYWORD = "sonar"
DATABASE_MODEL_KEYWORD = "gpt"

DIRECTORY_SORT_KEYS = ("name", "total_visits", "periods", "period_visits")


def _safe_div(num: float, den: float, default: float = 0.0) -> float:
    """Safe division returning *default* when denominator is zero."""
    return num / den if den else default


def _pct(part: float, whole: float) -> int:
    return round(_safe_div(part, whole) * 100)


def growth_rate(first: float, last: float) -> float:
    """Percent change from *first* to *last*; 0 when *first* is 0."""
    if not first:
        return 0.0
    return round((last - first) / first * 100, 1)


# ---------------------------------------------------------------------------
# Months
# ---------------------------------------------------------------------------

def _search_mode_counts(top_models: Sequence[Mapping[str, Any]]) -> tuple[int, int]:
    """Split model counts into (internet, database) by model-name keyword.

    Sonar models search the web; GPT models answer from the knowledge
    database.  Anything else counts towards neither.
    """
    internet = 0
    database = 0
    for entry in top_models:
        if INTERNET_MODEL_KEYWORD in entry["model"]:
            internet += entry["count"]
        elif DATABASE_MODEL_KEYWORD in entry["model"]:
            database += entry["count"]
    return internet, database


def _usage_figures(
    internet: int, database: int, with_db: int, without_db: int,
) -> dict[str, Any]:
    classified = internet + database
    analyzed = with_db + without_db
    return {
        "search_modes": {
            "internet": _pct(internet, classified),
            "database": _pct(database, classified),
            "internet_count": internet,
            "database_count": database,
        },
        "database_usage": {
            "with_database": _pct(with_db, analyzed),
            "without_database": _pct(without_db, analyzed),
            "has_data": analyzed > 0,
            "with_database_count": with_db,
            "without_database_count": without_db,
        },
    }


def compute_month_stats(summary: Mapping[str, Any]) -> dict[str, Any]:
    """Search-mode and database-usage percentages for one month.

    Returns:
        Dict with "search_modes" ({internet, database} rounded percentages
        of the classified top-model requests plus raw counts) and
        "database_usage" ({with_database, without_database} rounded
        percentages of total_analyzed, has_data, raw counts).
    """
    internet, database = _search_mode_counts(summary["top_models"])
    db = summary["database_usage"]
    return _usage_figures(internet, database, db["with_database"], db["without_database"])


def compute_usage_stats(summaries: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Like ``compute_month_stats`` but pooled over several months."""
    internet = database = with_db = without_db = 0
    for summary in summaries:
        i, d = _search_mode_counts(summary["top_models"])
        internet += i
        database += d
        with_db += summary["database_usage"]["with_database"]
        without_db += summary["database_usage"]["without_database"]
    return _usage_figures(internet, database, with_db, without_db)


def aggregate_top_models(summaries: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Sum each month's top models into one ranking (descending, stable)."""
    counts: dict[str, int] = {}
    for summary in summaries:
        for entry in summary["top_models"]:
            counts[entry["model"]] = counts.get(entry["model"], 0) + entry["count"]
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [{"model": model, "count": count} for model, count in ranked]


def _top_model_share(summary: Mapping[str, Any]) -> dict[str, Any] | None:
    if not summary["top_models"]:
        return None
    top = summary["top_models"][0]
    return {
        "model": top["model"],
        "count": top["count"],
        "share": round(_safe_div(top["count"], summary["total_requests"]) * 100, 1),
    }


def compare_months(summaries: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Compare two or more month summaries given in chronological order.

    Raises:
        ValueError: If fewer than two summaries are given.
    """
    if len(summaries) < 2:
        raise ValueError("At least two months are needed for a comparison")

    stats = [compute_month_stats(s) for s in summaries]
    with_data = [st for st in stats if st["database_usage"]["has_data"]]
    best = max(summaries, key=lambda s: s["average_daily_usage"])
    worst = min(summaries, key=lambda s: s["average_daily_usage"])

    rows = []
    for summary, st in zip(summaries, stats):
        rows.append(
            {
                "month": summary["month"],
                "average_daily_usage": round(summary["average_daily_usage"], 1),
                "total_requests": summary["total_requests"],
                "unique_days": summary["unique_days"],
                "top_model": _top_model_share(summary),
                "internet_search_pct": st["search_modes"]["internet"],
                "database_search_pct": st["search_modes"]["database"],
                "with_database_pct": (
                    st["database_usage"]["with_database"]
                    if st["database_usage"]["has_data"] else None
                ),
            }
        )

    return {
        "months": [s["month"] for s in summaries],
        "total_requests": sum(s["total_requests"] for s in summaries),
        "avg_daily_usage": round(
            sum(s["average_daily_usage"] for s in summaries) / len(summaries), 1
        ),
        "total_active_days": sum(s["unique_days"] for s in summaries),
        "avg_internet_search_pct": round(
            sum(st["search_modes"]["internet"] for st in stats) / len(stats)
        ),
        "avg_database_search_pct": round(
            sum(st["search_modes"]["database"] for st in stats) / len(stats)
        ),
        "avg_with_database_pct": round(
            _safe_div(
                sum(st["database_usage"]["with_database"] for st in with_data),
                len(with_data),
            )
        ),
        "best_month": best["month"],
        "worst_month": worst["month"],
        "overall_growth": growth_rate(
            summaries[0]["average_daily_usage"], summaries[-1]["average_daily_usage"]
        ),
        "rows": rows,
    }


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------

def retention_rate(earlier: Mapping[str, Any], later: Mapping[str, Any]) -> int:
    """Rounded percentage of *earlier*'s users who also appear in *later*."""
    earlier_users = {u["email"] for u in earlier["user_visits"]}
    later_users = {u["email"] for u in later["user_visits"]}
    return _pct(len(earlier_users & later_users), len(earlier_users))


def compare_periods(summaries: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Compare two or more period summaries given in chronological order.

    Raises:
        ValueError: If fewer than two summaries are given.
    """
    if len(summaries) < 2:
        raise ValueError("At least two periods are needed for a comparison")

    first, last = summaries[0], summaries[-1]
    best = max(summaries, key=lambda s: s["total_visits"])
    worst = min(summaries, key=lambda s: s["total_visits"])

    rows = []
    for i, summary in enumerate(summaries):
        top = summary["top_users"][0] if summary["top_users"] else None
        rows.append(
            {
                "period": summary["period"],
                "period_name": summary["period_name"],
                "total_users": summary["total_users"],
                "total_visits": summary["total_visits"],
                "average_visits_per_user": round(summary["average_visits_per_user"], 1),
                "top_user_visits": top["visit_count"] if top else 0,
                "retention": retention_rate(summaries[i - 1], summary) if i else None,
            }
        )

    return {
        "periods": [s["period_name"] for s in summaries],
        "total_users": sum(s["total_users"] for s in summaries),
        "total_visits": sum(s["total_visits"] for s in summaries),
        "avg_visits_per_user": round(
            sum(s["average_visits_per_user"] for s in summaries) / len(summaries), 1
        ),
        "best_period": best["period_name"],
        "worst_period": worst["period_name"],
        "users_growth": growth_rate(first["total_users"], last["total_users"]),
        "visits_growth": growth_rate(first["total_visits"], last["total_visits"]),
        "avg_visits_growth": growth_rate(
            first["average_visits_per_user"], last["average_visits_per_user"]
        ),
        "retention": retention_rate(first, last),
        "rows": rows,
    }


# ---------------------------------------------------------------------------
# User directory
# ---------------------------------------------------------------------------

def directory_engagement(total_visits: int) -> str:
    if total_visits >= 20:
        return "Sehr Hoch"
    if total_visits >= 10:
        return "Hoch"
    if total_visits >= 5:
        return "Mittel"
    return "Niedrig"


def _aggregate_users(periods: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    users: dict[str, dict[str, Any]] = {}
    for period in periods:
        name = period["period_name"]
        for visit in period["user_visits"]:
            user = users.setdefault(
                visit["email"],
                {
                    "email": visit["email"],
                    "name": visit["name"],
                    "display_name": display_name(visit["name"]),
                    "total_visits": 0,
                    "periods": [],
                    "period_visits": {},
                },
            )
            user["total_visits"] += visit["visit_count"]
            user["period_visits"][name] = visit["visit_count"]
            if name not in user["periods"]:
                user["periods"].append(name)
    for user in users.values():
        user["engagement"] = directory_engagement(user["total_visits"])
    return list(users.values())


def build_user_directory(
    periods: Sequence[Mapping[str, Any]],
    search: str | None = None,
    period: str | None = None,
    sort_by: str = "total_visits",
    descending: bool = True,
) -> list[dict[str, Any]]:
    """Merge every period's users by email into a searchable directory.

    Args:
        periods: Period summaries from ``aggregate_visits``.
        search: Case-insensitive substring matched against name or email.
        period: Keep only users active in this period (by period_name).
        sort_by: One of "name", "total_visits", "periods" (number of
            periods active) or "period_visits" (visits in *period*, or
            total visits when no period filter is set).
        descending: Sort order.

    Returns:
        List of dicts with keys email, name, display_name, total_visits,
        periods, period_visits and engagement.

    Raises:
        ValueError: If *sort_by* is not a known sort key.
    """
    if sort_by not in DIRECTORY_SORT_KEYS:
        raise ValueError(
            f"Unknown sort key {sort_by!r}; expected one of {', '.join(DIRECTORY_SORT_KEYS)}"
        )

    users = _aggregate_users(periods)
    if period:
        users = [u for u in users if period in u["periods"]]
    if search:
        needle = search.lower()
        users = [
            u for u in users
            if needle in u["name"].lower() or needle in u["email"].lower()
        ]

    sort_keys = {
        "name": lambda u: u["name"].lower(),
        "total_visits": lambda u: u["total_visits"],
        "periods": lambda u: len(u["periods"]),
        "period_visits": (
            (lambda u: u["period_visits"].get(period, 0))
            if period else (lambda u: u["total_visits"])
        ),
    }
    return sorted(users, key=sort_keys[sort_by], reverse=descending)
