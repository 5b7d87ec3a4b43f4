"""FastAPI service for the chat usage dashboard.

Serves the aggregated month and visit-period data as JSON, cached for an
hour since the exports only change when new files are dropped in.

Deployment: uvicorn app:app --host 127.0.0.1 --port 8204
"""

from __future__ import annotations

import threading
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Query

from comparison import DIRECTORY_SORT_KEYS, build_user_directory, compare_months, compare_periods
from dashboard import DATA_DIR, build_dashboard_payload

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
CACHE_TTL_SECONDS = 3600  # 1 hour

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Chat Usage Dashboard",
    root_path="/usage_dashboard",
)

# ---------------------------------------------------------------------------
# Thread-safe cache
# ---------------------------------------------------------------------------
_cache_lock = threading.Lock()
_cache: dict[str, Any] = {
    "data": None,
    "built_at": 0.0,
}


def _get_cached_data(force_refresh: bool = False) -> dict[str, Any]:
    """Return cached dashboard data, rebuilding if stale or forced."""
    now = time.monotonic()
    with _cache_lock:
        if (
            not force_refresh
            and _cache["data"] is not None
            and (now - _cache["built_at"]) < CACHE_TTL_SECONDS
        ):
            return _cache["data"]

    try:
        data = build_dashboard_payload(DATA_DIR)
    except FileNotFoundError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    with _cache_lock:
        _cache["data"] = data
        _cache["built_at"] = time.monotonic()

    return data


def _select(collection: dict[str, dict], keys: list[str], kind: str) -> list[dict]:
    """Pick summaries by key for a comparison, in the order requested."""
    if len(keys) < 2:
        raise HTTPException(status_code=400, detail=f"Select at least two {kind} to compare")
    missing = [k for k in keys if k not in collection]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown {kind}: {', '.join(missing)}")
    return [collection[k] for k in keys]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/api/data")
def api_data():
    """Return the full dashboard JSON payload."""
    return _get_cached_data()


@app.get("/api/refresh")
def api_refresh():
    """Force a cache rebuild and return fresh data."""
    data = _get_cached_data(force_refresh=True)
    return {
        "status": "refreshed",
        "generated_at": data["generated_at"],
    }


@app.get("/api/months/{month_key}")
def api_month(month_key: str):
    months = _get_cached_data()["months"]
    if month_key not in months:
        raise HTTPException(status_code=404, detail=f"No data for month {month_key!r}")
    return months[month_key]


@app.get("/api/periods/{period_key}")
def api_period(period_key: str):
    periods = _get_cached_data()["periods"]
    if period_key not in periods:
        raise HTTPException(status_code=404, detail=f"No data for period {period_key!r}")
    return periods[period_key]


@app.get("/api/compare/months")
def api_compare_months(keys: list[str] = Query(default=[])):
    """Compare the selected months, in the order given."""
    months = _get_cached_data()["months"]
    return compare_months(_select(months, keys, "months"))


@app.get("/api/compare/periods")
def api_compare_periods(keys: list[str] = Query(default=[])):
    """Compare the selected visit periods, in the order given."""
    periods = _get_cached_data()["periods"]
    return compare_periods(_select(periods, keys, "periods"))


@app.get("/api/users")
def api_users(
    search: str | None = None,
    period: str | None = None,
    sort_by: str = "total_visits",
    order: str = "desc",
):
    """Return the cross-period user directory, filtered and sorted."""
    if sort_by not in DIRECTORY_SORT_KEYS:
        raise HTTPException(status_code=400, detail=f"Unknown sort key {sort_by!r}")
    if order not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail="order must be 'asc' or 'desc'")

    periods = list(_get_cached_data()["periods"].values())
    return build_user_directory(
        periods,
        search=search,
        period=period,
        sort_by=sort_by,
        descending=order == "desc",
    )
