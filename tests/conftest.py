"""Shared fixtures for usage dashboard tests."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from helpers import make_description, make_log_row, write_csv


# ── Minimal dashboard payload for app.py tests ──


def _month(label: str, total: int, days: int) -> dict:
    return {
        "month": label,
        "average_daily_usage": total / days if days else 0,
        "total_requests": total,
        "unique_days": days,
        "top_models": [{"model": "gpt-4o", "count": total}] if total else [],
        "trend_data": [],
        "database_usage": {"with_database": total, "without_database": 0, "total_analyzed": total},
        "daily_usage": [],
        "model_counts": {"gpt-4o": total} if total else {},
    }


def _period(key: str, name: str, users: list[tuple[str, str, int]]) -> dict:
    visits = [{"email": e, "name": n, "visit_count": c} for e, n, c in users]
    total = sum(c for _, _, c in users)
    return {
        "period": key,
        "period_name": name,
        "total_users": len(visits),
        "total_visits": total,
        "average_visits_per_user": total / len(visits) if visits else 0,
        "top_users": visits[:10],
        "user_visits": visits,
    }


def _minimal_dashboard_payload() -> dict:
    """Return a minimal payload matching build_dashboard_payload() shape.

    Keys and structure must exactly match the dict returned by
    ``dashboard.build_dashboard_payload``.
    """
    return {
        "generated_at": "2025-11-20T12:00:00",
        "months": {
            "june": _month("Juni 2025", 40, 20),
            "july": _month("Juli 2025", 90, 30),
        },
        "periods": {
            "juni-juli": _period("juni-juli", "Juni-Juli", [
                ("a@x.com", "Alice | ACME", 12),
                ("b@x.com", "Bob", 3),
            ]),
            "juli-august": _period("juli-august", "Juli-August", [
                ("a@x.com", "Alice | ACME", 4),
                ("c@x.com", "Carol", 9),
            ]),
        },
        "overview": {
            "total_requests": 130,
            "total_active_days": 50,
            "overall_growth": 50.0,
            "top_models": [{"model": "gpt-4o", "count": 130}],
            "usage_stats": {},
        },
        "month_table": None,
        "period_table": None,
        "user_directory": [],
        "errors": [],
    }


@pytest.fixture()
def mock_payload():
    """Return the minimal dashboard payload dict."""
    return _minimal_dashboard_payload()


@pytest.fixture()
def client(mock_payload):
    """TestClient for app.py with mocked dashboard data.

    Patches build_dashboard_payload so no exports are needed.
    Resets the module-level cache between tests.
    """
    import app as app_module

    with patch.object(
        app_module, "_cache", {"data": None, "built_at": 0.0}
    ):
        with patch(
            "app.build_dashboard_payload", return_value=mock_payload
        ):
            with TestClient(app_module.app) as tc:
                yield tc


# ── Export files on disk ──


LOG_FIELDS = ["time", "resultDescription"]
VISIT_FIELDS_EMAIL_FIRST = ["E-Mail", "Name", "Anzahl der Besuche"]
VISIT_FIELDS_NAME_FIRST = ["name", "email", "visitCount"]


@pytest.fixture()
def data_dir(tmp_path):
    """A data directory with two monthly log exports and two sign-in exports."""
    june = [
        make_log_row("2025-06-01T08:00:00Z", make_description("gpt-4o", "True")),
        make_log_row("2025-06-01T09:00:00Z", make_description("sonar", "False")),
        make_log_row("2025-06-02T10:00:00Z", make_description("gpt-4o", "True")),
        make_log_row("2025-06-02T11:00:00Z", "2025-06-02 11:00:00 - INFO - src.app - startup"),
    ]
    july = [
        make_log_row("2025-07-01T08:00:00Z", make_description("gpt-4o", "True")),
        make_log_row("2025-07-01T08:30:00Z", make_description("gpt-4o", "False")),
        make_log_row("2025-07-02T08:00:00Z", make_description("sonar", "False")),
        make_log_row("2025-07-03T08:00:00Z", make_description("gpt-4.1", "True")),
    ]
    write_csv(tmp_path / "june.csv", LOG_FIELDS, june)
    write_csv(tmp_path / "july.csv", LOG_FIELDS, july)

    write_csv(tmp_path / "sign_in_juni_juli.csv", VISIT_FIELDS_EMAIL_FIRST, [
        {"E-Mail": "a@x.com", "Name": "Alice | ACME", "Anzahl der Besuche": "12"},
        {"E-Mail": "b@x.com", "Name": "Bob", "Anzahl der Besuche": "3"},
        {"E-Mail": "z@x.com", "Name": "Zero", "Anzahl der Besuche": "0"},
    ])
    write_csv(tmp_path / "sign_in_juli_august.csv", VISIT_FIELDS_NAME_FIRST, [
        {"name": "Alice | ACME", "email": "a@x.com", "visitCount": "4"},
        {"name": "Carol", "email": "c@x.com", "visitCount": "9"},
    ])
    return tmp_path
