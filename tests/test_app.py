"""Tests for the FastAPI app (app.py) routes and caching behaviour."""

from __future__ import annotations

from unittest.mock import patch

from fastapi import HTTPException


# ── JSON API routes ───────────────────────────


class TestApiData:
    def test_returns_200(self, client):
        response = client.get("/api/data")
        assert response.status_code == 200

    def test_content_type_is_json(self, client):
        response = client.get("/api/data")
        assert "application/json" in response.headers["content-type"]

    def test_payload_has_sections(self, client):
        data = client.get("/api/data").json()
        for key in ("generated_at", "months", "periods", "overview", "errors"):
            assert key in data, f"Missing key: {key}"

    def test_payload_matches_mock(self, client, mock_payload):
        """The API should return exactly the mocked payload."""
        data = client.get("/api/data").json()
        assert data == mock_payload


class TestApiRefresh:
    def test_response_has_status_refreshed(self, client):
        data = client.get("/api/refresh").json()
        assert data["status"] == "refreshed"

    def test_response_has_generated_at(self, client):
        data = client.get("/api/refresh").json()
        assert data["generated_at"] == "2025-11-20T12:00:00"


class TestHealthCheck:
    def test_healthz_returns_200(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health_returns_200(self, client):
        assert client.get("/health").status_code == 200


# ── Detail routes ─────────────────────────────


class TestMonthDetail:
    def test_known_month(self, client):
        data = client.get("/api/months/june").json()
        assert data["month"] == "Juni 2025"
        assert data["total_requests"] == 40

    def test_unknown_month_404(self, client):
        assert client.get("/api/months/december").status_code == 404


class TestPeriodDetail:
    def test_known_period(self, client):
        data = client.get("/api/periods/juni-juli").json()
        assert data["period_name"] == "Juni-Juli"

    def test_unknown_period_404(self, client):
        assert client.get("/api/periods/winter").status_code == 404


# ── Comparison routes ─────────────────────────


class TestCompareMonths:
    def test_two_months(self, client):
        response = client.get("/api/compare/months", params={"keys": ["june", "july"]})
        assert response.status_code == 200
        data = response.json()
        assert data["months"] == ["Juni 2025", "Juli 2025"]
        assert data["total_requests"] == 130
        assert data["best_month"] == "Juli 2025"

    def test_single_month_400(self, client):
        response = client.get("/api/compare/months", params={"keys": ["june"]})
        assert response.status_code == 400

    def test_unknown_month_400(self, client):
        response = client.get("/api/compare/months", params={"keys": ["june", "december"]})
        assert response.status_code == 400
        assert "december" in response.json()["detail"]


class TestComparePeriods:
    def test_two_periods(self, client):
        response = client.get(
            "/api/compare/periods", params={"keys": ["juni-juli", "juli-august"]}
        )
        assert response.status_code == 200
        assert response.json()["retention"] == 50

    def test_no_keys_400(self, client):
        assert client.get("/api/compare/periods").status_code == 400


# ── User directory ────────────────────────────


class TestUsers:
    def test_default_sort(self, client):
        users = client.get("/api/users").json()
        assert [u["email"] for u in users] == ["a@x.com", "c@x.com", "b@x.com"]

    def test_search_and_order(self, client):
        users = client.get("/api/users", params={"search": "a", "sort_by": "name", "order": "asc"}).json()
        # "a" matches Alice and Carol by name; no email contains it
        assert [u["name"] for u in users] == ["Alice | ACME", "Carol"]

    def test_period_filter(self, client):
        users = client.get(
            "/api/users", params={"period": "Juli-August", "sort_by": "period_visits"}
        ).json()
        assert [u["email"] for u in users] == ["c@x.com", "a@x.com"]

    def test_bad_sort_key_400(self, client):
        assert client.get("/api/users", params={"sort_by": "age"}).status_code == 400

    def test_bad_order_400(self, client):
        assert client.get("/api/users", params={"order": "up"}).status_code == 400


# ── Error handling ────────────────────────────


class TestMissingDataDir:
    def test_api_data_503_when_data_missing(self, client):
        with patch(
            "app._get_cached_data",
            side_effect=HTTPException(status_code=503, detail="Data directory not found"),
        ):
            response = client.get("/api/data")
            assert response.status_code == 503

    def test_build_failure_maps_to_503(self, client):
        import app as app_module

        app_module._cache["data"] = None
        with patch(
            "app.build_dashboard_payload",
            side_effect=FileNotFoundError("Data directory not found: /nope"),
        ):
            response = client.get("/api/data")
        assert response.status_code == 503
        assert "Data directory not found" in response.json()["detail"]


# ── Caching behaviour ────────────────────────


class TestCaching:
    def test_second_request_uses_cache(self, client):
        """After first call populates cache, build_dashboard_payload is
        called only once for two requests."""
        with patch("app.build_dashboard_payload") as mock_build:
            mock_build.return_value = {
                "generated_at": "2025-11-20T12:00:00",
                "months": {},
            }
            import app as app_module

            app_module._cache["data"] = None
            app_module._cache["built_at"] = 0.0

            client.get("/api/data")
            client.get("/api/data")
            assert mock_build.call_count == 1

    def test_refresh_forces_rebuild(self, client):
        """The /api/refresh endpoint should call build_dashboard_payload
        even when the cache is fresh."""
        with patch("app.build_dashboard_payload") as mock_build:
            mock_build.return_value = {
                "generated_at": "2025-11-20T12:00:00",
                "months": {},
            }
            import app as app_module

            app_module._cache["data"] = None
            app_module._cache["built_at"] = 0.0

            client.get("/api/data")
            assert mock_build.call_count == 1

            client.get("/api/refresh")
            assert mock_build.call_count == 2


# ── 404 for unknown routes ───────────────────


class TestNotFound:
    def test_unknown_route_returns_404(self, client):
        assert client.get("/nonexistent").status_code == 404

    def test_unknown_api_route_returns_404(self, client):
        assert client.get("/api/nonexistent").status_code == 404
