"""Tests for API endpoints."""
from decimal import Decimal

from farewatch.main import app
from farewatch.models import AlertKind

from helpers import DEPARTURE, NOW, RETURN, create_tracking, seed_history


class TestHealthEndpoint:
    async def test_health_check(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database"] == "healthy"


class TestStatusAPI:
    async def test_status_reports_scheduler_and_providers(self, client):
        response = await client.get("/api/status")
        assert response.status_code == 200
        data = response.json()
        assert data["scheduler"]["running"] is False
        assert data["scheduler"]["cycles_run"] == 0
        assert data["quotes"]["providers"] == [{"name": "fake", "available": True}]
        assert "check_interval_minutes" in data["config"]

    async def test_status_without_services_is_503(self, client):
        app.state.scheduler = None
        response = await client.get("/api/status")
        assert response.status_code == 503


class TestRunChecks:
    async def test_manual_run_returns_summary(self, client, db_session, store):
        record = create_tracking(db_session, threshold=500)
        seed_history(store, record, [600])

        response = await client.post("/api/checks/run")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["summary"]["total"] == 1
        assert data["summary"]["checked"] == 1
        assert data["summary"]["alerted"] == 1
        # No Resend key in tests, so the alert is recorded but not delivered
        assert data["summary"]["notified"] == 0

        status = (await client.get("/api/status")).json()
        assert status["scheduler"]["cycles_run"] == 1
        assert status["scheduler"]["last_summary"]["alerted"] == 1

    async def test_manual_run_failure_is_reported(self, client, app_services):
        async def broken_cycle():
            raise RuntimeError("database unavailable")

        app_services.scheduler.run_cycle = broken_cycle

        response = await client.post("/api/checks/run")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "failed"
        assert "database unavailable" in data["error"]

    async def test_manual_run_while_cycle_in_progress_is_409(self, client, app_services):
        await app_services.scheduler._lock.acquire()
        try:
            response = await client.post("/api/checks/run")
        finally:
            app_services.scheduler._lock.release()

        assert response.status_code == 409


class TestPriceHistoryAPI:
    async def test_history_for_known_route(self, client, db_session, store):
        record = create_tracking(db_session)
        seed_history(store, record, [610, 580, 600])

        response = await client.get(
            "/api/prices/history",
            params={
                "origin": "jfk",
                "destination": "lax",
                "departure_date": DEPARTURE.isoformat(),
                "return_date": RETURN.isoformat(),
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["origin_code"] == "JFK"
        assert data["count"] == 3
        assert Decimal(data["min_price"]) == Decimal("580")
        assert Decimal(data["max_price"]) == Decimal("610")
        assert [Decimal(p["price"]) for p in data["prices"]] == [Decimal("600"), Decimal("580"), Decimal("610")]

    async def test_history_respects_limit(self, client, db_session, store):
        record = create_tracking(db_session)
        seed_history(store, record, [610, 580, 600])

        response = await client.get(
            "/api/prices/history",
            params={
                "origin": "JFK",
                "destination": "LAX",
                "departure_date": DEPARTURE.isoformat(),
                "return_date": RETURN.isoformat(),
                "limit": 1,
            },
        )

        assert response.json()["count"] == 1

    async def test_unknown_route_is_404(self, client):
        response = await client.get(
            "/api/prices/history",
            params={"origin": "JFK", "destination": "NRT", "departure_date": DEPARTURE.isoformat()},
        )
        assert response.status_code == 404

    async def test_invalid_airport_code_is_422(self, client):
        response = await client.get(
            "/api/prices/history",
            params={"origin": "JFKX", "destination": "LAX", "departure_date": DEPARTURE.isoformat()},
        )
        assert response.status_code == 422


class TestAlertHistoryAPI:
    async def test_alert_history_for_user(self, client, db_session, store):
        record = create_tracking(db_session)
        store.append_alert_event(record.id, record.user_id, Decimal("250"), Decimal("500"), -50.0,
                                 AlertKind.MISTAKE_FARE, sent_at=NOW)

        response = await client.get("/api/alerts/history", params={"user_id": record.user_id})

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["alert_type"] == "mistake_fare"
        assert data[0]["destination_code"] == "LAX"

    async def test_user_id_is_required(self, client):
        response = await client.get("/api/alerts/history")
        assert response.status_code == 422


class TestNotificationsAPI:
    async def test_notifications_empty(self, client):
        response = await client.get("/api/notifications")
        assert response.status_code == 200
        assert response.json() == []

    async def test_failed_delivery_shows_in_history(self, client, db_session, store):
        record = create_tracking(db_session, threshold=500)
        seed_history(store, record, [600])
        await client.post("/api/checks/run")

        response = await client.get("/api/notifications")

        data = response.json()
        assert len(data) == 1
        assert data[0]["delivered"] is False
        assert data[0]["kind"] == "price_drop"
        assert "RESEND_API_KEY" in data[0]["error"]
