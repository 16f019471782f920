"""Tests for price alert emails."""
import json
from datetime import date, datetime, timezone
from decimal import Decimal

import httpx

from farewatch.models import AlertKind
from farewatch.services.notification import (
    RESEND_API_URL,
    AlertRecipient,
    EmailNotifier,
    NotificationHistory,
    Notification,
    PriceAlertContent,
    build_subject,
)


def alert(**overrides) -> PriceAlertContent:
    values = dict(
        origin_code="JFK",
        destination_code="LAX",
        departure_date=date(2026, 12, 20),
        return_date=date(2027, 1, 3),
        price=Decimal("450"),
        previous_price=Decimal("600"),
        origin_name="New York JFK",
        destination_name="Los Angeles",
    )
    values.update(overrides)
    return PriceAlertContent(**values)


def notifier_with(handler, settings, api_key="re_test") -> EmailNotifier:
    return EmailNotifier(
        api_key=api_key,
        settings=settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestBuildSubject:
    def test_price_drop(self):
        assert build_subject(alert(), AlertKind.PRICE_DROP, -25.0) == "✈️ Price Alert: JFK to LAX dropped 25.0%"

    def test_mistake_fare(self):
        subject = build_subject(alert(price=Decimal("199.5")), AlertKind.MISTAKE_FARE, -60.0)
        assert subject == "🔥 MISTAKE FARE ALERT: JFK to LAX for $199.50!"


class TestRenderHtml:
    def test_price_drop_body(self, settings):
        notifier = EmailNotifier(settings=settings, client_url="https://fares.example.com/")

        html = notifier.render_html(AlertRecipient("ada@example.com", "Ada"), alert(), AlertKind.PRICE_DROP, -25.0)

        assert "Hello Ada," in html
        assert "JFK to LAX" in html
        assert "New Price: $450.00" in html
        assert "Previous Price: $600.00" in html
        assert "You Save: 25.0% ($150.00)" in html
        assert "Round Trip" in html
        assert "below your alert threshold" in html
        assert "https://fares.example.com/flights/search?origin=JFK" in html
        assert "returnDate=2027-01-03" in html
        assert "https://fares.example.com/account/alerts" in html

    def test_mistake_fare_one_way_without_name(self, settings):
        notifier = EmailNotifier(settings=settings)

        html = notifier.render_html(
            AlertRecipient("ada@example.com"), alert(return_date=None), AlertKind.MISTAKE_FARE, -50.0,
        )

        assert "Hello traveler," in html
        assert "One Way" in html
        assert "mistake fare" in html
        assert "returnDate" not in html


class TestSendPriceAlert:
    async def test_posts_to_resend(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email_123"})

        notifier = notifier_with(handler, settings)

        sent = await notifier.send_price_alert(
            AlertRecipient("ada@example.com", "Ada"), alert(), AlertKind.PRICE_DROP, -25.0,
        )
        await notifier.close()

        assert sent is True
        assert seen["url"] == RESEND_API_URL
        assert seen["auth"] == "Bearer re_test"
        assert seen["body"]["to"] == ["ada@example.com"]
        assert seen["body"]["from"] == settings.email_from
        assert seen["body"]["subject"].startswith("✈️ Price Alert")
        assert "New Price: $450.00" in seen["body"]["html"]

        history = notifier.get_notifications()
        assert history[0]["delivered"] is True
        assert history[0]["tags"] == ["JFK", "LAX"]

    async def test_missing_api_key_returns_false(self, settings):
        def handler(request):
            raise AssertionError("should not be called")

        notifier = notifier_with(handler, settings, api_key="")

        sent = await notifier.send_price_alert(
            AlertRecipient("ada@example.com"), alert(), AlertKind.PRICE_DROP, -25.0,
        )

        assert sent is False
        assert "RESEND_API_KEY" in notifier.get_notifications()[0]["error"]

    async def test_error_status_returns_false(self, settings):
        notifier = notifier_with(lambda request: httpx.Response(500, text="boom"), settings)

        sent = await notifier.send_price_alert(
            AlertRecipient("ada@example.com"), alert(), AlertKind.MISTAKE_FARE, -50.0,
        )

        assert sent is False
        record = notifier.get_notifications()[0]
        assert record["kind"] == "mistake_fare"
        assert "500" in record["error"]

    async def test_transport_error_returns_false(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = notifier_with(handler, settings)

        sent = await notifier.send_price_alert(
            AlertRecipient("ada@example.com"), alert(), AlertKind.PRICE_DROP, -25.0,
        )

        assert sent is False
        assert "connection refused" in notifier.get_notifications()[0]["error"]


class TestNotificationHistory:
    def _notification(self, n: int) -> Notification:
        return Notification(
            id=str(n), recipient="a@example.com", subject=f"s{n}", kind="price_drop",
            timestamp=datetime.now(timezone.utc),
        )

    def test_newest_first_and_bounded(self):
        history = NotificationHistory(max_notifications=3)
        for n in range(5):
            history.add(self._notification(n))

        recent = history.get_recent()

        assert [r["id"] for r in recent] == ["4", "3", "2"]
        assert [r["id"] for r in history.get_recent(limit=1)] == ["4"]

    def test_clear(self):
        history = NotificationHistory()
        history.add(self._notification(1))
        history.clear()
        assert history.get_recent() == []
