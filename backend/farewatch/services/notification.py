from dataclasses import dataclass, asdict, field
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional
import uuid
import logging

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from farewatch.config import Settings, get_settings
from farewatch.models import AlertKind

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class AlertRecipient:
    email: str
    first_name: Optional[str] = None


@dataclass
class PriceAlertContent:
    """Everything the email needs about the fare that triggered the alert."""
    origin_code: str
    destination_code: str
    departure_date: date
    return_date: Optional[date]
    price: Decimal
    previous_price: Decimal
    origin_name: Optional[str] = None
    destination_name: Optional[str] = None


@dataclass
class Notification:
    """Delivery attempt record."""
    id: str
    recipient: str
    subject: str
    kind: str
    timestamp: datetime
    delivered: bool = False
    error: Optional[str] = None
    tags: List[str] = field(default_factory=list)


class NotificationHistory:
    """In-memory notification history for the status API."""

    def __init__(self, max_notifications: int = 100):
        self._notifications: List[Notification] = []
        self._max_notifications = max_notifications

    def add(self, notification: Notification):
        self._notifications.append(notification)
        if len(self._notifications) > self._max_notifications:
            self._notifications.pop(0)

    def get_recent(self, limit: int = 50) -> List[Dict]:
        recent = self._notifications[-limit:] if limit else self._notifications
        return [asdict(n) for n in reversed(recent)]

    def clear(self):
        self._notifications.clear()


def build_subject(alert: PriceAlertContent, kind: AlertKind, percentage_change: float) -> str:
    route = f"{alert.origin_code} to {alert.destination_code}"
    if kind == AlertKind.MISTAKE_FARE:
        return f"🔥 MISTAKE FARE ALERT: {route} for ${float(alert.price):.2f}!"
    return f"✈️ Price Alert: {route} dropped {abs(percentage_change):.1f}%"


class EmailNotifier:
    """
    Sends price alert emails through the Resend HTTP API.

    Delivery is best-effort: send_price_alert returns False on any HTTP or
    configuration problem instead of raising, and every attempt lands in the
    in-memory history.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        email_from: Optional[str] = None,
        client_url: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = settings or get_settings()
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.email_from = email_from or settings.email_from
        self.client_url = (client_url or settings.client_url).rstrip("/")
        self.history = NotificationHistory()
        self._http_client = http_client
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def render_html(self, user: AlertRecipient, alert: PriceAlertContent, kind: AlertKind, percentage_change: float) -> str:
        params = f"origin={alert.origin_code}&destination={alert.destination_code}&departureDate={alert.departure_date.isoformat()}"
        if alert.return_date:
            params += f"&returnDate={alert.return_date.isoformat()}"

        template = self._env.get_template("price_alert.html")
        return template.render(
            user=user,
            alert=alert,
            is_mistake_fare=kind == AlertKind.MISTAKE_FARE,
            current_price=f"${float(alert.price):.2f}",
            previous_price=f"${float(alert.previous_price):.2f}",
            percent_change=f"{abs(percentage_change):.1f}",
            savings=f"${float(alert.previous_price - alert.price):.2f}",
            details_url=f"{self.client_url}/flights/search?{params}",
            manage_url=f"{self.client_url}/account/alerts",
        )

    async def send_price_alert(
        self,
        user: AlertRecipient,
        alert: PriceAlertContent,
        kind: AlertKind,
        percentage_change: float,
    ) -> bool:
        subject = build_subject(alert, kind, percentage_change)
        notification = Notification(
            id=str(uuid.uuid4()),
            recipient=user.email,
            subject=subject,
            kind=kind.value,
            timestamp=datetime.now(timezone.utc),
            tags=[alert.origin_code, alert.destination_code],
        )

        try:
            if not self.api_key:
                raise ValueError("RESEND_API_KEY is not configured")

            html = self.render_html(user, alert, kind, percentage_change)
            client = await self._get_client()
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.email_from,
                    "to": [user.email],
                    "subject": subject,
                    "html": html,
                },
            )
            if response.status_code >= 400:
                notification.error = f"Resend returned {response.status_code}: {response.text}"
                logger.error(f"Email sending error: {notification.error}")
            else:
                notification.delivered = True
                logger.info(
                    f"Price alert email sent to {user.email} for "
                    f"{alert.origin_code} to {alert.destination_code}"
                )
        except httpx.HTTPError as e:
            notification.error = str(e)
            logger.error(f"Could not reach Resend: {e}")
        except Exception as e:
            notification.error = str(e)
            logger.error(f"Error sending price alert email: {e}")

        self.history.add(notification)
        return notification.delivered

    def get_notifications(self, limit: int = 50) -> List[Dict]:
        return self.history.get_recent(limit)
