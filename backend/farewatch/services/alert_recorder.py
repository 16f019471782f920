import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from farewatch.models import AlertEvent, AlertKind
from farewatch.services.price_store import PriceStore, TrackedRoute

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AlertRecorder:
    """
    Writes the alert audit trail and decides whether a repeat alert is noise.

    A repeat of the same kind for the same tracking record is suppressed while
    the previous one is younger than cooldown_hours, unless the new price is
    cheaper than the price that was alerted last time. cooldown_hours=0
    disables suppression. Store calls run in worker threads.
    """

    def __init__(
        self,
        store: PriceStore,
        cooldown_hours: float = 24,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.cooldown_hours = cooldown_hours
        self.clock = clock

    async def should_suppress(self, tracked: TrackedRoute, kind: AlertKind, price: Decimal) -> bool:
        if self.cooldown_hours <= 0:
            return False

        last = await asyncio.to_thread(self.store.last_alert_event, tracked.tracking_id, kind)
        if last is None or last.sent_at is None:
            return False

        age = self.clock() - _as_utc(last.sent_at)
        if age >= timedelta(hours=self.cooldown_hours):
            return False

        if Decimal(str(price)) < Decimal(str(last.price)):
            return False

        logger.info(
            f"Suppressing repeat {kind.value} for tracking {tracked.tracking_id}: "
            f"last alerted at ${last.price} {age.total_seconds() / 3600:.1f}h ago"
        )
        return True

    async def record(
        self,
        tracked: TrackedRoute,
        kind: AlertKind,
        price: Decimal,
        previous_price: Decimal,
        percentage_change: float,
        sent_at: Optional[datetime] = None,
    ) -> AlertEvent:
        event = await asyncio.to_thread(
            self.store.append_alert_event,
            tracking_id=tracked.tracking_id,
            user_id=tracked.user_id,
            price=price,
            previous_price=previous_price,
            percentage_change=percentage_change,
            kind=kind,
            sent_at=sent_at or self.clock(),
        )
        logger.info(
            f"Recorded {kind.value} alert #{event.id} for {tracked.label}: "
            f"${previous_price} -> ${price} ({percentage_change:.2f}%)"
        )
        return event
