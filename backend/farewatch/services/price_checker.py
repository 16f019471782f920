"""
Price check orchestration.

One cycle loads every active tracking record and fans out an independent check
task per record, bounded by a semaphore. Each task is isolated: whatever goes
wrong inside it is caught, logged and turned into a FAILED outcome, so the rest
of the cycle carries on. Store calls run in worker threads via
asyncio.to_thread, so a slow write only holds its own semaphore slot.

Per-task flow:
    PENDING -> PROVIDER_PRIMARY [-> PROVIDER_FALLBACK] -> PRICE_RECORDED
            -> ANOMALY_EVALUATED -> [NOTIFIED ->] DONE
with early exits to NO_DATA, FIRST_OBSERVATION, NO_ALERT, SUPPRESSED or FAILED.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

from farewatch.config import Settings, get_settings
from farewatch.models import AlertKind
from farewatch.services.alert_recorder import AlertRecorder, utcnow
from farewatch.services.notification import AlertRecipient, EmailNotifier, PriceAlertContent
from farewatch.services.price_analyzer import evaluate_price
from farewatch.services.price_store import PriceStore, TrackedRoute
from farewatch.services.quote_providers import QuoteChain

logger = logging.getLogger(__name__)


class CheckState(str, Enum):
    PENDING = "pending"
    PROVIDER_PRIMARY = "provider_primary"
    PROVIDER_FALLBACK = "provider_fallback"
    PRICE_RECORDED = "price_recorded"
    ANOMALY_EVALUATED = "anomaly_evaluated"
    NOTIFIED = "notified"
    DONE = "done"
    NO_DATA = "no_data"
    FIRST_OBSERVATION = "first_observation"
    NO_ALERT = "no_alert"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


TERMINAL_STATES = {
    CheckState.DONE,
    CheckState.NO_DATA,
    CheckState.FIRST_OBSERVATION,
    CheckState.NO_ALERT,
    CheckState.SUPPRESSED,
    CheckState.FAILED,
}


@dataclass
class CheckOutcome:
    tracking_id: int
    label: str
    state: CheckState = CheckState.PENDING
    path: List[CheckState] = field(default_factory=lambda: [CheckState.PENDING])
    price: Optional[Decimal] = None
    previous_price: Optional[Decimal] = None
    source: Optional[str] = None
    fallback_used: bool = False
    provider_errors: List[str] = field(default_factory=list)
    alert_kind: Optional[AlertKind] = None
    alert_id: Optional[int] = None
    notified: bool = False
    error: Optional[str] = None

    def advance(self, state: CheckState) -> "CheckOutcome":
        self.state = state
        self.path.append(state)
        return self

    @property
    def price_recorded(self) -> bool:
        return CheckState.PRICE_RECORDED in self.path

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass
class CycleSummary:
    started_at: datetime
    total: int = 0
    checked: int = 0
    alerted: int = 0
    notified: int = 0
    suppressed: int = 0
    no_data: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    outcomes: List[CheckOutcome] = field(default_factory=list, repr=False)

    def add(self, outcome: CheckOutcome):
        self.outcomes.append(outcome)
        if outcome.price_recorded:
            self.checked += 1
        if outcome.alert_id is not None:
            self.alerted += 1
        if outcome.notified:
            self.notified += 1
        if outcome.state == CheckState.SUPPRESSED:
            self.suppressed += 1
        elif outcome.state == CheckState.NO_DATA:
            self.no_data += 1
        elif outcome.state == CheckState.FAILED:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "total": self.total,
            "checked": self.checked,
            "alerted": self.alerted,
            "notified": self.notified,
            "suppressed": self.suppressed,
            "no_data": self.no_data,
            "failed": self.failed,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class PriceCheckService:
    """Runs check cycles over every active tracking record."""

    def __init__(
        self,
        store: PriceStore,
        quotes: QuoteChain,
        notifier: Optional[EmailNotifier],
        recorder: AlertRecorder,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.quotes = quotes
        self.notifier = notifier
        self.recorder = recorder
        self.settings = settings or get_settings()
        self.clock = clock

    async def run_cycle(self) -> CycleSummary:
        started = time.monotonic()
        now = self.clock()
        summary = CycleSummary(started_at=now)

        records = await asyncio.to_thread(self.store.list_active_tracking_records, now.date())
        summary.total = len(records)
        logger.info(f"Starting price check cycle for {len(records)} tracking record(s)")

        semaphore = asyncio.Semaphore(self.settings.check_concurrency)

        async def _bounded(tracked: TrackedRoute) -> CheckOutcome:
            async with semaphore:
                return await self.check_record(tracked)

        results = await asyncio.gather(*(_bounded(t) for t in records), return_exceptions=True)

        for tracked, result in zip(records, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Check for {tracked.label} escaped isolation: {type(result).__name__}: {result}",
                    exc_info=result,
                )
                outcome = CheckOutcome(tracking_id=tracked.tracking_id, label=tracked.label, error=str(result))
                result = outcome.advance(CheckState.FAILED)
            summary.add(result)

        summary.duration_seconds = time.monotonic() - started
        logger.info(
            f"Price check cycle complete in {summary.duration_seconds:.1f}s: "
            f"{summary.checked}/{summary.total} checked, {summary.alerted} alerted, "
            f"{summary.notified} notified, {summary.suppressed} suppressed, "
            f"{summary.no_data} no data, {summary.failed} failed"
        )
        return summary

    async def check_record(self, tracked: TrackedRoute) -> CheckOutcome:
        outcome = CheckOutcome(tracking_id=tracked.tracking_id, label=tracked.label)
        try:
            return await self._check(tracked, outcome)
        except Exception as e:
            logger.exception(f"Check failed for {tracked.label} (tracking {tracked.tracking_id})")
            outcome.error = f"{type(e).__name__}: {e}"
            return outcome.advance(CheckState.FAILED)

    async def _check(self, tracked: TrackedRoute, outcome: CheckOutcome) -> CheckOutcome:
        outcome.advance(CheckState.PROVIDER_PRIMARY)
        result = await self.quotes.search(
            origin=tracked.origin_code,
            destination=tracked.destination_code,
            departure_date=tracked.departure_date,
            return_date=tracked.return_date,
            adults=self.settings.default_adults,
            currency=self.settings.reporting_currency,
        )
        outcome.provider_errors = list(result.errors)
        outcome.fallback_used = result.fallback_used
        if result.fallback_used:
            outcome.advance(CheckState.PROVIDER_FALLBACK)

        if not result.success:
            if result.no_data:
                logger.info(f"No offers for {tracked.label}; will retry next cycle")
            else:
                logger.warning(
                    f"All quote providers failed for {tracked.label}; will retry next cycle "
                    f"({'; '.join(result.errors)})"
                )
            return outcome.advance(CheckState.NO_DATA)

        best = result.cheapest
        outcome.source = result.source
        outcome.price = best.price

        observation = await asyncio.to_thread(
            self.store.append_price_observation,
            route_id=tracked.route_id,
            departure_date=tracked.departure_date,
            return_date=tracked.return_date,
            price=best.price,
            carrier=best.carrier,
            flight_numbers=best.flight_numbers,
            currency=best.currency,
            source=best.source,
            observed_at=self.clock(),
        )
        outcome.advance(CheckState.PRICE_RECORDED)
        logger.info(f"Recorded ${best.price} for {tracked.label} from {result.source}")

        history = await asyncio.to_thread(
            self.store.recent_price_observations,
            tracked.route_id,
            tracked.departure_date,
            tracked.return_date,
            limit=self.settings.history_window,
            exclude_id=observation.id,
        )
        if not history:
            logger.info(f"First observation for {tracked.label}, nothing to compare")
            return outcome.advance(CheckState.FIRST_OBSERVATION)

        previous_price = Decimal(str(history[0].price))
        outcome.previous_price = previous_price

        verdict = evaluate_price(
            previous_price=previous_price,
            new_price=best.price,
            historical_prices=[h.price for h in history],
            price_threshold=tracked.price_threshold,
            price_drop_percentage=tracked.price_drop_percentage,
            mistake_fare_threshold=tracked.mistake_fare_threshold,
            min_history=self.settings.mistake_fare_min_history,
        )
        outcome.advance(CheckState.ANOMALY_EVALUATED)

        if not verdict.should_alert:
            logger.debug(f"No alert for {tracked.label}: {verdict.reason}")
            return outcome.advance(CheckState.NO_ALERT)

        if await self.recorder.should_suppress(tracked, verdict.kind, best.price):
            outcome.alert_kind = verdict.kind
            return outcome.advance(CheckState.SUPPRESSED)

        event = await self.recorder.record(
            tracked,
            kind=verdict.kind,
            price=best.price,
            previous_price=previous_price,
            percentage_change=verdict.percentage_change,
        )
        outcome.alert_kind = verdict.kind
        outcome.alert_id = event.id
        logger.info(f"{verdict.kind.value} for {tracked.label}: {verdict.reason}")

        if await self._notify(tracked, verdict.kind, best.price, previous_price, verdict.percentage_change):
            outcome.notified = True
            outcome.advance(CheckState.NOTIFIED)

        return outcome.advance(CheckState.DONE)

    async def _notify(
        self,
        tracked: TrackedRoute,
        kind: AlertKind,
        price: Decimal,
        previous_price: Decimal,
        percentage_change: float,
    ) -> bool:
        if self.notifier is None:
            return False
        if not tracked.email_alerts:
            logger.info(f"Email alerts disabled for user {tracked.user_id}, not notifying")
            return False

        try:
            return await self.notifier.send_price_alert(
                AlertRecipient(email=tracked.email, first_name=tracked.first_name),
                PriceAlertContent(
                    origin_code=tracked.origin_code,
                    destination_code=tracked.destination_code,
                    departure_date=tracked.departure_date,
                    return_date=tracked.return_date,
                    price=price,
                    previous_price=previous_price,
                    origin_name=tracked.origin_name,
                    destination_name=tracked.destination_name,
                ),
                kind,
                percentage_change,
            )
        except Exception:
            # Alert row stays; delivery is best-effort
            logger.exception(f"Notifier failed for {tracked.label}")
            return False
