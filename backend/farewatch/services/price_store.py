"""
Price store.

Owns price history and alert history persistence and exposes the joined view
of active tracking records that the checker iterates over. Each call opens its
own short-lived session, so concurrent check tasks never share a transaction.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from farewatch.models import (
    AlertEvent,
    AlertKind,
    AlertPreferences,
    PriceObservation,
    Route,
    TrackingRecord,
    User,
)
from farewatch.models.user import DEFAULT_MISTAKE_FARE_THRESHOLD, DEFAULT_PRICE_DROP_PERCENTAGE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedRoute:
    """Read-only snapshot of a tracking record joined with route, user and preferences."""
    tracking_id: int
    user_id: int
    route_id: int
    origin_code: str
    origin_name: Optional[str]
    destination_code: str
    destination_name: Optional[str]
    departure_date: date
    return_date: Optional[date]
    price_threshold: Decimal
    email: str
    first_name: Optional[str]
    email_alerts: bool = True
    price_drop_percentage: float = DEFAULT_PRICE_DROP_PERCENTAGE
    mistake_fare_threshold: float = DEFAULT_MISTAKE_FARE_THRESHOLD

    @property
    def label(self) -> str:
        ret = self.return_date.isoformat() if self.return_date else "one-way"
        return f"{self.origin_code}→{self.destination_code} {self.departure_date.isoformat()}/{ret}"


def _return_date_filter(column, return_date: Optional[date]):
    # NULL never compares equal in SQL, so one-way trips need IS NULL
    if return_date is None:
        return column.is_(None)
    return column == return_date


class PriceStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        default_price_drop_percentage: float = DEFAULT_PRICE_DROP_PERCENTAGE,
        default_mistake_fare_percentage: float = DEFAULT_MISTAKE_FARE_THRESHOLD,
    ):
        self.session_factory = session_factory
        self.default_price_drop_percentage = float(default_price_drop_percentage)
        self.default_mistake_fare_percentage = float(default_mistake_fare_percentage)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _persist(self, db: Session, obj):
        db.add(obj)
        db.commit()
        db.refresh(obj)
        db.expunge(obj)
        return obj

    def list_active_tracking_records(self, today: date) -> List[TrackedRoute]:
        """
        Load every alert-enabled tracking record departing today or later.

        Past-dated records are skipped, not deleted. Users without a
        preferences row get the store's configured default thresholds.
        """
        with self._session() as db:
            rows = (
                db.query(TrackingRecord, Route, User, AlertPreferences)
                .join(Route, TrackingRecord.route_id == Route.id)
                .join(User, TrackingRecord.user_id == User.id)
                .outerjoin(AlertPreferences, AlertPreferences.user_id == User.id)
                .filter(
                    TrackingRecord.alert_enabled == True,  # noqa: E712
                    TrackingRecord.departure_date >= today,
                )
                .order_by(TrackingRecord.id)
                .all()
            )

            tracked = []
            for record, route, user, prefs in rows:
                tracked.append(TrackedRoute(
                    tracking_id=record.id,
                    user_id=user.id,
                    route_id=route.id,
                    origin_code=route.origin_code,
                    origin_name=route.origin_name,
                    destination_code=route.destination_code,
                    destination_name=route.destination_name,
                    departure_date=record.departure_date,
                    return_date=record.return_date,
                    price_threshold=Decimal(str(record.price_threshold)),
                    email=user.email,
                    first_name=user.first_name,
                    email_alerts=bool(prefs.email_alerts) if prefs else True,
                    price_drop_percentage=(
                        float(prefs.price_drop_percentage) if prefs else self.default_price_drop_percentage
                    ),
                    mistake_fare_threshold=(
                        float(prefs.mistake_fare_threshold) if prefs else self.default_mistake_fare_percentage
                    ),
                ))
            return tracked

    def append_price_observation(
        self,
        route_id: int,
        departure_date: date,
        return_date: Optional[date],
        price: Decimal,
        carrier: Optional[str],
        flight_numbers: Optional[str],
        currency: str = "USD",
        source: Optional[str] = None,
        observed_at: Optional[datetime] = None,
    ) -> PriceObservation:
        """Append one observation. Errors propagate to the caller."""
        with self._session() as db:
            observation = PriceObservation(
                route_id=route_id,
                departure_date=departure_date,
                return_date=return_date,
                price=price,
                currency=currency,
                airline=carrier or "Unknown",
                flight_numbers=flight_numbers or "Unknown",
                source=source,
            )
            if observed_at is not None:
                observation.observed_at = observed_at
            return self._persist(db, observation)

    def recent_price_observations(
        self,
        route_id: int,
        departure_date: date,
        return_date: Optional[date],
        limit: int = 10,
        exclude_id: Optional[int] = None,
    ) -> List[PriceObservation]:
        """Most recent observations for one route+dates combination, newest first."""
        with self._session() as db:
            query = db.query(PriceObservation).filter(
                PriceObservation.route_id == route_id,
                PriceObservation.departure_date == departure_date,
                _return_date_filter(PriceObservation.return_date, return_date),
            )
            if exclude_id is not None:
                query = query.filter(PriceObservation.id != exclude_id)
            rows = (
                query.order_by(PriceObservation.observed_at.desc(), PriceObservation.id.desc())
                .limit(limit)
                .all()
            )
            for row in rows:
                db.expunge(row)
            return rows

    def append_alert_event(
        self,
        tracking_id: int,
        user_id: int,
        price: Decimal,
        previous_price: Decimal,
        percentage_change: float,
        kind: AlertKind,
        sent_at: Optional[datetime] = None,
    ) -> AlertEvent:
        with self._session() as db:
            event = AlertEvent(
                tracking_id=tracking_id,
                user_id=user_id,
                price=price,
                previous_price=previous_price,
                percentage_change=Decimal(str(round(percentage_change, 2))),
                alert_type=kind,
            )
            if sent_at is not None:
                event.sent_at = sent_at
            return self._persist(db, event)

    def last_alert_event(self, tracking_id: int, kind: AlertKind) -> Optional[AlertEvent]:
        with self._session() as db:
            event = (
                db.query(AlertEvent)
                .filter(AlertEvent.tracking_id == tracking_id, AlertEvent.alert_type == kind)
                .order_by(AlertEvent.sent_at.desc(), AlertEvent.id.desc())
                .first()
            )
            if event is not None:
                db.expunge(event)
            return event

    def get_or_create_route(
        self,
        origin_code: str,
        destination_code: str,
        origin_name: Optional[str] = None,
        destination_name: Optional[str] = None,
    ) -> Route:
        """Routes are created lazily and never modified afterwards."""
        origin_code = origin_code.upper().strip()
        destination_code = destination_code.upper().strip()
        with self._session() as db:
            route = db.query(Route).filter(
                Route.origin_code == origin_code,
                Route.destination_code == destination_code,
            ).first()
            if route is not None:
                db.expunge(route)
                return route

            logger.info(f"Creating route {origin_code}-{destination_code}")
            return self._persist(db, Route(
                origin_code=origin_code,
                destination_code=destination_code,
                origin_name=origin_name,
                destination_name=destination_name,
            ))

    # Read access for the API layer

    def find_route(self, origin_code: str, destination_code: str) -> Optional[Route]:
        with self._session() as db:
            route = db.query(Route).filter(
                Route.origin_code == origin_code.upper().strip(),
                Route.destination_code == destination_code.upper().strip(),
            ).first()
            if route is not None:
                db.expunge(route)
            return route

    def price_history(
        self,
        route_id: int,
        departure_date: date,
        return_date: Optional[date] = None,
        limit: int = 100,
    ) -> List[PriceObservation]:
        return self.recent_price_observations(route_id, departure_date, return_date, limit=limit)

    def alert_history(self, user_id: int, limit: int = 100) -> List[dict]:
        """Alert history for a user, newest first, joined with the route it was for."""
        with self._session() as db:
            rows = (
                db.query(AlertEvent, TrackingRecord, Route)
                .join(TrackingRecord, AlertEvent.tracking_id == TrackingRecord.id)
                .join(Route, TrackingRecord.route_id == Route.id)
                .filter(AlertEvent.user_id == user_id)
                .order_by(AlertEvent.sent_at.desc(), AlertEvent.id.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": event.id,
                    "tracking_id": record.id,
                    "origin_code": route.origin_code,
                    "origin_name": route.origin_name,
                    "destination_code": route.destination_code,
                    "destination_name": route.destination_name,
                    "departure_date": record.departure_date,
                    "return_date": record.return_date,
                    "price": event.price,
                    "previous_price": event.previous_price,
                    "percentage_change": event.percentage_change,
                    "alert_type": event.alert_type.value,
                    "sent_at": event.sent_at,
                }
                for event, record, route in rows
            ]
