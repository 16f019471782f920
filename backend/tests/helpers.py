"""Fakes and seed helpers shared by the test modules."""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from farewatch.models import AlertPreferences, Route, TrackingRecord, User
from farewatch.services.price_store import PriceStore
from farewatch.services.quote_providers import FlightOffer, ProviderError, QuoteProvider

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
DEPARTURE = date(2026, 12, 20)
RETURN = date(2027, 1, 3)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeProvider(QuoteProvider):
    """
    Provider returning canned prices per (origin, destination).

    A value may be a list of prices, a list of FlightOffer, or an exception
    instance to raise. Unknown routes get `default`.
    """

    def __init__(self, name: str = "fake", responses: Optional[dict] = None, default=None):
        self.name = name
        self.responses = responses or {}
        self.default = default if default is not None else []
        self.calls: List[tuple] = []

    def set(self, origin: str, destination: str, value):
        self.responses[(origin, destination)] = value

    async def search(self, origin, destination, departure_date, return_date, adults=1, currency="USD"):
        self.calls.append((origin, destination, departure_date, return_date, adults, currency))
        value = self.responses.get((origin, destination), self.default)
        if isinstance(value, Exception):
            raise value
        return [
            v if isinstance(v, FlightOffer) else FlightOffer(
                price=Decimal(str(v)),
                currency=currency,
                carrier="AA",
                flight_numbers="AA100",
                source=self.name,
            )
            for v in value
        ]


class FailingProvider(QuoteProvider):
    def __init__(self, name: str = "broken", message: str = "HTTP 500"):
        self.name = name
        self.message = message
        self.calls = 0

    async def search(self, origin, destination, departure_date, return_date, adults=1, currency="USD"):
        self.calls += 1
        raise ProviderError(self.name, self.message)


class UnavailableProvider(FakeProvider):
    def is_available(self) -> bool:
        return False


class FakeNotifier:
    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.sent = []

    async def send_price_alert(self, user, alert, kind, percentage_change):
        self.sent.append((user, alert, kind, percentage_change))
        if self.error is not None:
            raise self.error
        return self.result


def create_tracking(
    db,
    origin: str = "JFK",
    destination: str = "LAX",
    departure_date: date = DEPARTURE,
    return_date: Optional[date] = RETURN,
    threshold=500,
    email: Optional[str] = None,
    first_name: str = "Ada",
    alert_enabled: bool = True,
    preferences: Optional[dict] = None,
) -> TrackingRecord:
    """Insert a user, the route (if new) and a tracking record."""
    route = db.query(Route).filter_by(origin_code=origin, destination_code=destination).first()
    if route is None:
        route = Route(
            origin_code=origin,
            destination_code=destination,
            origin_name=f"{origin} Airport",
            destination_name=f"{destination} Airport",
        )
        db.add(route)
        db.flush()

    email = email or f"{first_name.lower()}.{origin}{destination}{departure_date:%m%d}@example.com".lower()
    user = User(email=email, first_name=first_name)
    db.add(user)
    db.flush()

    if preferences is not None:
        db.add(AlertPreferences(user_id=user.id, **preferences))

    record = TrackingRecord(
        user_id=user.id,
        route_id=route.id,
        departure_date=departure_date,
        return_date=return_date,
        price_threshold=Decimal(str(threshold)),
        alert_enabled=alert_enabled,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def seed_history(store: PriceStore, record: TrackingRecord, prices, end: datetime = NOW):
    """Write prices as past observations, oldest first, one hour apart, all before `end`."""
    count = len(prices)
    for i, price in enumerate(prices):
        store.append_price_observation(
            route_id=record.route_id,
            departure_date=record.departure_date,
            return_date=record.return_date,
            price=Decimal(str(price)),
            carrier="AA",
            flight_numbers="AA100",
            source="seed",
            observed_at=end - timedelta(hours=count - i),
        )
