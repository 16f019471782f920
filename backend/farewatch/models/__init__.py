# SQLAlchemy models
from farewatch.models.user import User, AlertPreferences
from farewatch.models.route import Route
from farewatch.models.tracking import TrackingRecord
from farewatch.models.price_observation import PriceObservation
from farewatch.models.alert_event import AlertEvent, AlertKind

__all__ = [
    "User",
    "AlertPreferences",
    "Route",
    "TrackingRecord",
    "PriceObservation",
    "AlertEvent",
    # Enums
    "AlertKind",
]
