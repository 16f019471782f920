from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.sql import func
from farewatch.database import Base


class PriceObservation(Base):
    """
    Price data point for a route and travel-date combination at a point in time.

    Append-only. Prices are only comparable within the same
    (route_id, departure_date, return_date) combination, and observed_at is the
    only ordering the checker relies on.
    """
    __tablename__ = "price_history"
    __table_args__ = (
        Index("ix_price_history_combination", "route_id", "departure_date", "return_date", "observed_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)

    departure_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=True)

    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    airline = Column(String(100), nullable=True)
    flight_numbers = Column(String(200), nullable=True)  # Comma-separated, e.g. "AA100,AA2101"
    source = Column(String(50), nullable=True)

    observed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<PriceObservation {self.id}: ${self.price} on {self.observed_at}>"
