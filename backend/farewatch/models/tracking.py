from sqlalchemy import Column, Integer, Boolean, Date, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from farewatch.database import Base


class TrackingRecord(Base):
    """
    One user's interest in a route for specific travel dates.

    The scheduler treats each enabled, future-dated record as one unit of work
    per cycle. Records are owned by the user; the checker only reads them.
    """
    __tablename__ = "tracking"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "route_id", "departure_date", "return_date",
            name="uq_tracking_user_route_dates",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)

    departure_date = Column(Date, nullable=False, index=True)
    return_date = Column(Date, nullable=True)  # Null for one-way

    price_threshold = Column(Numeric(10, 2), nullable=False)
    alert_enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="tracking_records")
    route = relationship("Route", back_populates="tracking_records")
    alerts = relationship("AlertEvent", back_populates="tracking_record", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<TrackingRecord {self.id}: route={self.route_id} {self.departure_date} -> {self.return_date}>"
