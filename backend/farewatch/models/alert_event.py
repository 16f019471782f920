import enum

from sqlalchemy import Column, Integer, DateTime, Numeric, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from farewatch.database import Base


class AlertKind(str, enum.Enum):
    PRICE_DROP = "price_drop"
    MISTAKE_FARE = "mistake_fare"


class AlertEvent(Base):
    """
    Audit row for every alert fired.

    Written before delivery is attempted, so a row exists even when the email
    never went out. Also the source of truth for repeat-alert suppression.
    """
    __tablename__ = "alert_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tracking_id = Column(Integer, ForeignKey("tracking.id", ondelete="CASCADE"), nullable=False, index=True)

    price = Column(Numeric(10, 2), nullable=False)
    previous_price = Column(Numeric(10, 2), nullable=False)
    percentage_change = Column(Numeric(7, 2), nullable=False)
    alert_type = Column(
        SQLEnum(AlertKind, values_callable=lambda kinds: [k.value for k in kinds]),
        nullable=False,
    )

    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    tracking_record = relationship("TrackingRecord", back_populates="alerts")

    def __repr__(self) -> str:
        return f"<AlertEvent {self.id}: {self.alert_type} ${self.price} (was ${self.previous_price})>"
