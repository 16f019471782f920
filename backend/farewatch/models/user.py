from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from farewatch.database import Base

DEFAULT_PRICE_DROP_PERCENTAGE = 15
DEFAULT_MISTAKE_FARE_THRESHOLD = 40


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    alert_preferences = relationship(
        "AlertPreferences", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    tracking_records = relationship("TrackingRecord", back_populates="user", cascade="all, delete-orphan")


class AlertPreferences(Base):
    """Per-user alerting knobs. Missing rows fall back to the defaults below."""
    __tablename__ = "alert_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    email_alerts = Column(Boolean, default=True, nullable=False)
    price_drop_percentage = Column(Numeric(5, 2), default=DEFAULT_PRICE_DROP_PERCENTAGE, nullable=False)
    mistake_fare_threshold = Column(Numeric(5, 2), default=DEFAULT_MISTAKE_FARE_THRESHOLD, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="alert_preferences")
