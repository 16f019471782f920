from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from farewatch.database import Base


class Route(Base):
    """
    Origin/destination airport pair.

    Created lazily the first time someone tracks it and never modified after.
    Many tracking records point at one route, and price history is keyed by it.
    """
    __tablename__ = "routes"
    __table_args__ = (
        UniqueConstraint("origin_code", "destination_code", name="uq_routes_origin_destination"),
    )

    id = Column(Integer, primary_key=True, index=True)
    origin_code = Column(String(3), nullable=False, index=True)
    origin_name = Column(String(100), nullable=True)
    destination_code = Column(String(3), nullable=False, index=True)
    destination_name = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tracking_records = relationship("TrackingRecord", back_populates="route")

    @property
    def display_name(self) -> str:
        return f"{self.origin_code} → {self.destination_code}"

    def __repr__(self) -> str:
        return f"<Route {self.id}: {self.origin_code}-{self.destination_code}>"
