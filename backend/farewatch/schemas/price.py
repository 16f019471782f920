from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


class PriceObservationResponse(BaseModel):
    id: int
    route_id: int
    departure_date: date
    return_date: Optional[date] = None
    price: Decimal
    currency: str
    airline: Optional[str] = None
    flight_numbers: Optional[str] = None
    source: Optional[str] = None
    observed_at: datetime

    class Config:
        from_attributes = True


class PriceHistoryResponse(BaseModel):
    route_id: int
    origin_code: str
    destination_code: str
    departure_date: date
    return_date: Optional[date] = None
    count: int
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    prices: List[PriceObservationResponse]
