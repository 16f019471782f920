from pydantic import BaseModel
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


class AlertHistoryResponse(BaseModel):
    id: int
    tracking_id: int
    origin_code: str
    origin_name: Optional[str] = None
    destination_code: str
    destination_name: Optional[str] = None
    departure_date: date
    return_date: Optional[date] = None
    price: Decimal
    previous_price: Decimal
    percentage_change: Decimal
    alert_type: str
    sent_at: datetime


class CycleSummaryResponse(BaseModel):
    started_at: datetime
    total: int
    checked: int
    alerted: int
    notified: int
    suppressed: int
    no_data: int
    failed: int
    duration_seconds: float


class CheckRunResponse(BaseModel):
    status: str
    summary: Optional[CycleSummaryResponse] = None
    error: Optional[str] = None
