from farewatch.schemas.price import PriceObservationResponse, PriceHistoryResponse
from farewatch.schemas.alert import AlertHistoryResponse, CycleSummaryResponse, CheckRunResponse

__all__ = [
    "PriceObservationResponse",
    "PriceHistoryResponse",
    "AlertHistoryResponse",
    "CycleSummaryResponse",
    "CheckRunResponse",
]
