from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date
from typing import Optional

from farewatch.api.deps import get_price_store
from farewatch.schemas import PriceHistoryResponse, PriceObservationResponse
from farewatch.services.price_store import PriceStore

router = APIRouter()


@router.get("/history", response_model=PriceHistoryResponse)
async def get_price_history(
    origin: str = Query(..., min_length=3, max_length=3),
    destination: str = Query(..., min_length=3, max_length=3),
    departure_date: date = Query(...),
    return_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    store: PriceStore = Depends(get_price_store),
):
    """Price observations for one route and travel dates, newest first."""
    route = store.find_route(origin, destination)
    if route is None:
        raise HTTPException(status_code=404, detail=f"Unknown route {origin.upper()}-{destination.upper()}")

    observations = store.price_history(route.id, departure_date, return_date, limit=limit)
    prices = [o.price for o in observations]

    return PriceHistoryResponse(
        route_id=route.id,
        origin_code=route.origin_code,
        destination_code=route.destination_code,
        departure_date=departure_date,
        return_date=return_date,
        count=len(observations),
        min_price=min(prices) if prices else None,
        max_price=max(prices) if prices else None,
        prices=[PriceObservationResponse.model_validate(o) for o in observations],
    )
