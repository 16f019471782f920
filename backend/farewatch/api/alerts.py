from fastapi import APIRouter, Depends, Query
from typing import List

from farewatch.api.deps import get_price_store
from farewatch.schemas import AlertHistoryResponse
from farewatch.services.price_store import PriceStore

router = APIRouter()


@router.get("/history", response_model=List[AlertHistoryResponse])
async def get_alert_history(
    user_id: int = Query(...),
    limit: int = Query(100, ge=1, le=500),
    store: PriceStore = Depends(get_price_store),
):
    return store.alert_history(user_id, limit=limit)
