from fastapi import APIRouter, Depends, HTTPException
from typing import Dict

from farewatch.api.deps import get_quote_chain, get_scheduler
from farewatch.config import get_settings
from farewatch.scheduler import PriceCheckScheduler
from farewatch.schemas import CheckRunResponse
from farewatch.services.quote_providers import QuoteChain

router = APIRouter()


@router.get("/status")
async def get_status(
    scheduler: PriceCheckScheduler = Depends(get_scheduler),
    quotes: QuoteChain = Depends(get_quote_chain),
) -> Dict:
    """Scheduler state, last cycle summary and provider availability."""
    settings = get_settings()
    return {
        "scheduler": scheduler.status(),
        "quotes": quotes.get_status(),
        "config": {
            "check_interval_minutes": settings.check_interval_minutes,
            "check_concurrency": settings.check_concurrency,
            "alert_cooldown_hours": settings.alert_cooldown_hours,
            "reporting_currency": settings.reporting_currency,
        },
    }


@router.post("/checks/run", response_model=CheckRunResponse)
async def run_checks(scheduler: PriceCheckScheduler = Depends(get_scheduler)):
    """Run a price check cycle now, through the same serialized tick the timer uses."""
    if scheduler.cycle_in_progress:
        raise HTTPException(status_code=409, detail="A price check cycle is already running")

    summary = await scheduler.run_now()
    if summary is None:
        return CheckRunResponse(status="failed", error=scheduler.last_error)

    return CheckRunResponse(status="completed", summary=summary.to_dict())
