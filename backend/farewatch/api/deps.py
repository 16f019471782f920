from fastapi import HTTPException, Request

from farewatch.scheduler import PriceCheckScheduler
from farewatch.services.notification import EmailNotifier
from farewatch.services.price_store import PriceStore
from farewatch.services.quote_providers import QuoteChain


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return value


def get_price_store(request: Request) -> PriceStore:
    return _state(request, "price_store")


def get_scheduler(request: Request) -> PriceCheckScheduler:
    return _state(request, "scheduler")


def get_notifier(request: Request) -> EmailNotifier:
    return _state(request, "notifier")


def get_quote_chain(request: Request) -> QuoteChain:
    return _state(request, "quotes")
