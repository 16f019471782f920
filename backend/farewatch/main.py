from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
import logging

from sqlalchemy.orm import sessionmaker

from farewatch.api import alerts, health, notifications, prices, status
from farewatch.config import Settings, get_settings
from farewatch.database import engine, Base, SessionLocal, ensure_sqlite_columns
from farewatch import models  # noqa: F401  (registers tables on Base.metadata)
from farewatch.scheduler import PriceCheckScheduler
from farewatch.services.alert_recorder import AlertRecorder
from farewatch.services.notification import EmailNotifier
from farewatch.services.price_checker import PriceCheckService
from farewatch.services.price_store import PriceStore
from farewatch.services.quote_providers import QuoteChain, build_quote_providers

settings = get_settings()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: PriceStore
    quotes: QuoteChain
    notifier: EmailNotifier
    checker: PriceCheckService
    scheduler: PriceCheckScheduler


def build_services(settings: Settings, session_factory: Optional[sessionmaker] = None) -> Services:
    """Wire up the price check service graph from settings."""
    store = PriceStore(
        session_factory or SessionLocal,
        default_price_drop_percentage=settings.default_price_drop_percentage,
        default_mistake_fare_percentage=settings.default_mistake_fare_percentage,
    )
    quotes = QuoteChain(build_quote_providers(settings), timeout_seconds=settings.provider_timeout_seconds)
    notifier = EmailNotifier(settings=settings)
    recorder = AlertRecorder(store, cooldown_hours=settings.alert_cooldown_hours)
    checker = PriceCheckService(store, quotes, notifier, recorder, settings=settings)
    scheduler = PriceCheckScheduler(
        checker.run_cycle,
        interval_minutes=settings.check_interval_minutes,
        startup_delay_seconds=settings.startup_delay_seconds,
    )
    return Services(store=store, quotes=quotes, notifier=notifier, checker=checker, scheduler=scheduler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting farewatch price monitor")

    Base.metadata.create_all(bind=engine)
    if settings.database_url.startswith("sqlite"):
        ensure_sqlite_columns()

    services = build_services(settings)
    app.state.price_store = services.store
    app.state.quotes = services.quotes
    app.state.notifier = services.notifier
    app.state.checker = services.checker
    app.state.scheduler = services.scheduler

    providers = [p.name for p in services.quotes.providers if p.is_available()]
    logger.info(f"Quote providers available: {', '.join(providers) or 'none'}")
    if not services.notifier.api_key:
        logger.warning("RESEND_API_KEY not set - alerts will be recorded but not emailed")

    if settings.scheduler_enabled:
        services.scheduler.start()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    logger.info("Shutting down farewatch")
    try:
        services.scheduler.stop()
        await services.quotes.close()
        await services.notifier.close()
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


app = FastAPI(
    title="farewatch",
    description="Airfare price monitor: scheduled re-pricing, price drop and mistake fare alerts",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_url],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(status.router, prefix="/api", tags=["status"])
app.include_router(prices.router, prefix="/api/prices", tags=["prices"])
app.include_router(alerts.router, prefix="/api/alerts", tags=["alerts"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])
