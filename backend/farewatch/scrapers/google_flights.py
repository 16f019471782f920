import asyncio
import random
import logging
from datetime import date, datetime
from decimal import Decimal
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional
from urllib.parse import quote

from playwright.async_api import async_playwright, Page, TimeoutError as PlaywrightTimeout

from farewatch.scrapers.extractors import RowExtractor

logger = logging.getLogger(__name__)


FailureReason = Literal[
    "success",
    "captcha",
    "timeout",
    "layout_change",
    "no_results",
    "blocked",
    "unknown",
]


def build_google_flights_url(
    origin: str,
    destination: str,
    departure_date: date,
    return_date: Optional[date] = None,
    adults: int = 1,
    currency: str = "USD",
) -> str:
    """
    Build a Google Flights search URL.

    Google Flights parses natural language in the q= parameter, so the route,
    dates and passenger count are passed as a query string.
    """
    query = f"Flights from {origin} to {destination} on {departure_date.isoformat()}"
    if return_date:
        query += f" returning {return_date.isoformat()}"
    else:
        query += " one way"
    if adults > 1:
        query += f" {adults} adults"

    return f"https://www.google.com/travel/flights?q={quote(query)}&curr={currency}&hl=en"


@dataclass
class FlightResult:
    price: Decimal
    airline: Optional[str]
    stops: int
    duration_minutes: Optional[int]


@dataclass
class ScrapeResult:
    """Outcome of one scrape attempt, with the failure reason classified."""
    status: FailureReason
    flights: List[FlightResult] = field(default_factory=list)
    error_message: Optional[str] = None
    screenshot_path: Optional[str] = None
    duration_ms: int = 0

    @property
    def is_success(self) -> bool:
        return self.status == "success"


class GoogleFlightsScraper:
    """
    Scrapes Google Flights with a fresh headless browser per search.

    A fresh browser per scrape avoids state leaking between searches; the
    overhead is fine at a few scrapes per cycle.
    """

    BROWSER_ARGS = [
        "--disable-blink-features=AutomationControlled",
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-extensions",
        "--mute-audio",
    ]

    CAPTCHA_SELECTORS = [
        "iframe[src*='recaptcha']",
        "#captcha",
        ".g-recaptcha",
    ]

    BLOCKED_PATTERNS = [
        "unusual traffic",
        "automated requests",
        "verify you're not a robot",
        "access denied",
    ]

    NO_RESULTS_PATTERNS = [
        "no flights found",
        "no matching flights",
        "we couldn't find",
    ]

    PAGE_TIMEOUT_MS = 30000

    def __init__(self, headless: bool = True, artifacts_dir: Optional[str] = None):
        self.headless = headless
        self.artifacts_dir = Path(artifacts_dir) if artifacts_dir else None
        if self.artifacts_dir:
            self.artifacts_dir.mkdir(parents=True, exist_ok=True)

    async def _detect_captcha(self, page: Page) -> bool:
        for selector in self.CAPTCHA_SELECTORS:
            try:
                if await page.query_selector(selector):
                    return True
            except Exception:
                continue
        return False

    async def _page_text(self, page: Page) -> str:
        try:
            return (await page.content()).lower()
        except Exception:
            return ""

    async def _save_screenshot(self, page: Page, label: str, reason: str) -> Optional[str]:
        if not self.artifacts_dir:
            return None
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        path = self.artifacts_dir / f"{label}_{timestamp}_{reason}.png"
        try:
            await page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            logger.debug(f"Screenshot failed: {e}")
            return None
        return str(path)

    async def scrape_route(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date] = None,
        adults: int = 1,
        currency: str = "USD",
    ) -> ScrapeResult:
        start_time = datetime.utcnow()
        label = f"{origin}-{destination}"

        def _result(status: FailureReason, **kwargs) -> ScrapeResult:
            elapsed = int((datetime.utcnow() - start_time).total_seconds() * 1000)
            return ScrapeResult(status=status, duration_ms=elapsed, **kwargs)

        url = build_google_flights_url(origin, destination, departure_date, return_date, adults, currency)

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=self.headless, args=self.BROWSER_ARGS)
            try:
                context = await browser.new_context(
                    viewport={"width": 1920, "height": 1080},
                    user_agent=(
                        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                        "AppleWebKit/537.36 (KHTML, like Gecko) "
                        "Chrome/120.0.0.0 Safari/537.36"
                    ),
                    locale="en-US",
                )
                page = await context.new_page()

                try:
                    await page.goto(url, wait_until="networkidle", timeout=self.PAGE_TIMEOUT_MS)
                except PlaywrightTimeout:
                    return _result(
                        "timeout",
                        error_message=f"Page load timed out after {self.PAGE_TIMEOUT_MS // 1000} seconds",
                        screenshot_path=await self._save_screenshot(page, label, "timeout"),
                    )

                await asyncio.sleep(random.uniform(2, 4))

                if await self._detect_captcha(page):
                    return _result(
                        "captcha",
                        error_message="Captcha detected",
                        screenshot_path=await self._save_screenshot(page, label, "captcha"),
                    )

                content = await self._page_text(page)
                if any(p in content for p in self.BLOCKED_PATTERNS):
                    return _result(
                        "blocked",
                        error_message="Rate limited or blocked by Google",
                        screenshot_path=await self._save_screenshot(page, label, "blocked"),
                    )

                extracted = await RowExtractor.extract_all(page)
                if not extracted:
                    if any(p in content for p in self.NO_RESULTS_PATTERNS):
                        return _result("no_results", error_message="No flights found for this route/date")
                    return _result(
                        "layout_change",
                        error_message="No prices extracted; page structure may have changed",
                        screenshot_path=await self._save_screenshot(page, label, "layout_change"),
                    )

                flights = [
                    FlightResult(
                        price=f.price,
                        airline=f.airline,
                        stops=f.stops if f.stops is not None else 0,
                        duration_minutes=f.duration_minutes,
                    )
                    for f in extracted
                ]
                logger.info(
                    f"Scraped {len(flights)} flights for {label}. "
                    f"Best price: {min(f.price for f in flights)} {currency}"
                )
                return _result("success", flights=flights)

            except Exception as e:
                logger.exception(f"Unexpected scrape error for {label}")
                return _result("unknown", error_message=f"Unexpected error: {e}")
            finally:
                await browser.close()
