"""
Extraction helpers for Google Flights result pages.

Row-scoped extraction: each flight row is located first, then price, airline,
stops and duration are read from inside that row so the fields belong to the
same flight. Text parsing lives in plain functions so it can be tested without
a browser.
"""

import re
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from playwright.async_api import ElementHandle, Page

logger = logging.getLogger(__name__)


# Anything outside this range is UI chrome or a parse slip, not a fare
MIN_PRICE = 20
MAX_PRICE = 50000

MAX_STOPS = 4
MIN_DURATION = 30
MAX_DURATION = 48 * 60

_PRICE_RE = re.compile(r"(?:[$€£]|USD|EUR|GBP|NZD|AUD|CAD)\s?(\d{1,3}(?:,\d{3})+|\d+)(?:\.(\d{2}))?")
_FLIGHT_NUMBER_RE = re.compile(r"\b[A-Z0-9]{2}\s?\d{1,4}\b")
_TIME_RE = re.compile(r"\d{1,2}:\d{2}(\s*(AM|PM))?", re.I)


def parse_price(text: str) -> Optional[Decimal]:
    """Pull the first currency-marked price out of text, validated for range."""
    if not text:
        return None
    match = _PRICE_RE.search(text)
    if not match:
        return None

    whole = int(match.group(1).replace(",", ""))
    if whole < MIN_PRICE or whole > MAX_PRICE:
        return None

    cents = match.group(2) or "00"
    return Decimal(f"{whole}.{cents}")


def clean_airline_name(text: str) -> Optional[str]:
    if not text:
        return None

    text = re.sub(r"^(Operated by|Marketed by|Flights? on)\s*", "", text, flags=re.I)
    text = _FLIGHT_NUMBER_RE.sub("", text)
    text = _TIME_RE.sub("", text)
    text = " ".join(text.split()).strip(" ,.")

    if 2 <= len(text) <= 50 and text.lower() != "unknown":
        return text
    return None


def parse_stops(text: str) -> Optional[int]:
    if not text:
        return None
    lowered = text.lower()
    if re.search(r"nonstop|non-stop|direct", lowered):
        return 0
    match = re.search(r"(\d+)\s*stops?", lowered)
    if match:
        stops = int(match.group(1))
        if 0 <= stops <= MAX_STOPS:
            return stops
    return None


def parse_duration(text: str) -> Optional[int]:
    """Parse '5h 30m', '5 hr 30 min' or '12 hours' into minutes."""
    if not text:
        return None

    minutes = None
    match = re.search(r"(\d+)\s*h(?:r|our)?s?\s*(\d+)\s*m", text, re.I)
    if match:
        minutes = int(match.group(1)) * 60 + int(match.group(2))
    else:
        match = re.search(r"(\d+)\s*h(?:r|our)?s?(?!\s*\d)", text, re.I)
        if match:
            minutes = int(match.group(1)) * 60

    if minutes is None or not (MIN_DURATION <= minutes <= MAX_DURATION):
        return None
    return minutes


@dataclass
class ExtractedFlight:
    price: Decimal
    airline: Optional[str] = None
    stops: Optional[int] = None
    duration_minutes: Optional[int] = None
    row_strategy: str = ""


class RowExtractor:
    """Locates flight rows and reads correlated fields from each one."""

    ROW_SELECTORS = [
        "li.yR1fYc",
        "li[class*='pIav2d']",
        ".Rk10dc > div",
        "[role='listitem']",
    ]

    PRICE_SELECTORS = [
        "[data-gs]",
        "[aria-label*='dollars']",
        "[aria-label*='price']",
        ".YMlIz",
        "[class*='price'] span",
    ]

    AIRLINE_SELECTORS = [
        "[data-carrier]",
        "[aria-label*='Operated by']",
        "[class*='carrier']",
        ".sSHqwe span",
        "img[alt]",
    ]

    STOPS_SELECTORS = [
        "[aria-label*='stop']",
        "[aria-label*='Nonstop']",
        "[class*='stop']",
    ]

    DURATION_SELECTORS = [
        "[aria-label*='Total duration']",
        "[aria-label*='hr']",
        "[class*='duration']",
    ]

    MAX_ROWS = 30

    @classmethod
    async def extract_all(cls, page: Page) -> List[ExtractedFlight]:
        for selector in cls.ROW_SELECTORS:
            try:
                rows = await page.query_selector_all(selector)
            except Exception as e:
                logger.debug(f"Row selector {selector} failed: {e}")
                continue

            flights = []
            for row in rows[: cls.MAX_ROWS]:
                flight = await cls.extract_row(row, selector)
                if flight is not None:
                    flights.append(flight)

            if flights:
                logger.info(f"Extracted {len(flights)} rows via {selector}")
                return flights

        logger.warning("No flight rows found by any selector")
        return []

    @classmethod
    async def extract_row(cls, row: ElementHandle, row_strategy: str = "") -> Optional[ExtractedFlight]:
        price = await cls._first_match(row, cls.PRICE_SELECTORS, parse_price)
        if price is None:
            # Price is required; fall back to the row's full text
            price = parse_price(await _safe_text(row))
            if price is None:
                return None

        return ExtractedFlight(
            price=price,
            airline=await cls._first_match(row, cls.AIRLINE_SELECTORS, clean_airline_name),
            stops=await cls._first_match(row, cls.STOPS_SELECTORS, parse_stops),
            duration_minutes=await cls._first_match(row, cls.DURATION_SELECTORS, parse_duration),
            row_strategy=row_strategy,
        )

    @staticmethod
    async def _first_match(row: ElementHandle, selectors: List[str], parser):
        for selector in selectors:
            try:
                elements = await row.query_selector_all(selector)
            except Exception:
                continue
            for element in elements[:5]:
                text = await _safe_text(element)
                aria = await _safe_attr(element, "aria-label")
                alt = await _safe_attr(element, "alt")
                value = parser(f"{text} {aria} {alt}".strip())
                if value is not None:
                    return value
        return None


async def _safe_text(element: ElementHandle) -> str:
    try:
        return await element.inner_text() or ""
    except Exception:
        return ""


async def _safe_attr(element: ElementHandle, name: str) -> str:
    try:
        return await element.get_attribute(name) or ""
    except Exception:
        return ""
