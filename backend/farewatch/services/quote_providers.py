import asyncio
import httpx
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from farewatch.config import Settings, get_settings

logger = logging.getLogger(__name__)

_ISO_DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?$")


def parse_iso_duration(value: Optional[str]) -> Optional[int]:
    """Parse an ISO-8601 duration like PT12H30M into minutes."""
    if not value:
        return None
    match = _ISO_DURATION_RE.match(value)
    if not match or (match.group(1) is None and match.group(2) is None):
        return None
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    return hours * 60 + minutes


class ProviderError(Exception):
    """A quote provider could not produce offers (API, parsing or config failure)."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


@dataclass
class FlightOffer:
    price: Decimal
    currency: str
    carrier: Optional[str] = None
    flight_numbers: Optional[str] = None
    stops: int = 0
    duration_minutes: Optional[int] = None
    source: str = "unknown"


@dataclass
class QuoteResult:
    success: bool
    offers: List[FlightOffer] = field(default_factory=list)
    source: str = "unknown"
    errors: List[str] = field(default_factory=list)
    fallback_used: bool = False
    no_data: bool = False

    @property
    def cheapest(self) -> Optional[FlightOffer]:
        return self.offers[0] if self.offers else None


class QuoteProvider(ABC):
    name: str = "base"

    @abstractmethod
    async def search(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date],
        adults: int = 1,
        currency: str = "USD",
    ) -> List[FlightOffer]:
        """Return offers for the query, or raise ProviderError."""

    def is_available(self) -> bool:
        return True

    async def close(self):
        pass


class AmadeusProvider(QuoteProvider):
    name = "amadeus"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://test.api.amadeus.com",
        timeout: float = 20.0,
        max_offers: int = 20,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_offers = max_offers
        self._token: Optional[str] = None
        self._token_expires: Optional[datetime] = None
        self._token_lock = asyncio.Lock()
        self._http_client: Optional[httpx.AsyncClient] = None

    def is_available(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _get_token(self) -> str:
        async with self._token_lock:
            if self._token and self._token_expires and datetime.utcnow() < self._token_expires:
                return self._token

            client = await self._get_client()
            try:
                response = await client.post(
                    f"{self.base_url}/v1/security/oauth2/token",
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise ProviderError(self.name, f"auth failed: HTTP {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise ProviderError(self.name, f"auth failed: {e}") from e

            self._token = data["access_token"]
            self._token_expires = datetime.utcnow() + timedelta(seconds=data.get("expires_in", 1799) - 60)
            return self._token

    async def search(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date],
        adults: int = 1,
        currency: str = "USD",
    ) -> List[FlightOffer]:
        if not self.is_available():
            raise ProviderError(self.name, "API credentials not configured")

        token = await self._get_token()

        params = {
            "originLocationCode": origin,
            "destinationLocationCode": destination,
            "departureDate": departure_date.isoformat(),
            "adults": adults,
            "currencyCode": currency,
            "max": self.max_offers,
        }
        if return_date:
            params["returnDate"] = return_date.isoformat()

        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}/v2/shopping/flight-offers",
                headers={"Authorization": f"Bearer {token}"},
                params=params,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                # Force re-auth on the next call
                self._token = None
            raise ProviderError(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, str(e)) from e

        return self.parse_offers(data, currency)

    def parse_offers(self, data: dict, currency: str) -> List[FlightOffer]:
        offers = []
        for offer in data.get("data", []):
            try:
                price_val = offer.get("price", {}).get("grandTotal") or offer.get("price", {}).get("total")
                if not price_val:
                    continue
                itineraries = offer.get("itineraries") or [{}]
                segments = itineraries[0].get("segments", [])
                validating = offer.get("validatingAirlineCodes") or []
                carrier = validating[0] if validating else (segments[0].get("carrierCode") if segments else None)
                flight_numbers = ",".join(
                    f"{s.get('carrierCode', '')}{s.get('number', '')}" for s in segments
                ) or None
                offers.append(FlightOffer(
                    price=Decimal(str(price_val)),
                    currency=offer.get("price", {}).get("currency", currency),
                    carrier=carrier,
                    flight_numbers=flight_numbers,
                    stops=max(len(segments) - 1, 0),
                    duration_minutes=parse_iso_duration(itineraries[0].get("duration")),
                    source=self.name,
                ))
            except (InvalidOperation, KeyError, IndexError, AttributeError) as e:
                logger.debug(f"{self.name}: skipping unparseable offer: {e}")
                continue
        return offers


class GoogleFlightsProvider(QuoteProvider):
    """Scraping fallback backed by a headless Playwright browser."""
    name = "google_flights"

    def __init__(self, headless: bool = True, artifacts_dir: Optional[str] = None):
        self.headless = headless
        self.artifacts_dir = artifacts_dir

    async def search(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date],
        adults: int = 1,
        currency: str = "USD",
    ) -> List[FlightOffer]:
        from farewatch.scrapers.google_flights import GoogleFlightsScraper

        scraper = GoogleFlightsScraper(headless=self.headless, artifacts_dir=self.artifacts_dir)
        result = await scraper.scrape_route(
            origin=origin,
            destination=destination,
            departure_date=departure_date,
            return_date=return_date,
            adults=adults,
            currency=currency,
        )

        if result.status == "no_results":
            return []
        if not result.is_success:
            raise ProviderError(self.name, result.error_message or f"Scrape status: {result.status}")

        return [
            FlightOffer(
                price=flight.price,
                currency=currency,
                carrier=flight.airline,
                flight_numbers=None,
                stops=flight.stops,
                duration_minutes=flight.duration_minutes,
                source=self.name,
            )
            for flight in result.flights
        ]


class QuoteChain:
    """
    Tries quote providers in fixed priority order.

    The first provider that returns at least one offer wins. Errors, timeouts
    and empty results all fall through to the next provider. Never raises for
    provider problems; the outcome is reported on the QuoteResult.
    """

    def __init__(self, providers: List[QuoteProvider], timeout_seconds: float = 20.0):
        self.providers = providers
        self.timeout_seconds = timeout_seconds

    def get_status(self) -> dict:
        return {
            "providers": [
                {"name": p.name, "available": p.is_available()} for p in self.providers
            ],
            "timeout_seconds": self.timeout_seconds,
        }

    async def search(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date] = None,
        adults: int = 1,
        currency: str = "USD",
    ) -> QuoteResult:
        errors: List[str] = []
        empty_sources: List[str] = []
        attempted = 0
        last_index = 0

        # Fallback means a provider other than the first in the chain answered,
        # whether the earlier ones failed or were not configured
        for index, provider in enumerate(self.providers):
            if not provider.is_available():
                logger.debug(f"Skipping {provider.name} - not configured")
                continue

            attempted += 1
            last_index = index
            route = f"{origin}-{destination} {departure_date}"
            try:
                offers = await asyncio.wait_for(
                    provider.search(origin, destination, departure_date, return_date, adults, currency),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(f"{provider.name} timed out after {self.timeout_seconds:.0f}s for {route}")
                errors.append(f"{provider.name}: timeout")
                continue
            except ProviderError as e:
                logger.warning(f"{provider.name} failed for {route}: {e.message}")
                errors.append(str(e))
                continue
            except Exception as e:
                logger.warning(f"{provider.name} raised {type(e).__name__} for {route}: {e}")
                errors.append(f"{provider.name}: {e}")
                continue

            if not offers:
                logger.info(f"{provider.name} returned no offers for {route}")
                empty_sources.append(provider.name)
                continue

            # Stable sort: equal prices keep the provider's own ranking
            ranked = sorted(offers, key=lambda o: o.price)
            return QuoteResult(
                success=True,
                offers=ranked,
                source=provider.name,
                errors=errors,
                fallback_used=index > 0,
            )

        if attempted == 0:
            errors.append("No quote providers available")
        elif empty_sources and not errors:
            logger.info(f"No offers from any provider ({', '.join(empty_sources)})")

        return QuoteResult(
            success=False,
            source="all_failed",
            errors=errors,
            fallback_used=last_index > 0,
            no_data=attempted > 0 and not errors,
        )

    async def close(self):
        for provider in self.providers:
            await provider.close()


def build_quote_providers(settings: Optional[Settings] = None) -> List[QuoteProvider]:
    """Build providers in the order given by settings.quote_providers."""
    settings = settings or get_settings()
    providers: List[QuoteProvider] = []

    for name in settings.provider_names:
        if name == AmadeusProvider.name:
            providers.append(AmadeusProvider(
                client_id=settings.amadeus_client_id,
                client_secret=settings.amadeus_client_secret,
                base_url=settings.amadeus_base_url,
                timeout=settings.provider_timeout_seconds,
            ))
        elif name == GoogleFlightsProvider.name:
            providers.append(GoogleFlightsProvider(
                headless=settings.scraper_headless,
                artifacts_dir=settings.scraper_artifacts_dir,
            ))
        else:
            logger.warning(f"Unknown quote provider '{name}', skipping")

    return providers
