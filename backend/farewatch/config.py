from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = "dev"
    database_url: str = "sqlite:///./data/farewatch.db"

    scheduler_enabled: bool = True
    check_interval_minutes: int = 60
    startup_delay_seconds: int = 10

    # Upper bound on concurrent route checks, keeps us under provider rate limits
    check_concurrency: int = 5
    provider_timeout_seconds: float = 20.0

    history_window: int = 10
    mistake_fare_min_history: int = 5
    default_price_drop_percentage: float = 15.0
    default_mistake_fare_percentage: float = 40.0
    alert_cooldown_hours: int = 24

    reporting_currency: str = "USD"
    default_adults: int = 1

    quote_providers: str = "amadeus,google_flights"

    amadeus_client_id: str = ""
    amadeus_client_secret: str = ""
    amadeus_base_url: str = "https://test.api.amadeus.com"

    scraper_headless: bool = True
    scraper_artifacts_dir: Optional[str] = None

    resend_api_key: str = ""
    email_from: str = "alerts@flightpricetracker.com"
    client_url: str = "http://localhost:3000"

    @field_validator("check_interval_minutes", "check_concurrency", "history_window", "default_adults")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("provider_timeout_seconds")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("provider_timeout_seconds must be greater than 0")
        return v

    @field_validator("startup_delay_seconds", "alert_cooldown_hours")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("mistake_fare_min_history")
    @classmethod
    def _min_history_floor(cls, v: int) -> int:
        # Fewer than 5 observations must never flag a mistake fare
        if v < 5:
            raise ValueError("mistake_fare_min_history must be at least 5")
        return v

    @property
    def provider_names(self) -> List[str]:
        return [p.strip().lower() for p in self.quote_providers.split(",") if p.strip()]

    def model_post_init(self, __context):
        if self.env == "prod" and self.database_url.startswith("sqlite"):
            raise ValueError(
                "Production requires explicit DATABASE_URL (not SQLite)"
            )


@lru_cache
def get_settings() -> Settings:
    return Settings()
