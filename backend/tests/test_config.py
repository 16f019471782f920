"""Tests for settings validation."""
import pytest

from farewatch.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None, database_url="sqlite:///:memory:")

        assert settings.check_interval_minutes == 60
        assert settings.history_window == 10
        assert settings.mistake_fare_min_history == 5
        assert settings.alert_cooldown_hours == 24
        assert settings.reporting_currency == "USD"
        assert settings.provider_names == ["amadeus", "google_flights"]

    def test_provider_names_are_normalized(self):
        settings = Settings(_env_file=None, quote_providers=" Google_Flights , ,AMADEUS ")
        assert settings.provider_names == ["google_flights", "amadeus"]

    @pytest.mark.parametrize("field", ["check_interval_minutes", "check_concurrency", "history_window", "default_adults"])
    def test_positive_fields(self, field):
        with pytest.raises(ValueError):
            Settings(_env_file=None, **{field: 0})

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, provider_timeout_seconds=0)

    def test_zero_cooldown_allowed(self):
        assert Settings(_env_file=None, alert_cooldown_hours=0).alert_cooldown_hours == 0

    def test_negative_cooldown_rejected(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, alert_cooldown_hours=-1)

    @pytest.mark.parametrize("value", [0, 4])
    def test_mistake_fare_min_history_floor(self, value):
        with pytest.raises(ValueError, match="at least 5"):
            Settings(_env_file=None, mistake_fare_min_history=value)

    @pytest.mark.parametrize("value", [5, 8])
    def test_mistake_fare_min_history_accepted(self, value):
        assert Settings(_env_file=None, mistake_fare_min_history=value).mistake_fare_min_history == value

    def test_prod_rejects_sqlite(self):
        with pytest.raises(ValueError, match="Production requires explicit DATABASE_URL"):
            Settings(_env_file=None, env="prod", database_url="sqlite:///./data/farewatch.db")

    def test_prod_with_postgres(self):
        settings = Settings(_env_file=None, env="prod", database_url="postgresql://u:p@db/farewatch")
        assert settings.env == "prod"

    def test_env_vars_override(self, monkeypatch):
        monkeypatch.setenv("CHECK_CONCURRENCY", "2")
        monkeypatch.setenv("QUOTE_PROVIDERS", "amadeus")

        settings = Settings(_env_file=None)

        assert settings.check_concurrency == 2
        assert settings.provider_names == ["amadeus"]
