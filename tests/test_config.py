"""
Tests for application settings.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from storefront.core.config import DEFAULT_SECRET_KEY, Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None, environment="development")

        assert settings.tax_rate == Decimal("0.15")
        assert settings.flat_shipping == Decimal("10.00")
        assert settings.payment_currency == "cad"
        assert settings.checkout_max_attempts == 3
        assert settings.verify_payment_on_checkout is False

    def test_plain_postgres_url_uses_asyncpg(self):
        settings = Settings(_env_file=None, database_url="postgresql://u:p@db/shop")

        assert settings.database_url == "postgresql+asyncpg://u:p@db/shop"
        assert not settings.is_sqlite

    def test_sqlite_url(self):
        settings = Settings(_env_file=None, database_url="sqlite+aiosqlite:///./shop.db")

        assert settings.is_sqlite

    def test_unsupported_url(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, database_url="mysql://u:p@db/shop")

    def test_default_secret_rejected_in_production(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, environment="production", secret_key=DEFAULT_SECRET_KEY)

    def test_currency_is_lowercased(self):
        assert Settings(_env_file=None, payment_currency="USD").payment_currency == "usd"

    def test_cors_origins_from_string(self):
        settings = Settings(_env_file=None, cors_origins="https://a.test, https://b.test")

        assert settings.cors_origins == ["https://a.test", "https://b.test"]

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("APP_TAX_RATE", "0.13")
        monkeypatch.setenv("APP_CHECKOUT_MAX_ATTEMPTS", "5")

        settings = Settings(_env_file=None)

        assert settings.tax_rate == Decimal("0.13")
        assert settings.checkout_max_attempts == 5
