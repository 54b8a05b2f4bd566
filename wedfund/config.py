"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from wedfund.errors import ConfigurationError


@dataclass(frozen=True)
class GatewayConfig:
    """
    Immutable Pesapal configuration.

    Built once from Settings and injected into the gateway client and the
    payment proxy handlers.
    """

    api_url: str = ""
    consumer_key: str = ""
    consumer_secret: str = ""
    callback_url: str = ""
    cancel_url: str = ""
    ipn_id: str = ""
    country_code: str = "UG"
    billing_city: str = "Kampala"
    billing_postal_code: str = "00000"
    billing_line_1: str = "N/A"
    timeout_seconds: float = 30.0

    def _missing(self, names: List[str]) -> List[str]:
        return [name for name in names if not getattr(self, name)]

    def require_auth(self) -> None:
        """Raise ConfigurationError unless URL, key and secret are set."""
        missing = self._missing(["api_url", "consumer_key", "consumer_secret"])
        if missing:
            raise ConfigurationError(
                "Missing required environment variables for Pesapal: "
                + ", ".join(f"PESAPAL_{name.upper()}" for name in missing)
            )

    def require_order(self) -> None:
        """Raise ConfigurationError unless order submission settings are set."""
        missing = self._missing(["api_url", "callback_url", "cancel_url", "ipn_id"])
        if missing:
            raise ConfigurationError(
                "Missing required environment variables for Pesapal order submission: "
                + ", ".join(f"PESAPAL_{name.upper()}" for name in missing)
            )


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "wedfund"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    site_url: str = "http://localhost:8000"

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Postgres
    database_url: str = ""

    # Redis (gateway token cache)
    redis_url: str = ""

    # Pesapal
    pesapal_api_url: str = ""
    pesapal_consumer_key: str = ""
    pesapal_consumer_secret: str = ""
    pesapal_callback_url: str = ""
    pesapal_cancel_url: str = ""
    pesapal_ipn_id: str = ""
    pesapal_country_code: str = "UG"
    pesapal_billing_city: str = "Kampala"
    pesapal_billing_postal_code: str = "00000"
    pesapal_timeout_seconds: float = 30.0

    # Contributions
    default_currency: str = "UGX"
    default_country_dial_code: str = "256"

    # Admin
    admin_api_key: str = ""

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def gateway_config(self) -> GatewayConfig:
        """Snapshot the Pesapal settings into an immutable config."""
        return GatewayConfig(
            api_url=self.pesapal_api_url,
            consumer_key=self.pesapal_consumer_key,
            consumer_secret=self.pesapal_consumer_secret,
            callback_url=self.pesapal_callback_url,
            cancel_url=self.pesapal_cancel_url,
            ipn_id=self.pesapal_ipn_id,
            country_code=self.pesapal_country_code,
            billing_city=self.pesapal_billing_city,
            billing_postal_code=self.pesapal_billing_postal_code,
            timeout_seconds=self.pesapal_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@lru_cache
def get_gateway_config() -> GatewayConfig:
    """Gateway config built once per process."""
    return get_settings().gateway_config()


settings = get_settings()
