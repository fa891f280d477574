"""Application configuration"""
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BOOKING_", env_file=".env", extra="ignore")

    # ---- App ----
    APP_NAME: str = "Space Booking API"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # ---- Ledger ----
    # Tolerance when comparing a new payment against the remaining balance
    PAYMENT_EPSILON: Decimal = Decimal("0.0001")
    # Currency precision of computed totals
    AMOUNT_PLACES: int = 2


@lru_cache
def get_settings() -> Settings:
    return Settings()
