from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./payouts.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Creator Payouts Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Shop (commerce platform) Admin API
    SHOP_DOMAIN: str = ""  # e.g. "my-shop.myshopify.com"
    SHOP_ACCESS_TOKEN: str = ""  # Admin API access token
    SHOP_API_VERSION: str = "2024-10"
    SHOP_BASE_CURRENCY: str = "GBP"  # Currency of computed commissions
    SHOP_REQUEST_TIMEOUT: float = 60.0  # Seconds per HTTP request
    SHOP_REQUEST_INTERVAL: float = 0.6  # Fixed pause between product fetches (~1.6 req/s)

    # Retry / backoff on throttling
    SHOP_MAX_RETRIES: int = 5
    SHOP_RETRY_INITIAL_DELAY: float = 1.5  # Seconds, doubled on every retry
    SHOP_RETRY_MAX_JITTER: float = 0.5  # Seconds of uniform jitter added per retry

    # Order pagination
    ORDERS_PAGE_SIZE: int = 50
    ORDERS_MAX_PAGES: int = 20
    LARGE_RANGE_DAYS: int = 90  # Ranges longer than this use the limits below
    LARGE_RANGE_PAGE_SIZE: int = 20
    LARGE_RANGE_MAX_PAGES: int = 10
    LARGE_RANGE_MAX_ORDERS: int = 30
    LARGE_RANGE_PAGE_DELAY: float = 1.0  # Seconds between pages of a large query

    # Commission & payouts
    COMMISSION_RATE: Decimal = Decimal("0.30")
    PAYOUT_MIN_THRESHOLD: Decimal = Decimal("20.00")  # In SHOP_BASE_CURRENCY
    REFUND_ATTRIBUTION: str = "status_override"  # Options: status_override, line_item_first
    DEFAULT_PAYOUT_METHOD: str = "iban"

    # Cron / batch endpoint protection
    CRON_API_KEY: Optional[str] = None  # When set, batch endpoints require Bearer <key>

    # Monthly payout scheduler
    PAYOUT_SCHEDULER_ENABLED: bool = False
    PAYOUT_CRON_DAY: int = 1  # Day of month to generate the previous month's payouts
    PAYOUT_CRON_HOUR: int = 6
    SCHEDULER_TIMEZONE: str = "Europe/London"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('REFUND_ATTRIBUTION')
    @classmethod
    def validate_refund_attribution(cls, v):
        allowed = {"status_override", "line_item_first"}
        if v not in allowed:
            raise ValueError(f"REFUND_ATTRIBUTION must be one of {sorted(allowed)}")
        return v

    @property
    def shop_configured(self) -> bool:
        return bool(self.SHOP_DOMAIN and self.SHOP_ACCESS_TOKEN)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
