"""
Runtime configuration

All settings are read from the process environment exactly once, by
Settings.from_env() at startup. Everything else receives the resulting
object explicitly.
"""

import logging
import os
from decimal import Decimal
from typing import List, Mapping, Optional

import structlog
from pydantic import BaseModel, Field


DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5500",
    "http://localhost:5500",
]


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: str = "store"

    razorpay_key_id: str = ""
    razorpay_key_secret: str = Field("", repr=False)
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    currency: str = "INR"

    tax_rate: Decimal = Decimal("0.15")
    free_shipping_threshold: Decimal = Decimal("1000")
    shipping_fee: Decimal = Decimal("50")
    default_country: str = "India"

    cors_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    token_ttl_days: int = Field(7, ge=1)
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {
            "database_url": env.get("DATABASE_URL"),
            "database_name": env.get("DATABASE_NAME"),
            "razorpay_key_id": env.get("RAZORPAY_KEY_ID"),
            "razorpay_key_secret": env.get("RAZORPAY_KEY_SECRET"),
            "razorpay_api_url": env.get("RAZORPAY_API_URL"),
            "token_ttl_days": env.get("TOKEN_TTL_DAYS"),
            "log_level": env.get("LOG_LEVEL"),
            "port": env.get("PORT"),
        }
        origins = env.get("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        return cls(**{k: v for k, v in values.items() if v is not None})


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
