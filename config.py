"""
Configuration loader.
Reads settings from .env and the environment and exposes them as module constants.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

# Anthropic
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
ANTHROPIC_MAX_TOKENS = int(os.getenv("ANTHROPIC_MAX_TOKENS", "1024"))

# Storage
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./reviewreply.db")

# Plans
FREE_MONTHLY_LIMIT = int(os.getenv("FREE_MONTHLY_LIMIT", "10"))

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_PRO_PRICE_ID = os.getenv("STRIPE_PRO_PRICE_ID", "price_pro_monthly")

APP_URL = os.getenv("APP_URL", "http://localhost:3000")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


@dataclass(frozen=True)
class CompletionSettings:
    api_key: str | None
    model: str
    max_tokens: int


def completion_settings() -> CompletionSettings:
    return CompletionSettings(
        api_key=ANTHROPIC_API_KEY,
        model=ANTHROPIC_MODEL,
        max_tokens=ANTHROPIC_MAX_TOKENS,
    )
