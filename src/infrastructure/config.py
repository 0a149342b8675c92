# src/infrastructure/config.py

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    stripe_secret_key: str | None
    stripe_webhook_secret: str | None
    currency: str
    app_url: str
    checkout_session_ttl_minutes: int
    jwt_secret: str | None
    jwt_audience: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            currency=os.getenv("STRIPE_CURRENCY", "twd"),
            app_url=os.getenv("APP_URL", "http://localhost:3000"),
            checkout_session_ttl_minutes=int(os.getenv("CHECKOUT_SESSION_TTL_MINUTES", "30")),
            jwt_secret=os.getenv("SUPABASE_JWT_SECRET"),
            jwt_audience=os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated"),
        )


def get_settings() -> Settings:
    return Settings.from_env()
