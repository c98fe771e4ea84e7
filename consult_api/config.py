from decimal import Decimal
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration, read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./consult.db"

    jwt_secret: str = "secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Every booking is charged the same flat fee; consultants have no pricing of their own.
    booking_fee: Decimal = Decimal("100.00")
    cancellation_fee_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)

    cors_origins: List[str] = ["http://localhost:5173"]
    log_level: str = "INFO"
    seed_demo_data: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
