import os
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict


class Settings(BaseModel):
    """Startup configuration, built once and handed to the store and service."""

    model_config = ConfigDict(frozen=True)

    mongo_url: str = "mongodb://localhost:27017"
    mongo_db: str = "library_db"
    mongo_timeout_ms: int = 5000
    store_backend: str = "mongo"  # "mongo" or "memory"
    daily_fine_rate: Decimal = Decimal("1.00")
    origins: list[str] = []
    log_level: str = "INFO"


def load_settings(env_file: Optional[str] = None) -> Settings:
    load_dotenv(env_file)  # Make sure .env variables are loaded

    # Get origins from .env (comma-separated string)
    origins = os.getenv("origins", "")

    return Settings(
        mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
        mongo_db=os.getenv("MONGO_DB", "library_db"),
        mongo_timeout_ms=int(os.getenv("MONGO_TIMEOUT_MS", "5000")),
        store_backend=os.getenv("STORE_BACKEND", "mongo").lower(),
        daily_fine_rate=Decimal(os.getenv("DAILY_FINE_RATE", "1.00")),
        origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
