from decimal import Decimal
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"
    RESET_DB: bool = False

    # client-local cart cache
    LOCAL_CART_DIR: str = "./.cart_cache"
    DEVICE_ID: Optional[str] = None

    # cart sync
    CART_SYNC_INTERVAL_SECONDS: int = 30
    CART_SYNC_TOLERANCE_SECONDS: int = 5

    # flat rates, minor currency units
    TAX_RATE: Decimal = Decimal("0.18")
    FREE_SHIPPING_THRESHOLD_CENTS: int = 500
    FLAT_SHIPPING_CENTS: int = 50

    COURIER_MOCK_DELAY_MS: int = 0


settings = Settings()
