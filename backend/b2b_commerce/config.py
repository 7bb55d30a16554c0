from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # cart lifecycle
    DEFAULT_CURRENCY: str = "USD"
    CART_TTL_DAYS: int = 7
    CART_EXPIRY_SWEEP_SECONDS: int = 300
    LOW_STOCK_FACTOR: int = 2
    CHECKOUT_IDEMPOTENCY_ENABLED: bool = True
    # an IN_PROGRESS checkout marker older than this is treated as abandoned
    IDEMPOTENCY_STALE_SECONDS: int = 300

    # remote commerce backend (empty URL disables mirroring)
    COMMERCE_BACKEND_URL: str = ""
    COMMERCE_PUBLISHABLE_KEY: str = ""
    COMMERCE_ADMIN_API_KEY: str = ""
    COMMERCE_DEFAULT_REGION_ID: str = "reg_default"
    COMMERCE_TIMEOUT_SECONDS: float = 5.0
    COMMERCE_RETRY_ATTEMPTS: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
