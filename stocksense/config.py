from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==============================
    # Application
    # ==============================
    APP_NAME: str = "StockSense Inventory"
    ENVIRONMENT: str = "local"

    # ==============================
    # Database
    # ==============================
    DATABASE_URL: str = "sqlite:///./inventory.db"
    DB_POOL_TIMEOUT_SECONDS: int = 10
    DB_STATEMENT_TIMEOUT_MS: int = 15_000

    # ==============================
    # Logging
    # ==============================
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ==============================
    # Security
    # ==============================
    API_KEYS: Optional[str] = None
    API_KEY_HEADER: str = "X-API-Key"
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    JWT_ISSUER: Optional[str] = None
    JWT_COMPANY_CLAIM: str = "companyId"

    # ==============================
    # Sensors
    # ==============================
    SENSOR_LISTENER_ENABLED: bool = True
    SENSOR_TOPIC_PREFIX: str = "nexsoft/inventory"
    SENSOR_COMPANY_ID: Optional[int] = None
    SENSOR_QUEUE_SIZE: int = 1000
    CAMERA_PRODUCT_ID: Optional[int] = None
    WEIGHT_CHANNELS: Optional[str] = None
    WEIGHT_JUMP_THRESHOLD: float = 10.0
    WEIGHT_STABLE_COUNT: int = 5

    # ==============================
    # Stock
    # ==============================
    STOCK_LOCK_TIMEOUT_SECONDS: float = 10.0
    EXPIRING_WINDOW_DAYS: int = 7
    DISPLAY_TIMEZONE: str = "America/Mexico_City"

    # ==============================
    # RFID
    # ==============================
    RFID_ENTRY_MODE_DEFAULT: bool = False

    # ==============================
    # Broadcast
    # ==============================
    BROADCAST_QUEUE_SIZE: int = 100

    # ==============================
    # Voice commands
    # ==============================
    VOICE_CLASSIFIER_URL: Optional[str] = None
    VOICE_CLASSIFIER_TOKEN: Optional[str] = None
    VOICE_CLASSIFIER_TIMEOUT_SECONDS: int = 15


def parse_weight_channels(value: Optional[str]) -> dict[str, int]:
    """Parse ``"scale-1:12, scale-2:15"`` into ``{"scale-1": 12, "scale-2": 15}``."""
    channels: dict[str, int] = {}
    if not value:
        return channels
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        channel, sep, product_id = entry.rpartition(":")
        channel = channel.strip()
        if not sep or not channel:
            raise ValueError("WEIGHT_CHANNELS entries must look like channel:product_id")
        channels[channel] = int(product_id)
    return channels


@lru_cache
def get_settings() -> Settings:
    """Cached settings loader (once per process)."""
    return Settings()


__all__ = ["Settings", "get_settings", "parse_weight_channels"]
