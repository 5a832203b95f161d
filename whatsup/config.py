from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    LOG_LEVEL: str = "INFO"

    # XMPP settings
    XMPP_JID: str
    XMPP_PASSWORD: str
    XMPP_HOST: str | None = None
    XMPP_PORT: int = 5222

    # Postgres settings
    DATABASE_URL: str
    AUTO_CREATE_SCHEMA: bool = True

    # HTTP read surface
    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 8000
    PUBLIC_BASE_URL: str

    # Behaviour
    ADMISSION_POLICY: Literal["permissive", "strict"] = "permissive"
    STORE_ERROR_POLICY: Literal["report", "fatal"] = "report"
    REMINDER_INTERVAL_MINUTES: int = 30
    REMINDER_TIMEZONE: str = "UTC"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 4
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def base_url(self) -> str:
        """Public base URL without trailing slash."""
        return self.PUBLIC_BASE_URL.rstrip("/")

    def contact_url(self, jid: str) -> str:
        return f"{self.base_url()}/{jid}"

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # A single bot process never needs many connections locally
            config.update({"min_size": 1, "max_size": 2, "timeout": 15.0})

        return config


settings = Settings()
