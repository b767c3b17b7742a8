"""Core configuration settings loaded from environment variables."""
from functools import lru_cache
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Core
    APP_ENV: Literal["development", "staging", "production"] = "development"
    APP_NAME: str = "Batch Campaign Mailer"
    API_V1_PREFIX: str = "/api"
    DEBUG: bool = True
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days
    SITE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Database
    DB_TYPE: Literal["sqlite", "mysql", "postgresql"] = "sqlite"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "mailer"
    DB_USER: str = "mailer"
    DB_PASSWORD: str = "change_me"
    SQLITE_PATH: str = "./data/mailer.db"
    # Full URL override, wins over the DB_* fields when set
    DATABASE_URL: str = ""

    @property
    def SQLALCHEMY_DATABASE_URL(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_TYPE == "sqlite":
            return f"sqlite:///{self.SQLITE_PATH}"
        if self.DB_TYPE == "mysql":
            return f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        return f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Email Sending
    EMAIL_SEND_MODE: Literal["gmail", "mock"] = "gmail"
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GMAIL_API_TIMEOUT_SECONDS: float = 30.0

    # Daily quota per account tier (provider-imposed, per sender identity)
    QUOTA_LIMIT_WORKSPACE: int = 1500
    QUOTA_LIMIT_PERSONAL: int = 400

    # Batching
    DEFAULT_BATCH_SIZE: int = 30
    DEFAULT_BATCH_DELAY_SECONDS: int = 60
    MAX_BATCH_SIZE: int = 100

    # Delay dispatch
    DISPATCH_MODE: Literal["qstash", "local", "disabled"] = "qstash"
    QSTASH_URL: str = "https://qstash.upstash.io"
    QSTASH_TOKEN: str = ""
    QSTASH_CURRENT_SIGNING_KEY: str = ""
    QSTASH_NEXT_SIGNING_KEY: str = ""

    # Sweep
    CRON_SECRET: str = ""
    SWEEP_BATCH_LIMIT: int = 10
    LOCAL_SWEEP_INTERVAL_SECONDS: int = 60  # 0 disables the in-process sweep
    STALE_SENDING_TIMEOUT_SECONDS: int = 900  # sending rows older than this are failed by the sweep

    # Status stream
    STREAM_POLL_INTERVAL_SECONDS: float = 2.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
