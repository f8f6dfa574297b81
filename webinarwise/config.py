from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Database / auth settings
    DATABASE_URL: str
    SUPABASE_URL: str | None = None
    SUPABASE_JWKS_URL: str | None = None

    ENCRYPTION_KEY: str | None = None

    # Zoom API settings
    ZOOM_API_BASE_URL: str = "https://api.zoom.us/v2"
    ZOOM_TOKEN_URL: str = "https://zoom.us/oauth/token"
    # Fallback OAuth app credentials for delegated (oauth) connections
    ZOOM_CLIENT_ID: str | None = None
    ZOOM_CLIENT_SECRET: str | None = None
    ZOOM_REQUEST_TIMEOUT: float = 30.0
    ZOOM_MAX_RETRIES: int = 3
    ZOOM_BACKOFF_FACTOR: float = 2.0

    # =================================================================
    # SYNC TUNABLES
    # =================================================================
    SYNC_PAGE_SIZE: int = 100
    SYNC_REPORT_PAGE_SIZE: int = 300
    SYNC_MAX_LIST_PAGES: int = 10
    SYNC_MAX_PARTICIPANT_PAGES: int = 50
    SYNC_REQUEST_DELAY_SECONDS: float = 0.2
    SYNC_LOOKBACK_DAYS: int = 90
    SYNC_LOOKAHEAD_DAYS: int = 30
    SYNC_INCREMENTAL_OVERLAP_HOURS: int = 24
    TOKEN_REFRESH_BUFFER_MINUTES: int = 5
    SCHEDULED_SYNC_INTERVAL_MINUTES: int = 60

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def jwks_url(self) -> str | None:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        if not self.SUPABASE_URL:
            return None
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def database_host(self) -> str | None:
        """Host part of DATABASE_URL, used in startup logs without leaking credentials."""
        try:
            return urlparse(self.DATABASE_URL).hostname
        except ValueError:
            return None

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Development keeps the pool small so several workers can share a local database.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 5, "timeout": 15.0})

        return config


settings = Settings()
