from pathlib import Path
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Supabase settings
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_DB_URL: str
    SUPABASE_JWKS_URL: str | None = None

    # Redis settings (OAuth state storage)
    REDIS_URL: str | None = None
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # Public site
    SITE_BASE_URL: str = "https://ubghub.org"
    API_BASE_URL: str = "http://localhost:8000"
    CORS_ALLOWED_ORIGINS: list[str] = ["https://ubghub.org", "http://localhost:3000"]

    # Directory data
    VOTE_COLLECTION: str = "ubghub"
    SITES_TABLE: str = "ubghub_sites"
    VOTES_TABLE: str = "ubghub_upvotes"

    # Sign-in flow
    OAUTH_PROVIDER: str = "google"
    SIGN_IN_TIMEOUT_SECONDS: float = 900.0  # matches OAuth state TTL
    SESSION_COOKIE_NAME: str = "ubghub_session"
    SESSION_TTL_SECONDS: int = 86400
    MAX_BROWSER_SESSIONS: int = 10000

    # Sitemap job
    SITEMAP_OUTPUT_PATH: str = "sitemap.xml"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # derive sensible defaults if not provided
    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def auth_url(self, path: str) -> str:
        """Build a Supabase Auth REST URL, e.g. auth_url("token")."""
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/{path.lstrip('/')}"

    def auth_callback_url(self) -> str:
        return f"{self.API_BASE_URL.rstrip('/')}/auth/callback"

    def redis_url(self) -> str | None:
        """
        Resolve the Redis connection URL.

        REDIS_URL wins when set; otherwise an Upstash REST endpoint is turned
        into its native TLS form (rediss://default:<token>@<host>:6379).
        """
        if self.REDIS_URL:
            return self.REDIS_URL
        if not self.UPSTASH_REDIS_REST_URL or not self.UPSTASH_REDIS_REST_TOKEN:
            return None
        host = urlparse(self.UPSTASH_REDIS_REST_URL).hostname or self.UPSTASH_REDIS_REST_URL
        return f"rediss://default:{self.UPSTASH_REDIS_REST_TOKEN}@{host}:6379"

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
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
