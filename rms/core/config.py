from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App settings loaded from environment variables (.env)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "Resource Mobilization System"
    ENV: str = "dev"

    # SECURITY
    SECRET_KEY: str = "CHANGE_ME"
    COOKIE_SECURE: bool = False   # set True behind HTTPS
    COOKIE_SAMESITE: str = "lax"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 12  # 12h

    # CORS
    CORS_ALLOW_ORIGINS: str = "*"  # "*" or "https://a.com,https://b.com"
    CORS_ALLOW_CREDENTIALS: bool = False

    # DATABASE / CACHE
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    REDIS_URL: str = "redis://127.0.0.1:6379/0"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 0.5
    REDIS_RETRY_SECONDS: int = 30  # how long to wait before pinging an unreachable Redis again
    STATS_CACHE_TTL_SECONDS: int = 300

    # RESOURCE FILES
    UPLOAD_DIR: str = "/app/uploads"
    MAX_UPLOAD_MB: int = 50
    RESOURCE_BUCKET: str = ""
    RESOURCE_REGION: str = ""

    # DEV BOOTSTRAP
    AUTO_CREATE_ADMIN: bool = True
    DEFAULT_ADMIN_EMAIL: str = "admin@example.org"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"
    DEFAULT_ADMIN_NAME: str = "System Admin"
    DEFAULT_USER_PASSWORD: str = "ncd@2025"

    # SAMPLE DATA (for local testing)
    AUTO_SEED_SAMPLE: bool = False

    def cors_origins(self) -> list[str]:
        s = (self.CORS_ALLOW_ORIGINS or "").strip()
        if not s or s == "*":
            return ["*"]
        return [x.strip() for x in s.split(",") if x.strip()]


settings = Settings()
