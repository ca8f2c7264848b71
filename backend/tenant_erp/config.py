"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


DEV_JWT_SECRET_KEY = "dev-only-change-me"


class Settings(BaseSettings):
    """Application settings."""

    # App
    APP_NAME: str = "Tenant_ERP"
    ENV: str = "development"
    DEBUG: bool = True
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Database
    DATABASE_URL: str = "sqlite:///./tenant_erp.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Only trust X-Forwarded-* headers when running behind a trusted reverse proxy.
    TRUST_PROXY_HEADERS: bool = False

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    LOCKOUT_SWEEP_SECONDS: int = 5 * 60

    # JWT
    JWT_SECRET_KEY: str = DEV_JWT_SECRET_KEY
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    JWT_LEEWAY_SECONDS: int = 30  # clock skew tolerance for exp validation

    # Password policy
    PASSWORD_MIN_LENGTH: int = 6
    PASSWORD_MAX_LENGTH: int = 256
    PASSWORD_BCRYPT_ROUNDS: int = 12

    # Auth hardening (rate limits / lockouts)
    AUTH_LOGIN_IP_LIMIT: int = 5
    AUTH_LOGIN_IP_WINDOW_SECONDS: int = 10 * 60
    AUTH_LOGIN_USER_FAIL_THRESHOLD: int = 5
    AUTH_LOGIN_USER_LOCK_SECONDS: int = 15 * 60  # 15 minutes
    RATE_LIMIT_BACKEND: str = "memory"  # "memory" or "redis"
    RATE_LIMIT_SWEEP_SECONDS: int = 5 * 60

    # Session cookie
    AUTH_COOKIE_NAME: str = "auth-token"
    AUTH_COOKIE_PATH: str = "/"
    # Empty means derived from ENV: strict in production, lax otherwise.
    AUTH_COOKIE_SAMESITE: str | None = None
    AUTH_COOKIE_SECURE: bool | None = None

    # Inventory
    INVENTORY_DEFAULT_MIN_STOCK: int = 10

    # Platform operator seeded by seed_data.py
    SUPER_ADMIN_EMAIL: str | None = None
    SUPER_ADMIN_PASSWORD: str | None = None
    SUPER_ADMIN_NAME: str = "Super Admin"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def auth_cookie_samesite(self) -> str:
        if self.AUTH_COOKIE_SAMESITE:
            return self.AUTH_COOKIE_SAMESITE.lower()
        return "strict" if self.is_production else "lax"

    @property
    def auth_cookie_secure(self) -> bool:
        if self.AUTH_COOKIE_SECURE is not None:
            return self.AUTH_COOKIE_SECURE
        return self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
