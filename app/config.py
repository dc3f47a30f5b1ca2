from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


WEAK_SECRET_KEYS = frozenset({
    "changeme",
    "secret",
    "password",
    "dev",
    "test",
    "development-secret-key-change-in-production",
})


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/push_audience"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Auth (tenant resolution)
    SECRET_KEY: str = "development-secret-key-change-in-production"
    ALGORITHM: str = "HS256"

    # Audience resolution
    STORE_TIMEOUT_SECONDS: float = 10.0
    AUDIENCE_MAX_CONCURRENCY: int = 4

    @field_validator('STORE_TIMEOUT_SECONDS')
    @classmethod
    def validate_store_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("STORE_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator('AUDIENCE_MAX_CONCURRENCY')
    @classmethod
    def validate_max_concurrency(cls, v: int) -> int:
        if not 1 <= v <= 32:
            raise ValueError("AUDIENCE_MAX_CONCURRENCY must be between 1 and 32")
        return v

    # CORS
    FRONTEND_URL: str = "http://localhost:3000"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str | None = None
    DOCS_ENABLED: bool = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT in ("production", "staging")

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo is never enabled in production (statements carry tenant data)."""
        return self.DEBUG and not self.is_production

    @model_validator(mode="after")
    def validate_production_secret(self) -> "Settings":
        """Production tokens must not be verifiable with a guessable key."""
        if self.is_production:
            if self.SECRET_KEY in WEAK_SECRET_KEYS:
                raise ValueError("SECRET_KEY must be changed in production")
            if len(self.SECRET_KEY) < 32:
                raise ValueError("SECRET_KEY must be at least 32 characters in production")
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
