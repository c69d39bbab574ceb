from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database (PostgreSQL, one schema per organization)
    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_CONNECT_TIMEOUT: int = 10

    # JWT issued by the auth service; we only verify it
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"

    # App Configuration
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "PodFlow Budget Service"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Cache / Redis
    REDIS_URL: Optional[str] = None
    REDIS_PASSWORD: Optional[str] = None
    CACHE_TTL_SECONDS: int = 300

    # Multi-tenancy
    TENANT_SCHEMA_PREFIX: str = "org_"

    # Budget rules
    BATCH_UPDATE_LIMIT: int = 100
    MIN_BUDGET_YEAR: int = 2000
    MAX_BUDGET_YEAR: int = 2100

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "https://app.podcastflow.pro",
    ]

    @model_validator(mode='after')
    def assemble_redis_url(self) -> 'Settings':
        if self.REDIS_PASSWORD and self.REDIS_URL:
            # URL already carries credentials
            if "@" in self.REDIS_URL:
                return self

            import urllib.parse
            if "redis://" in self.REDIS_URL:
                encoded_pwd = urllib.parse.quote_plus(self.REDIS_PASSWORD)
                # redis://:PASSWORD@HOST:PORT/DB
                self.REDIS_URL = self.REDIS_URL.replace("redis://", f"redis://:{encoded_pwd}@", 1)
        return self

    @model_validator(mode='after')
    def check_year_bounds(self) -> 'Settings':
        if self.MIN_BUDGET_YEAR > self.MAX_BUDGET_YEAR:
            raise ValueError("MIN_BUDGET_YEAR must not exceed MAX_BUDGET_YEAR")
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
