from pydantic_settings import BaseSettings
from typing import List
from pydantic import model_validator


DEFAULT_SECRET_KEY = "garmentflow-dev-secret-key-change-in-production"


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./garmentflow.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    ENVIRONMENT: str = "development"
    AUTO_CREATE_TABLES: bool = True
    SECRET_KEY: str = DEFAULT_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    DEBUG: bool = True
    APP_NAME: str = "GarmentFlow"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    ENABLE_REQUEST_ID: bool = True
    ENABLE_REQUEST_LOGGING: bool = True
    ENABLE_SECURITY_HEADERS: bool = True
    STRICT_TRANSPORT_SECURITY_SECONDS: int = 31536000
    READINESS_CHECK_DATABASE: bool = True
    BATCH_SKU_PREFIX: str = "PROD"
    SKU_SEQUENCE_WIDTH: int = 3

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in {"prod", "production"}

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.lower().startswith("sqlite")

    @model_validator(mode="after")
    def validate_production_safety(self):
        if self.SKU_SEQUENCE_WIDTH < 1:
            raise ValueError("SKU_SEQUENCE_WIDTH must be at least 1.")

        if not self.is_production:
            return self

        if self.is_sqlite:
            raise ValueError("SQLite is not allowed when ENVIRONMENT is production.")

        if self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise ValueError("Default SECRET_KEY is not allowed in production.")

        if self.AUTO_CREATE_TABLES:
            raise ValueError("AUTO_CREATE_TABLES must be false in production; use Alembic migrations.")

        return self


settings = Settings()
