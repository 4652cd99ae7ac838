"""Application settings loaded from environment variables (or a local .env file)."""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Use PostgreSQL in production, SQLite locally
    database_url: str = Field(default="sqlite:///./recruitflow.db", alias="DATABASE_URL")
    store_timeout_seconds: float = Field(default=5.0, alias="STORE_TIMEOUT_SECONDS")
    search_limit: int = Field(default=500, alias="SEARCH_LIMIT")

    jwt_secret: str = Field(default="", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_allow_origins: str = Field(default="*", alias="CORS_ALLOW_ORIGINS")


settings = Settings()
