"""
Application configuration using Pydantic Settings.
"""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./reel_studio.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-5-nano"
    LLM_MAX_ATTEMPTS: int = 3
    LLM_RETRY_BASE_DELAY_SECONDS: float = 1.0

    # Generation
    AI_GENERATION_ENABLED: bool = True
    SCRIPT_BATCH_SIZE: int = 3
    SCRIPT_CACHE_TTL_DAYS: int = 7
    SCRIPT_SESSION_LIMIT: int = 500

    # Datasets
    DATASET_CACHE_TTL_SECONDS: int = 3600
    DUPLICATE_SIMILARITY_THRESHOLD: float = 0.85
    RELEVANCE_MATCH_THRESHOLD: float = 0.4
    STATIC_DATASET_PATH: str = str(Path(__file__).parent / "data" / "default_datasets.json")

    # Usage / cost (USD per 1M tokens)
    COST_INPUT_PER_MILLION_TOKENS: float = 0.15
    COST_OUTPUT_PER_MILLION_TOKENS: float = 0.60
    USD_TO_INR: float = 84.0

    # Security
    ADMIN_EMAILS: List[str] = []
    JWT_SECRET: str = "change_me_in_production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24
    AUTO_CREATE_DB_SCHEMA: bool = True

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()


def validate_security_settings() -> None:
    """Fail fast when insecure default secrets are still configured."""
    insecure_values = {
        "",
        "change_me_in_production",
        "your_jwt_secret_change_in_production",
    }
    jwt_secret = (settings.JWT_SECRET or "").strip()

    if jwt_secret in insecure_values or len(jwt_secret) < 24:
        raise ValueError("JWT_SECRET is insecure. Configure a strong non-default secret (>=24 chars).")
