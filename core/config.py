"""
Application settings (pydantic-settings v2, nested env keys with ``__``).
"""
import json
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    url: str = "sqlite+aiosqlite:///./payments.db"
    echo: bool = False


class Settings(BaseSettings):
    """Project settings"""

    PROJECT_NAME: str = "Marketplace Payments"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    LOG_LEVEL: Optional[str] = None  # defaults to DEBUG/INFO from DEBUG flag

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    # JSON array or comma separated list
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @property
    def cors_origins(self) -> list[str]:
        s = self.CORS_ORIGINS.strip()
        if s.startswith("[") and s.endswith("]"):
            try:
                arr = json.loads(s)
            except ValueError:
                arr = None
            if isinstance(arr, list):
                return [str(item) for item in arr]
        return [item.strip() for item in s.split(",") if item.strip()]


settings = Settings()
