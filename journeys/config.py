# journeys/config.py
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).parent / "data"


class Settings(BaseSettings):
    # ── Database
    DATABASE_PATH: Path = DATA_DIR / "journeys.db"

    # ── HTTP server
    HOST: str = "127.0.0.1"
    PORT: int = 5001
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    # ── Seed admin (created on startup when both are set)
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None
    TOKEN_TTL_HOURS: int = 24 * 7

    # Report unparsable scores as errors instead of reading them as 0
    STRICT_NUMBERS: bool = False

    # ── Client side
    API_BASE_URL: str = "http://127.0.0.1:5001"
    IMAGE_UPLOAD_URL: Optional[str] = None
    HTTP_TIMEOUT: float = 15.0

    model_config = SettingsConfigDict(
        env_prefix="JOURNEYS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
