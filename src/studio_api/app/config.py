"""Application settings."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

# Upload cap applied to every multipart file part.
MAX_UPLOAD_BYTES = 50 * 1024 * 1024


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "genai-studio"
    log_level: str = "INFO"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_timeout_s: float = Field(default=120.0, ge=1.0)
    default_text_model: str = "gpt-4o-mini"
    data_dir: Path = Path(".")
    uploads_dir: Path = Path("uploads")
    max_upload_bytes: int = Field(default=MAX_UPLOAD_BYTES, ge=1)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_prefix="STUDIO_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    """Apply process-wide logging format once; later calls are no-ops."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
