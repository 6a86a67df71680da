from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # SQLite database file (":memory:" keeps everything in-process)
    database_path: str = "alerts.db"

    # Live-update websocket
    ws_queue_size: int = 100
    stats_broadcast_seconds: int = 30  # 0 disables the periodic stats message

    # FitSMS paging (empty api key or recipient disables it)
    fitsms_url: str = "https://app.fitsms.lk/api/v3/sms/send"
    fitsms_api_key: str = ""
    fitsms_sender_id: str = ""
    sms_recipient: str = ""
    sms_min_severity: str = "info"
    sms_timeout_seconds: float = 15.0

    # OpenAI summarization of SMS bodies (empty key means truncate)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = ""  # Optional OpenAI-compatible proxy URL

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()
