import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="QIYAS_DATABASE_URL")
    database_pool_size: int = Field(10, alias="QIYAS_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="QIYAS_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="QIYAS_DATABASE_ECHO")
    ai_gateway_url: str = Field(
        "https://api.openai.com/v1/chat/completions",
        alias="QIYAS_AI_GATEWAY_URL",
    )
    ai_api_key: Optional[str] = Field(None, alias="QIYAS_AI_API_KEY")
    ai_model: str = Field("gpt-5-mini", alias="QIYAS_AI_MODEL")
    ai_timeout_ms: int = Field(15000, alias="QIYAS_AI_TIMEOUT_MS")
    api_base_url: str = Field("http://127.0.0.1:8000", alias="QIYAS_API_BASE_URL")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
