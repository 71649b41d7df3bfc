"""
Service configuration, read from the environment (and a local .env file)
"""
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings(BaseModel):
    completion_provider: str = "anthropic"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = "deepseek-chat"
    llm_temperature: float = 0.3
    llm_timeout_seconds: float = 30.0

    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_bucket: str = "my-todo"

    timezone: str = "Asia/Shanghai"
    log_level: str = "INFO"
    port: int = 8000


def load_settings() -> Settings:
    return Settings(
        completion_provider=os.getenv("COMPLETION_PROVIDER", "anthropic").strip().lower(),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        openai_model=os.getenv("OPENAI_MODEL", "deepseek-chat"),
        llm_temperature=_env_float("LLM_TEMPERATURE", 0.3),
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 30.0),
        supabase_url=os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL"),
        supabase_anon_key=os.getenv("SUPABASE_ANON_KEY") or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY"),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        supabase_bucket=os.getenv("SUPABASE_BUCKET", "my-todo"),
        timezone=os.getenv("TODO_TIMEZONE", "Asia/Shanghai"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        port=int(os.getenv("PORT", "8000")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
