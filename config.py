"""
Environment configuration for the sales monitor.

Values are read from the process environment after loading the first `.env`
found in the project directory, this module's directory, or the cwd.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_TZ_OFFSET = "+07:00"
DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
DEFAULT_MODEL = "deepseek-chat"
PLACEHOLDER_KEY_PREFIXES = ("sk-your", "your-")


def _load_env_from_project(project_dir: str | Path) -> None:
    for d in [Path(project_dir), Path(__file__).resolve().parent, Path.cwd()]:
        env_file = d / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            logger.debug("Loaded environment from %s", env_file)
            return


def _get_api_key() -> str | None:
    key = os.getenv("DEEPSEEK_API_KEY")
    if key and key.strip() and not key.strip().startswith(PLACEHOLDER_KEY_PREFIXES):
        return key.strip()
    return None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def _int_env(name: str, default: int) -> int:
    return int(_float_env(name, default))


@dataclass(frozen=True)
class Settings:
    business_tz_offset: str = DEFAULT_TZ_OFFSET
    llm_api_key: str | None = None
    llm_base_url: str = DEFAULT_BASE_URL
    llm_model: str = DEFAULT_MODEL
    llm_timeout_seconds: float = 15.0
    llm_max_retries: int = 1
    llm_retry_backoff_seconds: float = 1.0
    insight_cache_dir: str = os.path.join("outputs", "insights")
    data_dir: str = "data"

    @property
    def has_llm_credential(self) -> bool:
        return bool(self.llm_api_key)


def load_settings(env_dir: str | Path = ".") -> Settings:
    _load_env_from_project(env_dir)
    return Settings(
        business_tz_offset=os.getenv("BUSINESS_TZ_OFFSET") or DEFAULT_TZ_OFFSET,
        llm_api_key=_get_api_key(),
        llm_base_url=os.getenv("DEEPSEEK_BASE_URL") or DEFAULT_BASE_URL,
        llm_model=os.getenv("DEEPSEEK_MODEL") or DEFAULT_MODEL,
        llm_timeout_seconds=_float_env("LLM_TIMEOUT_SECONDS", 15.0),
        llm_max_retries=_int_env("LLM_MAX_RETRIES", 1),
        llm_retry_backoff_seconds=_float_env("LLM_RETRY_BACKOFF_SECONDS", 1.0),
        insight_cache_dir=os.getenv("INSIGHT_CACHE_DIR") or os.path.join("outputs", "insights"),
        data_dir=os.getenv("DATA_DIR") or "data",
    )
