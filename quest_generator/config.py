"""Settings from the environment (and .env at the repo root).

Variables:
  QUESTGEN_PROVIDER_URL     base URL of the chat backend
  QUESTGEN_PROVIDER_FORMAT  anthropic | openai | ollama
  QUESTGEN_API_KEY          credential, empty if none
  QUESTGEN_MODEL            model identifier
  QUESTGEN_TIMEOUT          HTTP timeout in seconds
  QUESTGEN_REPLY_TIMEOUT    session-level reply timeout in seconds; unset waits forever
  QUESTGEN_PLAYER_NAME      name used in greetings
  QUESTGEN_PROFILE          player profile text
  QUESTGEN_PROFILE_FILE     file holding the profile; wins over QUESTGEN_PROFILE
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from quest_generator.llm import PROVIDER_FORMATS, HttpLLM

ROOT = Path(__file__).parent.parent

DEFAULT_PROVIDER_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


class Settings(BaseModel):
    provider_url: str = DEFAULT_PROVIDER_URL
    provider_format: str = "anthropic"
    api_key: str = ""
    model: str = DEFAULT_MODEL
    timeout: float = 120.0
    reply_timeout: float | None = None
    player_name: str = ""
    profile: str = ""


def _float_env(name: str, default: float | None) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env_file: Path | None = None) -> Settings:
    """Read Settings from the process environment after loading .env."""
    load_dotenv(env_file or ROOT / ".env")

    provider_format = os.getenv("QUESTGEN_PROVIDER_FORMAT", "anthropic").strip().lower()
    if provider_format not in PROVIDER_FORMATS:
        raise ConfigError(
            f"QUESTGEN_PROVIDER_FORMAT must be one of {', '.join(PROVIDER_FORMATS)}, "
            f"got {provider_format!r}"
        )

    profile = os.getenv("QUESTGEN_PROFILE", "")
    profile_file = os.getenv("QUESTGEN_PROFILE_FILE", "").strip()
    if profile_file:
        path = Path(profile_file)
        if not path.is_file():
            raise ConfigError(f"QUESTGEN_PROFILE_FILE not found: {path}")
        profile = path.read_text(encoding="utf-8")

    return Settings(
        provider_url=os.getenv("QUESTGEN_PROVIDER_URL", DEFAULT_PROVIDER_URL),
        provider_format=provider_format,
        api_key=os.getenv("QUESTGEN_API_KEY", ""),
        model=os.getenv("QUESTGEN_MODEL", DEFAULT_MODEL),
        timeout=_float_env("QUESTGEN_TIMEOUT", 120.0),
        reply_timeout=_float_env("QUESTGEN_REPLY_TIMEOUT", None),
        player_name=os.getenv("QUESTGEN_PLAYER_NAME", ""),
        profile=profile,
    )


def build_llm(settings: Settings) -> HttpLLM:
    return HttpLLM(
        provider_url=settings.provider_url,
        api_key=settings.api_key,
        provider_format=settings.provider_format,
        model=settings.model,
        timeout=settings.timeout,
    )
