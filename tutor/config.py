"""
Tutor configuration.

Loads LLM and server settings from environment variables (optionally from
.env_local / .env.local for local development).
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_root = Path(__file__).parent.parent
for _name in (".env_local", ".env.local"):
    _path = _root / _name
    if _path.exists():
        load_dotenv(_path, override=False)


def _parse_bool_env(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value.split("#")[0].strip().lower() in ("1", "true", "yes", "on")


def _parse_int_env(key: str, default: int) -> int:
    value = os.environ.get(key)
    if not value:
        return default
    value = value.split("#")[0].strip()
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class TutorConfig:
    """Tutor service configuration."""

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_timeout_seconds: int = 30

    # Scenario in tutor/scenarios (<name>.yaml)
    scenario: str = "default"

    # Speak every tutor reply aloud
    auto_speak: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "TutorConfig":
        """Load configuration from environment variables."""
        return cls(
            gemini_api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY"),
            gemini_model=os.environ.get("GEMINI_MODEL", "gemini-1.5-flash"),
            gemini_timeout_seconds=_parse_int_env("GEMINI_TIMEOUT_SECONDS", 30),
            scenario=os.environ.get("TUTOR_SCENARIO", "default"),
            auto_speak=_parse_bool_env("TUTOR_AUTO_SPEAK", False),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_parse_int_env("PORT", 8000),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )


def get_config() -> TutorConfig:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = TutorConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[TutorConfig] = None
