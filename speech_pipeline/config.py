"""
Speech pipeline configuration.

Loads prosody and Google Cloud TTS settings from environment variables.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Local dev convenience; never overrides variables that are already exported.
_root = Path(__file__).parent.parent
for _name in (".env_local", ".env.local"):
    _path = _root / _name
    if _path.exists():
        load_dotenv(_path, override=False)


def _clean_env(key: str) -> Optional[str]:
    """
    Read an environment variable, stripping trailing comments and whitespace.

    "0.9  # slower" -> "0.9", "" -> None
    """
    value = os.environ.get(key)
    if not value:
        return None
    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()
    return value or None


def _parse_int_env(key: str, default: int) -> int:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float_env(key: str, default: float) -> float:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class SpeechConfig:
    """Speech pipeline configuration."""

    # Prosody profile applied to every run; rate < 1.0 is slower than conversation
    rate: float = 0.9
    pitch: float = 1.0
    volume: float = 1.0

    # Voice-name substring treated as "higher quality" when choosing English voices
    preferred_voice_marker: str = "Natural"

    # Google Cloud TTS (REST API with API key authentication)
    google_tts_api_key: Optional[str] = None
    google_tts_voice_ru: str = "ru-RU-Wavenet-D"
    google_tts_voice_en: str = "en-US-Neural2-F"
    google_tts_sample_rate: int = 24000

    @classmethod
    def from_env(cls) -> "SpeechConfig":
        """Load configuration from environment variables."""
        return cls(
            rate=_parse_float_env("TTS_RATE", 0.9),
            pitch=_parse_float_env("TTS_PITCH", 1.0),
            volume=_parse_float_env("TTS_VOLUME", 1.0),
            preferred_voice_marker=_clean_env("TTS_PREFERRED_VOICE_MARKER") or "Natural",
            google_tts_api_key=os.environ.get("GOOGLE_TTS_API_KEY") or os.environ.get("GOOGLE_API_KEY"),
            google_tts_voice_ru=os.environ.get("GOOGLE_TTS_VOICE_RU", "ru-RU-Wavenet-D"),
            google_tts_voice_en=os.environ.get("GOOGLE_TTS_VOICE_EN", "en-US-Neural2-F"),
            google_tts_sample_rate=_parse_int_env("GOOGLE_TTS_SAMPLE_RATE", 24000),
        )


def get_config() -> SpeechConfig:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = SpeechConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[SpeechConfig] = None
