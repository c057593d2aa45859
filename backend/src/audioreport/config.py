"""
Configuration for the audio report pipeline.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from audioreport.errors import ConfigurationError


@dataclass
class Config:
    """Main configuration for the report-and-publish pipeline."""

    # Mux credentials and endpoints
    mux_base_url: str = "https://api.mux.com"
    mux_token_id: Optional[str] = None
    mux_token_secret: Optional[str] = None
    request_timeout_seconds: float = 30.0

    # Upload slot settings
    cors_origin: str = "https://www.streamingportfolio.com"
    playback_policy: str = "signed"  # "public" omits the policy from the request
    poster_image_path: Optional[str] = "/files/images/baby.jpeg"

    # Playback URLs are built as <player_base_url>/player?assetId=<id>
    player_base_url: str = "https://www.streamingportfolio.com"
    min_asset_id_length: int = 20

    # Byte push retry policy
    upload_max_attempts: int = 3
    upload_base_delay_seconds: float = 1.0
    upload_backoff_multiplier: float = 2.0
    upload_timeout_seconds: float = 120.0

    # Asset resolution polling (~60s total)
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 30

    # Analytics fan-out
    fetch_timeout_seconds: float = 30.0
    default_lookback_hours: int = 24

    # Condenser settings (~30 seconds of speech)
    condense_max_words: int = 90
    condense_min_words: int = 75
    gemini_model: str = "gemini-2.5-flash"

    # TTS settings
    tts_provider: str = "gemini"  # "gemini" or "elevenlabs"
    gemini_tts_model: str = "gemini-2.5-flash-tts"
    tts_voice: str = "Kore"
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_voice_id: str = "EXAVITQu4vr4xnSDxMaL"
    audio_sample_rate: int = 24000

    # Optional local copy of every synthesized report
    audio_output_dir: Optional[Path] = None

    @property
    def poster_image_url(self) -> Optional[str]:
        if not self.poster_image_path:
            return None
        return f"{self.player_base_url.rstrip('/')}/{self.poster_image_path.lstrip('/')}"

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config with env-first precedence over the dataclass defaults."""
        _load_env()
        defaults = cls()
        output_dir = (os.environ.get("TTS_TMP_DIR") or "").strip()
        return cls(
            mux_base_url=_env_str("MUX_BASE_URL", defaults.mux_base_url),
            mux_token_id=_env_str("MUX_TOKEN_ID", None),
            mux_token_secret=_env_str("MUX_TOKEN_SECRET", None),
            cors_origin=_env_str("MUX_CORS_ORIGIN", defaults.cors_origin),
            playback_policy=_env_str("MUX_PLAYBACK_POLICY", defaults.playback_policy),
            poster_image_path=_env_str("REPORT_POSTER_IMAGE_PATH", defaults.poster_image_path),
            player_base_url=_env_str("STREAMING_PORTFOLIO_BASE_URL", defaults.player_base_url),
            upload_max_attempts=_env_int("UPLOAD_MAX_ATTEMPTS", defaults.upload_max_attempts),
            poll_interval_seconds=_env_float(
                "UPLOAD_POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds
            ),
            poll_max_attempts=_env_int("UPLOAD_POLL_MAX_ATTEMPTS", defaults.poll_max_attempts),
            gemini_model=_env_str("GEMINI_MODEL", defaults.gemini_model),
            tts_provider=_env_str("TTS_PROVIDER", defaults.tts_provider).lower(),
            gemini_tts_model=_env_str("GEMINI_TTS_MODEL", defaults.gemini_tts_model),
            tts_voice=_env_str("TTS_VOICE", defaults.tts_voice),
            elevenlabs_base_url=_env_str("ELEVENLABS_BASE_URL", defaults.elevenlabs_base_url),
            elevenlabs_model_id=_env_str("ELEVENLABS_MODEL_ID", defaults.elevenlabs_model_id),
            elevenlabs_voice_id=_env_str("ELEVENLABS_VOICE_ID", defaults.elevenlabs_voice_id),
            audio_output_dir=Path(output_dir) if output_dir else None,
        )


def _load_env() -> None:
    try:
        from dotenv import load_dotenv
    except ImportError:
        return
    repo_env = Path(__file__).resolve().parents[3] / ".env"
    if repo_env.exists():
        load_dotenv(dotenv_path=repo_env)
    else:
        load_dotenv()


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    value = (os.environ.get(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return max(1, int(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default


def validate_credential(value: Optional[str], name: str) -> str:
    """Check that a credential looks real without ever echoing it back."""
    key = (value or "").strip()
    if not key:
        raise ConfigurationError(f"{name} is not set")
    if "your_" in key or "_here" in key:
        raise ConfigurationError(f"{name} appears to be a placeholder value")
    if len(key) < 20:
        raise ConfigurationError(f"{name} appears to be too short")
    return key


# Default configuration instance
default_config = Config()
