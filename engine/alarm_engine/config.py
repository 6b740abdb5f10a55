"""
Configuration models for the alarm engine
"""

import os
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .models import ToneStyle

logger = logging.getLogger(__name__)

# Use BASE_DIR for all file paths
DEFAULT_BASE_DIR = os.path.join(os.path.expanduser("~"), ".wakewave")
ALARMS_FILENAME = "alarms.json"


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


class SpotifyAuth(BaseModel):
    """Spotify API credentials; token exchange itself is handled by spotipy"""
    client_id: str = Field(default="", description="Spotify app client ID")
    client_secret: str = Field(default="", description="Spotify app client secret")
    redirect_uri: str = Field(default="http://127.0.0.1:8888/callback", description="OAuth redirect URI")
    token_cache: Optional[str] = Field(default=None, description="spotipy token cache path")

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @classmethod
    def from_env(cls, base_dir: Optional[str] = None) -> "SpotifyAuth":
        """Create SpotifyAuth from environment variables"""
        base_dir = base_dir or os.getenv("BASE_DIR", DEFAULT_BASE_DIR)
        return cls(
            client_id=os.getenv("SPOTIFY_CLIENT_ID", ""),
            client_secret=os.getenv("SPOTIFY_CLIENT_SECRET", ""),
            redirect_uri=os.getenv("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8888/callback"),
            token_cache=os.path.join(base_dir, "token.json")
        )


class ToneSettings(BaseModel):
    """Synthesized tone parameters"""
    style: ToneStyle = Field(default=ToneStyle.BEEP, description="Alarm tone pattern")
    sample_rate: int = Field(default=44100, ge=8000, le=96000, description="Alarm tone sample rate")
    duration_s: int = Field(default=120, ge=1, le=600, description="Alarm tone length before it loops")
    fade_in_s: float = Field(default=15.0, ge=0.0, le=120.0, description="Global fade-in duration")
    envelope_ms: float = Field(default=5.0, ge=0.0, le=50.0, description="Per-segment attack/release")
    keepalive_sample_rate: int = Field(default=22050, ge=8000, le=96000, description="Keepalive loop sample rate")
    keepalive_duration_s: int = Field(default=3, ge=1, le=30, description="Keepalive loop length")


class Timings(BaseModel):
    """Timing configuration for scheduling and playback"""
    tick_interval_s: float = Field(default=0.5, gt=0.0, le=1.0, description="Scheduler tick period")
    play_retry_delay_s: float = Field(default=0.5, ge=0.0, le=10.0, description="Delay before retrying a rejected play")
    volume_ramp_s: float = Field(default=30.0, ge=0.0, le=300.0, description="Remote volume ramp duration")
    volume_ramp_steps: int = Field(default=30, ge=1, le=300, description="Remote volume ramp step count")
    deep_link_delay_s: float = Field(default=2.5, ge=0.0, le=30.0, description="Delay before the web URL fallback")
    keepalive_volume: float = Field(default=0.01, gt=0.0, le=1.0, description="Keepalive loop volume")
    snooze_minutes: int = Field(default=5, ge=1, le=120, description="Default snooze length")


class AlarmEngineConfig(BaseModel):
    """Main configuration for the alarm engine"""
    base_dir: str = Field(default=DEFAULT_BASE_DIR, description="Root directory for persisted data")
    spotify: SpotifyAuth = Field(default_factory=SpotifyAuth, description="Spotify credentials")
    tone: ToneSettings = Field(default_factory=ToneSettings, description="Tone synthesis settings")
    timings: Timings = Field(default_factory=Timings, description="Timing configuration")
    is_mobile: bool = Field(default=False, description="Use the app URI scheme before the web URL")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json|text)")

    @property
    def data_dir(self) -> Path:
        return Path(self.base_dir) / "data"

    @property
    def alarms_file(self) -> Path:
        return self.data_dir / ALARMS_FILENAME

    @classmethod
    def from_env(cls) -> "AlarmEngineConfig":
        """Create configuration from environment variables (and a .env file if present)"""
        load_dotenv()
        base_dir = os.getenv("BASE_DIR", DEFAULT_BASE_DIR)
        tone = ToneSettings(
            style=ToneStyle(os.getenv("ALARM_TONE_STYLE", ToneStyle.BEEP.value)),
            duration_s=int(os.getenv("ALARM_TONE_DURATION_S", "120")),
            fade_in_s=float(os.getenv("ALARM_FADE_IN_S", "15.0"))
        )
        timings = Timings(
            tick_interval_s=float(os.getenv("ALARM_TICK_INTERVAL_S", "0.5")),
            play_retry_delay_s=float(os.getenv("ALARM_PLAY_RETRY_DELAY_S", "0.5")),
            volume_ramp_s=float(os.getenv("ALARM_VOLUME_RAMP_S", "30.0")),
            deep_link_delay_s=float(os.getenv("ALARM_DEEP_LINK_DELAY_S", "2.5"))
        )
        config = cls(
            base_dir=base_dir,
            spotify=SpotifyAuth.from_env(base_dir),
            tone=tone,
            timings=timings,
            is_mobile=_env_bool("ALARM_MOBILE", False),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json")
        )
        if not config.spotify.is_configured:
            logger.info("Spotify credentials not set; remote playback disabled")
        return config
