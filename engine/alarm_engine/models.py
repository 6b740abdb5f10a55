"""
Data models and enums for the alarm engine
"""

import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIME_PATTERN = re.compile(r"[0-9]{2}:[0-9]{2}")
DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


class AlarmEngineError(Exception):
    """Base class for alarm engine errors"""


class AlarmValidationError(AlarmEngineError):
    """Raised when alarm fields fail validation"""


class AudioPlaybackError(AlarmEngineError):
    """Raised by an audio handle when the platform rejects playback"""


class WavFormatError(AlarmEngineError):
    """Raised when a RIFF/WAVE header is malformed or inconsistent"""


class RemotePlaybackError(AlarmEngineError):
    """Raised when the remote streaming service cannot start or stop playback"""


class SessionLock(Enum):
    """Audio session unlock state (one-way)"""
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"


class PlaybackState(Enum):
    """Local alarm tone playback state"""
    IDLE = "IDLE"
    PLAYING = "PLAYING"


class ToneStyle(str, Enum):
    """Pattern used for the synthesized alarm tone"""
    BEEP = "beep"
    CHIME = "chime"


def _new_alarm_id() -> str:
    return uuid.uuid4().hex


def _now_ms() -> int:
    return int(time.time() * 1000)


class Alarm(BaseModel):
    """A persisted alarm: time of day, optional recurrence days and a track payload"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=_new_alarm_id, description="Opaque unique identifier")
    time: str = Field(..., description="Local wall-clock time, HH:MM")
    days: List[int] = Field(default_factory=list, description="Weekdays 0=Sunday..6=Saturday; empty = one-shot")
    enabled: bool = Field(default=True)
    label: str = Field(default="")
    track_uri: str = Field(default="", alias="trackUri")
    track_name: str = Field(default="", alias="trackName")
    track_artist: str = Field(default="", alias="trackArtist")
    track_image: str = Field(default="", alias="trackImage")
    created_at: int = Field(default_factory=_now_ms, alias="createdAt", description="Creation time, epoch ms")

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not TIME_PATTERN.fullmatch(value):
            raise ValueError(f"time must be HH:MM, got {value!r}")
        hours, minutes = int(value[:2]), int(value[3:])
        if hours > 23 or minutes > 59:
            raise ValueError(f"time out of range: {value!r}")
        return value

    @field_validator("days")
    @classmethod
    def _check_days(cls, value: List[int]) -> List[int]:
        unique: List[int] = []
        for day in value:
            if day < 0 or day > 6:
                raise ValueError(f"weekday index out of range: {day}")
            if day not in unique:
                unique.append(day)
        return unique

    @property
    def is_one_shot(self) -> bool:
        return not self.days

    @property
    def track_id(self) -> Optional[str]:
        """Track id from a ``spotify:track:<id>`` URI, if present"""
        parts = self.track_uri.split(":")
        if len(parts) >= 3 and parts[2]:
            return parts[2]
        return None

    def to_record(self) -> Dict[str, Any]:
        """Serialize using the persisted (camelCase) field names"""
        return self.model_dump(by_alias=True)


@dataclass
class CloudDevice:
    """Spotify Web API device representation"""
    id: str
    name: str
    is_active: bool
    volume_percent: Optional[int] = None
    device_type: Optional[str] = None
    is_restricted: bool = False

    @classmethod
    def from_spotify_dict(cls, device_dict: Dict[str, Any]) -> "CloudDevice":
        """Create CloudDevice from Spotify API response"""
        return cls(
            id=device_dict["id"],
            name=device_dict.get("name", ""),
            is_active=device_dict.get("is_active", False),
            volume_percent=device_dict.get("volume_percent"),
            device_type=device_dict.get("type"),
            is_restricted=device_dict.get("is_restricted", False)
        )


@dataclass
class PlaybackResult:
    """Tagged outcome of one playback strategy"""
    ok: bool
    via: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, via: str) -> "PlaybackResult":
        return cls(ok=True, via=via)

    @classmethod
    def failed(cls, error: str) -> "PlaybackResult":
        return cls(ok=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "via": self.via, "error": self.error}


@dataclass
class NextAlarm:
    """Soonest upcoming firing of an enabled alarm"""
    alarm: Alarm
    at: datetime
    delta_ms: int
