"""
Shared fixtures for alarm engine tests
"""

from datetime import datetime
from typing import List

import pytest

from alarm_engine.config import ToneSettings
from alarm_engine.models import AudioPlaybackError
from alarm_engine.store import AlarmStore


class FakeAudioHandle:
    """Records calls; can be told to reject the next N play() calls."""

    def __init__(self, reject_plays: int = 0, reject_load: bool = False):
        self.calls: List[tuple] = []
        self.loaded = []
        self.reject_plays = reject_plays
        self.reject_load = reject_load
        self.playing = False
        self.loop = False
        self.volume = 1.0

    def load(self, data: bytes) -> None:
        self.calls.append(("load",))
        if self.reject_load:
            raise AudioPlaybackError("mixer unavailable")
        self.loaded.append(data)

    def play(self) -> None:
        self.calls.append(("play",))
        if self.reject_plays > 0:
            self.reject_plays -= 1
            raise AudioPlaybackError("playback not allowed")
        self.playing = True

    def pause(self) -> None:
        self.calls.append(("pause",))
        self.playing = False

    def rewind(self) -> None:
        self.calls.append(("rewind",))

    def set_loop(self, loop: bool) -> None:
        self.calls.append(("set_loop", loop))
        self.loop = loop

    def set_volume(self, volume: float) -> None:
        self.calls.append(("set_volume", volume))
        self.volume = volume

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]


class Clock:
    """Mutable clock for driving the scheduler"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store(tmp_path):
    return AlarmStore(tmp_path / "data" / "alarms.json")


@pytest.fixture
def short_tone():
    return ToneSettings(duration_s=2, fade_in_s=1.0, keepalive_duration_s=1)


@pytest.fixture
def clock():
    # 2024-01-02 is a Tuesday
    return Clock(datetime(2024, 1, 2, 6, 0))


@pytest.fixture
def make_handle():
    return FakeAudioHandle
