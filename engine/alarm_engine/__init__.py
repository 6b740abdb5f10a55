"""
Alarm Engine

Fire stored alarms at the top of the matching minute and make sure they are
heard: remote Spotify playback first, a synthesized local tone as fallback.
"""

__version__ = "1.0.0"
__author__ = "WakeWave"

from .config import AlarmEngineConfig
from .dispatcher import PlaybackDispatcher
from .engine import AlarmEngine
from .models import Alarm, PlaybackResult
from .scheduler import TriggerScheduler, format_relative, next_occurrence
from .store import AlarmStore
from .synth import ToneSynthesizer

__all__ = [
    "AlarmEngine",
    "AlarmEngineConfig",
    "AlarmStore",
    "Alarm",
    "PlaybackDispatcher",
    "PlaybackResult",
    "ToneSynthesizer",
    "TriggerScheduler",
    "format_relative",
    "next_occurrence",
]
