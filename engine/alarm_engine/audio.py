"""
Unlock-gated audio session for the synthesized alarm tone
"""

import asyncio
import io
from typing import Optional, Protocol

import pygame

from .logging_utils import get_logger, log_state_change
from .models import AudioPlaybackError, PlaybackState, SessionLock

logger = get_logger(__name__)

DEFAULT_RETRY_DELAY_S = 0.5
DEFAULT_KEEPALIVE_VOLUME = 0.01


class AudioHandle(Protocol):
    """A playback handle whose source is assigned exactly once."""

    def load(self, data: bytes) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def rewind(self) -> None: ...

    def set_loop(self, loop: bool) -> None: ...

    def set_volume(self, volume: float) -> None: ...


class PygameAudioHandle:
    """AudioHandle backed by a ``pygame.mixer.Sound`` built from an in-memory WAV."""

    def __init__(self, name: str = "alarm"):
        self.name = name
        self._sound: Optional[pygame.mixer.Sound] = None
        self._channel: Optional[pygame.mixer.Channel] = None
        self._loop = False
        self._volume = 1.0

    @staticmethod
    def _ensure_mixer() -> None:
        if pygame.mixer.get_init():
            return
        try:
            pygame.mixer.init()
        except pygame.error as e:
            raise AudioPlaybackError(f"audio mixer unavailable: {e}") from e

    def load(self, data: bytes) -> None:
        if self._sound is not None:
            raise AudioPlaybackError(f"{self.name} handle source is already assigned")
        self._ensure_mixer()
        try:
            self._sound = pygame.mixer.Sound(file=io.BytesIO(data))
        except pygame.error as e:
            raise AudioPlaybackError(f"could not load {self.name} buffer: {e}") from e
        self._sound.set_volume(self._volume)

    def play(self) -> None:
        if self._sound is None:
            raise AudioPlaybackError(f"{self.name} handle has no source")
        if self._channel is not None and self._channel.get_busy():
            self._channel.unpause()
            return
        try:
            self._channel = self._sound.play(loops=-1 if self._loop else 0)
        except pygame.error as e:
            raise AudioPlaybackError(f"{self.name} playback rejected: {e}") from e
        if self._channel is None:
            raise AudioPlaybackError(f"no free mixer channel for {self.name}")

    def pause(self) -> None:
        if self._channel is not None:
            self._channel.pause()

    def rewind(self) -> None:
        # A pygame Sound always restarts from its first sample
        if self._channel is not None:
            self._channel.stop()
            self._channel = None

    def set_loop(self, loop: bool) -> None:
        self._loop = loop

    def set_volume(self, volume: float) -> None:
        self._volume = max(0.0, min(1.0, volume))
        if self._sound is not None:
            self._sound.set_volume(self._volume)


class AudioSessionController:
    """
    Two-axis state machine over the alarm and keepalive handles.

    ``SessionLock`` only moves LOCKED -> UNLOCKED; ``PlaybackState`` toggles
    between IDLE and PLAYING. Handle sources are loaded once here and never
    reassigned.
    """

    def __init__(self, alarm_handle: AudioHandle, keepalive_handle: AudioHandle,
                 alarm_tone: bytes, keepalive_tone: bytes,
                 retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
                 keepalive_volume: float = DEFAULT_KEEPALIVE_VOLUME):
        self._alarm = alarm_handle
        self._keepalive = keepalive_handle
        self.retry_delay_s = retry_delay_s
        self.keepalive_volume = keepalive_volume
        self._lock = SessionLock.LOCKED
        self._playback = PlaybackState.IDLE

        for handle, data, name in ((alarm_handle, alarm_tone, "alarm"),
                                   (keepalive_handle, keepalive_tone, "keepalive")):
            try:
                handle.load(data)
            except AudioPlaybackError as e:
                logger.warning(f"Could not load {name} audio buffer: {e}")

    @property
    def state(self):
        return self._lock, self._playback

    def is_unlocked(self) -> bool:
        return self._lock is SessionLock.UNLOCKED

    def is_playing(self) -> bool:
        return self._playback is PlaybackState.PLAYING

    def _set_playback(self, new_state: PlaybackState) -> None:
        if new_state is not self._playback:
            log_state_change(logger, "audio_session", self._playback.value, new_state.value)
            self._playback = new_state

    def unlock(self) -> None:
        """
        Register the handles for later script-initiated playback.

        Must be called synchronously from a user input handler. Failures are
        logged; the session is marked unlocked once both operations are issued.
        """
        if self._lock is SessionLock.UNLOCKED:
            return

        try:
            self._alarm.play()
            self._alarm.pause()
            self._alarm.rewind()
        except AudioPlaybackError as e:
            logger.warning(f"Alarm handle unlock failed: {e}")

        try:
            self._keepalive.set_loop(True)
            self._keepalive.set_volume(self.keepalive_volume)
            self._keepalive.play()
        except AudioPlaybackError as e:
            logger.warning(f"Keepalive loop failed to start: {e}")

        log_state_change(logger, "audio_session", SessionLock.LOCKED.value, SessionLock.UNLOCKED.value)
        self._lock = SessionLock.UNLOCKED

    def _start_alarm(self) -> None:
        self._alarm.rewind()
        self._alarm.set_loop(True)
        self._alarm.set_volume(1.0)
        self._alarm.play()

    async def play(self) -> None:
        """Start the looping alarm tone; retries once and never raises."""
        if self._playback is PlaybackState.PLAYING:
            return
        self._set_playback(PlaybackState.PLAYING)

        try:
            self._start_alarm()
            return
        except AudioPlaybackError as e:
            logger.warning(f"Alarm tone rejected, retrying in {self.retry_delay_s}s: {e}")

        await asyncio.sleep(self.retry_delay_s)
        if self._playback is not PlaybackState.PLAYING:
            logger.debug("Alarm tone retry skipped, session stopped meanwhile")
            return
        try:
            self._start_alarm()
        except AudioPlaybackError as e:
            logger.error(f"Alarm tone could not be started: {e}")

    def stop(self) -> None:
        try:
            self._alarm.pause()
            self._alarm.rewind()
        except AudioPlaybackError as e:
            logger.warning(f"Error while stopping alarm tone: {e}")
        self._set_playback(PlaybackState.IDLE)
