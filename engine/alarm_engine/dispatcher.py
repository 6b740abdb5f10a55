"""
Ordered playback fallback chain for fired alarms
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Protocol, Set

from .audio import AudioSessionController
from .fallback import open_track_deep_link
from .logging_utils import get_logger, log_error, log_playback_event
from .models import Alarm, CloudDevice, PlaybackResult

logger = get_logger(__name__)

VIA_LOCAL_DEVICE = "local_device"
VIA_REMOTE = "remote"
VIA_FALLBACK = "fallback"
VIA_SUPERSEDED = "superseded"

Strategy = Callable[[Alarm], Awaitable[PlaybackResult]]


class RemotePlayback(Protocol):
    """Streaming service operations used by the dispatcher (blocking calls)."""

    def play_on_device(self, device_id: str, track_uri: str) -> None: ...

    def list_active_devices(self) -> List[CloudDevice]: ...

    def pause(self) -> None: ...

    def set_volume(self, volume: float, device_id: Optional[str] = None) -> None: ...


class PlaybackDispatcher:
    """
    Tries each playback strategy in order until one reports success.

    Strategies return a tagged ``PlaybackResult``; an exception or a failed
    result moves on to the next strategy. The local synthesized tone is the
    final fallback and always runs when nothing else succeeded, so
    ``dispatch`` never raises.
    """

    def __init__(self, audio: AudioSessionController,
                 remote: Optional[RemotePlayback] = None,
                 volume_ramp_s: float = 30.0,
                 volume_ramp_steps: int = 30,
                 is_mobile: bool = False,
                 deep_link_delay_s: float = 2.5,
                 open_link: Callable[..., Awaitable[bool]] = open_track_deep_link):
        self.audio = audio
        self.remote = remote
        self.volume_ramp_s = volume_ramp_s
        self.volume_ramp_steps = volume_ramp_steps
        self.is_mobile = is_mobile
        self.deep_link_delay_s = deep_link_delay_s
        self._open_link = open_link
        self.local_device_id: Optional[str] = None
        self._generation = 0
        self._ramp_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self.strategies: List[Strategy] = [self._play_local_device, self._play_remote_device]

    def register_local_device(self, device_id: Optional[str]) -> None:
        """Readiness callback for the local player SDK."""
        self.local_device_id = device_id
        logger.info(f"Local playback device registered: {device_id}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def dispatch(self, alarm: Alarm) -> PlaybackResult:
        """
        Start playback for a fired alarm.

        Args:
            alarm: The alarm that fired

        Returns:
            The successful strategy's result, a ``fallback`` result, or a
            ``superseded`` result if ``pause`` ran while remote attempts were
            in flight
        """
        generation = self._generation
        started = time.monotonic()

        if alarm.track_uri and self.remote is not None:
            for strategy in self.strategies:
                name = getattr(strategy, "__name__", repr(strategy))
                try:
                    result = await strategy(alarm)
                except Exception as e:
                    log_error(logger, alarm.id, e, {"strategy": name})
                    result = None
                # A pause while the strategy was in flight ends this dispatch
                if generation != self._generation:
                    return self._superseded(alarm)
                if result is None:
                    continue
                if result.ok:
                    if result.via == VIA_LOCAL_DEVICE:
                        self._start_volume_ramp()
                    log_playback_event(logger, alarm.id, "started", via=result.via,
                                       duration_ms=int((time.monotonic() - started) * 1000))
                    return result
                logger.warning(f"Strategy {name} failed for alarm {alarm.id}: {result.error}",
                               extra={"alarm_id": alarm.id})

        if generation != self._generation:
            return self._superseded(alarm)
        result = await self._play_fallback(alarm)
        log_playback_event(logger, alarm.id, "started", via=result.via,
                           duration_ms=int((time.monotonic() - started) * 1000))
        return result

    def _superseded(self, alarm: Alarm) -> PlaybackResult:
        logger.info(f"Playback for alarm {alarm.id} superseded by pause", extra={"alarm_id": alarm.id})
        return PlaybackResult(ok=False, via=VIA_SUPERSEDED)

    async def _play_local_device(self, alarm: Alarm) -> PlaybackResult:
        if not self.local_device_id:
            return PlaybackResult.failed("no local playback device registered")
        # Start silent; the ramp brings it up
        try:
            await asyncio.to_thread(self.remote.set_volume, 0.0, self.local_device_id)
        except Exception as e:
            logger.warning(f"Could not preset volume on {self.local_device_id}: {e}")
        await asyncio.to_thread(self.remote.play_on_device, self.local_device_id, alarm.track_uri)
        return PlaybackResult.success(VIA_LOCAL_DEVICE)

    async def _play_remote_device(self, alarm: Alarm) -> PlaybackResult:
        devices = await asyncio.to_thread(self.remote.list_active_devices)
        if not devices:
            return PlaybackResult.failed("no playback devices available")
        device = next((d for d in devices if d.is_active), devices[0])
        await asyncio.to_thread(self.remote.play_on_device, device.id, alarm.track_uri)
        logger.info(f"Playing alarm {alarm.id} on remote device {device.name}", extra={"alarm_id": alarm.id})
        return PlaybackResult.success(VIA_REMOTE)

    async def _play_fallback(self, alarm: Alarm) -> PlaybackResult:
        await self.audio.play()
        if alarm.track_uri:
            self._spawn(self._open_link(alarm.track_uri, is_mobile=self.is_mobile,
                                        web_delay_s=self.deep_link_delay_s))
        return PlaybackResult.success(VIA_FALLBACK)

    def _start_volume_ramp(self) -> None:
        self._cancel_volume_ramp()
        self._ramp_task = self._spawn(self._ramp_volume())

    def _cancel_volume_ramp(self) -> None:
        if self._ramp_task is not None and not self._ramp_task.done():
            self._ramp_task.cancel()
        self._ramp_task = None

    async def _ramp_volume(self) -> None:
        """Raise remote volume from silent to full over ``volume_ramp_s``."""
        steps = max(1, self.volume_ramp_steps)
        interval = self.volume_ramp_s / steps
        try:
            for step in range(1, steps + 1):
                await asyncio.sleep(interval)
                await asyncio.to_thread(self.remote.set_volume, min(step / steps, 1.0))
        except Exception as e:
            logger.warning(f"Volume ramp aborted: {e}")

    async def pause(self) -> None:
        """Silence everything: local tone always, remote playback best-effort."""
        self._generation += 1
        self._cancel_volume_ramp()
        self.audio.stop()
        if self.remote is None:
            return
        try:
            await asyncio.to_thread(self.remote.pause)
        except Exception as e:
            logger.warning(f"Remote pause failed: {e}")
