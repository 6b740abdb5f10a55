"""
AlarmEngine: wires the store, scheduler, synthesizer, audio session and
playback dispatcher together and drives ticks on the asyncio loop.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional, Set, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .audio import AudioHandle, AudioSessionController, PygameAudioHandle
from .config import AlarmEngineConfig
from .dispatcher import PlaybackDispatcher, RemotePlayback
from .logging_utils import get_logger
from .models import Alarm, NextAlarm
from .scheduler import TriggerScheduler, next_occurrence
from .spotify_api import SpotifyApiWrapper, SpotifyRemotePlayback
from .store import AlarmStore
from .synth import ToneSynthesizer

logger = get_logger(__name__)

TICK_JOB_ID = "alarm-tick"
RingCallback = Callable[[Alarm], None]


def build_remote(config: AlarmEngineConfig) -> Optional[SpotifyRemotePlayback]:
    """Spotify remote playback, or None when no credentials are configured."""
    if not config.spotify.is_configured:
        return None
    return SpotifyRemotePlayback(SpotifyApiWrapper(config.spotify))


class AlarmEngine:
    """Host-facing facade over the alarm subsystem"""

    def __init__(self, config: Optional[AlarmEngineConfig] = None,
                 store: Optional[AlarmStore] = None,
                 handles: Optional[Tuple[AudioHandle, AudioHandle]] = None,
                 remote: Any = "auto",
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the engine.

        Args:
            config: Engine configuration; loaded from the environment if omitted
            store: Alarm store; defaults to the JSON file under ``config.data_dir``
            handles: (alarm, keepalive) audio handles; pygame-backed by default
            remote: Remote playback collaborator, None to disable, or "auto" to
                build the Spotify one from the configured credentials
            clock: Source of local wall-clock time
        """
        self.config = config or AlarmEngineConfig.from_env()
        self.store = store or AlarmStore(self.config.alarms_file)
        self.synth = ToneSynthesizer(self.config.tone)

        alarm_handle, keepalive_handle = handles or (PygameAudioHandle("alarm"), PygameAudioHandle("keepalive"))
        timings = self.config.timings
        self.audio = AudioSessionController(
            alarm_handle, keepalive_handle,
            self.synth.alarm_tone(), self.synth.keepalive_tone(),
            retry_delay_s=timings.play_retry_delay_s,
            keepalive_volume=timings.keepalive_volume
        )

        self.remote: Optional[RemotePlayback] = build_remote(self.config) if remote == "auto" else remote
        self.dispatcher = PlaybackDispatcher(
            self.audio, self.remote,
            volume_ramp_s=timings.volume_ramp_s,
            volume_ramp_steps=timings.volume_ramp_steps,
            is_mobile=self.config.is_mobile,
            deep_link_delay_s=timings.deep_link_delay_s
        )
        if isinstance(self.remote, SpotifyRemotePlayback):
            self.remote.on_ready(self.dispatcher.register_local_device)

        self.scheduler = TriggerScheduler(self.store, clock=clock, audio=self.audio, dispatcher=self.dispatcher)
        self.ringing: Optional[Alarm] = None
        self._on_ring: Optional[RingCallback] = None
        self._jobs: Optional[AsyncIOScheduler] = None
        self._tasks: Set[asyncio.Task] = set()

    # --- lifecycle ---

    def start(self, on_ring: Optional[RingCallback] = None) -> None:
        """
        Begin periodic evaluation. Must be called with a running event loop.

        Args:
            on_ring: Called with each fired alarm so the UI can offer
                dismiss/snooze
        """
        loop = asyncio.get_running_loop()
        self._on_ring = on_ring
        self.scheduler.start(self._handle_trigger)
        self._jobs = AsyncIOScheduler(event_loop=loop)
        self._jobs.add_job(
            self._tick_job,
            IntervalTrigger(seconds=self.config.timings.tick_interval_s),
            id=TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=1
        )
        self._jobs.start()
        logger.info(f"Alarm engine started (tick every {self.config.timings.tick_interval_s}s)")

    def shutdown(self) -> None:
        if self._jobs is not None:
            self._jobs.shutdown(wait=False)
            self._jobs = None
        self.scheduler.stop()
        self.audio.stop()
        logger.info("Alarm engine stopped")

    async def _tick_job(self) -> None:
        self.scheduler.tick()

    def _handle_trigger(self, alarm: Alarm) -> None:
        self.ringing = alarm
        task = asyncio.ensure_future(self.dispatcher.dispatch(alarm))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        if self._on_ring is not None:
            self._on_ring(alarm)

    # --- acknowledgement ---

    def unlock_audio(self) -> None:
        """Call synchronously from a user input handler."""
        self.audio.unlock()

    def snooze(self, alarm_id: Optional[str] = None, minutes: Optional[int] = None) -> int:
        """Snooze the given (or currently ringing) alarm; returns the wake instant in epoch ms."""
        alarm_id = alarm_id or (self.ringing.id if self.ringing else None)
        if alarm_id is None:
            raise ValueError("no alarm is ringing and no alarm id was given")
        wake_ms = self.scheduler.snooze(alarm_id, minutes or self.config.timings.snooze_minutes)
        self.ringing = None
        return wake_ms

    def dismiss(self) -> None:
        self.scheduler.dismiss()
        self.ringing = None

    # --- alarm management ---

    def list_alarms(self):
        return self.store.list()

    def create_alarm(self, **fields: Any) -> Alarm:
        return self.store.create(**fields)

    def update_alarm(self, alarm_id: str, **patch: Any) -> Optional[Alarm]:
        alarm = self.store.update(alarm_id, **patch)
        if alarm is not None and patch.get("enabled") is False:
            self.scheduler.clear_snooze(alarm_id)
        return alarm

    def set_enabled(self, alarm_id: str, enabled: bool) -> Optional[Alarm]:
        return self.update_alarm(alarm_id, enabled=bool(enabled))

    def delete_alarm(self, alarm_id: str) -> bool:
        self.scheduler.clear_snooze(alarm_id)
        return self.store.delete(alarm_id)

    def next_alarm(self, now: Optional[datetime] = None) -> Optional[NextAlarm]:
        return next_occurrence(self.store.list(), now or self.scheduler.clock())
