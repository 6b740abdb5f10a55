"""
Per-tick alarm evaluation, snooze overrides and next-occurrence helpers
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Optional, Set, TYPE_CHECKING

from .logging_utils import get_logger, log_trigger
from .models import Alarm, NextAlarm
from .store import AlarmStore

if TYPE_CHECKING:
    from .audio import AudioSessionController
    from .dispatcher import PlaybackDispatcher

logger = get_logger(__name__)

TriggerCallback = Callable[[Alarm], None]

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE


def weekday_index(moment: datetime) -> int:
    """Weekday with 0=Sunday .. 6=Saturday."""
    return moment.isoweekday() % 7


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _hhmm_from_epoch_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%H:%M")


class TriggerScheduler:
    """
    Decides once per tick whether an alarm fires now.

    Holds the dedup keys and the in-memory snooze overrides; one instance is
    constructed per process and driven by the host (see ``AlarmEngine``).
    At most one alarm fires per tick, and ``last_triggered_key`` is shared by
    all alarms, so two alarms with the same time and day never both fire in
    the same minute: only the first in stored order does.
    """

    def __init__(self, store: AlarmStore,
                 clock: Callable[[], datetime] = datetime.now,
                 audio: Optional["AudioSessionController"] = None,
                 dispatcher: Optional["PlaybackDispatcher"] = None):
        self.store = store
        self.clock = clock
        self.audio = audio
        self.dispatcher = dispatcher
        self.last_minute_key = ""
        self.last_triggered_key = ""
        self.snoozed: Dict[str, int] = {}
        self._callback: Optional[TriggerCallback] = None
        self._running = False
        self._pending: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    def start(self, callback: TriggerCallback) -> None:
        """Register the trigger callback and begin accepting ticks."""
        self._callback = callback
        self._running = True
        logger.info("Trigger scheduler started")

    def stop(self) -> None:
        self._running = False
        self._callback = None
        logger.info("Trigger scheduler stopped")

    def tick(self, now: Optional[datetime] = None) -> Optional[Alarm]:
        """
        Evaluate alarms for the current instant.

        Args:
            now: Override for the clock, mainly for tests

        Returns:
            The alarm that fired on this tick, if any
        """
        if not self._running:
            return None

        now = now or self.clock()
        current_time = now.strftime("%H:%M")
        current_day = weekday_index(now)
        date_str = now.date().isoformat()
        minute_key = f"{current_time}-{date_str}"
        trigger_key = f"{minute_key}-{current_day}"

        if minute_key != self.last_minute_key:
            self.last_minute_key = minute_key
            self.last_triggered_key = ""

        if now.second != 0 or trigger_key == self.last_triggered_key:
            return None

        for alarm in self.store.list():
            snooze_ms = self.snoozed.get(alarm.id)
            if snooze_ms is not None:
                # Pending override replaces the normal match for this alarm
                if _hhmm_from_epoch_ms(snooze_ms) != current_time:
                    continue
                del self.snoozed[alarm.id]
                self.last_triggered_key = trigger_key
                log_trigger(logger, alarm.id, trigger_key, "snooze")
                self._fire(alarm)
                return alarm

            if not alarm.enabled:
                continue
            if alarm.time != current_time:
                continue
            if alarm.days and current_day not in alarm.days:
                continue

            self.last_triggered_key = trigger_key
            if alarm.is_one_shot:
                alarm = self.store.set_enabled(alarm.id, False) or alarm.model_copy(update={"enabled": False})
            log_trigger(logger, alarm.id, trigger_key, "schedule", one_shot=alarm.is_one_shot)
            self._fire(alarm)
            return alarm

        return None

    def _fire(self, alarm: Alarm) -> None:
        if self._callback is None:
            return
        try:
            self._callback(alarm)
        except Exception:
            logger.exception(f"Trigger callback failed for alarm {alarm.id}", extra={"alarm_id": alarm.id})

    def snooze(self, alarm_id: str, minutes: int = 5) -> int:
        """
        Delay an alarm by ``minutes`` and silence the current ringing.

        Returns:
            Wake instant in epoch milliseconds
        """
        wake_ms = _epoch_ms(self.clock()) + minutes * MS_PER_MINUTE
        self.snoozed[alarm_id] = wake_ms
        logger.info(f"Snoozed alarm {alarm_id} until {_hhmm_from_epoch_ms(wake_ms)}",
                    extra={"alarm_id": alarm_id})
        self._silence()
        return wake_ms

    def dismiss(self) -> None:
        """Silence the ringing alarm; one-shot alarms were already disabled on fire."""
        self._silence()

    def _silence(self) -> None:
        if self.audio is not None:
            self.audio.stop()
        if self.dispatcher is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop, remote pause skipped")
                return
            task = loop.create_task(self.dispatcher.pause())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def clear_snooze(self, alarm_id: str) -> bool:
        return self.snoozed.pop(alarm_id, None) is not None

    def snoozed_until(self, alarm_id: str) -> Optional[int]:
        return self.snoozed.get(alarm_id)


def next_occurrence(alarms: Iterable[Alarm], now: datetime) -> Optional[NextAlarm]:
    """
    Find the soonest upcoming firing across enabled alarms.

    Day-less alarms fire today if the time is still ahead, else tomorrow.
    Day-scoped alarms take the first of the next seven dates whose weekday
    matches and whose time is still ahead, defaulting to tomorrow.
    """
    closest: Optional[NextAlarm] = None
    for alarm in alarms:
        if not alarm.enabled:
            continue
        hours, minutes = (int(part) for part in alarm.time.split(":"))
        candidate = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)

        if alarm.days:
            for offset in range(7):
                check = now.replace(hour=hours, minute=minutes, second=0, microsecond=0) + timedelta(days=offset)
                if check <= now:
                    continue
                if weekday_index(check) in alarm.days:
                    candidate = check
                    break

        delta_ms = int((candidate - now).total_seconds() * 1000)
        if closest is None or delta_ms < closest.delta_ms:
            closest = NextAlarm(alarm=alarm, at=candidate, delta_ms=delta_ms)
    return closest


def format_relative(ms: int) -> str:
    """Render a duration as ``"Nh Mm"`` or ``"Mm"``."""
    hours = ms // MS_PER_HOUR
    minutes = (ms % MS_PER_HOUR) // MS_PER_MINUTE
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
