#!/usr/bin/env python3
"""
Integration tests for the WakeWave alarm engine
"""

import asyncio
import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, Mock

# Add engine directory to path (use relative paths)
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root / 'engine'))


class RecordingHandle:
    """In-memory audio handle"""

    def __init__(self):
        self.loaded = None
        self.playing = False
        self.loop = False
        self.volume = 1.0
        self.plays = 0

    def load(self, data):
        self.loaded = data

    def play(self):
        self.plays += 1
        self.playing = True

    def pause(self):
        self.playing = False

    def rewind(self):
        pass

    def set_loop(self, loop):
        self.loop = loop

    def set_volume(self, volume):
        self.volume = volume


class MutableClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestAlarmEngineIntegration(unittest.TestCase):
    """End-to-end: store -> tick -> dispatch -> audio"""

    def setUp(self):
        """Set up an engine with fake audio and no remote playback"""
        from alarm_engine.config import AlarmEngineConfig, Timings, ToneSettings
        from alarm_engine.engine import AlarmEngine

        self.tmp = tempfile.TemporaryDirectory()
        config = AlarmEngineConfig(
            base_dir=self.tmp.name,
            tone=ToneSettings(duration_s=1, fade_in_s=0.5, keepalive_duration_s=1),
            timings=Timings(play_retry_delay_s=0, deep_link_delay_s=0)
        )
        # 2024-01-02 is a Tuesday
        self.clock = MutableClock(datetime(2024, 1, 2, 6, 59, 30))
        self.alarm_handle = RecordingHandle()
        self.keepalive_handle = RecordingHandle()
        self.engine = AlarmEngine(
            config,
            handles=(self.alarm_handle, self.keepalive_handle),
            remote=None,
            clock=self.clock
        )
        self.rings = []

    def tearDown(self):
        self.tmp.cleanup()

    async def _tick_at(self, hour, minute, second=0):
        self.clock.now = self.clock.now.replace(hour=hour, minute=minute, second=second)
        await self.engine._tick_job()
        await asyncio.gather(*list(self.engine._tasks))

    def test_tones_loaded_into_handles(self):
        """Synthesized WAV buffers are assigned at construction"""
        self.assertTrue(self.alarm_handle.loaded.startswith(b"RIFF"))
        self.assertTrue(self.keepalive_handle.loaded.startswith(b"RIFF"))
        self.assertEqual(self.alarm_handle.plays, 0)

    def test_one_shot_alarm_rings_and_is_dismissed(self):
        """A one-shot alarm plays the local tone, disables itself and stops on dismiss"""
        alarm = self.engine.create_alarm(time="07:00", label="Wake up")

        async def scenario():
            self.engine.unlock_audio()
            self.engine.start(on_ring=self.rings.append)
            try:
                await self._tick_at(6, 59, 30)
                self.assertEqual(self.rings, [])

                await self._tick_at(7, 0, 0)
                self.assertEqual([a.id for a in self.rings], [alarm.id])
                self.assertTrue(self.engine.audio.is_playing())
                self.assertTrue(self.alarm_handle.playing)
                self.assertTrue(self.alarm_handle.loop)

                self.engine.dismiss()
                self.assertIsNone(self.engine.ringing)
                self.assertFalse(self.engine.audio.is_playing())
                self.assertFalse(self.alarm_handle.playing)
            finally:
                self.engine.shutdown()

        asyncio.run(scenario())

        self.assertTrue(self.keepalive_handle.playing)
        self.assertFalse(self.engine.store.get(alarm.id).enabled)
        self.assertIsNone(self.engine.next_alarm())

    def test_snooze_rings_again(self):
        """Snoozing the ringing alarm fires it once more five minutes later"""
        alarm = self.engine.create_alarm(time="07:00", days=[2])

        async def scenario():
            self.engine.start(on_ring=self.rings.append)
            try:
                await self._tick_at(7, 0, 0)
                wake_ms = self.engine.snooze()
                self.assertEqual(wake_ms, int(datetime(2024, 1, 2, 7, 5).timestamp() * 1000))
                self.assertFalse(self.engine.audio.is_playing())

                await self._tick_at(7, 4, 0)
                await self._tick_at(7, 5, 0)
                await self._tick_at(7, 5, 0)
            finally:
                self.engine.shutdown()

        asyncio.run(scenario())

        self.assertEqual([a.id for a in self.rings], [alarm.id, alarm.id])
        self.assertTrue(self.engine.store.get(alarm.id).enabled)

    def test_snooze_without_ringing_alarm(self):
        with self.assertRaises(ValueError):
            self.engine.snooze()

    def test_deleting_snoozed_alarm_cancels_snooze(self):
        alarm = self.engine.create_alarm(time="07:00", days=[2])
        self.engine.snooze(alarm.id)

        self.assertTrue(self.engine.delete_alarm(alarm.id))
        self.assertIsNone(self.engine.scheduler.snoozed_until(alarm.id))

    def test_disabling_cancels_snooze(self):
        alarm = self.engine.create_alarm(time="07:00", days=[2])
        self.engine.snooze(alarm.id)

        self.engine.set_enabled(alarm.id, False)

        self.assertIsNone(self.engine.scheduler.snoozed_until(alarm.id))

    def test_track_alarm_falls_back_to_tone_and_deep_link(self):
        """With no streaming service the tone plays and the track link is opened"""
        self.engine.dispatcher._open_link = AsyncMock(return_value=True)
        self.engine.create_alarm(time="07:00", track_uri="spotify:track:abc123")

        async def scenario():
            self.engine.start()
            try:
                await self._tick_at(7, 0, 0)
                await asyncio.sleep(0)
            finally:
                self.engine.shutdown()

        asyncio.run(scenario())

        self.assertEqual(self.alarm_handle.plays, 1)
        self.engine.dispatcher._open_link.assert_awaited_once_with(
            "spotify:track:abc123", is_mobile=False, web_delay_s=0
        )

    def test_remote_playback_preferred(self):
        """A configured remote service takes precedence over the local tone"""
        from alarm_engine.models import CloudDevice

        remote = Mock()
        remote.list_active_devices.return_value = [CloudDevice(id="d1", name="Speaker", is_active=True)]
        self.engine.remote = remote
        self.engine.dispatcher.remote = remote
        self.engine.create_alarm(time="07:00", track_uri="spotify:track:abc123")

        async def scenario():
            self.engine.start()
            try:
                await self._tick_at(7, 0, 0)
            finally:
                self.engine.shutdown()

        asyncio.run(scenario())

        remote.play_on_device.assert_called_once_with("d1", "spotify:track:abc123")
        self.assertEqual(self.alarm_handle.plays, 0)

    def test_next_alarm(self):
        self.engine.create_alarm(time="06:30", days=[1, 3])
        upcoming = self.engine.next_alarm(datetime(2024, 1, 2, 8, 0))
        self.assertEqual(upcoming.at, datetime(2024, 1, 3, 6, 30))
        self.assertEqual(upcoming.delta_ms, 81_000_000)


if __name__ == '__main__':
    unittest.main()
