"""
In-memory tone synthesis packaged as RIFF/WAVE (mono, 16-bit PCM)
"""

import math
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from .config import ToneSettings
from .logging_utils import get_logger
from .models import ToneStyle, WavFormatError

logger = get_logger(__name__)

WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
CHANNELS = 1
PCM_FORMAT = 1
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")

BEEP_CYCLE_S = 1.5
BEEP_LENGTH_S = 0.12
BEEP_AMPLITUDE = 0.6
# (start offset within cycle, frequency)
BEEP_PATTERN: List[Tuple[float, float]] = [
    (0.0, 880.0), (0.2, 880.0), (0.4, 880.0),        # A5
    (0.75, 1047.0), (0.95, 1047.0), (1.15, 1047.0),  # C6
]

CHIME_CYCLE_S = 3.0
CHIME_LENGTH_S = 0.8
CHIME_AMPLITUDE = 0.35
CHIME_DECAY = 4.5
CHIME_PATTERN: List[Tuple[float, float]] = [
    (0.0, 1046.50),   # C6
    (0.35, 1318.51),  # E6
    (0.7, 1567.98),   # G6
]


@dataclass
class WavHeader:
    """Decoded canonical 44-byte WAV header"""
    chunk_size: int
    subchunk2_size: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    channels: int

    @property
    def sample_count(self) -> int:
        return self.subchunk2_size // self.block_align


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """
    Package int16 samples into a canonical mono 16-bit PCM WAV container.

    Args:
        samples: Sample values; converted to little-endian int16
        sample_rate: Samples per second

    Returns:
        Header and sample bytes
    """
    data = np.asarray(samples, dtype="<i2").tobytes()
    block_align = CHANNELS * BITS_PER_SAMPLE // 8
    header = _HEADER.pack(
        b"RIFF", 36 + len(data), b"WAVE",
        b"fmt ", 16, PCM_FORMAT, CHANNELS, sample_rate,
        sample_rate * block_align, block_align, BITS_PER_SAMPLE,
        b"data", len(data)
    )
    return header + data


def read_wav_header(data: bytes) -> WavHeader:
    """Decode and sanity-check the header produced by ``encode_wav``."""
    if len(data) < WAV_HEADER_SIZE:
        raise WavFormatError(f"buffer too short for a WAV header: {len(data)} bytes")
    (riff, chunk_size, wave, fmt, fmt_size, audio_format, channels, sample_rate,
     byte_rate, block_align, bits, data_id, data_size) = _HEADER.unpack_from(data)
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_id != b"data":
        raise WavFormatError("missing RIFF/WAVE/fmt/data markers")
    if fmt_size != 16 or audio_format != PCM_FORMAT:
        raise WavFormatError("not a linear PCM fmt chunk")
    if block_align != channels * bits // 8 or byte_rate != sample_rate * block_align:
        raise WavFormatError("inconsistent ByteRate/BlockAlign")
    if chunk_size != 36 + data_size:
        raise WavFormatError(f"ChunkSize {chunk_size} does not match data size {data_size}")
    return WavHeader(
        chunk_size=chunk_size,
        subchunk2_size=data_size,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        channels=channels
    )


def _edge_envelope(length: int, ramp: int) -> np.ndarray:
    """Linear attack/release so segments start and end at zero."""
    envelope = np.ones(length)
    ramp = min(ramp, length // 2)
    if ramp > 0:
        rise = np.arange(ramp) / ramp
        envelope[:ramp] = rise
        envelope[length - ramp:] = rise[::-1]
    return envelope


def _to_pcm16(signal: np.ndarray) -> np.ndarray:
    return np.clip(np.round(signal * 32767.0), -32768, 32767).astype(np.int16)


class ToneSynthesizer:
    """
    Generates the alarm tone and the keepalive loop once and caches them.

    Repeated access returns the same ``bytes`` objects; nothing is regenerated
    per trigger.
    """

    def __init__(self, settings: Optional[ToneSettings] = None):
        self.settings = settings or ToneSettings()
        self._alarm_tone: Optional[bytes] = None
        self._keepalive_tone: Optional[bytes] = None

    @property
    def alarm_sample_count(self) -> int:
        return self.settings.sample_rate * self.settings.duration_s

    def alarm_tone(self) -> bytes:
        if self._alarm_tone is None:
            samples = self._render_alarm()
            self._alarm_tone = encode_wav(samples, self.settings.sample_rate)
            logger.info(
                f"Synthesized {self.settings.style.value} alarm tone: "
                f"{self.settings.duration_s}s, {len(self._alarm_tone)} bytes"
            )
        return self._alarm_tone

    def keepalive_tone(self) -> bytes:
        if self._keepalive_tone is None:
            count = self.settings.keepalive_sample_rate * self.settings.keepalive_duration_s
            self._keepalive_tone = encode_wav(np.zeros(count, dtype=np.int16),
                                              self.settings.keepalive_sample_rate)
            logger.debug(f"Synthesized keepalive loop: {len(self._keepalive_tone)} bytes")
        return self._keepalive_tone

    def write(self, path: Union[str, Path], keepalive: bool = False) -> Path:
        """Write one of the cached tones to disk."""
        path = Path(path)
        path.write_bytes(self.keepalive_tone() if keepalive else self.alarm_tone())
        return path

    def _render_alarm(self) -> np.ndarray:
        rate = self.settings.sample_rate
        if self.settings.style is ToneStyle.CHIME:
            cycle = self._render_cycle(CHIME_CYCLE_S, CHIME_PATTERN, self._chime_segment)
        else:
            cycle = self._render_cycle(BEEP_CYCLE_S, BEEP_PATTERN, self._beep_segment)

        total = self.alarm_sample_count
        repeats = math.ceil(total / len(cycle))
        signal = np.tile(cycle, repeats)[:total]

        fade = int(self.settings.fade_in_s * rate)
        if fade > 0:
            gain = np.minimum(np.arange(total) / fade, 1.0)
            signal = signal * gain
        return _to_pcm16(signal)

    def _render_cycle(self, cycle_s, pattern, segment) -> np.ndarray:
        rate = self.settings.sample_rate
        cycle = np.zeros(int(round(cycle_s * rate)))
        for offset_s, frequency in pattern:
            start = int(round(offset_s * rate))
            tone = segment(frequency)
            end = min(start + len(tone), len(cycle))
            cycle[start:end] += tone[:end - start]
        return cycle

    def _segment_time(self, length_s: float) -> np.ndarray:
        rate = self.settings.sample_rate
        return np.arange(int(round(length_s * rate))) / rate

    def _beep_segment(self, frequency: float) -> np.ndarray:
        t = self._segment_time(BEEP_LENGTH_S)
        ramp = int(self.settings.envelope_ms / 1000.0 * self.settings.sample_rate)
        return BEEP_AMPLITUDE * np.sin(2 * np.pi * frequency * t) * _edge_envelope(len(t), ramp)

    def _chime_segment(self, frequency: float) -> np.ndarray:
        t = self._segment_time(CHIME_LENGTH_S)
        ramp = int(self.settings.envelope_ms / 1000.0 * self.settings.sample_rate)
        wave = np.sin(2 * np.pi * frequency * t) + 0.3 * np.sin(2 * np.pi * 2 * frequency * t)
        decay = np.exp(-CHIME_DECAY * t)
        return CHIME_AMPLITUDE * wave * decay * _edge_envelope(len(t), ramp)
