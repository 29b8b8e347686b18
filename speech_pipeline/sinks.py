"""
Audio output for synthesized runs.

A sink receives raw 16-bit mono PCM and plays it; play() returns when playback
has ended, stop() cuts it short.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Protocol

from logging_setup import get_logger, Component

logger = get_logger(Component.AUDIO)


class AudioSink(Protocol):
    @property
    def available(self) -> bool:
        ...

    async def play(self, pcm: bytes, sample_rate: int) -> None:
        ...

    def stop(self) -> None:
        ...


class SoundDeviceSink:
    """
    Local playback through sounddevice (PortAudio).

    sounddevice and numpy are optional ("audio" extra) and imported lazily, so
    servers without an audio device can still import the pipeline.

    stop() bumps a generation counter. A play() whose worker thread has not
    reached sd.play() yet sees the newer generation and never starts, so a
    stop issued between scheduling and playback cannot be lost.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def available(self) -> bool:
        try:
            import sounddevice  # noqa: F401
            import numpy  # noqa: F401
        except (ImportError, OSError):
            return False
        return True

    async def play(self, pcm: bytes, sample_rate: int) -> None:
        if not pcm:
            return
        with self._lock:
            generation = self._generation
        await asyncio.to_thread(self._play_blocking, pcm, sample_rate, generation)

    def _play_blocking(self, pcm: bytes, sample_rate: int, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Playback stopped before it started", generation=generation)
            return

        import numpy as np
        import sounddevice as sd

        samples = np.frombuffer(pcm, dtype=np.int16)
        with self._lock:
            # stop() may have run while numpy was loading
            if generation != self._generation:
                logger.debug("Playback stopped before it started", generation=generation)
                return
            sd.play(samples, samplerate=sample_rate)
        # Returns early when stop() is called from another thread
        sd.wait()

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
        try:
            import sounddevice as sd
        except (ImportError, OSError):
            return
        try:
            sd.stop()
        except Exception as e:
            logger.warning("sounddevice stop failed", error=str(e), error_type=type(e).__name__)
