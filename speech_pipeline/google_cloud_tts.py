"""
Google Cloud Text-to-Speech backend via REST API.

Uses API key authentication (not service account JSON) for simplicity.
Each utterance is synthesized as LINEAR16 PCM, edge-faded to avoid clicks, and
handed to an AudioSink. Completion is reported through the orchestrator's
callback once the sink has finished playing.
"""
import asyncio
import base64
import math
import os
import struct
import time
from typing import List, Optional, Tuple

import aiohttp

from logging_setup import get_logger, Component

from .backend import FinishedCallback, Utterance, Voice
from .config import SpeechConfig
from .errors import SpeechBackendError
from .segmenter import Language
from .sinks import AudioSink

logger = get_logger(Component.TTS)

SYNTHESIZE_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"
VOICES_URL = "https://texttospeech.googleapis.com/v1/voices"

# Voice families Google sells as its premium tiers
HIGH_QUALITY_MARKERS = ("Neural2", "Wavenet", "Studio", "Chirp", "Journey")


def is_high_quality(voice_name: str) -> bool:
    return any(marker in voice_name for marker in HIGH_QUALITY_MARKERS)


def rate_to_speaking_rate(rate: float) -> float:
    """Google accepts 0.25 - 4.0; 1.0 is normal speed."""
    return max(0.25, min(4.0, rate))


def pitch_to_semitones(pitch: float) -> float:
    """Map a 0 - 2 pitch factor (1.0 = neutral) onto Google's -20 .. 20 semitones."""
    return max(-20.0, min(20.0, (pitch - 1.0) * 20.0))


def volume_to_gain_db(volume: float) -> float:
    """Map a 0 - 1 volume factor onto Google's -96 .. 16 dB gain."""
    if volume <= 0:
        return -96.0
    return max(-96.0, min(16.0, 20.0 * math.log10(volume)))


def strip_wav_header(audio: bytes) -> bytes:
    """LINEAR16 responses carry a RIFF header; return only the sample data."""
    if audio[:4] != b"RIFF":
        return audio
    idx = audio.find(b"data", 12)
    if idx == -1:
        return audio
    return audio[idx + 8:]


def fade_edges(pcm: bytes, sample_rate: int, fade_ms: int = 20) -> bytes:
    """
    Apply a short fade-in (quadratic) and fade-out (linear) to 16-bit PCM.

    Consecutive runs are played back to back; without the fades every run
    boundary produces an audible click.
    """
    num_samples = len(pcm) // 2
    if num_samples == 0:
        return pcm

    samples = list(struct.unpack(f"<{num_samples}h", pcm[:num_samples * 2]))
    fade = min(num_samples // 2, sample_rate * fade_ms // 1000)

    for i in range(fade):
        samples[i] = int(samples[i] * (i / fade) ** 2)
        samples[num_samples - 1 - i] = int(samples[num_samples - 1 - i] * (i / fade))

    return struct.pack(f"<{num_samples}h", *samples)


class GoogleCloudTTSBackend:
    """SpeechBackend implementation on top of the Google Cloud TTS REST API."""

    def __init__(self, *, api_key: Optional[str], sink: AudioSink, config: Optional[SpeechConfig] = None):
        self._api_key = api_key
        self._sink = sink
        self._config = config or SpeechConfig()
        self._sample_rate = self._config.google_tts_sample_rate
        self._voices: List[Voice] = []
        self._task: Optional[asyncio.Task] = None

        # Connection pooling
        self._http_session: Optional[aiohttp.ClientSession] = None

        if not self._api_key:
            logger.warning("GOOGLE_TTS_API_KEY not set; speech synthesis disabled")

    @property
    def supported(self) -> bool:
        return bool(self._api_key) and self._sink.available

    def voices(self) -> List[Voice]:
        return list(self._voices)

    def speak(self, utterance: Utterance, on_finished: FinishedCallback) -> None:
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._speak(utterance, on_finished))

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self._sink.stop()

    async def _speak(self, utterance: Utterance, on_finished: FinishedCallback) -> None:
        try:
            pcm = await self.synthesize(utterance)
            await self._sink.play(pcm, self._sample_rate)
        except asyncio.CancelledError:
            # Cancelled runs never report completion
            raise
        except Exception as e:
            on_finished(e)
            return
        on_finished(None)

    def _voice_name(self, utterance: Utterance) -> Tuple[str, str]:
        if utterance.voice is not None:
            return utterance.voice.name, utterance.voice.locale
        if utterance.language is Language.PRIMARY:
            return self._config.google_tts_voice_ru, Language.PRIMARY.value
        return self._config.google_tts_voice_en, Language.SECONDARY.value

    def _get_or_create_session(self) -> aiohttp.ClientSession:
        """Shared HTTP session; reuses TCP connections between runs."""
        if self._http_session is None or self._http_session.closed:
            pool_size = int(os.getenv("GOOGLE_TTS_CONNECTION_POOL_SIZE", "10"))
            connect_timeout = float(os.getenv("GOOGLE_TTS_CONNECTION_TIMEOUT", "3.0"))
            total_timeout = float(os.getenv("GOOGLE_TTS_CONNECTION_TOTAL_TIMEOUT", "10.0"))

            connector = aiohttp.TCPConnector(
                limit=pool_size,
                limit_per_host=pool_size,
                ttl_dns_cache=300,
            )
            self._http_session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=total_timeout, connect=connect_timeout),
            )
            logger.info(
                "TTS connection pool created",
                pool_size=pool_size,
                connect_timeout_ms=int(connect_timeout * 1000),
                total_timeout_ms=int(total_timeout * 1000),
            )
        return self._http_session

    async def load_voices(self) -> List[Voice]:
        """
        Fetch the Russian and English voices the API offers.

        Failures leave the list empty; the orchestrator then falls back to the
        configured default voice names.
        """
        session = self._get_or_create_session()
        try:
            async with session.get(VOICES_URL, params={"key": self._api_key}) as response:
                if response.status != 200:
                    logger.warning("Google Cloud TTS voice listing failed", status_code=response.status)
                    return self.voices()
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Google Cloud TTS voice listing failed", error=str(e), error_type=type(e).__name__)
            return self.voices()

        voices = []
        for entry in data.get("voices", []):
            name = entry.get("name", "")
            for code in entry.get("languageCodes", []):
                if code.lower().startswith(("ru", "en")):
                    voices.append(Voice(name=name, locale=code, high_quality=is_high_quality(name)))
        self._voices = voices
        logger.info("TTS voices loaded", voice_count=len(voices))
        return self.voices()

    async def synthesize(self, utterance: Utterance) -> bytes:
        """Synthesize one utterance to 16-bit mono PCM at the configured sample rate."""
        voice_name, language_code = self._voice_name(utterance)
        payload = {
            "input": {"text": utterance.text},
            "voice": {"languageCode": language_code, "name": voice_name},
            "audioConfig": {
                "audioEncoding": "LINEAR16",
                "sampleRateHertz": self._sample_rate,
                "speakingRate": rate_to_speaking_rate(utterance.rate),
                "pitch": pitch_to_semitones(utterance.pitch),
                "volumeGainDb": volume_to_gain_db(utterance.volume),
            },
        }

        logger.debug(
            "TTS call started",
            voice=voice_name,
            language=language_code,
            text_length=len(utterance.text),
        )

        t_start = time.perf_counter()
        session = self._get_or_create_session()
        try:
            async with session.post(SYNTHESIZE_URL, params={"key": self._api_key}, json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(
                        "Google Cloud TTS error",
                        status_code=response.status,
                        error_text=error_text,
                    )
                    raise SpeechBackendError(
                        f"Google Cloud TTS API error: {response.status} - {error_text}",
                        status_code=response.status,
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SpeechBackendError(f"Google Cloud TTS connection error: {e}") from e

        audio_b64 = data.get("audioContent")
        if not audio_b64:
            raise SpeechBackendError("Google Cloud TTS: no audioContent in response")

        pcm = strip_wav_header(base64.b64decode(audio_b64))

        logger.info(
            "TTS call completed",
            voice=voice_name,
            text_length=len(utterance.text),
            audio_bytes=len(pcm),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return fade_edges(pcm, self._sample_rate)

    async def aclose(self) -> None:
        """Close the pooled HTTP session. Safe to call multiple times."""
        self.cancel()
        if self._http_session is not None:
            try:
                await self._http_session.close()
                logger.info("TTS connection pool closed")
            except Exception as e:
                logger.warning(
                    "Error closing TTS HTTP session",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self._http_session = None
