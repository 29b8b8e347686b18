"""
Tests for the Google Cloud TTS backend.

Verifies:
- Prosody mapping onto the REST API ranges
- WAV header stripping and edge fades
- supported reflects API key and sink availability
- Each utterance reports completion once, after playback
- cancel() stops playback without a completion signal
"""
import asyncio
import struct

import pytest

from speech_pipeline.backend import Utterance, Voice
from speech_pipeline.config import SpeechConfig
from speech_pipeline.errors import SpeechBackendError
from speech_pipeline.google_cloud_tts import (
    GoogleCloudTTSBackend,
    fade_edges,
    is_high_quality,
    pitch_to_semitones,
    rate_to_speaking_rate,
    strip_wav_header,
    volume_to_gain_db,
)
from speech_pipeline.segmenter import Language


class FakeSink:
    def __init__(self, available=True, block=False):
        self._available = available
        self._block = block
        self.played = []
        self.stop_count = 0

    @property
    def available(self):
        return self._available

    async def play(self, pcm, sample_rate):
        self.played.append((pcm, sample_rate))
        if self._block:
            await asyncio.Event().wait()

    def stop(self):
        self.stop_count += 1


def _utterance(text="hello", language=Language.SECONDARY, voice=None):
    return Utterance(text=text, language=language, voice=voice, rate=0.9, pitch=1.0, volume=1.0)


def test_rate_mapping_clamps():
    assert rate_to_speaking_rate(0.9) == 0.9
    assert rate_to_speaking_rate(0.0) == 0.25
    assert rate_to_speaking_rate(10.0) == 4.0


def test_pitch_mapping():
    assert pitch_to_semitones(1.0) == 0.0
    assert pitch_to_semitones(1.5) == 10.0
    assert pitch_to_semitones(5.0) == 20.0
    assert pitch_to_semitones(-5.0) == -20.0


def test_volume_mapping():
    assert volume_to_gain_db(1.0) == 0.0
    assert volume_to_gain_db(0.0) == -96.0
    assert volume_to_gain_db(0.1) == pytest.approx(-20.0)
    assert volume_to_gain_db(100.0) == 16.0


def test_is_high_quality():
    assert is_high_quality("en-US-Neural2-F")
    assert is_high_quality("ru-RU-Wavenet-D")
    assert not is_high_quality("en-US-Standard-B")


def test_strip_wav_header():
    samples = struct.pack("<4h", 1, 2, 3, 4)
    wav = b"RIFF" + b"\x00" * 4 + b"WAVEfmt " + b"\x00" * 20 + b"data" + struct.pack("<I", len(samples)) + samples
    assert strip_wav_header(wav) == samples
    assert strip_wav_header(samples) == samples


def test_fade_edges_ramps_both_ends():
    sample_rate = 1000
    pcm = struct.pack("<200h", *([10000] * 200))

    faded = struct.unpack("<200h", fade_edges(pcm, sample_rate, fade_ms=20))

    assert faded[0] == 0
    assert faded[-1] == 0
    assert faded[5] < faded[19] < 10000
    assert faded[100] == 10000
    assert len(faded) == 200


def test_fade_edges_empty():
    assert fade_edges(b"", 24000) == b""


def test_supported_requires_key_and_sink():
    assert GoogleCloudTTSBackend(api_key="k", sink=FakeSink()).supported
    assert not GoogleCloudTTSBackend(api_key=None, sink=FakeSink()).supported
    assert not GoogleCloudTTSBackend(api_key="k", sink=FakeSink(available=False)).supported


def test_voice_name_defaults_per_language():
    config = SpeechConfig(google_tts_voice_ru="ru-RU-Wavenet-A", google_tts_voice_en="en-US-Neural2-C")
    backend = GoogleCloudTTSBackend(api_key="k", sink=FakeSink(), config=config)

    assert backend._voice_name(_utterance(language=Language.PRIMARY)) == ("ru-RU-Wavenet-A", "ru-RU")
    assert backend._voice_name(_utterance()) == ("en-US-Neural2-C", "en-US")

    voice = Voice("en-GB-Neural2-B", "en-GB", high_quality=True)
    assert backend._voice_name(_utterance(voice=voice)) == ("en-GB-Neural2-B", "en-GB")


@pytest.mark.asyncio
async def test_speak_plays_then_reports_completion(monkeypatch):
    sink = FakeSink()
    backend = GoogleCloudTTSBackend(api_key="k", sink=sink)

    async def fake_synthesize(utterance):
        return b"\x01\x00\x02\x00"

    monkeypatch.setattr(backend, "synthesize", fake_synthesize)

    finished = []
    backend.speak(_utterance(), finished.append)
    await backend._task

    assert finished == [None]
    assert sink.played == [(b"\x01\x00\x02\x00", 24000)]


@pytest.mark.asyncio
async def test_speak_reports_synthesis_error(monkeypatch):
    backend = GoogleCloudTTSBackend(api_key="k", sink=FakeSink())

    async def failing_synthesize(utterance):
        raise SpeechBackendError("Google Cloud TTS API error: 403", status_code=403)

    monkeypatch.setattr(backend, "synthesize", failing_synthesize)

    finished = []
    backend.speak(_utterance(), finished.append)
    await backend._task

    assert len(finished) == 1
    assert isinstance(finished[0], SpeechBackendError)
    assert finished[0].status_code == 403


@pytest.mark.asyncio
async def test_cancel_stops_playback_silently(monkeypatch):
    sink = FakeSink(block=True)
    backend = GoogleCloudTTSBackend(api_key="k", sink=sink)

    async def fake_synthesize(utterance):
        return b"\x00\x00"

    monkeypatch.setattr(backend, "synthesize", fake_synthesize)

    finished = []
    backend.speak(_utterance(), finished.append)
    task = backend._task
    await asyncio.sleep(0.01)

    backend.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert finished == []
    assert sink.stop_count == 1
