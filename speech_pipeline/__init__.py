"""
Mixed-language speech pipeline for the VictorAI tutor.

    text -> segment() -> [Run(ru-RU), Run(en-US), ...] -> SynthesisOrchestrator -> SpeechBackend

- segmenter: splits text into contiguous Russian / English runs
- orchestrator: speaks runs strictly one after another, with cancellation
- backend / google_cloud_tts / sinks: the synthesis backend and audio output
"""

from .segmenter import Language, Run, segment
from .orchestrator import SynthesisOrchestrator

__all__ = ["Language", "Run", "segment", "SynthesisOrchestrator"]
