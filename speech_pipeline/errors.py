"""
Speech pipeline errors.

These are delivered through the orchestrator's error callback; nothing in the
pipeline raises them into the conversation loop.
"""


class SpeechError(Exception):
    """Base class for speech synthesis failures."""


class SpeechUnsupportedError(SpeechError):
    """The backend cannot synthesize at all (no API key, no audio device)."""


class SpeechBackendError(SpeechError):
    """The backend failed while synthesizing or playing an utterance."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
