"""
Speech synthesis backend interface.

The orchestrator never talks to an audio API directly; it is handed a backend
object that can:
1) speak one utterance and signal when it has finished,
2) cancel whatever is pending or playing,
3) list the voices it offers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from .segmenter import Language


@dataclass(frozen=True)
class Voice:
    """A voice advertised by a backend."""

    name: str
    locale: str
    high_quality: bool = False

    def matches(self, language: Language) -> bool:
        return self.locale.lower().startswith(language.locale_prefix)


@dataclass(frozen=True)
class Utterance:
    """One run, ready for the backend. voice=None means the backend default."""

    text: str
    language: Language
    voice: Optional[Voice]
    rate: float
    pitch: float
    volume: float


# Called once per utterance: with None when it finished, with the error when it failed.
FinishedCallback = Callable[[Optional[BaseException]], None]


class SpeechBackend(Protocol):
    """Capability object injected into SynthesisOrchestrator."""

    @property
    def supported(self) -> bool:
        """False when synthesis is unavailable (no API key, no audio device, ...)."""
        ...

    def speak(self, utterance: Utterance, on_finished: FinishedCallback) -> None:
        """Start speaking; call on_finished exactly once unless cancel() comes first."""
        ...

    def cancel(self) -> None:
        """Stop the active utterance and drop anything pending. May finish asynchronously."""
        ...

    def voices(self) -> List[Voice]:
        ...
