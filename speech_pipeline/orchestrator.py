"""
Sequential synthesis of language runs.

One SynthesisJob is active at a time. A job walks the runs produced by
segment() strictly in order: run i+1 is handed to the backend only after the
backend reports run i as finished, so audio never overlaps.

Job states:

    IDLE -> PLAYING(0) -> PLAYING(1) -> ... -> DONE
    any PLAYING(i) -> CANCELLED   (stop() or a newer speak())
    any PLAYING(i) -> FAILED      (backend error)

A completion signal is honoured only if it belongs to the active job and to
the run currently playing; anything else is a stale signal from a cancelled or
superseded job and is dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, List, Optional

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity, pii_fields

from .backend import SpeechBackend, Utterance, Voice
from .config import SpeechConfig
from .errors import SpeechUnsupportedError
from .segmenter import Language, Run, segment

CompleteCallback = Callable[[], Any]
ErrorCallback = Callable[[BaseException], Any]


class JobState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(eq=False)
class SynthesisJob:
    """One playback of an ordered run list. Never reused."""

    job_id: str
    runs: List[Run]
    on_complete: Optional[CompleteCallback] = None
    on_error: Optional[ErrorCallback] = None
    voices: List[Voice] = field(default_factory=list)
    cursor: int = 0
    state: JobState = JobState.IDLE
    started_ts: float = 0.0
    # Set while the backend holds the current run
    in_flight: bool = False
    # Set while backend.speak() is on the stack, so a synchronous finish does not recurse
    issuing: bool = False
    # Internal hook fired when the job is cancelled (used by say())
    on_abandon: Optional[Callable[[], None]] = None


def select_voice(voices: List[Voice], language: Language, preferred_marker: str = "Natural") -> Optional[Voice]:
    """
    Pick a voice for a language.

    - Only voices whose locale matches the language are considered.
    - English prefers a higher-quality voice (flagged by the backend, or with
      preferred_marker in its name).
    - No match -> None, which makes the backend use its default voice.
    """
    matching = [v for v in voices if v.matches(language)]
    if not matching:
        return None
    if language is Language.SECONDARY:
        for voice in matching:
            if voice.high_quality or (preferred_marker and preferred_marker in voice.name):
                return voice
    return matching[0]


class SynthesisOrchestrator:
    """
    Speaks mixed-language text through an injected backend.

    Usage:
        orchestrator = SynthesisOrchestrator(backend)
        orchestrator.speak("Привет! How are you?", on_complete=done)
        ...
        orchestrator.stop()          # silent: on_complete never fires

        finished = await orchestrator.say("Спасибо means thank you")
    """

    def __init__(
        self,
        backend: Optional[SpeechBackend],
        config: Optional[SpeechConfig] = None,
        *,
        session_id: str = "unknown",
        now: Callable[[], float] = time.perf_counter,
    ):
        self._backend = backend
        # Capability is checked once; an unsupported backend stays unsupported
        self._supported = backend is not None and bool(backend.supported)
        self._config = config or SpeechConfig()
        self._now = now
        self._job: Optional[SynthesisJob] = None
        self._job_ids = itertools.count(1)

        self.session_id = session_id
        self.emitter = EventEmitter(ObsComponent.SPEECH)
        self.logger = get_logger(LogComponent.SPEECH, session_id=session_id)

    @property
    def is_speaking(self) -> bool:
        return self._job is not None

    @property
    def supported(self) -> bool:
        return self._supported

    # --- Public API ---

    def speak(
        self,
        text: str,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Start speaking text, replacing whatever is playing.

        The replaced job's callbacks are abandoned. on_complete fires once after
        the last run; on_error fires once if the backend fails or is
        unsupported (on_complete is used instead when on_error is None).
        """
        self._cancel_active(reason="superseded")

        if not self._supported:
            self.logger.warning("Speech synthesis not supported; skipping playback")
            error = SpeechUnsupportedError("Speech synthesis is not supported by this backend")
            self.emitter.emit(
                "speech.failed",
                session_id=self.session_id,
                severity=Severity.WARN,
                error=str(error),
                error_type=type(error).__name__,
            )
            self._report_failure(on_complete, on_error, error)
            return

        runs = segment(text)
        if not runs:
            self.logger.debug("Nothing to speak after cleaning", text_length=len(text))
            self._invoke(on_complete)
            return

        job = SynthesisJob(
            job_id=f"speech_{next(self._job_ids)}",
            runs=runs,
            on_complete=on_complete,
            on_error=on_error,
            voices=self._load_voices(),
            state=JobState.PLAYING,
            started_ts=self._now(),
        )
        self._job = job

        self.emitter.emit(
            "speech.started",
            session_id=self.session_id,
            severity=Severity.INFO,
            correlation_id=job.job_id,
            pii=pii_fields("text"),
            text=text,
            text_length=len(text),
            run_count=len(runs),
            languages=[run.language.value for run in runs],
        )
        self._pump(job)

    def stop(self) -> None:
        """Cancel playback immediately. The active job's on_complete is never called."""
        cancelled = self._cancel_active(reason="stopped")
        if not cancelled and self._supported:
            # Nothing of ours is playing, but flush the backend anyway
            self._cancel_backend()

    async def say(self, text: str) -> bool:
        """
        Speak and wait.

        Returns True when every run finished, False when playback was stopped,
        replaced by another speak() or failed. Cancelling the awaiting task
        stops playback.
        """
        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()

        def resolve(result: bool) -> None:
            if not done.done():
                done.set_result(result)

        self.speak(text, on_complete=lambda: resolve(True), on_error=lambda _exc: resolve(False))

        job = self._job
        if job is not None and not done.done():
            job.on_abandon = lambda: resolve(False)

        try:
            return await done
        except asyncio.CancelledError:
            if job is not None and self._job is job:
                self.stop()
            raise

    # --- State machine ---

    def _pump(self, job: SynthesisJob) -> None:
        """Issue the current run unless one is already with the backend."""
        while job.state is JobState.PLAYING and not job.in_flight and job.cursor < len(job.runs):
            index = job.cursor
            run = job.runs[index]
            utterance = Utterance(
                text=run.text,
                language=run.language,
                voice=select_voice(job.voices, run.language, self._config.preferred_voice_marker),
                rate=self._config.rate,
                pitch=self._config.pitch,
                volume=self._config.volume,
            )

            self.emitter.emit(
                "speech.run_started",
                session_id=self.session_id,
                severity=Severity.DEBUG,
                correlation_id=job.job_id,
                run_index=index,
                language=run.language.value,
                voice=utterance.voice.name if utterance.voice else None,
                text_length=len(run.text),
            )

            job.in_flight = True
            job.issuing = True
            try:
                self._backend.speak(utterance, partial(self._on_run_finished, job, index))
            except Exception as e:
                job.issuing = False
                self._fail(job, e)
                return
            job.issuing = False

    def _on_run_finished(self, job: SynthesisJob, index: int, error: Optional[BaseException] = None) -> None:
        if job is not self._job or job.state is not JobState.PLAYING or index != job.cursor:
            self.logger.debug("Ignoring stale completion", job_id=job.job_id, run_index=index)
            return

        if error is not None:
            self._fail(job, error)
            return

        job.in_flight = False
        job.cursor += 1

        if job.cursor >= len(job.runs):
            self._finish(job)
        elif not job.issuing:
            self._pump(job)

    def _finish(self, job: SynthesisJob) -> None:
        job.state = JobState.DONE
        self._job = None
        self.emitter.emit(
            "speech.completed",
            session_id=self.session_id,
            severity=Severity.INFO,
            correlation_id=job.job_id,
            run_count=len(job.runs),
            latency_ms=int((self._now() - job.started_ts) * 1000),
        )
        self._invoke(job.on_complete)

    def _fail(self, job: SynthesisJob, error: BaseException) -> None:
        job.state = JobState.FAILED
        self._job = None
        self.logger.warning(
            "Speech synthesis failed",
            job_id=job.job_id,
            run_index=job.cursor,
            error=str(error),
            error_type=type(error).__name__,
        )
        self.emitter.emit(
            "speech.failed",
            session_id=self.session_id,
            severity=Severity.ERROR,
            correlation_id=job.job_id,
            run_index=job.cursor,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._cancel_backend()
        self._report_failure(job.on_complete, job.on_error, error)

    def _cancel_active(self, *, reason: str) -> bool:
        job = self._job
        if job is None:
            return False

        job.state = JobState.CANCELLED
        self._job = None
        self._cancel_backend()
        self.emitter.emit(
            "speech.cancelled",
            session_id=self.session_id,
            severity=Severity.INFO,
            correlation_id=job.job_id,
            reason=reason,
            runs_completed=job.cursor,
            run_count=len(job.runs),
        )
        if job.on_abandon is not None:
            self._invoke(job.on_abandon)
        return True

    # --- Helpers ---

    def _load_voices(self) -> List[Voice]:
        try:
            return list(self._backend.voices())
        except Exception as e:
            self.logger.warning("Voice listing failed; using backend default voice", error=str(e))
            return []

    def _cancel_backend(self) -> None:
        try:
            self._backend.cancel()
        except Exception as e:
            self.logger.warning("Backend cancel failed", error=str(e), error_type=type(e).__name__)

    def _report_failure(
        self,
        on_complete: Optional[CompleteCallback],
        on_error: Optional[ErrorCallback],
        error: BaseException,
    ) -> None:
        if on_error is not None:
            self._invoke(on_error, error)
        else:
            self._invoke(on_complete)

    def _invoke(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        """Run a caller callback; its exceptions are logged, never propagated."""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            self.logger.exception("Speech callback raised")
