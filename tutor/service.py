"""
Tutor turns: prompt -> Gemini -> tolerant extraction.

TutorService never raises. Provider failures are classified and reported as
events, and the learner gets the default apology reply instead, so the
conversation loop always continues.
"""
import itertools
import time
from typing import Any, Dict, Optional, Sequence

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity, pii_fields
from speech_pipeline.orchestrator import SynthesisOrchestrator

from .conversation import ChatMessage, ConversationManager, Role
from .errors import ConversationNotFoundError, MessageNotFoundError, ProviderErrorHandler
from .extraction import extract_tutor_reply, extract_word_lookup, matching_strategy
from .gemini_client import GeminiClient
from .instructions import build_reply_prompt, build_word_prompt, get_scenario
from .models import DEFAULT_TUTOR_REPLY, EMPTY_WORD_LOOKUP, TutorReply, WordLookup

emitter = EventEmitter(ObsComponent.TUTOR)


class TutorService:
    """Stateless tutor: one LLM call per request."""

    def __init__(self, client: GeminiClient, scenario: Optional[Dict[str, Any]] = None):
        self.client = client
        self.scenario = scenario or get_scenario()
        self._turn_ids = itertools.count(1)
        self.logger = get_logger(LogComponent.TUTOR)

    async def respond(
        self,
        message: str,
        history: Sequence[str] = (),
        session_id: str = "unknown",
    ) -> TutorReply:
        """Tutor reply to message; DEFAULT_TUTOR_REPLY when the provider fails."""
        prompt = build_reply_prompt(message, history, self.scenario)
        raw = await self._complete(prompt, "reply", session_id)
        if raw is None:
            return DEFAULT_TUTOR_REPLY

        reply = extract_tutor_reply(raw)
        if reply is DEFAULT_TUTOR_REPLY:
            self._report_fallback(raw, "reply", session_id)
        return reply

    async def lookup_word(self, word: str, session_id: str = "unknown") -> WordLookup:
        """Phonetic, examples and translation; empty fields when unavailable."""
        prompt = build_word_prompt(word, self.scenario)
        raw = await self._complete(prompt, "word_lookup", session_id)
        if raw is None:
            return EMPTY_WORD_LOOKUP

        lookup = extract_word_lookup(raw)
        if lookup is EMPTY_WORD_LOOKUP:
            self._report_fallback(raw, "word_lookup", session_id)
        return lookup

    async def _complete(self, prompt: str, operation: str, session_id: str) -> Optional[str]:
        correlation_id = f"turn_{next(self._turn_ids)}"
        emitter.emit(
            "llm.request",
            session_id=session_id,
            severity=Severity.INFO,
            correlation_id=correlation_id,
            operation=operation,
            model=self.client.model,
            prompt_length=len(prompt),
        )

        t_start = time.perf_counter()
        try:
            raw = await self.client.complete(prompt)
        except Exception as e:
            category = ProviderErrorHandler.handle_error(
                session_id, e, operation=operation, provider_name="gemini"
            )
            self.logger.warning(
                "LLM call failed, using default reply",
                session_id=session_id,
                operation=operation,
                category=category,
                error_type=type(e).__name__,
            )
            return None

        emitter.emit(
            "llm.response",
            session_id=session_id,
            severity=Severity.INFO,
            correlation_id=correlation_id,
            operation=operation,
            output_length=len(raw),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return raw

    def _report_fallback(self, raw: str, operation: str, session_id: str) -> None:
        emitter.emit(
            "extraction.fallback",
            session_id=session_id,
            severity=Severity.WARN,
            pii=pii_fields("raw_preview"),
            operation=operation,
            strategy=matching_strategy(raw),
            raw_length=len(raw),
            raw_preview=raw[:200],
        )


class TutorSession:
    """
    Conversation loop on top of TutorService.

    With auto_speak on, each tutor reply is handed to the orchestrator; a
    newer reply interrupts the one still playing. Any text or stored message
    can also be spoken on demand, and playback stopped.
    """

    def __init__(
        self,
        service: TutorService,
        conversations: ConversationManager,
        orchestrator: Optional[SynthesisOrchestrator] = None,
        auto_speak: bool = False,
    ):
        self.service = service
        self.conversations = conversations
        self.orchestrator = orchestrator
        self.auto_speak = auto_speak
        self.logger = get_logger(LogComponent.TUTOR)

    async def send(self, conversation_id: str, text: str) -> Optional[ChatMessage]:
        """
        Add the learner's message and the tutor's answer to the conversation.

        Returns the tutor message, or None when text is blank.

        Raises:
            ConversationNotFoundError: unknown conversation_id
        """
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        text = text.strip()
        if not text:
            return None

        # History is taken before the new message is appended
        history = conversation.history_lines()
        conversation.add_message(Role.USER, text)

        reply = await self.service.respond(text, history, session_id=conversation_id)
        message = conversation.add_message(Role.TUTOR, reply.reply, reply=reply)

        if self.auto_speak:
            self.speak_reply(conversation_id, reply)
        return message

    @property
    def speech_supported(self) -> bool:
        return self.orchestrator is not None and self.orchestrator.supported

    @property
    def is_speaking(self) -> bool:
        return self.orchestrator is not None and self.orchestrator.is_speaking

    def speak_reply(self, conversation_id: str, reply: TutorReply) -> None:
        """Start speaking reply without waiting for playback."""
        self.speak_text(reply.reply, session_id=conversation_id)

    def speak_text(self, text: str, session_id: str = "unknown") -> bool:
        """
        Start speaking text, replacing whatever is playing.

        Returns False when no orchestrator is configured or it cannot speak.
        Backend failures are reported as provider.error events.
        """
        if self.orchestrator is None:
            self.logger.debug("No orchestrator configured; not speaking", session_id=session_id)
            return False

        def on_error(error: BaseException) -> None:
            ProviderErrorHandler.handle_error(session_id, error, operation="speak")

        self.orchestrator.speak(text, on_error=on_error)
        return self.orchestrator.supported

    def speak_message(self, conversation_id: str, message_id: str) -> bool:
        """
        Speak one stored message.

        Raises:
            ConversationNotFoundError: unknown conversation_id
            MessageNotFoundError: no such message in the conversation
        """
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        message = conversation.get_message(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        return self.speak_text(message.content, session_id=conversation_id)

    def stop_speaking(self) -> bool:
        """Stop playback. Returns whether anything was playing."""
        if self.orchestrator is None:
            return False
        was_speaking = self.orchestrator.is_speaking
        self.orchestrator.stop()
        if was_speaking:
            self.logger.info("Playback stopped on request")
        return was_speaking
