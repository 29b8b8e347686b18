"""
Provider error handling for the tutor.

Maps LLM and TTS provider failures to stable categories without crashing the
conversation loop, and provides the English message shown to the learner.
"""
import asyncio
from typing import Optional

from observability.events import Component, EventEmitter, Severity
from speech_pipeline.errors import SpeechError, SpeechUnsupportedError


class TutorError(Exception):
    """Base class for tutor-side failures."""


class LLMClientError(TutorError):
    """The LLM provider call failed (HTTP error, transport error, empty answer)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMNotConfiguredError(LLMClientError):
    """No API key was provided for the LLM provider."""


class ConversationNotFoundError(TutorError):
    """No live conversation has the given id."""


class MessageNotFoundError(TutorError):
    """The conversation has no message with the given id."""


class ProviderErrorCategory:
    """Stable error categories."""

    # Setup
    AUTH_FAILED = "provider.auth_failed"
    MISCONFIGURED = "provider.misconfigured"
    NETWORK_ERROR = "provider.network_error"

    # Limits / throttling
    RATE_LIMITED = "provider.rate_limited"
    CAPACITY_LIMITED = "provider.capacity_limited"

    # Content
    BLOCKED = "llm.blocked"

    # Speech
    SPEECH_UNSUPPORTED = "speech.unsupported"
    SPEECH_FAILED = "speech.failed"

    UNKNOWN_ERROR = "provider.unknown_error"


_STATUS_CATEGORIES = {
    400: ProviderErrorCategory.MISCONFIGURED,
    401: ProviderErrorCategory.AUTH_FAILED,
    403: ProviderErrorCategory.AUTH_FAILED,
    404: ProviderErrorCategory.MISCONFIGURED,
    429: ProviderErrorCategory.RATE_LIMITED,
    503: ProviderErrorCategory.CAPACITY_LIMITED,
}

emitter = EventEmitter(Component.TUTOR)


class ProviderErrorHandler:
    """Classifies provider errors and reports them as events."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """Classify an error into a stable category string."""
        if isinstance(error, LLMNotConfiguredError):
            return ProviderErrorCategory.MISCONFIGURED
        if isinstance(error, SpeechUnsupportedError):
            return ProviderErrorCategory.SPEECH_UNSUPPORTED

        status_code = getattr(error, "status_code", None)
        if status_code in _STATUS_CATEGORIES:
            return _STATUS_CATEGORIES[status_code]

        error_str = str(error).lower()

        if "api key" in error_str or "unauthorized" in error_str or "permission" in error_str:
            return ProviderErrorCategory.AUTH_FAILED

        if "rate limit" in error_str or "quota" in error_str or "resource_exhausted" in error_str:
            return ProviderErrorCategory.RATE_LIMITED

        if "overloaded" in error_str or "unavailable" in error_str:
            return ProviderErrorCategory.CAPACITY_LIMITED

        if "timeout" in error_str or "connection" in error_str or isinstance(error, (TimeoutError, asyncio.TimeoutError)):
            return ProviderErrorCategory.NETWORK_ERROR

        if "blocked" in error_str or "safety" in error_str:
            return ProviderErrorCategory.BLOCKED

        if isinstance(error, SpeechError):
            return ProviderErrorCategory.SPEECH_FAILED

        return ProviderErrorCategory.UNKNOWN_ERROR

    @staticmethod
    def handle_error(
        session_id: str,
        error: BaseException,
        operation: str,
        provider_name: Optional[str] = None,
    ) -> str:
        """
        Emit an error event and return the category. Never raises.
        """
        category = ProviderErrorHandler.classify_error(error)

        detail = str(error)
        # API keys travel as query parameters and can end up in error text
        if "key=" in detail or "secret" in detail.lower() or "password" in detail.lower():
            detail = "[redacted: potential secret]"

        emitter.emit(
            "provider.error",
            session_id=session_id,
            severity=Severity.ERROR,
            category=category,
            operation=operation,
            provider_name=provider_name,
            detail=detail,
            error_type=type(error).__name__,
        )
        return category

    @staticmethod
    def get_user_message(category: str) -> str:
        """Learner-facing message for a category."""
        messages = {
            ProviderErrorCategory.AUTH_FAILED: "Your Gemini API key was rejected. Please check it in settings.",
            ProviderErrorCategory.MISCONFIGURED: "Please set your Gemini API key in settings first.",
            ProviderErrorCategory.RATE_LIMITED: "I'm getting a lot of questions right now. Let's try again in a moment.",
            ProviderErrorCategory.CAPACITY_LIMITED: "I'm getting a lot of questions right now. Let's try again in a moment.",
            ProviderErrorCategory.NETWORK_ERROR: "I couldn't reach the server. Please check your connection.",
            ProviderErrorCategory.SPEECH_UNSUPPORTED: "Speech is not available on this device.",
            ProviderErrorCategory.SPEECH_FAILED: "I couldn't read that aloud, but you can still read it.",
        }
        return messages.get(category, "I'm sorry, I had trouble processing that. Could you try again?")
