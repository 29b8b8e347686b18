"""
Tolerant extraction of structured records from LLM completions.

The prompts ask for "ONLY valid JSON", but completions regularly arrive wrapped
in prose, inside a ```json fence, or with some fields malformed. Extraction
therefore runs in three layers:

1. Strategies, tried in order until one yields a JSON object:
   - outer_braces: first "{" through last "}"
   - fenced_json:  the interior of a ```json fenced block
2. Field readers: every field is read on its own with its own default, so a
   bad "corrections" value never costs the learner the reply text.
3. If no strategy yields an object, the caller's defaults come back unchanged.

Everything here is synchronous and never raises on bad input. The only side
effect is logging: the strategy that matched at debug, fallbacks at warning.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from logging_setup import get_logger, Component

from .models import (
    DEFAULT_TUTOR_REPLY,
    EMPTY_WORD_LOOKUP,
    FOLLOW_UP_FALLBACK,
    REPLY_FALLBACK,
    Correction,
    PronunciationTip,
    TutorReply,
    VocabularyTip,
    WordLookup,
)

T = TypeVar("T", TutorReply, WordLookup)
M = TypeVar("M", bound=BaseModel)

Payload = Dict[str, Any]
ExtractionStrategy = Callable[[str], Optional[Payload]]

logger = get_logger(Component.EXTRACTOR)

_OUTER_BRACES = re.compile(r"\{[\s\S]*\}")
_FENCED_JSON = re.compile(r"```[ \t]*json[ \t]*\r?\n?([\s\S]*?)```", re.IGNORECASE)

# Accepted key spellings, preferred first; the original prompt used response / followUpQuestion
_REPLY_KEYS = ("reply", "response")
_FOLLOW_UP_KEYS = ("followUp", "followUpQuestion", "follow_up")
_VOCABULARY_KEYS = ("vocabularyTip", "vocabulary_tip")
_PRONUNCIATION_KEYS = ("pronunciationTip", "pronunciation_tip")


def _load_object(candidate: str) -> Optional[Payload]:
    try:
        value = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


# --- Strategies ---

def outer_braces(raw_text: str) -> Optional[Payload]:
    match = _OUTER_BRACES.search(raw_text)
    if match is None:
        return None
    return _load_object(match.group(0))


def fenced_json(raw_text: str) -> Optional[Payload]:
    for match in _FENCED_JSON.finditer(raw_text):
        payload = _load_object(match.group(1).strip())
        if payload is not None:
            return payload
    return None


STRATEGIES: Tuple[Tuple[str, ExtractionStrategy], ...] = (
    ("outer_braces", outer_braces),
    ("fenced_json", fenced_json),
)


def parse_payload(
    raw_text: str,
    strategies: Iterable[Tuple[str, ExtractionStrategy]] = STRATEGIES,
) -> Optional[Payload]:
    """Return the first JSON object any strategy recovers, or None."""
    if not isinstance(raw_text, str) or not raw_text:
        return None
    for name, strategy in strategies:
        payload = strategy(raw_text)
        if payload is not None:
            logger.debug("Payload recovered", strategy=name, keys=sorted(payload))
            return payload
    return None


def matching_strategy(raw_text: str) -> Optional[str]:
    """Name of the strategy that recovers raw_text, for diagnostics."""
    if not isinstance(raw_text, str) or not raw_text:
        return None
    for name, strategy in STRATEGIES:
        if strategy(raw_text) is not None:
            return name
    return None


# --- Field readers ---

def _first(payload: Payload, keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _read_text(payload: Payload, keys: Tuple[str, ...], default: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return default


def _read_strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _build(model: Type[M], fields: Payload) -> Optional[M]:
    try:
        return model.model_validate(fields)
    except ValidationError:
        return None


def _read_correction(value: Any) -> Optional[Correction]:
    """original and corrected are required; a bad explanation only loses the explanation."""
    if not isinstance(value, dict):
        return None
    return _build(Correction, {
        "original": _read_text(value, ("original",), ""),
        "corrected": _read_text(value, ("corrected",), ""),
        "explanation": _read_text(value, ("explanation",), ""),
    })


def _read_corrections(value: Any) -> Optional[List[Correction]]:
    """A non-empty list of valid corrections, or None. Invalid items are dropped."""
    if not isinstance(value, list):
        return None
    corrections = [c for c in (_read_correction(item) for item in value) if c is not None]
    return corrections or None


def _read_vocabulary_tip(value: Any) -> Optional[VocabularyTip]:
    """Any object-shaped tip with at least one usable field; inner fields read one by one."""
    if not isinstance(value, dict):
        return None
    fields = {
        "word": _read_text(value, ("word",), ""),
        "definition": _read_text(value, ("definition", "meaning"), ""),
        "examples": _read_strings(value.get("examples")),
    }
    if not any(fields.values()):
        return None
    return _build(VocabularyTip, fields)


def _read_pronunciation_tip(value: Any) -> Optional[PronunciationTip]:
    if not isinstance(value, dict):
        return None
    fields = {
        "word": _read_text(value, ("word",), ""),
        "phonetic": _read_text(value, ("phonetic",), ""),
        "tip": _read_text(value, ("tip",), ""),
    }
    if not any(fields.values()):
        return None
    return _build(PronunciationTip, fields)


def tutor_reply_from_payload(payload: Payload) -> TutorReply:
    return TutorReply(
        reply=_read_text(payload, _REPLY_KEYS, REPLY_FALLBACK),
        corrections=_read_corrections(payload.get("corrections")),
        vocabulary_tip=_read_vocabulary_tip(_first(payload, _VOCABULARY_KEYS)),
        pronunciation_tip=_read_pronunciation_tip(_first(payload, _PRONUNCIATION_KEYS)),
        follow_up=_read_text(payload, _FOLLOW_UP_KEYS, FOLLOW_UP_FALLBACK),
    )


def word_lookup_from_payload(payload: Payload) -> WordLookup:
    return WordLookup(
        phonetic=_read_text(payload, ("phonetic",), ""),
        examples=_read_strings(payload.get("examples")),
        translation=_read_text(payload, ("translation",), ""),
    )


_BUILDERS: Dict[type, Callable[[Payload], Any]] = {
    TutorReply: tutor_reply_from_payload,
    WordLookup: word_lookup_from_payload,
}


def extract(raw_text: str, defaults: T) -> T:
    """
    Recover a record shaped like defaults from raw LLM text.

    Returns defaults itself (not a copy) when nothing could be parsed.
    """
    builder = _BUILDERS.get(type(defaults))
    if builder is None:
        raise TypeError(f"No extractor registered for {type(defaults).__name__}")

    payload = parse_payload(raw_text)
    if payload is None:
        logger.warning(
            "No JSON object in completion, using defaults",
            record_type=type(defaults).__name__,
            raw_length=len(raw_text) if isinstance(raw_text, str) else 0,
        )
        return defaults
    return builder(payload)


def extract_tutor_reply(raw_text: str, defaults: TutorReply = DEFAULT_TUTOR_REPLY) -> TutorReply:
    return extract(raw_text, defaults)


def extract_word_lookup(raw_text: str, defaults: WordLookup = EMPTY_WORD_LOOKUP) -> WordLookup:
    return extract(raw_text, defaults)
