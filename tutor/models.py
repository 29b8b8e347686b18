"""
Records the tutor extracts from LLM completions.

Field names are snake_case in Python and camelCase on the wire, matching the
JSON shape the prompts ask the model for.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Field-level defaults, used when a parsed payload lacks the field
REPLY_FALLBACK = "I'm here to help you learn Russian!"
FOLLOW_UP_FALLBACK = "What Russian phrase would you like to learn?"


class Correction(BaseModel):
    original: str = Field(min_length=1)
    corrected: str = Field(min_length=1)
    explanation: str = ""


class VocabularyTip(BaseModel):
    word: str = ""
    definition: str = ""
    examples: List[str] = Field(default_factory=list)


class PronunciationTip(BaseModel):
    word: str = ""
    phonetic: str = ""
    tip: str = ""


class TutorReply(BaseModel):
    """
    One tutor turn.

    reply and follow_up are always set; the optional fields are present only
    when the model supplied them.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    reply: str
    corrections: Optional[List[Correction]] = None
    vocabulary_tip: Optional[VocabularyTip] = Field(default=None, alias="vocabularyTip")
    pronunciation_tip: Optional[PronunciationTip] = Field(default=None, alias="pronunciationTip")
    follow_up: str = Field(alias="followUp")

    def to_payload(self) -> Dict[str, Any]:
        """camelCase dict without the absent optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class WordLookup(BaseModel):
    """Dictionary data for one word; every field defaults to empty."""

    model_config = ConfigDict(frozen=True)

    phonetic: str = ""
    examples: List[str] = Field(default_factory=list)
    translation: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump()


# Whole-record defaults, used when nothing could be parsed at all
DEFAULT_TUTOR_REPLY = TutorReply(
    reply="I'm sorry, I had trouble processing that. Could you try again? I'm here to help you learn Russian!",
    follow_up="What Russian words or phrases would you like to practice today?",
)

EMPTY_WORD_LOOKUP = WordLookup()
