"""
Language segmentation for mixed Russian / English tutor replies.

Tutor replies mix both languages in one string ("Привет, how are you?"). A
single TTS voice mangles whichever language it was not built for, so the text
is split into contiguous runs that each get a voice of their own.

Rules:
- Parenthesized asides are removed first; they hold transliterations and
  pronunciation hints that must never be read aloud.
- Whitespace is collapsed to single spaces and the ends trimmed.
- A word containing any Cyrillic letter (including ё / Ё) is Russian, anything
  else is English. Mixed-script words are not split further.
- Whitespace never starts a run; it stays with the run that is open.

Concatenating the text of all runs reproduces clean_text(input) exactly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class Language(str, Enum):
    """Language tags; the value is the BCP-47 locale used for voice selection."""

    PRIMARY = "ru-RU"
    SECONDARY = "en-US"

    # Aliases
    RUSSIAN = "ru-RU"
    ENGLISH = "en-US"

    @property
    def locale_prefix(self) -> str:
        """"ru" / "en": matched against voice locales."""
        return self.value.split("-")[0]


@dataclass(frozen=True)
class Run:
    """A maximal stretch of text in one language."""

    language: Language
    text: str


_PARENTHETICAL = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")
_TOKENS = re.compile(r"\s+|\S+")
_CYRILLIC = re.compile(r"[а-яА-ЯёЁ]")


def clean_text(text: str) -> str:
    """Strip parenthesized asides, collapse whitespace, trim."""
    without_asides = _PARENTHETICAL.sub("", text)
    return _WHITESPACE.sub(" ", without_asides).strip()


def contains_primary_script(text: str) -> bool:
    """True if text has at least one Cyrillic letter."""
    return _CYRILLIC.search(text) is not None


def detect_language(token: str) -> Language:
    return Language.PRIMARY if contains_primary_script(token) else Language.SECONDARY


def segment(text: str) -> List[Run]:
    """
    Split text into ordered language runs.

    Example: "Скажите (Skazhite) hello" -> [PRIMARY "Скажите ", SECONDARY "hello"]
    """
    cleaned = clean_text(text)
    runs: List[Run] = []
    current: Optional[Language] = None
    buffer: List[str] = []

    for token in _TOKENS.findall(cleaned):
        if token.isspace():
            buffer.append(token)
            continue
        language = detect_language(token)
        if current is not None and language != current:
            runs.append(Run(current, "".join(buffer)))
            buffer = []
        current = language
        buffer.append(token)

    if current is not None and buffer:
        runs.append(Run(current, "".join(buffer)))

    return runs
