"""
Tests for tolerant reply extraction.

Verifies:
- Well-formed JSON, with or without surrounding prose
- ```json fenced blocks when the outer-brace scan fails
- Per-field tolerance: malformed fields fall back individually
- Unparseable text returns the caller's defaults unchanged
- Word lookups
- Matched strategy logged at debug, fallback at warning
"""
import logging

import pytest

from tutor.extraction import (
    extract,
    extract_tutor_reply,
    extract_word_lookup,
    matching_strategy,
    parse_payload,
)
from tutor.models import (
    DEFAULT_TUTOR_REPLY,
    EMPTY_WORD_LOOKUP,
    FOLLOW_UP_FALLBACK,
    REPLY_FALLBACK,
    TutorReply,
    WordLookup,
)


FULL_REPLY = """{
  "reply": "Great job! You wrote it almost perfectly.",
  "corrections": [{"original": "Я хочу пить вода", "corrected": "Я хочу пить воду", "explanation": "Accusative case after пить"}],
  "vocabularyTip": {"word": "вода", "definition": "water", "examples": ["Стакан воды"]},
  "pronunciationTip": {"word": "воду", "phonetic": "/ˈvodu/", "tip": "Stress the first syllable"},
  "followUp": "What do you like to drink in the morning?"
}"""


def test_happy_path():
    reply = extract_tutor_reply(FULL_REPLY)

    assert reply.reply == "Great job! You wrote it almost perfectly."
    assert reply.follow_up == "What do you like to drink in the morning?"
    assert len(reply.corrections) == 1
    assert reply.corrections[0].corrected == "Я хочу пить воду"
    assert reply.vocabulary_tip.word == "вода"
    assert reply.vocabulary_tip.examples == ["Стакан воды"]
    assert reply.pronunciation_tip.phonetic == "/ˈvodu/"


def test_prose_around_json():
    raw = 'Sure! Here is my answer:\n{"reply": "Привет means hello.", "followUp": "Can you say it?"}\nHope that helps.'
    reply = extract_tutor_reply(raw)

    assert reply.reply == "Привет means hello."
    assert reply.follow_up == "Can you say it?"
    assert reply.corrections is None
    assert reply.vocabulary_tip is None
    assert reply.pronunciation_tip is None


def test_fenced_json():
    raw = '```json\n{"reply": "Hi", "followUp": "How are you?"}\n```'
    reply = extract_tutor_reply(raw)

    assert reply.reply == "Hi"
    assert reply.follow_up == "How are you?"


def test_fenced_json_when_outer_braces_fail():
    # The outer-brace scan spans both blocks and is not valid JSON
    raw = (
        'Example shape: {"reply": ...}\n'
        '```JSON\n{"reply": "Fenced wins", "followUp": "Next?"}\n```'
    )
    assert matching_strategy(raw) == "fenced_json"

    reply = extract_tutor_reply(raw)
    assert reply.reply == "Fenced wins"


def test_no_json_returns_defaults_unchanged():
    reply = extract_tutor_reply("I'm not sure what you mean.")
    assert reply is DEFAULT_TUTOR_REPLY


@pytest.mark.parametrize("raw", ["", "{not json}", "[1, 2, 3]", "{", "```json\n[1]\n```"])
def test_unparseable_returns_defaults(raw):
    assert extract_tutor_reply(raw) is DEFAULT_TUTOR_REPLY
    assert parse_payload(raw) is None


def test_custom_defaults_returned_by_identity():
    defaults = TutorReply(reply="custom", follow_up="custom follow up")
    assert extract_tutor_reply("no braces here", defaults) is defaults


def test_corrections_as_string_is_dropped():
    raw = '{"reply": "x", "corrections": "none", "followUp": "y"}'
    reply = extract_tutor_reply(raw)

    assert reply.corrections is None
    assert reply.reply == "x"
    assert reply.follow_up == "y"


def test_invalid_correction_items_are_dropped():
    raw = (
        '{"reply": "x", "followUp": "y", "corrections": ['
        '{"original": "a", "corrected": "b"}, '
        '{"original": "missing corrected"}, '
        '"just a string", '
        '{"original": "", "corrected": "empty original"}'
        "]}"
    )
    reply = extract_tutor_reply(raw)

    assert len(reply.corrections) == 1
    assert reply.corrections[0].original == "a"
    assert reply.corrections[0].explanation == ""


def test_empty_corrections_list_is_absent():
    reply = extract_tutor_reply('{"reply": "x", "followUp": "y", "corrections": []}')
    assert reply.corrections is None
    assert "corrections" not in reply.to_payload()


def test_missing_fields_use_field_defaults():
    reply = extract_tutor_reply('{"vocabularyTip": {"word": "кот", "definition": "cat"}}')

    assert reply.reply == REPLY_FALLBACK
    assert reply.follow_up == FOLLOW_UP_FALLBACK
    assert reply.vocabulary_tip.word == "кот"


def test_tip_that_is_not_an_object_is_absent():
    raw = '{"reply": "x", "followUp": "y", "vocabularyTip": "кот", "pronunciationTip": {}}'
    reply = extract_tutor_reply(raw)

    assert reply.vocabulary_tip is None
    assert reply.pronunciation_tip is None


def test_pronunciation_tip_without_word_is_kept():
    raw = '{"reply": "x", "followUp": "y", "pronunciationTip": {"phonetic": "/kot/", "tip": "short o"}}'
    tip = extract_tutor_reply(raw).pronunciation_tip

    assert tip.word == ""
    assert tip.phonetic == "/kot/"
    assert tip.tip == "short o"


def test_vocabulary_tip_with_bad_examples_keeps_word():
    raw = (
        '{"reply": "x", "followUp": "y", '
        '"vocabularyTip": {"word": "кот", "definition": "cat", "examples": "Кот спит"}}'
    )
    tip = extract_tutor_reply(raw).vocabulary_tip

    assert tip.word == "кот"
    assert tip.definition == "cat"
    assert tip.examples == []


def test_vocabulary_tip_drops_non_string_examples():
    raw = '{"vocabularyTip": {"word": "кот", "examples": ["Кот спит", 3, null]}}'
    assert extract_tutor_reply(raw).vocabulary_tip.examples == ["Кот спит"]


def test_correction_with_bad_explanation_is_kept():
    raw = '{"reply": "x", "followUp": "y", "corrections": [{"original": "a", "corrected": "b", "explanation": 3}]}'
    reply = extract_tutor_reply(raw)

    assert len(reply.corrections) == 1
    assert reply.corrections[0].corrected == "b"
    assert reply.corrections[0].explanation == ""


def test_non_string_reply_uses_default():
    reply = extract_tutor_reply('{"reply": 42, "followUp": ""}')

    assert reply.reply == REPLY_FALLBACK
    assert reply.follow_up == FOLLOW_UP_FALLBACK


def test_alternate_key_names():
    raw = '{"response": "Hello!", "followUpQuestion": "Ready?"}'
    reply = extract_tutor_reply(raw)

    assert reply.reply == "Hello!"
    assert reply.follow_up == "Ready?"


def test_payload_is_camel_case():
    payload = extract_tutor_reply(FULL_REPLY).to_payload()

    assert set(payload) == {"reply", "corrections", "vocabularyTip", "pronunciationTip", "followUp"}


def test_word_lookup():
    raw = """Here you go:
    {"phonetic": "/ˈknʲiɡə/", "examples": ["Я читаю книгу (Ya chitayu knigu - I am reading a book)"], "translation": "book"}"""
    lookup = extract_word_lookup(raw)

    assert lookup.phonetic == "/ˈknʲiɡə/"
    assert lookup.translation == "book"
    assert lookup.examples == ["Я читаю книгу (Ya chitayu knigu - I am reading a book)"]


def test_word_lookup_partial():
    lookup = extract_word_lookup('{"translation": "book", "examples": "not a list"}')

    assert lookup.translation == "book"
    assert lookup.examples == []
    assert lookup.phonetic == ""


def test_word_lookup_fallback():
    assert extract_word_lookup("sorry") is EMPTY_WORD_LOOKUP


def test_extract_dispatches_on_defaults_type():
    defaults = WordLookup(translation="?")
    assert extract('{"translation": "cat"}', defaults).translation == "cat"
    assert extract("nothing", defaults) is defaults


def test_extract_rejects_unknown_record_type():
    with pytest.raises(TypeError):
        extract("{}", object())


def test_matching_strategy():
    assert matching_strategy('{"reply": "x"}') == "outer_braces"
    assert matching_strategy("nothing") is None


def test_matched_strategy_is_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="extractor")
    extract_tutor_reply('```json\n{"reply": "x", "followUp": "y"}\n```')

    records = [r for r in caplog.records if r.name == "extractor"]
    assert [r.levelno for r in records] == [logging.DEBUG]
    assert records[0].component == "extractor"
    assert records[0].strategy == "outer_braces"


def test_fallback_is_logged_as_warning(caplog):
    caplog.set_level(logging.DEBUG, logger="extractor")
    extract_word_lookup("sorry, no JSON")

    records = [r for r in caplog.records if r.name == "extractor"]
    assert [r.levelno for r in records] == [logging.WARNING]
    assert records[0].record_type == "WordLookup"
    assert records[0].raw_length == len("sorry, no JSON")
