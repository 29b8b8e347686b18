"""
Tutor prompts and greetings.

Scenario files live in tutor/scenarios as YAML (preferred) or JSON; PyYAML's
safe_load parses both. Selection order: explicit name, TUTOR_SCENARIO env var,
"default", then the hardcoded fallback below.

Templates use {placeholder} markers that are filled by plain replacement, so
the JSON examples inside the prompts need no brace escaping.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml

from speech_pipeline.segmenter import contains_primary_script

# Number of previous conversation lines given to the model
HISTORY_WINDOW = 6

FALLBACK_SCENARIO: Dict[str, Any] = {
    "name": "default",
    "greeting_text": (
        "Привет! I'm VictorAI, your personal Russian tutor. "
        "What Russian words would you like to learn today?"
    ),
    "greeting_follow_up": "Tell me what you'd like to learn in Russian - greetings, numbers, or everyday phrases!",
    "correction_rule_primary": "1. Corrects grammar/spelling mistakes in Russian",
    "correction_rule_other": "1. Do NOT correct grammar or spelling if the message is not in Russian.",
    "reply_prompt": (
        "You are VictorAI, a friendly Russian language tutor.\n\n"
        'User message: "{message}"\n\n'
        "Previous conversation context: {history}\n\n"
        "{correction_rule}\n"
        "Reply in English, teach Russian vocabulary and ask a follow-up question.\n"
        'Return ONLY valid JSON: {"reply": "...", "followUp": "..."} '
        'optionally with "corrections", "vocabularyTip" and "pronunciationTip".'
    ),
    "word_prompt": (
        'For the word: "{word}", return ONLY a JSON object with "phonetic", '
        '"examples" (list of strings) and "translation".'
    ),
}

_REQUIRED_KEYS = ("reply_prompt", "word_prompt", "greeting_text")


def _get_scenarios_dir() -> Path:
    return Path(__file__).parent / "scenarios"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Scenario file {path} must contain a mapping at top-level")
    missing = [key for key in _REQUIRED_KEYS if key not in data]
    if missing:
        raise ValueError(f"Scenario file {path} is missing {', '.join(missing)}")
    # Keys a scenario leaves out come from the fallback
    return {**FALLBACK_SCENARIO, **data}


def load_scenario(scenario_name: str) -> Dict[str, Any]:
    """
    Load a scenario by name.

    Resolution order:
    1) <name>.yaml / <name>.yml / <name>.json
    2) default.yaml / default.yml / default.json
    3) hardcoded fallback
    """
    scenarios_dir = _get_scenarios_dir()

    for stem in (scenario_name, "default"):
        for suffix in (".yaml", ".yml", ".json"):
            candidate = scenarios_dir / f"{stem}{suffix}"
            if candidate.exists():
                return _load_file(candidate)

    return dict(FALLBACK_SCENARIO)


def get_scenario(name: Optional[str] = None) -> Dict[str, Any]:
    """Scenario by explicit name, else TUTOR_SCENARIO, else "default"."""
    return load_scenario(name or os.getenv("TUTOR_SCENARIO", "default"))


_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def _fill(template: str, **values: str) -> str:
    """Single pass, so placeholders inside the learner's message stay literal."""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def build_reply_prompt(
    message: str,
    history: Sequence[str] = (),
    scenario: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Prompt for one tutor turn.

    Corrections are only requested when the learner wrote Russian; correcting
    English messages confuses beginners.
    """
    scenario = scenario or get_scenario()
    if contains_primary_script(message):
        correction_rule = scenario["correction_rule_primary"]
    else:
        correction_rule = scenario["correction_rule_other"]

    recent = list(history)[-HISTORY_WINDOW:]
    return _fill(
        scenario["reply_prompt"],
        message=message,
        history="\n".join(recent) if recent else "(none)",
        correction_rule=correction_rule,
    )


def build_word_prompt(word: str, scenario: Optional[Dict[str, Any]] = None) -> str:
    scenario = scenario or get_scenario()
    return _fill(scenario["word_prompt"], word=word)


def get_greeting(scenario: Optional[Dict[str, Any]] = None) -> Tuple[str, str]:
    """(greeting text, follow-up question) for a new conversation."""
    scenario = scenario or get_scenario()
    return scenario["greeting_text"], scenario.get("greeting_follow_up", "")
