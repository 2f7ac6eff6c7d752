# classes/model_props.py
from typing import Any, Dict, Tuple

OPENAI_PREFIXES = ("gpt-", "gpt4", "o3", "o4")

# Suffix presets for the oracle model name: (verbosity, reasoning effort).
PRESETS: Dict[str, Tuple[str, str]] = {
    "fast": ("low", "none"),
    "standard": ("low", "low"),
    "careful": ("low", "medium"),
}
REASONING_EFFORTS = ("none", "minimal", "low", "medium", "high")


def is_openai_model(model_name) -> bool:
    return (model_name or "").startswith(OPENAI_PREFIXES)


def parse_model_name(raw: str) -> Tuple[str, Dict[str, Any]]:
    """
    'gpt-5-mini'        -> ('gpt-5-mini', {})
    'gpt-5-mini_fast'   -> preset verbosity + reasoning effort
    'gpt-5-mini_medium' -> reasoning effort only
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("parse_model_name: No Model Name passed. ")

    base, _, suffix = raw.partition("_")
    token = suffix.strip().lower()
    if not token:
        return base, {}

    if token in PRESETS:
        verbosity, effort = PRESETS[token]
        return base, {"text": {"verbosity": verbosity}, "reasoning": {"effort": effort}}
    if token in REASONING_EFFORTS:
        return base, {"reasoning": {"effort": token}}
    raise ValueError(f"parse_model_name: Unknown model suffix '{token}' in '{raw}'. ")
