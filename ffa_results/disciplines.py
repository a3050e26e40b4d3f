from __future__ import annotations

import re
import unicodedata
from typing import Mapping

from .models import Direction

# Jumps, throws and combined events where a higher mark or score is better.
FIELD_EVENT_KEYWORDS = (
    "longueur",
    "triple",
    "hauteur",
    "perche",
    "poids",
    "disque",
    "javelot",
    "marteau",
    "pentathlon",
    "heptathlon",
    "decathlon",
    "octathlon",
    "triathlon",
    "long jump",
    "high jump",
    "pole vault",
    "shot put",
    "discus",
    "javelin",
    "hammer",
)

_WHITESPACE_RE = re.compile(r"\s+")


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_discipline(value: str | None) -> str:
    """Case- and spacing-insensitive key used to match event labels."""
    text = _WHITESPACE_RE.sub(" ", (value or "").strip())
    return text.lower()


def sanitize_event_key(value: str | None) -> str:
    """Event labels become document keys, which cannot contain dots."""
    return (value or "").replace(".", "_")


def infer_direction(event_label: str | None) -> Direction:
    """
    Guess the comparison direction from an event label.

    Field and combined events compare higher-is-better; every other label is
    treated as a timed event.
    """
    text = strip_accents(normalize_discipline(event_label))
    if any(keyword in text for keyword in FIELD_EVENT_KEYWORDS):
        return Direction.HIGHER_IS_BETTER
    return Direction.LOWER_IS_BETTER


def resolve_direction(
    event_label: str | None,
    overrides: Mapping[str, Direction] | None = None,
) -> Direction:
    """Explicit per-event overrides win over the keyword heuristic."""
    if overrides:
        wanted = normalize_discipline(event_label)
        for label, direction in overrides.items():
            if normalize_discipline(label) == wanted:
                return direction
    return infer_direction(event_label)
