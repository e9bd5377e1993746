"""
Model scoring.

Turns a model name into a comparable number so credentials and their
discovered model lists can be ranked without a hand-maintained table:

    score = version * 1000 + tier bonus + modifier bonuses

The version dominates (a newer flash beats an older pro), the tier breaks
ties within a version, and modifiers only nudge between otherwise identical
names.
"""

import re

_VERSION_RE = re.compile(r"\bgemini-(\d+(?:\.\d+)?)")

# First match wins, so order matters
_TIERS: list[tuple[str, int]] = [
    ("ultra", 50),
    ("pro", 40),
    ("flash", 30),
    ("nano", 10),
]
_STANDARD_TIER = 20

_MODIFIERS: list[tuple[re.Pattern[str], int]] = [
    (re.compile(r"preview"), 5),
    (re.compile(r"\bexp(?:erimental)?\b"), 1),
    (re.compile(r"vision"), 2),
]


def _version(name: str) -> float:
    if name == "gemini-pro" or name.startswith("gemini-pro-"):
        return 1.0
    match = _VERSION_RE.search(name)
    if match is None:
        return 0.0
    return float(match.group(1))


def _tier_bonus(name: str) -> int:
    for keyword, bonus in _TIERS:
        if keyword in name:
            return bonus
    return _STANDARD_TIER


def score_model(name: str | None) -> float:
    """
    Score a model name; higher means more capable.

    Case-insensitive, and a leading ``models/`` resource prefix is ignored.
    An empty or missing name scores 0.
    """
    if not name:
        return 0.0

    normalized = name.strip().lower()
    if normalized.startswith("models/"):
        normalized = normalized[len("models/"):]
    if not normalized:
        return 0.0

    score = _version(normalized) * 1000 + _tier_bonus(normalized)
    for pattern, bonus in _MODIFIERS:
        if pattern.search(normalized):
            score += bonus
    return score


def rank_models(names: list[str]) -> list[str]:
    """Return names sorted by score, best first. Ties keep their input order."""
    return sorted(names, key=score_model, reverse=True)
