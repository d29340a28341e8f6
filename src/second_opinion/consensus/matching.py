"""
Heuristic line matching for action and tradeoff extraction.

A PatternMatcher is an ordered list of regexes; the first line (in text
order) that matches any pattern wins. Matching rules live here so they can
change without touching the aggregation logic in engine.py.
"""

import re
from dataclasses import dataclass

MAX_ACTION_LENGTH = 300
MIN_MEANINGFUL_LINE = 30
MAX_TRADEOFF_LENGTH = 100
TRADEOFF_FALLBACK = "See full response for details"

LIST_MARKER = re.compile(r"^(?:\d+\.|[-•*])\s*")

ACTION_PATTERNS = (
    re.compile(r"^(?:you should|i recommend|i suggest|try|use|consider|implement)", re.IGNORECASE),
    re.compile(r"^(?:(?:the )?(?:best|recommended|preferred) (?:approach|solution|way))", re.IGNORECASE),
    LIST_MARKER,
)

TRADEOFF_PATTERNS = (
    re.compile(
        r"(?:but|however|although|though|downside|drawback|tradeoff|trade-off|caveat)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:on the other hand|keep in mind|be aware|note that)", re.IGNORECASE),
)


@dataclass(frozen=True)
class PatternMatcher:
    """First line matching any of `patterns`, scanning lines in order."""

    patterns: tuple[re.Pattern, ...]
    strip_lines: bool = True

    def first_match(self, lines: list[str]) -> str | None:
        for line in lines:
            candidate = line.strip() if self.strip_lines else line
            if any(p.search(candidate) for p in self.patterns):
                return candidate
        return None


DEFAULT_ACTION_MATCHER = PatternMatcher(ACTION_PATTERNS)
DEFAULT_TRADEOFF_MATCHER = PatternMatcher(TRADEOFF_PATTERNS)


def clean_action(text: str) -> str:
    """Strip bold and inline-code markers, then list markers; cap the length."""
    text = text.replace("**", "").replace("`", "")
    text = LIST_MARKER.sub("", text)
    return text.strip()[:MAX_ACTION_LENGTH]


def extract_action(text: str, matcher: PatternMatcher = DEFAULT_ACTION_MATCHER) -> str:
    """
    Pull the single most action-like line out of a free-text answer.

    Falls back to the first line longer than 30 characters, then the first
    line, then "".
    """
    lines = [line.strip() for line in text.split("\n") if line.strip()]

    matched = matcher.first_match(lines)
    if matched is not None:
        return clean_action(matched)

    fallback = next((line for line in lines if len(line) > MIN_MEANINGFUL_LINE), None)
    if fallback is None:
        fallback = lines[0] if lines else ""
    return clean_action(fallback)


def extract_tradeoff(
    text: str,
    matcher: PatternMatcher = DEFAULT_TRADEOFF_MATCHER,
    max_length: int = MAX_TRADEOFF_LENGTH,
) -> str:
    """First line signalling a tradeoff, or a pointer back to the full answer."""
    matched = matcher.first_match(text.split("\n"))
    if matched is None:
        return TRADEOFF_FALLBACK
    return matched[:max_length]
