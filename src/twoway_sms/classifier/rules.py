"""Rule-based response categorization."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern

from ..models import ResponseCategory


class MatchKind(Enum):
    SUBSTRING = "substring"
    REGEX = "regex"


@dataclass(frozen=True)
class MatchRule:
    """A single pattern mapped to the category it signals."""
    kind: MatchKind
    pattern: str
    category: ResponseCategory

    def compiled(self) -> Optional[Pattern[str]]:
        if self.kind is MatchKind.REGEX:
            return re.compile(self.pattern, re.IGNORECASE)
        return None


def _rules(category: ResponseCategory, *patterns: str) -> list[MatchRule]:
    """Build rules; patterns wrapped in slashes are regexes."""
    rules = []
    for pattern in patterns:
        if len(pattern) > 2 and pattern.startswith("/") and pattern.endswith("/"):
            rules.append(MatchRule(MatchKind.REGEX, pattern[1:-1], category))
        else:
            rules.append(MatchRule(MatchKind.SUBSTRING, pattern, category))
    return rules


# Priority order: first match wins.
DEFAULT_RULES: tuple[MatchRule, ...] = tuple(
    _rules(
        ResponseCategory.DO_NOT_CONTACT,
        "do not contact", "don't contact", "stop calling", "stop texting",
        "remove me", "unsubscribe", "opt out", "do not call", "don't call",
        "never call", "no more calls", "take me off", "remove from list",
        "dnc", "do not call list",
    )
    + _rules(
        ResponseCategory.CALL_AT_DIFFERENT_TIME,
        "call at", "call me at", "call back at", "different time", "another time",
        "later", "tomorrow", "next week", "schedule", "appointment", "when can",
        "what time", "what day", "monday", "tuesday", "wednesday", "thursday",
        "friday", "saturday", "sunday", "morning", "afternoon", "evening",
        r"/\b(am|pm)\b/",
        r"/\d{1,2}:\d{2}/",
        r"/\d{1,2}\s*(am|pm)/",
        "between", "after", "before",
    )
    + _rules(
        ResponseCategory.YES,
        "yes", "yeah", "yep", r"/(?<!not )sure/", r"/\bok\b/", "okay",
        "sounds good", "that works", "go ahead", "please do", "call me",
        "call back", "reach out", "contact me", "i'm interested",
        r"/(?<!not )interested/", "definitely", "absolutely", "of course",
    )
    + _rules(
        ResponseCategory.NO,
        r"/\bno\b/", "nope", "not interested", "not now", "maybe later",
        "not right now", "can't", "cannot", "busy", "not available",
        "not a good time", "decline", "pass", "not at this time",
    )
)

CONFIRM_VISIT_PHRASES: tuple[str, ...] = (
    "confirm a visit",
    "confirm the visit",
    "confirm my visit",
    "confirm visit",
    "confirm a appointment",
    "confirm the appointment",
    "confirm my appointment",
    "confirm appointment",
    "confirm my consultation",
    "confirm the consultation",
    "confirm consultation",
    "want to confirm a visit",
    "want to confirm visit",
    "actually want to confirm",
    "i want to confirm",
    "id like to confirm",
    "i'd like to confirm",
    "appointment confirmation",
    "confirm my scheduled",
)


def _normalize(text: str) -> str:
    # Curly apostrophes come from phone keyboards.
    return text.lower().strip().replace("’", "'")


def is_confirm_visit_intent(text: str) -> bool:
    """True when the lead asks to confirm an existing visit instead."""
    normalized = _normalize(text)
    return any(phrase in normalized for phrase in CONFIRM_VISIT_PHRASES)


class RuleBasedCategorizer:
    """Deterministic text to intent mapping over ordered match rules."""

    def __init__(self, rules: tuple[MatchRule, ...] = DEFAULT_RULES):
        self.rules = rules
        self._compiled = [(rule, rule.compiled()) for rule in rules]

    def categorize(self, text: str) -> ResponseCategory:
        normalized = _normalize(text)
        for rule, regex in self._compiled:
            if regex is not None:
                if regex.search(normalized):
                    return rule.category
            elif rule.pattern in normalized:
                return rule.category
        return ResponseCategory.UNKNOWN_MESSAGE
