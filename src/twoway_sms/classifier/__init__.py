"""Free-text response categorization."""

from .openai_adapter import ClassifierError, ResponseClassifier, parse_category
from .rules import MatchKind, MatchRule, RuleBasedCategorizer, is_confirm_visit_intent

__all__ = [
    "ClassifierError",
    "ResponseClassifier",
    "parse_category",
    "MatchKind",
    "MatchRule",
    "RuleBasedCategorizer",
    "is_confirm_visit_intent",
]
