"""Optional categorizer collaborators consulted for low-confidence transactions."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..models.core import CategorySuggestion, NormalizedTransaction

logger = logging.getLogger(__name__)


class Categorizer(ABC):
    """Suggests a subcategory when the rule-based classifier is unsure.

    Implementations may call remote services and may fail; the classifier
    logs failures and keeps its own verdict.
    """

    @abstractmethod
    def categorize(self, transaction: NormalizedTransaction,
                   is_income: bool) -> Optional[CategorySuggestion]:
        pass


class KeywordCategorizer(Categorizer):
    """Maps user-defined keywords to subcategories.

    Args:
        rules: Keyword (case-insensitive substring of description or
            merchant) to subcategory name
        confidence: Confidence reported for every match
    """

    def __init__(self, rules: Dict[str, str], confidence: float = 0.7):
        self.rules = {k.lower(): v for k, v in rules.items() if k and v}
        self.confidence = confidence

    def categorize(self, transaction: NormalizedTransaction,
                   is_income: bool) -> Optional[CategorySuggestion]:
        text = f"{transaction.description} {transaction.merchant or ''}".lower()
        for keyword, subcategory in self.rules.items():
            if keyword in text:
                logger.debug(f"Keyword {keyword!r} suggests {subcategory} for {transaction.description!r}")
                return CategorySuggestion(subcategory=subcategory, confidence=self.confidence)
        return None
