"""Fuzzy string similarity used for reversal pairing."""

import re

from rapidfuzz.distance import Levenshtein

# Shorter strings only match through the similarity ratio
MIN_CONTAINMENT_LENGTH = 4


def clean_for_comparison(text: str) -> str:
    """Lowercase and strip everything but letters and digits"""
    if not text:
        return ""
    return re.sub(r'[^a-z0-9]', '', str(text).lower())


def similarity_ratio(a: str, b: str) -> float:
    """Normalized Levenshtein similarity of two cleaned strings, in [0, 1]"""
    a, b = clean_for_comparison(a), clean_for_comparison(b)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a, b)


def is_similar(a: str, b: str, threshold: float = 0.8) -> bool:
    """True when one cleaned string contains the other or their similarity
    exceeds ``threshold``.

    Containment only counts when the shorter string has at least
    ``MIN_CONTAINMENT_LENGTH`` characters.
    """
    a_clean, b_clean = clean_for_comparison(a), clean_for_comparison(b)
    if not a_clean or not b_clean:
        return False
    shorter, longer = sorted((a_clean, b_clean), key=len)
    if len(shorter) >= MIN_CONTAINMENT_LENGTH and shorter in longer:
        return True
    return similarity_ratio(a_clean, b_clean) > threshold
