# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Normalized string similarity used by the transfer matcher and the
duplicate detector.

similarity = 1 - levenshtein(a, b) / max(len(a), len(b))

Edit distances come from ``rapidfuzz`` (unit cost insert / delete /
substitute). Comparison is case-insensitive and ``None`` is treated as an
empty string. Two identical strings (two empty strings included) have
similarity 1.0; when exactly one side is empty the similarity is 0.0.
"""

from typing import Optional

from rapidfuzz.distance import Levenshtein


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert / delete / substitute, unit cost)."""
    return Levenshtein.distance(a, b)


def string_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Return a similarity score in [0, 1] between two descriptions.

    Args:
        a: First string (may be None).
        b: Second string (may be None).

    Returns:
        1.0 for identical strings, 0.0 when exactly one is empty, otherwise
        ``1 - distance / max_length``.
    """
    s1 = (a or "").lower()
    s2 = (b or "").lower()

    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    return float(Levenshtein.normalized_similarity(s1, s2))
