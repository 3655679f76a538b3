"""Text-matching primitives for comparing rendered text with source code.

Pure text operations with zero tree or wikitext dependencies.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

# Letters only: digits and punctuation differ too much between markup and
# rendered text to be useful.
_WORD_RE = re.compile(r"[^\W\d_]{2,}")


@dataclass(frozen=True, slots=True)
class OverlapScore:
    """Word-overlap breakdown between two texts."""

    overlap: float          # 0.0-1.0
    shared: int
    left_only: int
    right_words: int


def words(text: str) -> set[str]:
    """Unique words of two or more letters, lowercased."""
    return {w.lower() for w in _WORD_RE.findall(text)}


def overlap_score(left: str, right: str) -> OverlapScore:
    """Jaccard-style overlap of the word sets of *left* and *right*.

    ``overlap = shared / (|right| + |left - right|)``, i.e. shared words over
    the union. Two texts with no words at all do not match (0.0).

    Args:
        left: Usually the rendered comment text.
        right: Usually the markup-stripped source slice.

    Returns:
        OverlapScore with the ratio and the counts behind it.
    """
    a = words(left)
    b = words(right)
    shared = len(a & b)
    left_only = len(a - b)
    denominator = len(b) + left_only
    ratio = shared / denominator if denominator else 0.0
    return OverlapScore(overlap=ratio, shared=shared, left_only=left_only, right_words=len(b))


def word_overlap(left: str, right: str) -> float:
    """Overlap ratio in [0, 1]; see ``overlap_score``."""
    return overlap_score(left, right).overlap
