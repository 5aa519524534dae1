from __future__ import annotations

import math
from typing import Iterable

from nudge.memory.types import MemoryItem

SUBSTRING_SCORE = 100
OVERLAP_WEIGHT = 80
MIN_TOKEN_LEN = 3
DEFAULT_THRESHOLD = 30


def _tokens(text: str) -> set[str]:
    return {t for t in text.split() if len(t) >= MIN_TOKEN_LEN}


def match_score(query: str, title: str) -> int:
    """Score how well a reply fragment names an item title (0-100)."""
    q = query.lower().strip()
    t = title.lower().strip()
    if not q:
        return 0
    if q in t or t in q:
        return SUBSTRING_SCORE
    q_tokens = _tokens(q)
    if not q_tokens:
        return 0
    overlap = len(q_tokens & _tokens(t))
    # half-up rounding, not banker's
    return int(math.floor(OVERLAP_WEIGHT * overlap / len(q_tokens) + 0.5))


def fuzzy_match(query: str, items: Iterable[MemoryItem], threshold: int = DEFAULT_THRESHOLD) -> MemoryItem | None:
    best: MemoryItem | None = None
    best_score = 0
    for item in items:
        score = match_score(query, item.title)
        if score > best_score:
            best, best_score = item, score
    if best_score >= threshold:
        return best
    return None
