"""Keyword-containment scoring shared by fragment and page classification.

This is a lexical heuristic: a deck scores one hit per distinct keyword
found in the text (case-insensitive, on word boundaries). The highest score
wins and ties go to the deck declared first. A zero score never wins.
"""

import re
from functools import lru_cache
from typing import Iterable, Optional, Sequence, Tuple, TypeVar

from gov_fragment_indexer.taxonomy.models import KeywordDeck

D = TypeVar("D", bound=KeywordDeck)


@lru_cache(maxsize=4096)
def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(keyword.lower())}(?!\w)")


def keyword_hits(text: str, keywords: Iterable[str]) -> int:
    """Count distinct keywords contained in ``text``."""
    lowered = text.lower()
    return sum(1 for kw in keywords if kw and _keyword_pattern(kw).search(lowered))


def score_decks(text: str, decks: Sequence[D]) -> list[Tuple[D, int]]:
    return [(deck, keyword_hits(text, deck.keywords)) for deck in decks]


def best_match(text: str, decks: Sequence[D]) -> Optional[Tuple[D, int]]:
    """Return the winning deck and its score, or None when nothing matches."""
    winner: Optional[Tuple[D, int]] = None
    for deck, score in score_decks(text, decks):
        # strict ">" keeps the earliest declared deck on ties
        if score > 0 and (winner is None or score > winner[1]):
            winner = (deck, score)
    return winner
