"""
Lexical keyword scoring.

Coarse, recall-oriented overlap between query keywords and a passage. Used
alongside embedding similarity by both the hybrid ranker and the context
optimizer.
"""
import re
from typing import Iterable, Set

STOP_WORDS = frozenset([
    "a", "an", "the",
    "and", "or", "but",
    "in", "on", "at", "to", "for", "with", "about", "of", "by", "from", "as",
    "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did",
    "can", "could", "will", "would", "should", "shall", "may", "might", "must",
    "this", "that", "these", "those",
])

_PUNCTUATION = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> Set[str]:
    """
    Extract query keywords from text.

    Lowercases, strips punctuation and splits on whitespace, then drops
    stop words and tokens of two characters or fewer.

    Args:
        text: Text to extract keywords from

    Returns:
        Set of keywords (empty for empty or stop-word-only text)
    """
    words = _PUNCTUATION.sub("", text.lower()).split()
    return {word for word in words if len(word) > 2 and word not in STOP_WORDS}


def keyword_score(text: str, query_keywords: Iterable[str]) -> float:
    """
    Fraction of query keywords that occur anywhere in the text.

    Matching is a substring test against the lowercased text, so "refund"
    also matches "refunds".

    Args:
        text: Passage text
        query_keywords: Keywords extracted from the query

    Returns:
        Score between 0.0 and 1.0; 0.0 when there are no keywords
    """
    keywords = set(query_keywords)
    if not keywords:
        return 0.0

    lower_text = text.lower()
    matches = sum(1 for keyword in keywords if keyword in lower_text)
    return matches / len(keywords)
