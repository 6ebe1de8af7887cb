"""Title keyword extraction used for clustering."""

from __future__ import annotations

import re

MAX_KEYWORDS = 5

STOPWORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "been", "be",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "can", "this", "that", "these",
        "those",
    }
)  # fmt: skip

_NON_WORD_RE = re.compile(r"[^\w\s]")


def extract_keywords(title: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Return up to *limit* significant tokens from *title*, in title order.

    Tokens are lowercased with punctuation turned into whitespace.
    Tokens of two characters or fewer and stopwords are dropped. Order
    is positional, not frequency-ranked.
    """
    text = _NON_WORD_RE.sub(" ", title.lower())
    keywords: list[str] = []
    for token in text.split():
        if len(token) <= 2 or token in STOPWORDS:
            continue
        keywords.append(token)
        if len(keywords) >= limit:
            break
    return keywords
