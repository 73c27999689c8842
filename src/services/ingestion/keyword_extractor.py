"""Term and keyword extraction shared by chunking and lexical retrieval.

The same normalization feeds both sides: keywords stored on a chunk at
ingestion time and the query terms scored against chunks at retrieval
time.  Keeping them identical is what makes the lexical overlap score
meaningful.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

_TERM_RE = re.compile(r"[a-z][a-z'-]*[a-z]|[a-z]")

_STOP_WORDS = frozenset(
    {
        "a", "about", "above", "after", "again", "against", "all", "also", "am",
        "an", "and", "any", "are", "as", "at", "be", "because", "been", "before",
        "being", "below", "between", "both", "but", "by", "can", "could", "did",
        "do", "does", "doing", "down", "during", "each", "even", "every", "few",
        "for", "from", "further", "had", "has", "have", "having", "he", "her",
        "here", "hers", "him", "his", "how", "however", "if", "in", "into", "is",
        "it", "its", "itself", "just", "like", "many", "may", "me", "might",
        "more", "most", "much", "must", "my", "no", "nor", "not", "now", "of",
        "off", "often", "on", "once", "one", "only", "or", "other", "our", "out",
        "over", "own", "same", "she", "should", "since", "so", "some", "such",
        "than", "that", "the", "their", "them", "then", "there", "these", "they",
        "this", "those", "through", "thus", "to", "too", "under", "until", "up",
        "upon", "us", "use", "used", "using", "very", "was", "we", "well", "were",
        "what", "when", "where", "which", "while", "who", "whom", "why", "will",
        "with", "within", "without", "would", "you", "your", "yours",
    }
)

# Keywords must be longer than this to count.
_MIN_KEYWORD_LENGTH = 4


def tokenize_terms(text: str) -> list[str]:
    """Lowercase word terms of *text*, in order, stop-words removed."""
    return [
        term
        for term in _TERM_RE.findall(text.lower())
        if len(term) > 2 and term not in _STOP_WORDS
    ]


def query_terms(query: str) -> set[str]:
    """Distinct terms of a retrieval query."""
    return set(tokenize_terms(query))


def extract_keywords(text: str, limit: int = 10) -> list[str]:
    """Return the *limit* most frequent keywords of *text*, sorted alphabetically.

    Frequency ties are broken alphabetically so the selection is
    deterministic.
    """
    counts = Counter(
        term for term in tokenize_terms(text) if len(term) >= _MIN_KEYWORD_LENGTH
    )
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return sorted(term for term, _ in ranked)


def key_phrases(keyword_sets: Iterable[Iterable[str]], limit: int = 20) -> list[str]:
    """Most common keywords across many chunks, most frequent first."""
    counts: Counter[str] = Counter()
    for keywords in keyword_sets:
        counts.update(set(keywords))
    return [term for term, _ in sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]]
