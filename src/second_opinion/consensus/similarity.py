"""
Lexical similarity and risk detection over agent responses.

  significant_words()  -- lowercased content words (len > 2, no stopwords)
  jaccard()            -- |a ∩ b| / |a ∪ b|, 0 for two empty sets
  mean_similarity()    -- mean pairwise Jaccard; 1.0 for fewer than two texts
  is_critical()        -- exact-token match against the critical keyword set
"""

import re
from itertools import combinations

NON_WORD = re.compile(r"[^\w\s]")
TOKEN_SPLIT = re.compile(r"\W+")
MIN_WORD_LENGTH = 3

# Terms that flag an irreversible or high-stakes change.
CRITICAL_KEYWORDS = frozenset({
    "delete", "remove", "drop", "truncate", "destroy",
    "migrate", "schema", "database", "production", "deploy",
    "release", "publish", "security", "authentication", "auth",
    "encryption", "credential", "secret", "key", "token",
    "payment", "billing", "pii", "gdpr", "irreversible",
})

STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "must", "shall", "can", "need",
    "this", "that", "these", "those", "i", "you", "we", "they", "it",
    "its", "your", "our", "their", "my", "his", "her", "which", "who",
    "whom", "what", "where", "when", "why", "how", "all", "each", "every",
    "both", "few", "more", "most", "other", "some", "such", "no", "not",
    "only", "own", "same", "so", "than", "too", "very", "just", "also",
})


def significant_words(text: str) -> set[str]:
    words = NON_WORD.sub(" ", text.lower()).split()
    return {w for w in words if len(w) >= MIN_WORD_LENGTH and w not in STOPWORDS}


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def mean_similarity(texts: list[str]) -> float:
    """Arithmetic mean of Jaccard over all unordered pairs of texts."""
    if len(texts) < 2:
        return 1.0

    word_sets = [significant_words(t) for t in texts]
    scores = [jaccard(a, b) for a, b in combinations(word_sets, 2)]
    return sum(scores) / len(scores)


def is_critical(texts: list[str], keywords: frozenset[str] = CRITICAL_KEYWORDS) -> bool:
    """True iff some whole token of the combined texts is a critical keyword."""
    combined = " ".join(texts).lower()
    return any(token in keywords for token in TOKEN_SPLIT.split(combined))
