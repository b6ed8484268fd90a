"""Similarity scoring between a guess and a target prompt.

Lexical scorers work on trimmed, lower-cased text and return scores on a
0-100 scale. The embedding scorer returns a cosine similarity in [-1, 1] and
is only ever invoked through its own entry point.
"""

import math
from typing import Optional, Sequence

import numpy as np

from promptguess.backend.models import ScoringAlgorithm
from promptguess.lib.exceptions import (
    EmbeddingDimensionMismatchError,
    InvalidInputError,
)

EXACT_MATCH_SCORE = 100.0
CONTAINMENT_SCORE = 80.0
NO_MATCH_SCORE = 0.0


def normalize(text: str) -> str:
    return text.strip().lower()


def exact_match(a: str, b: str) -> Optional[float]:
    """Return 100 when both strings are equal ignoring case and outer whitespace."""
    if normalize(a) == normalize(b):
        return EXACT_MATCH_SCORE
    return None


def containment(a: str, b: str) -> Optional[float]:
    """Return 80 when either normalized string contains the other.

    An empty string is contained in everything, so it only counts against
    another empty string.
    """
    s1, s2 = normalize(a), normalize(b)
    if bool(s1) != bool(s2):
        return None
    if s1 in s2 or s2 in s1:
        return CONTAINMENT_SCORE
    return None


def levenshtein(a: str, b: str) -> int:
    # Two-row dynamic programming table
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def edit_distance(a: str, b: str) -> float:
    """Levenshtein similarity on a 0-100 scale, rounded half up to 2 decimals.

    Two empty strings are identical (100); exactly one empty string scores 0.
    """
    s1, s2 = normalize(a), normalize(b)
    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return EXACT_MATCH_SCORE
    if not s1 or not s2:
        return NO_MATCH_SCORE
    distance = levenshtein(s1, s2)
    similarity = ((max_len - distance) / max_len) * 100
    return math.floor(similarity * 100 + 0.5) / 100


def lexical_similarity(a: str, b: str) -> float:
    """Cascade exact -> containment -> edit distance, first hit wins."""
    score = exact_match(a, b)
    if score is not None:
        return score
    score = containment(a, b)
    if score is not None:
        return score
    return edit_distance(a, b)


def score_lexical(algorithm: ScoringAlgorithm, a: str, b: str) -> float:
    """Score a guess with one lexical algorithm.

    ``exact`` only accepts an exact match, ``containment`` also accepts
    substring matches, and ``edit_distance`` runs the full cascade.
    """
    algorithm = ScoringAlgorithm(algorithm)
    if algorithm == ScoringAlgorithm.EXACT:
        score = exact_match(a, b)
    elif algorithm == ScoringAlgorithm.CONTAINMENT:
        score = exact_match(a, b)
        if score is None:
            score = containment(a, b)
    elif algorithm == ScoringAlgorithm.EDIT_DISTANCE:
        score = lexical_similarity(a, b)
    else:
        raise InvalidInputError(
            "Algorithm is not lexical", {"algorithm": str(algorithm)}
        )
    return NO_MATCH_SCORE if score is None else score


def embedding_cosine(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity of two embedding vectors.

    Raises:
        EmbeddingDimensionMismatchError: If the vectors differ in length
    """
    if len(vec_a) != len(vec_b):
        raise EmbeddingDimensionMismatchError(len(vec_a), len(vec_b))

    arr_a = np.asarray(vec_a, dtype=np.float64)
    arr_b = np.asarray(vec_b, dtype=np.float64)
    norm_a = np.linalg.norm(arr_a)
    norm_b = np.linalg.norm(arr_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(arr_a, arr_b) / (norm_a * norm_b))
    # Rounding can push parallel vectors slightly past 1
    return max(-1.0, min(1.0, similarity))
