"""String similarity measures normalised to [0, 1]."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final, assert_never

from rapidfuzz.distance import JaroWinkler, Levenshtein

from correlator.domain.model.enums import FuzzyAlgorithm

if TYPE_CHECKING:
    from collections.abc import Callable

JARO_WINKLER_PREFIX_WEIGHT: Final[float] = 0.1


def levenshtein_similarity(a: str, b: str) -> float:
    """``1 - edit_distance / max(len(a), len(b))``; two empty strings are identical."""

    if a == b:
        return 1.0
    return _clamp(Levenshtein.normalized_similarity(a, b))


def jaro_winkler_similarity(a: str, b: str) -> float:
    """Jaro similarity boosted by a common prefix of up to four characters."""

    if a == b:
        return 1.0
    # fixed argument order keeps the score symmetric
    first, second = (a, b) if a <= b else (b, a)
    return _clamp(
        JaroWinkler.similarity(first, second, prefix_weight=JARO_WINKLER_PREFIX_WEIGHT)
    )


def similarity_function(algorithm: FuzzyAlgorithm) -> Callable[[str, str], float]:
    if algorithm is FuzzyAlgorithm.LEVENSHTEIN:
        return levenshtein_similarity
    if algorithm is FuzzyAlgorithm.JARO_WINKLER:
        return jaro_winkler_similarity
    assert_never(algorithm)


def similarity(algorithm: FuzzyAlgorithm, a: str, b: str) -> float:
    return similarity_function(algorithm)(a, b)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))
