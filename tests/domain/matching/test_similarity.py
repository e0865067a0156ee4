from __future__ import annotations

import pytest

from correlator.domain.matching import (
    jaro_winkler_similarity,
    levenshtein_similarity,
    similarity,
)
from correlator.domain.model import FuzzyAlgorithm


def test_levenshtein_is_normalised_by_longer_string() -> None:
    assert levenshtein_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)
    assert levenshtein_similarity("", "") == 1.0
    assert levenshtein_similarity("abc", "") == 0.0


def test_jaro_winkler_rewards_common_prefix() -> None:
    assert jaro_winkler_similarity("MARTHA", "MARHTA") == pytest.approx(0.9611, abs=1e-4)
    assert jaro_winkler_similarity("DIXON", "DICKSONX") == pytest.approx(0.8133, abs=1e-4)


def test_jaro_winkler_for_unrelated_phone_numbers_is_low() -> None:
    score = jaro_winkler_similarity("111-222-3333", "999-888-7777")

    assert score == pytest.approx(4 / 9, abs=1e-3)
    assert score < 0.8


@pytest.mark.parametrize("algorithm", list(FuzzyAlgorithm))
def test_similarity_is_symmetric_and_bounded(algorithm: FuzzyAlgorithm) -> None:
    pairs = [("jon smith", "john smyth"), ("a", "b"), ("alice", "alice"), ("xyz", "")]
    for a, b in pairs:
        forward = similarity(algorithm, a, b)
        assert forward == similarity(algorithm, b, a)
        assert 0.0 <= forward <= 1.0
    assert similarity(algorithm, "same", "same") == 1.0
