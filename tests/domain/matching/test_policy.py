from __future__ import annotations

import pytest

from correlator.domain.matching import decide
from correlator.domain.model import DECISION_RANK, Decision
from tests.support.correlation import make_config


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (0.0, Decision.NO_MATCH),
        (0.29, Decision.NO_MATCH),
        (0.3, Decision.MANUAL_REVIEW),
        (0.5, Decision.MANUAL_REVIEW),
        (0.9, Decision.AUTO_CONFIRM),
        (1.0, Decision.AUTO_CONFIRM),
    ],
)
def test_thresholds_are_inclusive(score: float, expected: Decision) -> None:
    assert decide(score, False, make_config(auto=0.9, manual=0.3)) is expected  # noqa: FBT003


def test_definitive_hit_always_auto_confirms() -> None:
    config = make_config(auto=1.0, manual=1.0)

    assert decide(0.0, True, config) is Decision.AUTO_CONFIRM  # noqa: FBT003


def test_equal_thresholds_leave_no_review_band() -> None:
    config = make_config(auto=0.6, manual=0.6)

    assert decide(0.59, False, config) is Decision.NO_MATCH  # noqa: FBT003
    assert decide(0.6, False, config) is Decision.AUTO_CONFIRM  # noqa: FBT003


def test_decisions_are_monotonic_in_score() -> None:
    config = make_config(auto=0.8, manual=0.4)
    scores = [step / 100 for step in range(101)]

    ranks = [DECISION_RANK[decide(score, False, config)] for score in scores]  # noqa: FBT003

    assert ranks == sorted(ranks)


def test_tuning_mode_does_not_change_the_decision() -> None:
    committed = make_config(auto=0.9, manual=0.3)
    tuning = make_config(auto=0.9, manual=0.3, tuning_mode=True)

    assert decide(0.5, False, committed) is decide(0.5, False, tuning)  # noqa: FBT003
    assert tuning.should_commit is False
