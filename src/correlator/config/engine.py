"""Matching engine defaults and tunables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import env_float, env_int
from .errors import ConfigurationError

DEFAULT_MAX_WORKERS: Final[int] = 4
DEFAULT_AUTO_CONFIRM_THRESHOLD: Final[float] = 0.9
DEFAULT_MANUAL_REVIEW_THRESHOLD: Final[float] = 0.7
DEFAULT_BATCH_SIZE: Final[int] = 100
MAX_BATCH_SIZE: Final[int] = 10_000
DEFAULT_CASE_PAGE_SIZE: Final[int] = 50
MAX_CASE_PAGE_SIZE: Final[int] = 500
MAX_EXPRESSION_LENGTH: Final[int] = 10_000


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Process-wide knobs for evaluation and listing.

    Threshold values here are only the fallback used for scopes without a stored
    threshold configuration.
    """

    max_workers: int = DEFAULT_MAX_WORKERS
    default_auto_confirm_threshold: float = DEFAULT_AUTO_CONFIRM_THRESHOLD
    default_manual_review_threshold: float = DEFAULT_MANUAL_REVIEW_THRESHOLD
    default_batch_size: int = DEFAULT_BATCH_SIZE
    case_page_size: int = DEFAULT_CASE_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ConfigurationError("max_workers", "must be at least 1")
        for name in ("default_auto_confirm_threshold", "default_manual_review_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(name, f"must be within [0, 1], got {value}")
        if self.default_auto_confirm_threshold < self.default_manual_review_threshold:
            raise ConfigurationError(
                "default_auto_confirm_threshold",
                "must not be below default_manual_review_threshold",
            )
        if not 1 <= self.default_batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError("default_batch_size", f"must be within [1, {MAX_BATCH_SIZE}]")
        if not 1 <= self.case_page_size <= MAX_CASE_PAGE_SIZE:
            raise ConfigurationError("case_page_size", f"must be within [1, {MAX_CASE_PAGE_SIZE}]")


def get_engine_config() -> EngineConfig:
    return EngineConfig(
        max_workers=env_int("CORRELATOR_MAX_WORKERS", DEFAULT_MAX_WORKERS, minimum=1),
        default_auto_confirm_threshold=env_float(
            "CORRELATOR_DEFAULT_AUTO_CONFIRM", DEFAULT_AUTO_CONFIRM_THRESHOLD
        ),
        default_manual_review_threshold=env_float(
            "CORRELATOR_DEFAULT_MANUAL_REVIEW", DEFAULT_MANUAL_REVIEW_THRESHOLD
        ),
        default_batch_size=env_int("CORRELATOR_DEFAULT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        case_page_size=env_int("CORRELATOR_CASE_PAGE_SIZE", DEFAULT_CASE_PAGE_SIZE),
    )
