"""Value preparation shared by the exact and fuzzy evaluators."""

from __future__ import annotations

import unicodedata
from datetime import date, datetime
from uuid import UUID


def normalize_text(value: str) -> str:
    """NFKC-fold, case-fold and collapse whitespace."""

    text = unicodedata.normalize("NFKC", value)
    text = text.casefold()
    return " ".join(text.split())


def scalar_text(value: object) -> str | None:
    """Render a scalar attribute value as text; ``None`` for anything else."""

    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    return None


def prepare_value(value: object, *, normalize: bool) -> str | None:
    """Return comparable text, or ``None`` when the value is missing or blank."""

    text = scalar_text(value)
    if text is None:
        return None
    prepared = normalize_text(text) if normalize else text
    if not prepared.strip():
        return None
    return prepared
