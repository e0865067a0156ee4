"""Compile-and-try helper for rule authors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from correlator.domain.errors import ExpressionCompileError, ExpressionEvaluationError
from correlator.domain.expressions.compiler import compile_expression
from correlator.domain.expressions.evaluator import evaluate_expression

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class DryRunResult:
    valid: bool
    error: str | None = None
    offset: int | None = None
    result: bool | None = None
    attributes: tuple[str, ...] = ()


def dry_run(
    text: str,
    source: Mapping[str, object] | None = None,
    target: Mapping[str, object] | None = None,
) -> DryRunResult:
    """Compile ``text`` and, when test records are given, evaluate it.

    ``attributes`` lists the record attributes the expression reads, such as
    ``source.email``, so authors can check them against their schema.

    A valid expression that cannot be evaluated against the test records (for
    example a missing attribute) is still ``valid``; ``error`` explains why no
    result was produced.
    """

    try:
        compiled = compile_expression(text)
    except ExpressionCompileError as exc:
        return DryRunResult(valid=False, error=exc.message, offset=exc.offset)
    attributes = tuple(str(ref) for ref in compiled.attributes())
    if source is None and target is None:
        return DryRunResult(valid=True, attributes=attributes)
    try:
        result = evaluate_expression(compiled, source or {}, target or {})
    except ExpressionEvaluationError as exc:
        return DryRunResult(valid=True, error=str(exc), attributes=attributes)
    return DryRunResult(valid=True, result=result, attributes=attributes)
