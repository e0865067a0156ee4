"""Restricted boolean expression language over ``source``/``target`` records."""

from __future__ import annotations

from correlator.domain.expressions.compiler import compile_expression
from correlator.domain.expressions.evaluator import evaluate_expression
from correlator.domain.expressions.nodes import CompiledExpression
from correlator.domain.expressions.preview import DryRunResult, dry_run

__all__ = [
    "CompiledExpression",
    "DryRunResult",
    "compile_expression",
    "dry_run",
    "evaluate_expression",
]
