"""Evaluate compiled expressions against a read-only record pair."""

from __future__ import annotations

from typing import TYPE_CHECKING, assert_never

from correlator.domain.errors import ExpressionEvaluationError
from correlator.domain.expressions.nodes import (
    AttributeRef,
    BoolOp,
    BoolOperator,
    Compare,
    CompareOp,
    Constant,
    Not,
    RecordSide,
    Transform,
    TransformName,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from correlator.domain.expressions.nodes import CompiledExpression, Node


def evaluate_expression(
    compiled: CompiledExpression,
    source: Mapping[str, object],
    target: Mapping[str, object],
) -> bool:
    """Return the truthiness of ``compiled`` for the given records.

    Raises ``ExpressionEvaluationError`` when a referenced attribute is missing or
    an operator receives values it cannot compare.
    """

    records = {RecordSide.SOURCE: source, RecordSide.TARGET: target}
    try:
        return bool(_eval(compiled.root, records))
    except TypeError as exc:
        raise ExpressionEvaluationError(str(exc)) from exc


def _eval(node: Node, records: Mapping[RecordSide, Mapping[str, object]]) -> object:
    if isinstance(node, Constant):
        return node.value
    if isinstance(node, AttributeRef):
        record = records[node.side]
        if node.name not in record:
            raise ExpressionEvaluationError(f"missing attribute {node}")
        return record[node.name]
    if isinstance(node, Transform):
        return _apply_transform(node.name, _eval(node.operand, records))
    if isinstance(node, Compare):
        return _compare(node.op, _eval(node.left, records), _eval(node.right, records))
    if isinstance(node, BoolOp):
        if node.op is BoolOperator.AND:
            return all(_eval(operand, records) for operand in node.operands)
        return any(_eval(operand, records) for operand in node.operands)
    if isinstance(node, Not):
        return not _eval(node.operand, records)
    assert_never(node)


def _apply_transform(name: TransformName, value: object) -> str:
    if not isinstance(value, str):
        raise ExpressionEvaluationError(f"{name}() expects a string, got {type(value).__name__}")
    if name is TransformName.LOWER:
        return value.lower()
    if name is TransformName.UPPER:
        return value.upper()
    if name is TransformName.TRIM:
        return value.strip()
    assert_never(name)


def _compare(op: CompareOp, left: object, right: object) -> bool:
    if op is CompareOp.EQ:
        return left == right
    if op is CompareOp.NE:
        return left != right
    if op is CompareOp.IN:
        return _contains(right, left)
    if op is CompareOp.NOT_IN:
        return not _contains(right, left)
    assert_never(op)


def _contains(container: object, item: object) -> bool:
    if isinstance(container, str):
        if not isinstance(item, str):
            raise ExpressionEvaluationError("substring test needs a string on both sides")
        return item in container
    if isinstance(container, tuple | list | frozenset | set):
        return item in container  # pyright: ignore[reportUnknownArgumentType]
    raise ExpressionEvaluationError(
        f"'in' needs a string or collection on the right, got {type(container).__name__}"
    )
