"""Compile match expressions into the closed node set.

Python's own parser produces the syntax tree; a whitelist walk then translates
the handful of permitted constructs and rejects everything else. Nothing is
ever handed to ``eval``/``exec``.

Permitted::

    source.email == target.email
    lower(source["mail address"]) != lower(target.mail)
    "@corp" in source.email and not (target.status in ("disabled", "locked"))
"""

from __future__ import annotations

import ast
from typing import Final

from correlator.config.engine import MAX_EXPRESSION_LENGTH
from correlator.domain.errors import ExpressionCompileError
from correlator.domain.expressions.nodes import (
    AttributeRef,
    BoolOp,
    BoolOperator,
    Compare,
    CompareOp,
    CompiledExpression,
    Constant,
    ConstantValue,
    Node,
    Not,
    Operand,
    RecordSide,
    Transform,
    TransformName,
)

MAX_DEPTH: Final[int] = 64

_COMPARE_OPS: Final[dict[type[ast.cmpop], CompareOp]] = {
    ast.Eq: CompareOp.EQ,
    ast.NotEq: CompareOp.NE,
    ast.In: CompareOp.IN,
    ast.NotIn: CompareOp.NOT_IN,
}
_BOOL_OPS: Final[dict[type[ast.boolop], BoolOperator]] = {
    ast.And: BoolOperator.AND,
    ast.Or: BoolOperator.OR,
}
_SIDES: Final[dict[str, RecordSide]] = {side.value: side for side in RecordSide}
_TRANSFORMS: Final[dict[str, TransformName]] = {name.value: name for name in TransformName}


def compile_expression(
    text: str,
    *,
    max_length: int = MAX_EXPRESSION_LENGTH,
) -> CompiledExpression:
    """Parse ``text`` or raise ``ExpressionCompileError``."""

    stripped = text.strip()
    if not stripped:
        raise ExpressionCompileError("Expression is empty")
    if len(text) > max_length:
        raise ExpressionCompileError(f"Expression exceeds {max_length} characters")

    try:
        tree = ast.parse(stripped, mode="eval")
    except SyntaxError as exc:
        raise ExpressionCompileError(f"Syntax error: {exc.msg}", offset=exc.offset) from exc
    except (ValueError, RecursionError, MemoryError) as exc:
        raise ExpressionCompileError(f"Unparseable expression: {exc}") from exc

    root = _translate(tree.body, depth=0)
    return CompiledExpression(source=stripped, root=root)


def _reject(node: ast.AST, message: str) -> ExpressionCompileError:
    offset = getattr(node, "col_offset", None)
    return ExpressionCompileError(message, offset=None if offset is None else offset + 1)


def _translate(node: ast.expr, *, depth: int) -> Node:
    if depth > MAX_DEPTH:
        raise _reject(node, "Expression is nested too deeply")

    if isinstance(node, ast.BoolOp):
        operator = _BOOL_OPS[type(node.op)]
        operands = tuple(_translate(value, depth=depth + 1) for value in node.values)
        return BoolOp(operator, operands)

    if isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, ast.Not):
            raise _reject(node, "Only 'not' is allowed as a unary operator")
        return Not(_translate(node.operand, depth=depth + 1))

    if isinstance(node, ast.Compare):
        if len(node.ops) != 1:
            raise _reject(node, "Chained comparisons are not supported")
        op = _COMPARE_OPS.get(type(node.ops[0]))
        if op is None:
            raise _reject(node, "Only ==, !=, in and not in comparisons are allowed")
        left = _translate_operand(node.left, depth=depth + 1)
        right = _translate_operand(node.comparators[0], depth=depth + 1)
        return Compare(left, op, right)

    return _translate_operand(node, depth=depth)


def _translate_operand(node: ast.expr, *, depth: int) -> Operand:
    if depth > MAX_DEPTH:
        raise _reject(node, "Expression is nested too deeply")

    if isinstance(node, ast.Constant):
        return Constant(_constant_value(node))

    if isinstance(node, ast.Tuple | ast.List):
        items = tuple(_constant_value(_require_constant(item)) for item in node.elts)
        return Constant(items)

    if isinstance(node, ast.Attribute):
        return AttributeRef(_record_side(node.value), node.attr)

    if isinstance(node, ast.Subscript):
        side = _record_side(node.value)
        key = node.slice
        if not isinstance(key, ast.Constant) or not isinstance(key.value, str):
            raise _reject(node, "Record subscripts must be string literals")
        if not key.value:
            raise _reject(node, "Attribute name must be non-empty")
        return AttributeRef(side, key.value)

    if isinstance(node, ast.Call):
        return _translate_call(node, depth=depth)

    if isinstance(node, ast.Name):
        if node.id in _SIDES:
            raise _reject(node, f"'{node.id}' must be followed by an attribute")
        raise _reject(node, f"Unknown name '{node.id}'")

    raise _reject(node, f"Unsupported syntax: {type(node).__name__}")


def _translate_call(node: ast.Call, *, depth: int) -> Transform:
    if not isinstance(node.func, ast.Name) or node.func.id not in _TRANSFORMS:
        allowed = ", ".join(sorted(_TRANSFORMS))
        raise _reject(node, f"Function calls are limited to: {allowed}")
    if node.keywords or len(node.args) != 1:
        raise _reject(node, f"{node.func.id}() takes exactly one positional argument")
    argument = node.args[0]
    if isinstance(argument, ast.Starred):
        raise _reject(node, "Argument unpacking is not allowed")
    return Transform(_TRANSFORMS[node.func.id], _translate_operand(argument, depth=depth + 1))


def _record_side(node: ast.expr) -> RecordSide:
    if isinstance(node, ast.Name) and node.id in _SIDES:
        return _SIDES[node.id]
    raise _reject(node, "Only 'source' and 'target' records can be referenced")


def _require_constant(node: ast.expr) -> ast.Constant:
    if not isinstance(node, ast.Constant):
        raise _reject(node, "Collections may only contain literals")
    return node


def _constant_value(node: ast.Constant) -> ConstantValue:
    value = node.value
    if value is None or isinstance(value, str | int | float | bool):
        return value
    raise _reject(node, f"Unsupported literal type: {type(value).__name__}")
