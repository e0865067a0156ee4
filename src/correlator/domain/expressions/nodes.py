"""Node types of the restricted match-expression language.

The set is closed: comparisons and boolean composition over values read from
the two record maps, plus a handful of pure string helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal


class RecordSide(StrEnum):
    SOURCE = "source"
    TARGET = "target"


class CompareOp(StrEnum):
    EQ = "=="
    NE = "!="
    IN = "in"
    NOT_IN = "not in"


class BoolOperator(StrEnum):
    AND = "and"
    OR = "or"


class TransformName(StrEnum):
    LOWER = "lower"
    UPPER = "upper"
    TRIM = "trim"


type ConstantValue = str | int | float | bool | None | tuple[str | int | float | bool | None, ...]


@dataclass(frozen=True, slots=True)
class Constant:
    value: ConstantValue
    kind: Literal["constant"] = "constant"


@dataclass(frozen=True, slots=True)
class AttributeRef:
    side: RecordSide
    name: str
    kind: Literal["attribute"] = "attribute"

    def __str__(self) -> str:
        return f"{self.side}.{self.name}"


@dataclass(frozen=True, slots=True)
class Transform:
    name: TransformName
    operand: Operand
    kind: Literal["transform"] = "transform"


@dataclass(frozen=True, slots=True)
class Compare:
    left: Operand
    op: CompareOp
    right: Operand
    kind: Literal["compare"] = "compare"


@dataclass(frozen=True, slots=True)
class BoolOp:
    op: BoolOperator
    operands: tuple[Node, ...]
    kind: Literal["bool_op"] = "bool_op"


@dataclass(frozen=True, slots=True)
class Not:
    operand: Node
    kind: Literal["not"] = "not"


type Operand = Constant | AttributeRef | Transform
type Node = Constant | AttributeRef | Transform | Compare | BoolOp | Not


@dataclass(frozen=True, slots=True)
class CompiledExpression:
    """A parsed, validated expression ready for evaluation."""

    source: str
    root: Node

    def attributes(self) -> tuple[AttributeRef, ...]:
        """All record attributes the expression reads, in first-use order."""

        seen: dict[AttributeRef, None] = {}
        stack: list[Node] = [self.root]
        while stack:
            node = stack.pop()
            if isinstance(node, AttributeRef):
                seen.setdefault(node, None)
            elif isinstance(node, Transform):
                stack.append(node.operand)
            elif isinstance(node, Compare):
                stack.extend((node.right, node.left))
            elif isinstance(node, BoolOp):
                stack.extend(reversed(node.operands))
            elif isinstance(node, Not):
                stack.append(node.operand)
        return tuple(seen)
