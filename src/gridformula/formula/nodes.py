"""AST node types for formulas.

Nodes are immutable; parsing the same tokens twice yields equal trees.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class UnaryOperator(str, Enum):
    NEGATE = "-"
    NOT = "!"


class BinaryOperator(str, Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    LESS = "<"
    GREATER = ">"
    LESS_EQUAL = "<="
    GREATER_EQUAL = ">="
    EQUAL = "=="
    NOT_EQUAL = "!="
    AND = "&&"
    OR = "||"

    @classmethod
    def from_symbol(cls, symbol: str) -> "BinaryOperator | None":
        """Look up an operator by its source symbol; ``=`` is an alias of ``==``."""
        if symbol == "=":
            return cls.EQUAL
        try:
            return cls(symbol)
        except ValueError:
            return None


@dataclass(frozen=True)
class Literal:
    value: float | int | str | bool


@dataclass(frozen=True)
class FieldRef:
    path: str


@dataclass(frozen=True)
class Unary:
    operator: UnaryOperator
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    operator: BinaryOperator
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple["Node", ...]


Node = Union[Literal, FieldRef, Unary, Binary, Call]


def iter_nodes(root: Node):
    """Yield every node of a tree, pre-order, using an explicit stack."""
    stack: list[Node] = [root]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, Call):
            stack.extend(reversed(node.args))
        elif isinstance(node, Binary):
            stack.append(node.right)
            stack.append(node.left)
        elif isinstance(node, Unary):
            stack.append(node.operand)
