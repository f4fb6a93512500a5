"""Formula evaluator for gridformula.

Walks a parsed AST against an evaluation context. Runtime anomalies never
raise: division by zero yields ``"#DIV/0"``, unknown functions yield
``"#UNKNOWN_FUNC(NAME)"`` and failed coercions yield NaN or None.
"""

from collections.abc import Mapping
from typing import Any, Callable

from gridformula.core.exceptions import FormulaLimitError
from gridformula.core.logging import get_logger
from gridformula.formula.functions import FORMULA_FUNCTIONS, CallContext
from gridformula.formula.nodes import (
    Binary,
    BinaryOperator,
    Call,
    FieldRef,
    Literal,
    Node,
    Unary,
    UnaryOperator,
)
from gridformula.formula.parser import DEFAULT_MAX_DEPTH
from gridformula.formula.resolver import resolve_field
from gridformula.formula.values import (
    compare,
    ieee_divide,
    is_number,
    is_truthy,
    normalize_number,
    strict_equals,
    to_number,
    to_text,
)

logger = get_logger(__name__)

DIV_ZERO = "#DIV/0"
UNKNOWN_FUNC_PREFIX = "#UNKNOWN_FUNC("


def unknown_function(name: str) -> str:
    return f"{UNKNOWN_FUNC_PREFIX}{name})"


def is_sentinel(value: Any) -> bool:
    """True for the in-band runtime anomaly strings."""
    return isinstance(value, str) and (
        value == DIV_ZERO or (value.startswith(UNKNOWN_FUNC_PREFIX) and value.endswith(")"))
    )


# ==========================================================================
# Operator Implementations
# ==========================================================================


def _add(left: Any, right: Any) -> Any:
    """Concatenate when either side is text-like, otherwise add numerically."""
    if isinstance(left, (str, list, tuple, Mapping)) or isinstance(
        right, (str, list, tuple, Mapping)
    ):
        return to_text(left) + to_text(right)
    return normalize_number(to_number(left) + to_number(right))


def _subtract(left: Any, right: Any) -> Any:
    return normalize_number(to_number(left) - to_number(right))


def _multiply(left: Any, right: Any) -> Any:
    return normalize_number(to_number(left) * to_number(right))


def _divide(left: Any, right: Any) -> Any:
    """Division; a numeric zero divisor yields the ``#DIV/0`` sentinel."""
    if is_number(right) and right == 0:
        return DIV_ZERO
    return normalize_number(ieee_divide(to_number(left), to_number(right)))


def _and(left: Any, right: Any) -> Any:
    return right if is_truthy(left) else left


def _or(left: Any, right: Any) -> Any:
    return left if is_truthy(left) else right


BINARY_OPERATORS: dict[BinaryOperator, Callable[[Any, Any], Any]] = {
    BinaryOperator.ADD: _add,
    BinaryOperator.SUBTRACT: _subtract,
    BinaryOperator.MULTIPLY: _multiply,
    BinaryOperator.DIVIDE: _divide,
    BinaryOperator.LESS: lambda l, r: compare("<", l, r),
    BinaryOperator.GREATER: lambda l, r: compare(">", l, r),
    BinaryOperator.LESS_EQUAL: lambda l, r: compare("<=", l, r),
    BinaryOperator.GREATER_EQUAL: lambda l, r: compare(">=", l, r),
    BinaryOperator.EQUAL: strict_equals,
    BinaryOperator.NOT_EQUAL: lambda l, r: not strict_equals(l, r),
    BinaryOperator.AND: _and,
    BinaryOperator.OR: _or,
}

UNARY_OPERATORS: dict[UnaryOperator, Callable[[Any], Any]] = {
    UnaryOperator.NEGATE: lambda v: normalize_number(-to_number(v)),
    UnaryOperator.NOT: lambda v: not is_truthy(v),
}


class FormulaEvaluator:
    """
    Evaluates formula ASTs against an evaluation context.

    Both operands of every binary operator and every function argument are
    evaluated before the operator or function runs; nothing is lazy.
    """

    def __init__(self, record_store: Any = None, max_depth: int = DEFAULT_MAX_DEPTH):
        """
        Initialize evaluator.

        Args:
            record_store: Collaborator exposing ``get_entities()`` for LOOKUP
            max_depth: Maximum AST nesting depth before evaluation fails
        """
        self.record_store = record_store
        self.max_depth = max_depth

    def evaluate(self, ast: Node, context: Any = None) -> Any:
        """
        Evaluate an AST.

        Args:
            ast: Parsed formula
            context: ``{"row": {...}}`` or the row itself

        Returns:
            Evaluation result

        Raises:
            FormulaLimitError: If the tree is nested deeper than ``max_depth``
        """
        return self._eval(ast, {} if context is None else context, 1)

    def _eval(self, node: Node, context: Any, depth: int) -> Any:
        """Recursively evaluate an AST node."""
        if depth > self.max_depth:
            raise FormulaLimitError.depth(self.max_depth)

        if isinstance(node, Literal):
            return node.value

        if isinstance(node, FieldRef):
            return resolve_field(node.path, context)

        if isinstance(node, Unary):
            return UNARY_OPERATORS[node.operator](self._eval(node.operand, context, depth + 1))

        if isinstance(node, Binary):
            left = self._eval(node.left, context, depth + 1)
            right = self._eval(node.right, context, depth + 1)
            return BINARY_OPERATORS[node.operator](left, right)

        if isinstance(node, Call):
            return self._eval_function(node, context, depth)

        raise TypeError(f"Unknown node type: {type(node).__name__}")

    def _eval_function(self, node: Call, context: Any, depth: int) -> Any:
        """Evaluate a function call."""
        args = [self._eval(arg, context, depth + 1) for arg in node.args]

        spec = FORMULA_FUNCTIONS.get(node.name)
        if spec is None:
            return unknown_function(node.name)

        try:
            return spec.call(args, CallContext(context, self.record_store))
        except Exception as e:
            # Return None on error (safe mode)
            logger.warning(f"Formula function {node.name} failed: {e}")
            return None


def evaluate_formula(ast: Node, context: Any = None, record_store: Any = None) -> Any:
    """
    Convenience function to evaluate a parsed formula.

    Args:
        ast: Parsed formula AST
        context: Evaluation context
        record_store: Optional collaborator for LOOKUP

    Returns:
        Evaluation result
    """
    return FormulaEvaluator(record_store).evaluate(ast, context)
