"""Formula parsers for gridformula.

Two dialects produce the same AST:

- ``FormulaParser`` is a recursive-descent parser whose binary operators all
  share one precedence level and fold left to right (``2 + 3 * 4`` is 20).
  Parentheses are the only way to force evaluation order.
- ``PrecedenceParser`` uses a Lark LALR grammar with conventional operator
  tiers (``2 + 3 * 4`` is 14).

Both raise ``FormulaSyntaxError`` internally; ``parse_result`` collapses the
outcome into a ``ParseResult`` for callers that must not raise.
"""

from dataclasses import dataclass
from typing import Sequence

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedCharacters, UnexpectedInput, UnexpectedToken, VisitError

from gridformula.core.exceptions import FormulaError, FormulaLimitError, FormulaSyntaxError
from gridformula.core.logging import get_logger
from gridformula.formula.grammar import FORMULA_GRAMMAR
from gridformula.formula.nodes import (
    Binary,
    BinaryOperator,
    Call,
    FieldRef,
    Literal,
    Node,
    Unary,
    UnaryOperator,
    iter_nodes,
)
from gridformula.formula.tokenizer import Token, TokenType, tokenize
from gridformula.formula.values import parse_number_literal

logger = get_logger(__name__)

DEFAULT_MAX_DEPTH = 100
BOOLEAN_IDENTIFIERS = {"TRUE": True, "FALSE": False}


@dataclass(frozen=True)
class ParseResult:
    """Outcome of parsing one formula: an AST or an error."""

    ast: Node | None = None
    error: FormulaError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _TokenCursor:
    """Flat-precedence recursive-descent parse over a token list."""

    def __init__(self, tokens: Sequence[Token], max_depth: int) -> None:
        self.tokens = tokens
        self.pos = 0
        self.depth = 0
        self.max_depth = max_depth

    def peek(self) -> Token | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def expression(self) -> Node:
        node = self.primary()
        while True:
            token = self.peek()
            if token is None or token.type is not TokenType.OPERATOR:
                break
            operator = BinaryOperator.from_symbol(token.value)
            if operator is None:
                break
            self.advance()
            node = Binary(operator, node, self.primary())
        return node

    def primary(self) -> Node:
        # Each nested group, call argument or unary operand is one level deeper
        self._enter()
        try:
            return self._primary()
        finally:
            self.depth -= 1

    def _primary(self) -> Node:
        token = self.peek()
        if token is None:
            raise FormulaSyntaxError("Unexpected end of formula")
        self.advance()

        if token.type in (TokenType.NUMBER, TokenType.STRING):
            return Literal(token.value)

        if token.type is TokenType.FIELD:
            return FieldRef(token.value)

        if token.type is TokenType.IDENTIFIER:
            next_token = self.peek()
            if next_token is not None and next_token.is_operator("("):
                self.advance()
                return Call(token.value, self._arguments(token.value))
            if token.value in BOOLEAN_IDENTIFIERS:
                return Literal(BOOLEAN_IDENTIFIERS[token.value])
            raise FormulaSyntaxError(
                f"Unknown identifier: {token.value}", details={"identifier": token.value}
            )

        if token.is_operator("("):
            node = self.expression()
            closing = self.peek()
            if closing is None or not closing.is_operator(")"):
                raise FormulaSyntaxError("Missing closing parenthesis")
            self.advance()
            return node

        if token.is_operator("-"):
            return Unary(UnaryOperator.NEGATE, self.primary())

        if token.is_operator("!"):
            return Unary(UnaryOperator.NOT, self.primary())

        raise FormulaSyntaxError(
            f"Unexpected token '{token.value}'", details={"token": str(token.value)}
        )

    def _arguments(self, name: str) -> tuple[Node, ...]:
        args: list[Node] = []
        token = self.peek()
        if token is not None and token.is_operator(")"):
            self.advance()
            return ()
        while True:
            args.append(self.expression())
            token = self.peek()
            if token is None:
                raise FormulaSyntaxError("Missing closing parenthesis")
            if token.is_operator(","):
                self.advance()
                continue
            if token.is_operator(")"):
                self.advance()
                return tuple(args)
            raise FormulaSyntaxError(
                f"Expected ',' or ')' after argument to {name}",
                details={"function": name, "token": str(token.value)},
            )

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > self.max_depth:
            raise FormulaLimitError.depth(self.max_depth)


class FormulaParser:
    """
    Flat-precedence parser for formulas.

    Every binary operator binds equally and folds left to right; the right
    operand of each operator is the next primary, not a sub-expression.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH, max_tokens: int | None = None):
        self.max_depth = max_depth
        self.max_tokens = max_tokens

    def parse(self, formula: str | Sequence[Token]) -> Node:
        """
        Parse formula text (or an already tokenized formula) into an AST.

        Args:
            formula: Formula string or token list

        Returns:
            AST root node

        Raises:
            FormulaSyntaxError: If the formula is malformed
            FormulaLimitError: If nesting exceeds ``max_depth`` or the token
                count exceeds ``max_tokens``
        """
        tokens = self.tokenize(formula) if isinstance(formula, str) else list(formula)
        cursor = _TokenCursor(tokens, self.max_depth)
        ast = cursor.expression()
        if cursor.pos < len(tokens):
            logger.debug(
                f"Ignoring {len(tokens) - cursor.pos} trailing token(s) "
                f"starting at {tokens[cursor.pos].value!r}"
            )
        check_depth(ast, self.max_depth)
        return ast

    def tokenize(self, formula: str) -> list[Token]:
        """Tokenize formula text, enforcing the token ceiling."""
        tokens = tokenize(formula)
        if self.max_tokens is not None and len(tokens) > self.max_tokens:
            raise FormulaLimitError.tokens(self.max_tokens, len(tokens))
        return tokens

    def parse_result(self, formula: str | Sequence[Token]) -> ParseResult:
        """Parse without raising; structural errors come back in the result."""
        try:
            return ParseResult(ast=self.parse(formula))
        except FormulaError as e:
            return ParseResult(error=e)
        except RecursionError:
            logger.warning(
                f"Formula nesting exhausted the interpreter stack (max_depth={self.max_depth})"
            )
            return ParseResult(error=FormulaLimitError.depth(self.max_depth))

    def validate(self, formula: str) -> tuple[bool, str | None]:
        """
        Validate formula syntax.

        Args:
            formula: Formula string to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        result = self.parse_result(formula)
        if result.ok:
            return True, None
        return False, result.error.message

    def get_field_references(self, formula: str) -> list[str]:
        """
        Extract field paths referenced in a formula, in order of first use.

        Args:
            formula: Formula string

        Returns:
            List of distinct field paths
        """
        return collect_field_references(self.parse(formula))


class FormulaTransformer(Transformer):
    """Transform the Lark parse tree into AST nodes."""

    @v_args(inline=True)
    def number(self, token):
        return Literal(parse_number_literal(str(token)))

    @v_args(inline=True)
    def string(self, token):
        # Remove quotes
        return Literal(str(token)[1:-1])

    @v_args(inline=True)
    def field_ref(self, token):
        # Extract path from {path}
        return FieldRef(str(token)[1:-1])

    @v_args(inline=True)
    def identifier(self, token):
        name = str(token).upper()
        if name in BOOLEAN_IDENTIFIERS:
            return Literal(BOOLEAN_IDENTIFIERS[name])
        raise FormulaSyntaxError(f"Unknown identifier: {name}", details={"identifier": name})

    def function_call(self, items):
        name = str(items[0]).upper()
        args = tuple(items[1]) if len(items) > 1 and items[1] else ()
        return Call(name, args)

    def arguments(self, items):
        return list(items)

    # Binary operators
    @v_args(inline=True)
    def add(self, left, right):
        return Binary(BinaryOperator.ADD, left, right)

    @v_args(inline=True)
    def sub(self, left, right):
        return Binary(BinaryOperator.SUBTRACT, left, right)

    @v_args(inline=True)
    def mul(self, left, right):
        return Binary(BinaryOperator.MULTIPLY, left, right)

    @v_args(inline=True)
    def div(self, left, right):
        return Binary(BinaryOperator.DIVIDE, left, right)

    # Comparison operators
    @v_args(inline=True)
    def eq(self, left, right):
        return Binary(BinaryOperator.EQUAL, left, right)

    @v_args(inline=True)
    def ne(self, left, right):
        return Binary(BinaryOperator.NOT_EQUAL, left, right)

    @v_args(inline=True)
    def lt(self, left, right):
        return Binary(BinaryOperator.LESS, left, right)

    @v_args(inline=True)
    def gt(self, left, right):
        return Binary(BinaryOperator.GREATER, left, right)

    @v_args(inline=True)
    def le(self, left, right):
        return Binary(BinaryOperator.LESS_EQUAL, left, right)

    @v_args(inline=True)
    def ge(self, left, right):
        return Binary(BinaryOperator.GREATER_EQUAL, left, right)

    # Logical operators
    @v_args(inline=True)
    def and_op(self, left, right):
        return Binary(BinaryOperator.AND, left, right)

    @v_args(inline=True)
    def or_op(self, left, right):
        return Binary(BinaryOperator.OR, left, right)

    # Unary operators
    @v_args(inline=True)
    def neg(self, operand):
        return Unary(UnaryOperator.NEGATE, operand)

    @v_args(inline=True)
    def not_op(self, operand):
        return Unary(UnaryOperator.NOT, operand)


class PrecedenceParser(FormulaParser):
    """
    Conventional-precedence parser for formulas.

    The text is tokenized first so lexical errors and token ceilings match
    the flat dialect, then parsed by Lark using ``FORMULA_GRAMMAR``.
    """

    _lark: Lark | None = None

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH, max_tokens: int | None = None):
        super().__init__(max_depth, max_tokens)
        if PrecedenceParser._lark is None:
            PrecedenceParser._lark = Lark(
                FORMULA_GRAMMAR,
                parser="lalr",
                transformer=FormulaTransformer(),
            )

    def parse(self, formula: str | Sequence[Token]) -> Node:
        if not isinstance(formula, str):
            raise TypeError("PrecedenceParser parses formula text, not tokens")
        self.tokenize(formula)
        try:
            ast = self._lark.parse(formula)
        except FormulaError:
            raise
        except VisitError as e:
            if isinstance(e.orig_exc, FormulaError):
                raise e.orig_exc
            raise FormulaSyntaxError(f"Invalid formula syntax: {e.orig_exc}") from e
        except UnexpectedInput as e:
            raise self._translate(e) from e
        except LarkError as e:
            raise FormulaSyntaxError(f"Invalid formula syntax: {e}") from e
        check_depth(ast, self.max_depth)
        return ast

    def _translate(self, error: UnexpectedInput) -> FormulaSyntaxError:
        if isinstance(error, UnexpectedCharacters):
            return FormulaSyntaxError(
                f"Unexpected character '{error.char}'", details={"character": error.char}
            )
        if isinstance(error, UnexpectedToken):
            if error.token.type == "$END":
                if "RPAR" in error.expected:
                    return FormulaSyntaxError("Missing closing parenthesis")
                return FormulaSyntaxError("Unexpected end of formula")
            return FormulaSyntaxError(
                f"Unexpected token '{error.token}'", details={"token": str(error.token)}
            )
        return FormulaSyntaxError("Unexpected end of formula")


def check_depth(ast: Node, max_depth: int) -> None:
    """Raise ``FormulaLimitError`` if the tree is nested deeper than ``max_depth``."""
    stack: list[tuple[Node, int]] = [(ast, 1)]
    while stack:
        node, depth = stack.pop()
        if depth > max_depth:
            raise FormulaLimitError.depth(max_depth)
        if isinstance(node, Call):
            stack.extend((arg, depth + 1) for arg in node.args)
        elif isinstance(node, Binary):
            stack.append((node.left, depth + 1))
            stack.append((node.right, depth + 1))
        elif isinstance(node, Unary):
            stack.append((node.operand, depth + 1))


def collect_field_references(ast: Node) -> list[str]:
    """Distinct field paths in a tree, in order of first appearance."""
    seen: dict[str, None] = {}
    for node in iter_nodes(ast):
        if isinstance(node, FieldRef):
            seen.setdefault(node.path, None)
    return list(seen)


def collect_function_names(ast: Node) -> list[str]:
    """Distinct called function names in a tree, in order of first appearance."""
    seen: dict[str, None] = {}
    for node in iter_nodes(ast):
        if isinstance(node, Call):
            seen.setdefault(node.name, None)
    return list(seen)


def create_parser(
    precedence: str = "flat",
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_tokens: int | None = None,
) -> FormulaParser:
    """Build the parser for a precedence dialect ('flat' or 'standard')."""
    if precedence == "flat":
        return FormulaParser(max_depth, max_tokens)
    if precedence == "standard":
        return PrecedenceParser(max_depth, max_tokens)
    raise ValueError(f"Unknown precedence dialect: {precedence}")


__all__ = [
    "FormulaParser",
    "PrecedenceParser",
    "ParseResult",
    "FormulaTransformer",
    "check_depth",
    "collect_field_references",
    "collect_function_names",
    "create_parser",
]
