"""Formula tokenizer.

Splits formula text into a flat list of typed tokens, left to right.
Whitespace is skipped; positions are not kept on the tokens.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from gridformula.core.exceptions import FormulaLexError
from gridformula.formula.values import parse_number_literal

DIGITS = "0123456789"
QUOTES = "\"'"
SINGLE_CHAR_OPERATORS = "+-*/(),%<>=!&|"
TWO_CHAR_OPERATORS = ("<=", ">=", "!=", "==", "&&", "||")


class TokenType(str, Enum):
    """Lexical classes produced by the tokenizer."""

    NUMBER = "number"
    STRING = "string"
    FIELD = "field"
    IDENTIFIER = "identifier"
    OPERATOR = "operator"


@dataclass(frozen=True)
class Token:
    """Single lexical token."""

    type: TokenType
    value: Any

    def is_operator(self, *values: str) -> bool:
        return self.type is TokenType.OPERATOR and (not values or self.value in values)


def tokenize(formula: str) -> list[Token]:
    """
    Convert formula text into tokens.

    Args:
        formula: Raw formula text

    Returns:
        Tokens in source order

    Raises:
        FormulaLexError: On a character outside the formula alphabet or an
            unterminated string literal / field reference
    """
    tokens: list[Token] = []
    pos = 0
    length = len(formula)

    while pos < length:
        ch = formula[pos]

        if ch.isspace():
            pos += 1
            continue

        if ch in DIGITS:
            start = pos
            while pos < length and (formula[pos] in DIGITS or formula[pos] == "."):
                pos += 1
            tokens.append(Token(TokenType.NUMBER, parse_number_literal(formula[start:pos])))
            continue

        if ch in QUOTES:
            end = formula.find(ch, pos + 1)
            if end == -1:
                raise FormulaLexError("Unterminated string literal", details={"position": pos})
            tokens.append(Token(TokenType.STRING, formula[pos + 1 : end]))
            pos = end + 1
            continue

        if ch == "{":
            end = formula.find("}", pos + 1)
            if end == -1:
                raise FormulaLexError("Unterminated field reference", details={"position": pos})
            tokens.append(Token(TokenType.FIELD, formula[pos + 1 : end]))
            pos = end + 1
            continue

        if ch.isalpha() or ch == "_":
            start = pos
            while pos < length and (formula[pos].isalnum() or formula[pos] == "_"):
                pos += 1
            tokens.append(Token(TokenType.IDENTIFIER, formula[start:pos].upper()))
            continue

        pair = formula[pos : pos + 2]
        if pair in TWO_CHAR_OPERATORS:
            tokens.append(Token(TokenType.OPERATOR, pair))
            pos += 2
            continue

        if ch in SINGLE_CHAR_OPERATORS:
            tokens.append(Token(TokenType.OPERATOR, ch))
            pos += 1
            continue

        raise FormulaLexError.unexpected_character(ch, pos)

    return tokens
