"""
Custom exceptions for gridformula.

Structural formula problems (bad characters, unbalanced parentheses,
unknown bare identifiers, resource ceilings) are raised as exceptions and
reported to hosts as an ``{"error": message}`` envelope. Runtime anomalies
are never exceptions; they travel in-band as sentinel values.
"""

from typing import Any


class FormulaError(Exception):
    """
    Base exception for all formula errors.

    All custom exceptions should inherit from this class.
    """

    default_code = "FORMULA_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
        """
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a detailed dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }

    def to_envelope(self) -> dict[str, str]:
        """Convert exception to the public ``{"error": message}`` result shape."""
        return {"error": self.message}


# =============================================================================
# Syntax Errors
# =============================================================================


class FormulaSyntaxError(FormulaError):
    """Formula text could not be parsed."""

    default_code = "SYNTAX_ERROR"


class FormulaLexError(FormulaSyntaxError):
    """Formula text could not be split into tokens."""

    default_code = "LEXICAL_ERROR"

    @classmethod
    def unexpected_character(cls, char: str, position: int) -> "FormulaLexError":
        """Build the error raised for a character outside the formula alphabet."""
        return cls(
            message=f"Unexpected character '{char}'",
            details={"character": char, "position": position},
        )


# =============================================================================
# Resource Ceilings
# =============================================================================


class FormulaLimitError(FormulaError):
    """Formula exceeded a configured size or nesting ceiling."""

    default_code = "LIMIT_EXCEEDED"

    @classmethod
    def depth(cls, max_depth: int) -> "FormulaLimitError":
        return cls(
            message=f"Formula nesting exceeds maximum depth of {max_depth}",
            details={"max_depth": max_depth},
        )

    @classmethod
    def tokens(cls, max_tokens: int, count: int) -> "FormulaLimitError":
        return cls(
            message=f"Formula exceeds maximum of {max_tokens} tokens",
            details={"max_tokens": max_tokens, "token_count": count},
        )


def is_error(result: Any) -> bool:
    """
    Check whether an evaluation result is the error envelope.

    Sentinel strings such as ``"#DIV/0"`` are successful results.

    Args:
        result: Value returned by ``FormulaEngine.evaluate``

    Returns:
        True if the result has the ``{"error": str}`` shape
    """
    return (
        isinstance(result, dict)
        and set(result) == {"error"}
        and isinstance(result["error"], str)
    )
