"""Schemas for formula validation results."""

from typing import Optional

from pydantic import BaseModel, Field


class FormulaValidation(BaseModel):
    """Result of checking a formula in the formula editor."""

    valid: bool = Field(..., description="Whether the formula parses")
    error: Optional[str] = Field(None, description="Syntax error message, if any")
    fields: list[str] = Field(default_factory=list, description="Referenced field paths")
    functions: list[str] = Field(default_factory=list, description="Called function names")
    unknown_functions: list[str] = Field(
        default_factory=list, description="Called names missing from the function catalog"
    )
    unknown_fields: list[str] = Field(
        default_factory=list, description="Field paths whose root is not a known field"
    )

    @property
    def warnings(self) -> list[str]:
        """Human-readable warnings for unknown functions and fields."""
        return [f"Unknown function: {name}" for name in self.unknown_functions] + [
            f"Unknown field: {path}" for path in self.unknown_fields
        ]
