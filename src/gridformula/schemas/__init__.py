"""Pydantic schemas for gridformula."""

from gridformula.schemas.formula import FormulaValidation

__all__ = ["FormulaValidation"]
