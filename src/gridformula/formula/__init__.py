"""Formula engine for gridformula.

This module provides a complete formula evaluation system supporting:
- Arithmetic operations (+, -, *, /)
- Comparison operations (==, =, !=, <, >, <=, >=)
- Logical operations (&&, ||, !)
- Math functions (SUM, AVG, MIN, MAX, COUNT, ABS, FLOOR, CEIL, ROUND)
- String functions (CONCAT, UPPER, LOWER, TRIM, LEN, LEFT, RIGHT, MID)
- Date functions (NOW, TODAY, YEAR, MONTH, DAY, DATEDIFF)
- Logical functions (IF, AND, OR, NOT)
- Reference functions (LOOKUP, COUNT_LINKED)
- Field references ({data.value})
"""

from gridformula.formula.engine import FormulaEngine, evaluate
from gridformula.formula.evaluator import FormulaEvaluator
from gridformula.formula.functions import FORMULA_FUNCTIONS, FunctionCategory, FunctionSpec
from gridformula.formula.parser import FormulaParser, ParseResult, PrecedenceParser
from gridformula.formula.tokenizer import Token, TokenType, tokenize

__all__ = [
    "FormulaEngine",
    "evaluate",
    "FormulaEvaluator",
    "FormulaParser",
    "PrecedenceParser",
    "ParseResult",
    "FORMULA_FUNCTIONS",
    "FunctionCategory",
    "FunctionSpec",
    "Token",
    "TokenType",
    "tokenize",
]
