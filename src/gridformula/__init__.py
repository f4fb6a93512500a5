"""
gridformula - Formula engine for tabular data tools.

Tokenizes, parses and evaluates spreadsheet-style formulas such as
``SUM({data.value}, 10)`` against a row of data, with references into
other records through an injected record store.
"""

__version__ = "0.1.0"

from gridformula.core.exceptions import FormulaError, is_error
from gridformula.formula.engine import FormulaEngine, evaluate
from gridformula.services.record_store import InMemoryRecordStore, RecordStore

__all__ = [
    "FormulaEngine",
    "FormulaError",
    "InMemoryRecordStore",
    "RecordStore",
    "evaluate",
    "is_error",
    "__version__",
]
