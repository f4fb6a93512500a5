"""Formula engine: the public entry point for evaluating formulas.

``FormulaEngine.evaluate`` runs tokenize, parse and evaluate behind two
bounded caches:

- a parse cache keyed by formula text, holding the ``ParseResult`` (errors
  included), so re-evaluating a formula for another row skips parsing;
- a value cache keyed by formula text and the JSON-serialized context,
  holding the final result.

Cached values are returned as-is until ``clear_cache`` runs, even if data
reachable from the context changed without changing its serialization.
"""

from collections.abc import Iterable
from typing import Any

import orjson

from gridformula.core.config import Settings, get_settings
from gridformula.core.exceptions import FormulaLimitError
from gridformula.core.logging import get_logger
from gridformula.formula.cache import MISSING, LRUCache
from gridformula.formula.evaluator import FormulaEvaluator
from gridformula.formula.functions import FORMULA_FUNCTIONS, FunctionCategory, FunctionSpec
from gridformula.formula.nodes import Node
from gridformula.formula.parser import (
    ParseResult,
    collect_field_references,
    collect_function_names,
    create_parser,
)
from gridformula.schemas.formula import FormulaValidation

logger = get_logger(__name__)


class FormulaEngine:
    """
    Evaluates formulas against row contexts.

    The record store is injected at construction and is only read by
    LOOKUP. When the store supports ``subscribe(listener)``, the engine
    clears its caches on every store change.
    """

    def __init__(self, record_store: Any = None, settings: Settings | None = None):
        """
        Initialize the engine.

        Args:
            record_store: Collaborator exposing ``get_entities()``
            settings: Engine settings; defaults to ``get_settings()``
        """
        self.settings = settings or get_settings()
        self.record_store = record_store
        self.parser = create_parser(
            self.settings.precedence,
            max_depth=self.settings.max_depth,
            max_tokens=self.settings.max_tokens,
        )
        self.evaluator = FormulaEvaluator(record_store, max_depth=self.settings.max_depth)
        self._parse_cache = LRUCache(self.settings.parse_cache_size)
        self._value_cache = LRUCache(self.settings.value_cache_size)

        subscribe = getattr(record_store, "subscribe", None)
        if callable(subscribe):
            subscribe(self._on_store_change)

    # ==========================================================================
    # Evaluation
    # ==========================================================================

    def evaluate(self, formula: str, context: Any = None) -> Any:
        """
        Evaluate a formula against a context.

        Args:
            formula: Formula text, e.g. ``SUM({data.value}, 10)``
            context: ``{"row": {...}}``, or the row itself

        Returns:
            The result value (sentinels such as ``"#DIV/0"`` included), or
            ``{"error": message}`` if the formula is malformed or too large
        """
        formula = "" if formula is None else str(formula)
        if context is None:
            context = {}

        key = self._value_key(formula, context)
        if key is not None:
            cached = self._value_cache.get(key)
            if cached is not MISSING:
                logger.debug(f"Value cache hit for formula {formula!r}")
                return cached

        result = self._compute(formula, context)

        if key is not None:
            self._value_cache.put(key, result)
        return result

    def _compute(self, formula: str, context: Any) -> Any:
        parsed = self.parse_result(formula)
        if not parsed.ok:
            logger.debug(f"Formula {formula!r} rejected: {parsed.error.message}")
            return parsed.error.to_envelope()
        try:
            return self.evaluator.evaluate(parsed.ast, context)
        except FormulaLimitError as e:
            logger.debug(f"Formula {formula!r} rejected: {e.message}")
            return e.to_envelope()
        except RecursionError:
            logger.warning(
                f"Formula evaluation exhausted the interpreter stack "
                f"(max_depth={self.settings.max_depth})"
            )
            return FormulaLimitError.depth(self.settings.max_depth).to_envelope()

    def _value_key(self, formula: str, context: Any) -> tuple[str, bytes] | None:
        if not self.settings.cache_enabled:
            return None
        try:
            serialized = orjson.dumps(context, default=str, option=orjson.OPT_NON_STR_KEYS)
        except orjson.JSONEncodeError as e:
            logger.debug(f"Context not serializable, evaluating uncached: {e}")
            return None
        return formula, serialized

    # ==========================================================================
    # Parsing
    # ==========================================================================

    def parse_result(self, formula: str) -> ParseResult:
        """Parse a formula without raising, reusing the parse cache."""
        if not self.settings.cache_enabled:
            return self.parser.parse_result(formula)

        cached = self._parse_cache.get(formula)
        if cached is not MISSING:
            logger.debug(f"Parse cache hit for formula {formula!r}")
            return cached

        result = self.parser.parse_result(formula)
        self._parse_cache.put(formula, result)
        return result

    def parse(self, formula: str) -> Node:
        """
        Parse a formula into an AST.

        Raises:
            FormulaError: If the formula is malformed or too large
        """
        result = self.parse_result(formula)
        if not result.ok:
            raise result.error
        return result.ast

    def validate(
        self, formula: str, known_fields: Iterable[str] | None = None
    ) -> FormulaValidation:
        """
        Check a formula for the formula editor.

        Syntax errors make the formula invalid. Unknown functions and fields
        are reported but leave it valid.

        Args:
            formula: Formula text
            known_fields: Field names available on the row; when given,
                referenced paths whose first segment is not among them are
                reported as unknown

        Returns:
            FormulaValidation
        """
        result = self.parse_result(formula)
        if not result.ok:
            return FormulaValidation(valid=False, error=result.error.message)

        fields = collect_field_references(result.ast)
        functions = collect_function_names(result.ast)
        unknown_fields: list[str] = []
        if known_fields is not None:
            known = set(known_fields)
            unknown_fields = [path for path in fields if path.split(".")[0] not in known]

        return FormulaValidation(
            valid=True,
            fields=fields,
            functions=functions,
            unknown_functions=[name for name in functions if name not in FORMULA_FUNCTIONS],
            unknown_fields=unknown_fields,
        )

    def referenced_fields(self, formula: str) -> list[str]:
        """
        Field paths referenced by a formula, in order of first appearance.

        Raises:
            FormulaError: If the formula does not parse
        """
        return collect_field_references(self.parse(formula))

    # ==========================================================================
    # Function catalog
    # ==========================================================================

    def list_functions(self, category: FunctionCategory | str | None = None) -> list[FunctionSpec]:
        """Catalog entries sorted by name, optionally limited to one category."""
        specs = FORMULA_FUNCTIONS.values()
        if category is not None:
            wanted = FunctionCategory(category)
            specs = [spec for spec in specs if spec.category is wanted]
        return sorted(specs, key=lambda spec: spec.name)

    def describe_function(self, name: str) -> FunctionSpec | None:
        return FORMULA_FUNCTIONS.get(name.upper())

    # ==========================================================================
    # Cache management
    # ==========================================================================

    def clear_cache(self) -> None:
        """Empty the parse and value caches."""
        self._parse_cache.clear()
        self._value_cache.clear()
        logger.info("Formula caches cleared")

    def cache_stats(self) -> dict[str, Any]:
        return {
            "enabled": self.settings.cache_enabled,
            "parse": self._parse_cache.get_stats(),
            "value": self._value_cache.get_stats(),
        }

    def _on_store_change(self, change: Any) -> None:
        logger.debug(f"Record store changed ({change}), invalidating formula caches")
        self.clear_cache()


def evaluate(formula: str, context: Any = None, record_store: Any = None) -> Any:
    """Evaluate a formula once with a throwaway engine."""
    return FormulaEngine(record_store).evaluate(formula, context)


__all__ = ["FormulaEngine", "evaluate"]
