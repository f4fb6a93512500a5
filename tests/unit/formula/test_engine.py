"""Unit tests for FormulaEngine."""

import math

import pytest

from gridformula.core.config import Settings
from gridformula.core.exceptions import FormulaSyntaxError, is_error
from gridformula.formula.engine import FormulaEngine, evaluate
from gridformula.formula.functions import FunctionCategory
from gridformula.formula.nodes import Binary, BinaryOperator, Literal
from gridformula.schemas.formula import FormulaValidation


class ListStore:
    """Record store without change notification."""

    def __init__(self, entities):
        self.entities = entities

    def get_entities(self):
        return self.entities


class Row:
    def __init__(self, value):
        self.value = value


class TestEvaluate:
    """Tests for FormulaEngine.evaluate."""

    def test_flat_precedence(self, engine):
        """Test left-to-right evaluation."""
        assert engine.evaluate("2+3*4") == 20
        assert engine.evaluate("(2+3)*4") == 20
        assert engine.evaluate("2*3+4") == 10

    def test_standard_precedence(self, standard_engine):
        """Test conventional precedence when configured."""
        assert standard_engine.evaluate("2+3*4") == 14
        assert standard_engine.evaluate("(2+3)*4") == 20
        assert standard_engine.evaluate("1 + 1 == 2 && 3 > 2") is True

    def test_field_resolution(self, engine):
        """Test dotted paths against the row."""
        assert engine.evaluate("{a.b}", {"row": {"a": {"b": 5}}}) == 5
        assert engine.evaluate("{a.b}", {"row": {"a": None}}) is None
        assert engine.evaluate("{x}", {"x": 3}) == 3
        assert engine.evaluate("{items.\u00b2}", {"row": {"items": [1, 2, 3]}}) is None

    def test_default_context(self, engine):
        """Test evaluating without a context."""
        assert engine.evaluate("SUM({data.value}, 10)") == 10

    def test_sentinels_are_results(self, engine):
        """Test runtime anomalies stay in-band."""
        assert engine.evaluate("10/0") == "#DIV/0"
        assert engine.evaluate("FOO(1)") == "#UNKNOWN_FUNC(FOO)"
        assert not is_error(engine.evaluate("10/0"))

    def test_function_dispatch(self, engine):
        """Test library calls."""
        assert engine.evaluate("SUM(1,2,3)") == 6
        assert math.isnan(engine.evaluate("AVG()"))
        assert engine.evaluate('LEFT("hello", 2)') == "he"
        assert engine.evaluate('CONCAT("a","b","c")') == "abc"

    def test_if_with_single_equals(self, engine):
        """Test the common status check."""
        formula = 'IF({status}="Done", "ok", "pending")'
        assert engine.evaluate(formula, {"row": {"status": "Done"}}) == "ok"
        assert engine.evaluate(formula, {"row": {"status": "Open"}}) == "pending"

    def test_lookup(self, engine):
        """Test LOOKUP through the injected store."""
        assert engine.evaluate('LOOKUP("rec1", "data.price") * 2') == 25
        assert engine.evaluate('LOOKUP("nope", "name")') is None

    def test_lookup_id_from_row(self, engine):
        """Test LOOKUP with the id taken from a field."""
        context = {"row": {"link": "rec2"}}
        assert engine.evaluate('UPPER(LOOKUP({link}, "name"))', context) == "GADGET"

    def test_lookup_without_store(self, settings):
        """Test LOOKUP when no store was injected."""
        assert FormulaEngine(settings=settings).evaluate('LOOKUP("rec1", "name")') is None

    def test_count_linked(self, engine):
        """Test COUNT_LINKED against the row."""
        context = {"row": {"parts": ["p1", "p2"]}}
        assert engine.evaluate('COUNT_LINKED("parts")', context) == 2


class TestErrorEnvelope:
    """Tests for structural errors."""

    def test_missing_parenthesis(self, engine):
        """Test the envelope shape."""
        result = engine.evaluate("(1+2")
        assert result == {"error": "Missing closing parenthesis"}
        assert is_error(result)

    def test_lexical_error(self, engine):
        """Test bad characters."""
        assert engine.evaluate("1 $ 2") == {"error": "Unexpected character '$'"}

    def test_unknown_identifier(self, engine):
        """Test bare identifiers."""
        assert engine.evaluate("total + 1") == {"error": "Unknown identifier: TOTAL"}

    def test_empty_formula(self, engine):
        """Test empty input."""
        assert engine.evaluate("") == {"error": "Unexpected end of formula"}
        assert engine.evaluate(None) == {"error": "Unexpected end of formula"}

    def test_depth_limit(self, record_store):
        """Test nesting ceiling."""
        engine = FormulaEngine(record_store, Settings(_env_file=None, max_depth=5))
        assert engine.evaluate("((((((1))))))") == {
            "error": "Formula nesting exceeds maximum depth of 5"
        }
        assert engine.evaluate("((1))") == 1

    @pytest.mark.parametrize("precedence", ["flat", "standard"])
    def test_stack_exhaustion_is_a_depth_error(self, settings, precedence):
        """Test nesting past the interpreter stack fails closed even with a huge ceiling."""
        unchecked = settings.model_copy(
            update={"precedence": precedence, "max_depth": 100_000, "max_tokens": 100_000}
        )
        engine = FormulaEngine(None, unchecked)
        assert engine.evaluate("-" * 5000 + "1") == {
            "error": "Formula nesting exceeds maximum depth of 100000"
        }
        assert engine.evaluate("-1") == -1

    def test_token_limit(self, record_store):
        """Test token ceiling."""
        engine = FormulaEngine(record_store, Settings(_env_file=None, max_tokens=3))
        assert engine.evaluate("1+2+3") == {"error": "Formula exceeds maximum of 3 tokens"}
        assert engine.evaluate("1+2") == 3

    def test_errors_are_cached(self, engine):
        """Test that the same bad formula is parsed once."""
        engine.evaluate("(1")
        engine.evaluate("(1", {"row": {"a": 1}})
        assert engine.cache_stats()["parse"]["hits"] == 1


class TestCaching:
    """Tests for the parse and value caches."""

    def test_repeat_evaluation_hits_value_cache(self, engine):
        """Test identical key reuse."""
        assert engine.evaluate("{a} + 1", {"row": {"a": 1}}) == 2
        assert engine.evaluate("{a} + 1", {"row": {"a": 1}}) == 2
        stats = engine.cache_stats()
        assert stats["value"]["hits"] == 1
        assert stats["value"]["misses"] == 1

    def test_new_context_reuses_parse(self, engine):
        """Test that another row skips parsing."""
        assert engine.evaluate("{a} + 1", {"row": {"a": 1}}) == 2
        assert engine.evaluate("{a} + 1", {"row": {"a": 5}}) == 6
        stats = engine.cache_stats()
        assert stats["parse"]["hits"] == 1
        assert stats["value"]["misses"] == 2

    def test_mutated_context_changes_key(self, engine):
        """Test that a differently serialized context recomputes."""
        row = {"a": 1}
        assert engine.evaluate("{a}", {"row": row}) == 1
        row["a"] = 2
        assert engine.evaluate("{a}", {"row": row}) == 2

    def test_unserialized_side_channel_returns_stale_value(self, engine):
        """Test that an identical key returns the cached result."""
        row = Row(1)
        context = {"row": row}
        assert engine.evaluate("{value}", context) == 1
        row.value = 2
        assert engine.evaluate("{value}", context) == 1
        engine.clear_cache()
        assert engine.evaluate("{value}", context) == 2

    def test_store_without_notification_needs_clear(self, settings):
        """Test stale LOOKUP until clear_cache."""
        store = ListStore([{"id": "r1", "name": "A"}])
        engine = FormulaEngine(store, settings)
        assert engine.evaluate('LOOKUP("r1", "name")') == "A"
        store.entities[0]["name"] = "B"
        assert engine.evaluate('LOOKUP("r1", "name")') == "A"
        engine.clear_cache()
        assert engine.evaluate('LOOKUP("r1", "name")') == "B"

    def test_store_notification_clears_cache(self, engine, record_store):
        """Test that store mutations invalidate cached results."""
        assert engine.evaluate('LOOKUP("rec1", "name")') == "Widget"
        record_store.upsert({"id": "rec1", "name": "Renamed"})
        assert engine.evaluate('LOOKUP("rec1", "name")') == "Renamed"
        record_store.remove("rec1")
        assert engine.evaluate('LOOKUP("rec1", "name")') is None

    def test_clear_cache(self, engine):
        """Test clear empties both caches."""
        engine.evaluate("1+1")
        engine.clear_cache()
        stats = engine.cache_stats()
        assert stats["parse"]["size"] == 0
        assert stats["value"]["size"] == 0

    def test_unserializable_context_runs_uncached(self, engine):
        """Test contexts orjson cannot encode."""
        context = {}
        context["self"] = context
        assert engine.evaluate("1+1", context) == 2
        assert engine.cache_stats()["value"]["size"] == 0

    def test_cache_disabled(self, record_store):
        """Test evaluation with caching turned off."""
        engine = FormulaEngine(record_store, Settings(_env_file=None, cache_enabled=False))
        assert engine.evaluate("1+1") == 2
        assert engine.evaluate("1+1") == 2
        stats = engine.cache_stats()
        assert stats["enabled"] is False
        assert stats["parse"]["size"] == 0
        assert stats["value"]["size"] == 0

    def test_value_cache_is_bounded(self, record_store):
        """Test LRU eviction."""
        engine = FormulaEngine(record_store, Settings(_env_file=None, value_cache_size=2))
        for n in range(5):
            engine.evaluate(f"{n} + 1")
        assert engine.cache_stats()["value"]["size"] == 2

    def test_evaluation_is_deterministic(self, engine):
        """Test repeat evaluation with cache cleared in between."""
        formula = 'IF({n} > 2, CONCAT("big", {n}), ROUND({n} / 3, 2))'
        context = {"row": {"n": 2}}
        first = engine.evaluate(formula, context)
        engine.clear_cache()
        assert engine.evaluate(formula, context) == first == 0.67


class TestParsingApi:
    """Tests for parse, validate and the function catalog."""

    def test_parse(self, engine):
        """Test parse returns the AST."""
        assert engine.parse("1+2") == Binary(BinaryOperator.ADD, Literal(1), Literal(2))

    def test_parse_raises(self, engine):
        """Test parse raises structural errors."""
        with pytest.raises(FormulaSyntaxError):
            engine.parse("(1")

    def test_validate_valid(self, engine):
        """Test validation of a good formula."""
        result = engine.validate('IF({status}="Done", FOO({x.y}), 1)', known_fields=["status"])
        assert isinstance(result, FormulaValidation)
        assert result.valid is True
        assert result.error is None
        assert result.fields == ["status", "x.y"]
        assert result.functions == ["IF", "FOO"]
        assert result.unknown_functions == ["FOO"]
        assert result.unknown_fields == ["x.y"]
        assert result.warnings == ["Unknown function: FOO", "Unknown field: x.y"]

    def test_validate_without_known_fields(self, engine):
        """Test that fields are not checked without a field list."""
        result = engine.validate("{anything} + 1")
        assert result.valid is True
        assert result.unknown_fields == []

    def test_validate_invalid(self, engine):
        """Test validation of a broken formula."""
        result = engine.validate("SUM(1,")
        assert result.valid is False
        assert result.error == "Unexpected end of formula"
        assert result.fields == []

    def test_referenced_fields(self, engine):
        """Test field extraction."""
        assert engine.referenced_fields("{b} + {a} + {b}") == ["b", "a"]
        with pytest.raises(FormulaSyntaxError):
            engine.referenced_fields("{a} +")

    def test_list_functions(self, engine):
        """Test catalog listing."""
        names = [spec.name for spec in engine.list_functions()]
        assert names == sorted(names)
        assert "SUM" in names
        reference = [spec.name for spec in engine.list_functions("reference")]
        assert reference == ["COUNT_LINKED", "LOOKUP"]
        logical = engine.list_functions(FunctionCategory.LOGICAL)
        assert [spec.name for spec in logical] == ["AND", "IF", "NOT", "OR"]

    def test_list_functions_unknown_category(self, engine):
        """Test invalid category."""
        with pytest.raises(ValueError):
            engine.list_functions("finance")

    def test_describe_function(self, engine):
        """Test single catalog lookup."""
        assert engine.describe_function("round").syntax == "ROUND(value, [precision])"
        assert engine.describe_function("nope") is None


class TestModuleEvaluate:
    """Tests for the module-level helper."""

    def test_evaluate(self):
        """Test one-shot evaluation."""
        assert evaluate("SUM({a}, 1)", {"row": {"a": 2}}) == 3
