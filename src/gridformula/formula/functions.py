"""Formula functions for gridformula.

Implements the closed catalog of built-in functions available in formulas.
Every function receives already-evaluated arguments; reference functions
additionally receive a ``CallContext`` carrying the evaluation context and
the record store.
"""

import inspect
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable

from gridformula.formula.resolver import get_property, resolve_field
from gridformula.formula.values import (
    INF,
    NAN,
    flatten_once,
    ieee_divide,
    is_nan,
    is_number,
    is_truthy,
    normalize_number,
    strict_equals,
    to_number,
    to_text,
)

# Type alias for formula functions
FormulaFunction = Callable[..., Any]

MILLIS_PER_DAY = 86_400_000
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class FunctionCategory(str, Enum):
    MATH = "math"
    STRING = "string"
    DATE = "date"
    LOGICAL = "logical"
    REFERENCE = "reference"


@dataclass(frozen=True)
class CallContext:
    """What a reference function can see besides its arguments."""

    context: Any = None
    record_store: Any = None


@dataclass(frozen=True)
class FunctionSpec:
    """Catalog entry for one built-in function."""

    name: str
    category: FunctionCategory
    handler: FormulaFunction
    min_args: int = 0
    max_args: int | None = None
    syntax: str = ""
    description: str = ""
    contextual: bool = False

    @property
    def variadic(self) -> bool:
        return self.max_args is None

    def call(self, args: list[Any], call_context: CallContext) -> Any:
        """Invoke the handler; extra arguments beyond ``max_args`` are dropped."""
        if self.max_args is not None:
            args = args[: self.max_args]
        if self.contextual:
            return self.handler(call_context, *args)
        return self.handler(*args)


_REGISTRY: dict[str, FunctionSpec] = {}

# Read-only view of the catalog
FORMULA_FUNCTIONS: MappingProxyType[str, FunctionSpec] = MappingProxyType(_REGISTRY)


def register_function(
    name: str,
    category: FunctionCategory,
    *,
    min_args: int = 0,
    max_args: int | None = None,
    syntax: str | None = None,
    contextual: bool = False,
) -> Callable[[FormulaFunction], FormulaFunction]:
    """Decorator to register a formula function."""

    def decorator(func: FormulaFunction) -> FormulaFunction:
        key = name.upper()
        doc = inspect.getdoc(func) or ""
        _REGISTRY[key] = FunctionSpec(
            name=key,
            category=category,
            handler=func,
            min_args=min_args,
            max_args=max_args,
            syntax=syntax or f"{key}(...)",
            description=doc.splitlines()[0] if doc else "",
            contextual=contextual,
        )
        return func

    return decorator


def get_function(name: str) -> FunctionSpec | None:
    return FORMULA_FUNCTIONS.get(name.upper())


# =============================================================================
# Math Functions
# =============================================================================


def _total(values: list[Any]) -> int | float:
    total: int | float = 0
    for value in values:
        number = to_number(value)
        total += 0 if is_nan(number) else number
    return total


@register_function("SUM", FunctionCategory.MATH, syntax="SUM(value1, [value2, ...])")
def func_sum(*args: Any) -> int | float:
    """Add numbers; non-numeric values count as zero."""
    return normalize_number(_total(flatten_once(args)))


@register_function("AVG", FunctionCategory.MATH, syntax="AVG(value1, [value2, ...])")
def func_avg(*args: Any) -> int | float:
    """Average of the values; non-numeric values count as zero."""
    values = flatten_once(args)
    if not values:
        return NAN
    return normalize_number(_total(values) / len(values))


@register_function("MIN", FunctionCategory.MATH, syntax="MIN(value1, [value2, ...])")
def func_min(*args: Any) -> int | float:
    """Smallest value; any non-numeric value makes the result NaN."""
    numbers = [to_number(v) for v in flatten_once(args)]
    if any(is_nan(n) for n in numbers):
        return NAN
    return min(numbers, default=INF)


@register_function("MAX", FunctionCategory.MATH, syntax="MAX(value1, [value2, ...])")
def func_max(*args: Any) -> int | float:
    """Largest value; any non-numeric value makes the result NaN."""
    numbers = [to_number(v) for v in flatten_once(args)]
    if any(is_nan(n) for n in numbers):
        return NAN
    return max(numbers, default=-INF)


@register_function("COUNT", FunctionCategory.MATH, syntax="COUNT(value1, [value2, ...])")
def func_count(*args: Any) -> int:
    """Count the values."""
    return len(flatten_once(args))


@register_function("ABS", FunctionCategory.MATH, min_args=1, max_args=1, syntax="ABS(value)")
def func_abs(value: Any = None) -> int | float:
    """Absolute value."""
    return abs(to_number(value))


@register_function("FLOOR", FunctionCategory.MATH, min_args=1, max_args=1, syntax="FLOOR(value)")
def func_floor(value: Any = None) -> int | float:
    """Round down to the nearest integer."""
    number = to_number(value)
    return normalize_number(math.floor(number)) if math.isfinite(number) else number


@register_function("CEIL", FunctionCategory.MATH, min_args=1, max_args=1, syntax="CEIL(value)")
def func_ceil(value: Any = None) -> int | float:
    """Round up to the nearest integer."""
    number = to_number(value)
    return normalize_number(math.ceil(number)) if math.isfinite(number) else number


@register_function(
    "ROUND", FunctionCategory.MATH, min_args=1, max_args=2, syntax="ROUND(value, [precision])"
)
def func_round(value: Any = None, precision: Any = 0) -> int | float:
    """Round to a number of decimal places, halves rounding up."""
    number = to_number(value)
    places = to_number(precision)
    if is_nan(number) or is_nan(places):
        return NAN
    try:
        factor = math.pow(10, places)
    except OverflowError:
        factor = INF
    scaled = number * factor
    if math.isfinite(scaled):
        scaled = math.floor(scaled + 0.5)
    return normalize_number(ieee_divide(scaled, factor))


# =============================================================================
# String Functions
# =============================================================================


def _clamp(value: Any, length: int) -> int:
    """Coerce a character position into ``0..length``."""
    number = to_number(value)
    if is_nan(number):
        return 0
    if math.isinf(number):
        return length if number > 0 else 0
    return max(0, min(int(number), length))


@register_function("CONCAT", FunctionCategory.STRING, syntax="CONCAT(text1, [text2, ...])")
def func_concat(*args: Any) -> str:
    """Join values into one string with no separator."""
    return "".join(to_text(a) for a in args)


@register_function("UPPER", FunctionCategory.STRING, min_args=1, max_args=1, syntax="UPPER(text)")
def func_upper(text: Any = None) -> str:
    """Convert to uppercase."""
    return to_text(text).upper()


@register_function("LOWER", FunctionCategory.STRING, min_args=1, max_args=1, syntax="LOWER(text)")
def func_lower(text: Any = None) -> str:
    """Convert to lowercase."""
    return to_text(text).lower()


@register_function("TRIM", FunctionCategory.STRING, min_args=1, max_args=1, syntax="TRIM(text)")
def func_trim(text: Any = None) -> str:
    """Remove leading/trailing whitespace."""
    return to_text(text).strip()


@register_function("LEN", FunctionCategory.STRING, min_args=1, max_args=1, syntax="LEN(text)")
def func_len(text: Any = None) -> int:
    """Return length of text."""
    return len(to_text(text))


@register_function(
    "LEFT", FunctionCategory.STRING, min_args=1, max_args=2, syntax="LEFT(text, [count])"
)
def func_left(text: Any = None, count: Any = 1) -> str:
    """Return leftmost characters."""
    value = to_text(text)
    return value[: _clamp(count, len(value))]


@register_function(
    "RIGHT", FunctionCategory.STRING, min_args=1, max_args=2, syntax="RIGHT(text, [count])"
)
def func_right(text: Any = None, count: Any = 1) -> str:
    """Return rightmost characters."""
    value = to_text(text)
    n = _clamp(count, len(value))
    return value[len(value) - n :] if n > 0 else ""


@register_function(
    "MID",
    FunctionCategory.STRING,
    min_args=1,
    max_args=3,
    syntax="MID(text, [start], [count])",
)
def func_mid(text: Any = None, start: Any = 0, count: Any = 1) -> str:
    """Return a substring starting at a zero-based position."""
    value = to_text(text)
    begin = _clamp(start, len(value))
    return value[begin : begin + _clamp(count, len(value))]


# =============================================================================
# Date Functions
# =============================================================================


def _parse_date(value: Any) -> datetime | None:
    """Read a date argument as an aware UTC datetime, or None if it is not one."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif is_number(value):
        if not math.isfinite(value):
            return None
        try:
            return EPOCH + timedelta(milliseconds=value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@register_function("NOW", FunctionCategory.DATE, max_args=0, syntax="NOW()")
def func_now() -> str:
    """Current UTC timestamp as ISO-8601."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


@register_function("TODAY", FunctionCategory.DATE, max_args=0, syntax="TODAY()")
def func_today() -> str:
    """Current UTC date as YYYY-MM-DD."""
    return datetime.now(timezone.utc).date().isoformat()


@register_function("YEAR", FunctionCategory.DATE, min_args=1, max_args=1, syntax="YEAR(date)")
def func_year(value: Any = None) -> int | float:
    """Year of a date."""
    parsed = _parse_date(value)
    return NAN if parsed is None else parsed.year


@register_function("MONTH", FunctionCategory.DATE, min_args=1, max_args=1, syntax="MONTH(date)")
def func_month(value: Any = None) -> int | float:
    """Month of a date (1-12)."""
    parsed = _parse_date(value)
    return NAN if parsed is None else parsed.month


@register_function("DAY", FunctionCategory.DATE, min_args=1, max_args=1, syntax="DAY(date)")
def func_day(value: Any = None) -> int | float:
    """Day of the month of a date."""
    parsed = _parse_date(value)
    return NAN if parsed is None else parsed.day


@register_function(
    "DATEDIFF",
    FunctionCategory.DATE,
    min_args=2,
    max_args=2,
    syntax="DATEDIFF(start_date, end_date)",
)
def func_datediff(start: Any = None, end: Any = None) -> int | float:
    """Whole days from the first date to the second, rounded down."""
    first = _parse_date(start)
    second = _parse_date(end)
    if first is None or second is None:
        return NAN
    millis = (second - first) / timedelta(milliseconds=1)
    return math.floor(millis / MILLIS_PER_DAY)


# =============================================================================
# Logical Functions
# =============================================================================


@register_function(
    "IF",
    FunctionCategory.LOGICAL,
    min_args=2,
    max_args=3,
    syntax="IF(condition, value_if_true, [value_if_false])",
)
def func_if(condition: Any = None, when_true: Any = None, when_false: Any = None) -> Any:
    """Pick a value by the truthiness of a condition."""
    return when_true if is_truthy(condition) else when_false


@register_function("AND", FunctionCategory.LOGICAL, syntax="AND(value1, [value2, ...])")
def func_and(*args: Any) -> bool:
    """True if all arguments are truthy."""
    return all(is_truthy(a) for a in args)


@register_function("OR", FunctionCategory.LOGICAL, syntax="OR(value1, [value2, ...])")
def func_or(*args: Any) -> bool:
    """True if any argument is truthy."""
    return any(is_truthy(a) for a in args)


@register_function("NOT", FunctionCategory.LOGICAL, min_args=1, max_args=1, syntax="NOT(value)")
def func_not(value: Any = None) -> bool:
    """Negate the truthiness of a value."""
    return not is_truthy(value)


# =============================================================================
# Reference Functions
# =============================================================================


@register_function(
    "LOOKUP",
    FunctionCategory.REFERENCE,
    min_args=2,
    max_args=2,
    syntax="LOOKUP(record_id, field_path)",
    contextual=True,
)
def func_lookup(call: CallContext, entity_id: Any = None, path: Any = None) -> Any:
    """Read a field from another record, found by id."""
    if call.record_store is None or path is None:
        return None
    for entity in call.record_store.get_entities():
        if strict_equals(get_property(entity, "id"), entity_id):
            return resolve_field(to_text(path), {"row": entity})
    return None


@register_function(
    "COUNT_LINKED",
    FunctionCategory.REFERENCE,
    min_args=1,
    max_args=1,
    syntax="COUNT_LINKED(field_path)",
    contextual=True,
)
def func_count_linked(call: CallContext, path: Any = None) -> int:
    """Number of linked records held in a field of the current row."""
    if path is None:
        return 0
    value = resolve_field(to_text(path), call.context)
    if isinstance(value, (list, tuple)):
        return len(value)
    return 1 if is_truthy(value) else 0
