"""Value coercion rules shared by the evaluator and the function library.

Formulas run with loose, host-style semantics: numeric coercion never fails
(it yields NaN instead), string coercion never fails, and truthiness follows
the "falsy is None, False, 0, NaN or empty string" rule.
"""

import math
import re
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

import orjson

NAN = float("nan")
INF = float("inf")

# Largest magnitude at which every integer is exactly representable as a float
MAX_SAFE_INTEGER = 2**53

_NUMERIC_TEXT_RE = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_HEX_TEXT_RE = re.compile(r"0[xX][0-9a-fA-F]+")
_NUMBER_PREFIX_RE = re.compile(r"\d*\.?\d*")


def is_number(value: Any) -> bool:
    """True for int/float values (bools are not numbers)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def int_to_float(value: int) -> float:
    """Convert an int to float, saturating to ±Infinity past the float range."""
    try:
        return float(value)
    except OverflowError:
        return INF if value > 0 else -INF


def normalize_number(value: Any) -> Any:
    """
    Keep numbers inside the float range.

    Integral floats within ``MAX_SAFE_INTEGER`` come back as ints, larger
    ints become floats; everything else is left alone.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value if abs(value) <= MAX_SAFE_INTEGER else int_to_float(value)
    if isinstance(value, float) and value.is_integer() and abs(value) <= MAX_SAFE_INTEGER:
        return int(value)
    return value


def parse_number_literal(text: str) -> int | float:
    """
    Parse a digit-leading run the way a "longest numeric prefix" parser does.

    ``"12"`` gives 12, ``"1.5"`` gives 1.5 and ``"1.2.3"`` gives 1.2.
    """
    match = _NUMBER_PREFIX_RE.match(text)
    prefix = match.group(0) if match else ""
    if prefix in ("", "."):
        return NAN
    return normalize_number(float(prefix))


def to_number(value: Any) -> int | float:
    """Coerce any formula value to a number, yielding NaN when impossible."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return normalize_number(value)
    if isinstance(value, Decimal):
        return normalize_number(float(value))
    if isinstance(value, str):
        return _text_to_number(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return 0
        if len(value) == 1:
            return _text_to_number(to_text(value[0]))
        return NAN
    if isinstance(value, (date, datetime)):
        return epoch_millis(value)
    return NAN


def _text_to_number(value: str) -> int | float:
    text = value.strip()
    if not text:
        return 0
    if _NUMERIC_TEXT_RE.fullmatch(text):
        return normalize_number(float(text))
    if _HEX_TEXT_RE.fullmatch(text):
        return normalize_number(int(text, 16))
    if text in ("Infinity", "+Infinity"):
        return INF
    if text == "-Infinity":
        return -INF
    return NAN


def ieee_divide(left: int | float, right: int | float) -> int | float:
    """Float division that yields ±Infinity or NaN for a zero divisor."""
    if right == 0:
        if left == 0 or math.isnan(left):
            return NAN
        return math.copysign(INF, left) * math.copysign(1, right)
    return left / right


def format_number(value: int | float) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def to_text(value: Any) -> str:
    """Coerce any formula value to a string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, Decimal):
        return format_number(float(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(item) for item in value)
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return orjson.dumps(dict(value), default=str, option=orjson.OPT_NON_STR_KEYS).decode()
    return str(value)


def is_truthy(value: Any) -> bool:
    """Falsy values are None, False, 0, NaN and the empty string."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def flatten_once(args: tuple[Any, ...] | list[Any]) -> list[Any]:
    """Flatten list/tuple arguments one level deep."""
    values: list[Any] = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            values.extend(arg)
        else:
            values.append(arg)
    return values


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value) or isinstance(value, Decimal):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (date, datetime, time)):
        return "date"
    return "object"


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion; lists and mappings compare by identity."""
    kind = _kind(left)
    if kind != _kind(right):
        return False
    if kind == "object":
        return left is right
    return left == right


def compare(operator: str, left: Any, right: Any) -> bool:
    """Relational comparison: lexicographic for two strings, numeric otherwise."""
    if isinstance(left, str) and isinstance(right, str):
        a: Any = left
        b: Any = right
    else:
        a = to_number(left)
        b = to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if operator == "<":
        return a < b
    if operator == ">":
        return a > b
    if operator == "<=":
        return a <= b
    if operator == ">=":
        return a >= b
    raise ValueError(f"Unknown comparison operator: {operator}")


def epoch_millis(value: date | datetime) -> int | float:
    """Milliseconds since the Unix epoch; naive values are read as UTC."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time())
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return normalize_number(value.timestamp() * 1000)
