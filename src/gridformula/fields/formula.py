"""Formula column handler for gridformula.

A formula column has no stored input: each cell is computed from the
column's expression against the other fields of its row, then converted to
the column's ``result_type`` and rendered for display.
"""

import math
from datetime import date, datetime
from typing import Any, Callable

from gridformula.core.exceptions import is_error
from gridformula.fields.base import BaseFieldTypeHandler
from gridformula.formula.evaluator import is_sentinel
from gridformula.formula.values import format_number, is_truthy, to_number, to_text

DEFAULT_PRECISION = 2

_engine = None


def _get_engine():
    """Engine shared by columns that are computed without an explicit one."""
    global _engine
    if _engine is None:
        from gridformula.formula.engine import FormulaEngine

        _engine = FormulaEngine()
    return _engine


def _precision(options: dict[str, Any]) -> int | None:
    """Decimal places from column options; None keeps full precision."""
    value = options.get("precision", DEFAULT_PRECISION)
    if value is None:
        return None
    places = to_number(value)
    if not math.isfinite(places):
        return DEFAULT_PRECISION
    return max(0, int(places))


def _as_number(value: Any, options: dict[str, Any]) -> int | float | None:
    number = to_number(value)
    if math.isnan(number):
        return None
    precision = _precision(options)
    if precision is None or not math.isfinite(number):
        return number
    return round(number, precision)


def _as_datetime(value: Any) -> datetime | date | None:
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _as_date(value: Any, options: dict[str, Any]) -> date | None:
    moment = _as_datetime(value)
    return moment.date() if isinstance(moment, datetime) else moment


_CONVERTERS: dict[str, Callable[[Any, dict[str, Any]], Any]] = {
    "auto": lambda value, options: value,
    "text": lambda value, options: to_text(value),
    "number": _as_number,
    "boolean": lambda value, options: is_truthy(value),
    "date": _as_date,
    "datetime": lambda value, options: _as_datetime(value),
}

RESULT_TYPES = tuple(_CONVERTERS)


class FormulaFieldHandler(BaseFieldTypeHandler):
    """
    Handler for formula columns.

    Options:
        formula: Formula expression (required)
        result_type: One of ``RESULT_TYPES`` (default: 'auto')
        precision: Decimal places for numbers (default: 2, None keeps all)
        date_format: strftime pattern used by ``format_display``

    Error envelopes and sentinels such as ``#DIV/0`` are never converted.
    """

    field_type = "formula"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        """
        Turn a computed cell into a JSON-storable value.

        Dates become ISO-8601 text and NaN/Infinity become their text form,
        since neither survives a JSON round trip.
        """
        if isinstance(value, (list, tuple)):
            return [cls.serialize(item) for item in value]
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, float) and not math.isfinite(value):
            return format_number(value)
        return value

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return value

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        """
        Check a formula column's options.

        Args:
            value: Ignored; formula cells have no input
            options: Column options

        Returns:
            True if the options are usable

        Raises:
            ValueError: If the formula is missing or malformed, the result
                type is unknown or the precision is not a non-negative integer
        """
        options = options or {}
        if "formula" not in options:
            raise ValueError("Formula field must specify 'formula' in options")

        validation = _get_engine().validate(options["formula"])
        if not validation.valid:
            raise ValueError(f"Invalid formula syntax: {validation.error}")

        result_type = options.get("result_type")
        if result_type and result_type not in RESULT_TYPES:
            allowed = ", ".join(RESULT_TYPES)
            raise ValueError(f"Invalid result_type '{result_type}'. Must be one of: {allowed}")

        precision = options.get("precision")
        if precision is not None and (
            isinstance(precision, bool) or not isinstance(precision, int) or precision < 0
        ):
            raise ValueError(f"Invalid precision '{precision}'. Must be a non-negative integer")
        return True

    @classmethod
    def default(cls) -> Any:
        return None

    @classmethod
    def compute(
        cls,
        formula: str,
        row: dict[str, Any],
        options: dict[str, Any] | None = None,
        engine: Any = None,
    ) -> Any:
        """
        Compute one cell.

        Args:
            formula: Formula expression
            row: The row's field values
            options: Column options
            engine: FormulaEngine to evaluate with (default: shared engine)

        Returns:
            Converted value, a sentinel string or ``{"error": message}``
        """
        options = options or {}
        result = (engine or _get_engine()).evaluate(formula, {"row": row})
        if result is None or is_error(result) or is_sentinel(result):
            return result

        convert = _CONVERTERS.get(options.get("result_type") or "auto", _CONVERTERS["auto"])
        return convert(result, options)

    @classmethod
    def format_display(cls, value: Any, options: dict[str, Any] | None = None) -> str:
        """Render a computed cell as text."""
        options = options or {}

        if value is None:
            return ""
        if is_error(value):
            return f"#ERROR: {value['error']}"
        if isinstance(value, bool):
            return to_text(value)
        if isinstance(value, float):
            precision = _precision(options)
            if precision is None or not math.isfinite(value):
                return format_number(value)
            return f"{value:.{precision}f}"
        if isinstance(value, datetime):
            return value.strftime(options.get("date_format", "%Y-%m-%d %H:%M:%S"))
        if isinstance(value, date):
            return value.strftime(options.get("date_format", "%Y-%m-%d"))
        if isinstance(value, (list, tuple)):
            return ", ".join(to_text(item) for item in value if item is not None)
        return to_text(value)

    @classmethod
    def get_referenced_fields(cls, formula: str) -> list[str]:
        """Field paths a formula reads; empty when it does not parse."""
        return _get_engine().validate(formula).fields

    @classmethod
    def is_computed(cls) -> bool:
        return True

    @classmethod
    def is_read_only(cls) -> bool:
        return True
