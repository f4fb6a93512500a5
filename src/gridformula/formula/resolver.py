"""Field resolution for formulas.

A field path such as ``data.value`` is split on dots and walked one
property access at a time, starting from ``context["row"]`` when the
context carries a row and from the context itself otherwise.
"""

from collections.abc import Mapping
from typing import Any

ROW_KEY = "row"


def context_row(context: Any) -> Any:
    """Return the object field paths start from: ``context.row`` or the context."""
    if isinstance(context, Mapping):
        row = context.get(ROW_KEY)
    else:
        row = getattr(context, ROW_KEY, None)
    return context if row is None else row


def get_property(value: Any, name: str) -> Any:
    """
    Read one property from a value.

    Mappings are read by key, sequences and strings support ``length`` and
    integer indices, other objects expose their public attributes.
    Missing properties resolve to None.
    """
    if isinstance(value, Mapping):
        return value.get(name)

    if isinstance(value, (list, tuple, str)):
        if name == "length":
            return len(value)
        if name.isascii() and name.isdigit():
            index = int(name)
            return value[index] if index < len(value) else None
        return None

    if name.startswith("_"):
        return None
    return getattr(value, name, None)


def resolve_field(path: str, context: Any) -> Any:
    """
    Resolve a dotted field path against an evaluation context.

    Args:
        path: Dot-separated field path, e.g. ``data.value``
        context: Evaluation context, ``{"row": {...}}`` or the row itself

    Returns:
        The resolved value, or None as soon as any step yields None
    """
    value = context_row(context)
    for segment in path.split("."):
        if value is None:
            return None
        value = get_property(value, segment)
    return value
