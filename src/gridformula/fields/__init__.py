"""Column handlers for gridformula."""

from gridformula.fields.base import BaseFieldTypeHandler
from gridformula.fields.formula import FormulaFieldHandler

# Registry of field type handlers
FIELD_HANDLERS: dict[str, type[BaseFieldTypeHandler]] = {
    FormulaFieldHandler.field_type: FormulaFieldHandler,
}


def get_field_handler(field_type: str) -> type[BaseFieldTypeHandler] | None:
    return FIELD_HANDLERS.get(field_type)


__all__ = ["BaseFieldTypeHandler", "FormulaFieldHandler", "FIELD_HANDLERS", "get_field_handler"]
