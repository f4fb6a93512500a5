"""Base class for computed column handlers."""

from abc import ABC, abstractmethod
from typing import Any


class BaseFieldTypeHandler(ABC):
    """
    Base class for field type handlers.

    A handler validates a column's options, turns computed values into
    storable ones and back, and renders values for display.
    """

    field_type: str

    @classmethod
    @abstractmethod
    def serialize(cls, value: Any) -> Any:
        """
        Convert Python value to a JSON-storable format.

        Args:
            value: Python value to serialize

        Returns:
            JSON-serializable value
        """

    @classmethod
    @abstractmethod
    def deserialize(cls, value: Any) -> Any:
        """Convert a stored value back to Python format."""

    @classmethod
    @abstractmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        """
        Validate value or column configuration.

        Returns:
            True if valid

        Raises:
            ValueError: If validation fails
        """

    @classmethod
    @abstractmethod
    def default(cls) -> Any:
        """Get default value for field type."""

    @classmethod
    def format_display(cls, value: Any, options: dict[str, Any] | None = None) -> str:
        """Format a value for display."""
        return "" if value is None else str(value)

    @classmethod
    def is_computed(cls) -> bool:
        return False
