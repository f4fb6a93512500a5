"""Record store collaborator for reference formulas.

The engine only needs ``get_entities()``; ``InMemoryRecordStore`` adds the
mutations a host performs and notifies subscribers after each one, so an
engine can drop cached results whenever record data changes.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

from gridformula.core.logging import get_logger
from gridformula.formula.resolver import get_property

logger = get_logger(__name__)


@runtime_checkable
class RecordStore(Protocol):
    """Read access the formula engine needs from the host's records."""

    def get_entities(self) -> list[Any]: ...


@dataclass(frozen=True)
class StoreChange:
    """Notification sent to subscribers after a mutation."""

    action: str
    entity_id: Any


StoreListener = Callable[[StoreChange], None]


def entity_id(entity: Any) -> Any:
    """Id of a mapping entity (``entity["id"]``) or an object (``entity.id``)."""
    return get_property(entity, "id")


def is_tombstoned(entity: Any) -> bool:
    return bool(get_property(entity, "tombstoned"))


class InMemoryRecordStore:
    """
    Record store held in process memory.

    Entities are mappings with an ``"id"`` key or objects with an ``id``
    attribute. Tombstoned entities stay stored but are hidden from
    ``get_entities``.
    """

    def __init__(self, entities: Iterable[Any] | None = None):
        self._entities: dict[Any, Any] = {}
        self._listeners: list[StoreListener] = []
        for entity in entities or ():
            self._entities[self._require_id(entity)] = entity

    def __len__(self) -> int:
        return len(self.get_entities())

    def get_entities(self) -> list[Any]:
        """Live (non-tombstoned) entities in insertion order."""
        return [e for e in self._entities.values() if not is_tombstoned(e)]

    def get(self, entity_id: Any) -> Any | None:
        """Get a live entity by id."""
        entity = self._entities.get(entity_id)
        if entity is None or is_tombstoned(entity):
            return None
        return entity

    def upsert(self, entity: Any) -> None:
        """Insert an entity or replace the one with the same id."""
        key = self._require_id(entity)
        action = "update" if key in self._entities else "create"
        self._entities[key] = entity
        self._notify(StoreChange(action, key))

    def remove(self, entity_id: Any) -> bool:
        """
        Delete an entity.

        Returns:
            True if an entity was removed
        """
        if self._entities.pop(entity_id, None) is None:
            return False
        self._notify(StoreChange("delete", entity_id))
        return True

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: StoreChange) -> None:
        logger.debug(f"Record store {change.action}: {change.entity_id}")
        for listener in list(self._listeners):
            listener(change)

    @staticmethod
    def _require_id(entity: Any) -> Any:
        key = entity_id(entity)
        if key is None:
            kind = "mapping" if isinstance(entity, Mapping) else type(entity).__name__
            raise ValueError(f"Entity ({kind}) has no id")
        return key
