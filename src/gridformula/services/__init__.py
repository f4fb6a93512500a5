"""Host-side collaborators for the formula engine."""

from gridformula.services.record_store import InMemoryRecordStore, RecordStore, StoreChange

__all__ = ["InMemoryRecordStore", "RecordStore", "StoreChange"]
