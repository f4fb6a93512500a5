"""
Pytest configuration and fixtures for gridformula tests.
"""

from typing import Any

import pytest

from gridformula.core.config import Settings, get_settings
from gridformula.formula.engine import FormulaEngine
from gridformula.services.record_store import InMemoryRecordStore


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Drop cached settings so each test sees its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def entities() -> list[dict[str, Any]]:
    """Records available to LOOKUP."""
    return [
        {"id": "rec1", "name": "Widget", "data": {"price": 12.5, "tags": ["a", "b"]}},
        {"id": "rec2", "name": "Gadget", "data": {"price": 3}},
        {"id": "rec3", "name": "Retired", "tombstoned": True},
    ]


@pytest.fixture
def record_store(entities) -> InMemoryRecordStore:
    return InMemoryRecordStore(entities)


@pytest.fixture
def engine(record_store, settings) -> FormulaEngine:
    """Flat-precedence engine wired to the seeded record store."""
    return FormulaEngine(record_store, settings)


@pytest.fixture
def standard_engine(record_store) -> FormulaEngine:
    """Engine using conventional operator precedence."""
    return FormulaEngine(record_store, Settings(_env_file=None, precedence="standard"))
