"""
Pytest configuration and fixtures for gridbase tests.

Unit tests run against in-memory collaborators; SQL tests get a fresh
SQLite database file per test.
"""

import os

# The API lifespan must not touch the configured database during tests.
os.environ.setdefault("SKIP_DB_INIT", "1")

import pytest

from gridbase.core.config import Settings
from gridbase.db.metadata import SqlSchemaService, create_metadata_tables
from gridbase.db.models import SqlRowStore
from gridbase.db.session import build_engine
from tests.utils.fakes import InMemoryRowStore, InMemorySchemaService


@pytest.fixture
def fast_settings():
    """Settings with no polling delay so lag tests run instantly."""
    return Settings(
        field_visibility_base_delay_seconds=0,
        field_visibility_step_seconds=0,
        field_visibility_attempts=5,
    )


@pytest.fixture
def schema_service():
    service = InMemorySchemaService()
    service.add_table("tbl-1")
    return service


@pytest.fixture
def row_store():
    return InMemoryRowStore()


@pytest.fixture
def sqlite_engine(tmp_path):
    # A file, not :memory:, so worker threads share the same database.
    engine = build_engine(f"sqlite:///{tmp_path / 'gridbase-test.db'}")
    create_metadata_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_schema_service(sqlite_engine):
    return SqlSchemaService(sqlite_engine)


@pytest.fixture
def sql_row_store(sqlite_engine):
    return SqlRowStore(sqlite_engine)
