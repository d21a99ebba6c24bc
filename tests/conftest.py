"""Common test fixtures for the note index."""

import tempfile
from pathlib import Path

import pytest

from zk_index.config import IndexConfig, config
from zk_index.models.db_models import get_session_factory, init_db
from zk_index.services.index_service import IndexService
from zk_index.storage.note_store import NoteStore


@pytest.fixture
def temp_dirs():
    """Create temporary directories for the notebook and database."""
    with tempfile.TemporaryDirectory() as notebook_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(notebook_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    notebook_dir, db_dir = temp_dirs
    monkeypatch.setattr(config, "base_dir", notebook_dir)
    monkeypatch.setattr(config, "database_path", db_dir / "test_index.db")
    monkeypatch.setattr(config, "in_memory_db", False)
    yield config


@pytest.fixture
def engine(test_config):
    """Engine on a fresh temporary database, schema and FTS included."""
    engine = init_db(settings=test_config)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def note_store(session_factory):
    """Create a test note store."""
    yield NoteStore(session_factory)


@pytest.fixture
def index_service(test_config, engine):
    """Create a test IndexService sharing the test engine."""
    yield IndexService(settings=test_config, engine=engine)


@pytest.fixture
def memory_service():
    """IndexService on an in-memory database."""
    settings = IndexConfig(in_memory_db=True)
    service = IndexService(settings=settings)
    yield service
    service.close()
