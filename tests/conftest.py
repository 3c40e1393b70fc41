"""Shared pytest fixtures for all tests."""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from controller.database import init_database
from controller.file_locks import FileLockRegistry
from controller.node_registry import NodeRegistry
from controller.node_selector import NodeSelector
from controller.repositories.user_repository import UserRepository
from controller.utils import utc_now
from fakes import FakeChunkStoreClient


@pytest.fixture
def test_db(monkeypatch) -> Generator[Path, None, None]:
    """
    Create a temporary test database for each test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        monkeypatch.setattr("controller.database.DATABASE_PATH", str(db_path))
        monkeypatch.setattr("controller.config.DATABASE_PATH", str(db_path))
        init_database()
        yield db_path


@pytest.fixture
def owner(test_db) -> str:
    """Create a user and return its user_id."""
    UserRepository.create_user(
        user_id="owner-1",
        username="alice",
        password_hash="not-a-real-hash",
        api_key="dfs_00000000-0000-0000-0000-000000000001",
        created_at=utc_now(),
    )
    return "owner-1"


@pytest.fixture
def other_user(test_db) -> str:
    UserRepository.create_user(
        user_id="owner-2",
        username="bob",
        password_hash="not-a-real-hash",
        api_key="dfs_00000000-0000-0000-0000-000000000002",
        created_at=utc_now(),
    )
    return "owner-2"


@pytest.fixture
def fake_store() -> FakeChunkStoreClient:
    return FakeChunkStoreClient()


@pytest.fixture
def registry(test_db) -> NodeRegistry:
    return NodeRegistry()


@pytest.fixture
def selector(registry) -> NodeSelector:
    return NodeSelector(registry)


@pytest.fixture
def file_locks() -> FileLockRegistry:
    return FileLockRegistry()
