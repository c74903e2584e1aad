from datetime import datetime, timedelta, timezone
from pathlib import Path
import os
import tempfile
import pytest

# point the app at a throwaway database before anything imports examhub.config
_TMP = Path(tempfile.mkdtemp(prefix="examhub-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["ENV"] = "dev"
os.environ["EXPOSE_TOKENS"] = "true"

from sqlmodel import SQLModel, Session  # noqa: E402
from examhub.database import engine, create_db_and_tables  # noqa: E402
from examhub.errors import PersistenceError  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    """Recreate every table so each test starts from an empty database."""
    create_db_and_tables()
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


class MemoryStore:
    """Entity store that keeps every saved entity in a list."""

    def __init__(self):
        self.saved = []

    def save(self, entity):
        self.saved.append(entity)
        return entity


class FailingStore:
    def save(self, entity):
        raise PersistenceError("disk full")


class FrozenClock:
    def __init__(self, start=None):
        self.current = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def clock():
    return FrozenClock()
