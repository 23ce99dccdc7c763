import random
from datetime import datetime, timezone

import pytest

import database.database as db
from config import AppContext, Settings

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def tdb(tmp_path):
    """Fresh SQLite file with the schema in place."""
    db_path = str(tmp_path / "test.db")
    db.init_db(db_path)
    return db_path


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def app(tdb, clock):
    return AppContext(settings=Settings(db_path=tdb), clock=clock, rng=random.Random(42))
