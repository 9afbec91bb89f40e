import os

# Set TESTING before any stacks imports
os.environ["TESTING"] = "true"
os.environ["STACKS_SWEEP_INTERVAL"] = "0"
os.environ["STACKS_SEED"] = "test-seed"

import pytest
from datetime import timedelta
from stacks.core import db as database
from stacks.core.db import Base
from stacks.core.catalog import Catalog
from stacks.core.permissions import Caller
from stacks.core.utils import utcnow


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite file per test; a file rather than :memory: so that
    threads get separate connections to the same database.
    """
    engine = database.make_engine(f"sqlite:///{tmp_path / 'stacks.db'}", echo=False)
    database.bind(engine)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        database.session.remove()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def add_book(engine):
    def _add(title="Dune", copies=1, **kwargs):
        kwargs.setdefault("author", "Frank Herbert")
        kwargs.setdefault("isbn", "9780441013593")
        return Catalog.add_book(title=title, total_copies=copies, **kwargs)
    return _add


@pytest.fixture
def alice():
    return Caller.of("alice", "user")


@pytest.fixture
def bob():
    return Caller.of("bob", "user")


@pytest.fixture
def librarian():
    return Caller.of("libby", "librarian")


@pytest.fixture
def admin():
    return Caller.of("root", "admin")


@pytest.fixture
def long_ago():
    """A borrow date whose default due date is well in the past."""
    return utcnow() - timedelta(days=30)
