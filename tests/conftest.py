"""
Shared test setup: an in-memory database rebuilt for every test.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("GENERATION_LOCK_TIMEOUT_SECONDS", "2")

import pytest  # noqa: E402

import db.tables  # noqa: E402,F401
from db import Base, engine  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_database():
    """Drop and recreate every table around each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
