import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing the package
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CLASSIFIER_AI_MODE", "off")

from inbox_lifecycle.db.base import Base
# Import all models so Base.metadata includes every table
import inbox_lifecycle.db.models as _models  # noqa: F401
from inbox_lifecycle.services.metrics.counters import reset_metrics

# Test database URL (in-memory SQLite for fast tests)
SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def is_sqlite() -> bool:
    """Return True if the test database is SQLite (e.g. in-memory tests)."""
    url = SQLALCHEMY_DATABASE_URL or ""
    return url.startswith("sqlite")


# SQLite needs check_same_thread=False and StaticPool; Postgres does not support check_same_thread
if is_sqlite():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Jobs open their own sessions; point them at the test engine
import inbox_lifecycle.db.session as _db_session

_db_session.engine = engine
_db_session.SessionLocal = TestingSessionLocal


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True, scope="function")
def clean_metrics():
    """In-process counters are global; start every test from zero."""
    reset_metrics()
    yield
    reset_metrics()
