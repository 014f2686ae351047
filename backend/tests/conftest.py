import os
import tempfile
from pathlib import Path

# Point the app at a throwaway SQLite file before any `studyhub` import reads settings.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="studyhub-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlmodel import Session

from studyhub.database import create_db_and_tables, drop_db_and_tables, engine


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test empty tables."""
    drop_db_and_tables()
    create_db_and_tables()
    yield


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s
