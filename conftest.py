import os
import shutil
import tempfile

import pytest
from sqlalchemy import event

# Create a temporary SQLite database file for the whole test session
_TEMP_DIR = tempfile.mkdtemp(prefix="skyyield_tests_")
_DB_FILE = os.path.join(_TEMP_DIR, "test_skyyield.db")
os.environ["SKYYIELD_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Initialize a fresh temporary SQLite database for tests and clean it up after."""
    # Import after setting env var so the app uses the temp DB
    from skyyield.database import engine, init_db

    if "sqlite" in str(engine.url):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    init_db()

    yield

    engine.dispose()
    shutil.rmtree(_TEMP_DIR, ignore_errors=True)


# Each test starts without partners or commissions; user accounts are kept.
@pytest.fixture(autouse=True)
def _clean_domain_tables():
    from skyyield import crud
    from skyyield.database import SessionLocal

    session = SessionLocal()
    try:
        crud.reset_application_data(session)
    finally:
        session.close()


@pytest.fixture
def test_db():
    """Provide a database session on the session-wide test database."""
    from skyyield.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
