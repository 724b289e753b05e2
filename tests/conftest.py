import os
import tempfile
from pathlib import Path

import pytest

# Settings are read once at import time, so the environment is fixed up before
# any project module is imported by the test modules.
_DATA_DIR = Path(tempfile.mkdtemp(prefix="finance-tests-"))
os.environ["FINANCE_SESSION_SECRET"] = "test-session-secret"
os.environ["FINANCE_DATA_DIR"] = str(_DATA_DIR)
os.environ["FINANCE_DATABASE_URL"] = f"sqlite:///{_DATA_DIR / 'finance.db'}"
os.environ["FINANCE_BCRYPT_ROUNDS"] = "4"
os.environ["FINANCE_GEMINI_API_KEY"] = ""
os.environ["FINANCE_GOOGLE_CLIENT_ID"] = ""
os.environ["FINANCE_TIMEZONE"] = "UTC"


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient

    import database
    from main import app

    database.Base.metadata.drop_all(database.engine)
    database.Base.metadata.create_all(database.engine)
    with TestClient(app) as test_client:
        yield test_client
