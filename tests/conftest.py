import logging
import os
import sys
from pathlib import Path

import mongomock
import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# bcrypt's minimum cost keeps the suite fast
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "mongodb://localhost:27017")

from main import create_app  # noqa: E402


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    yield client["gadgetverse_test"]
    client.close()


@pytest.fixture
def logger():
    return logging.getLogger("gadgetverse.tests")


@pytest.fixture
def client(db, logger):
    app = create_app(database=db, logger=logger)
    with TestClient(app) as test_client:
        yield test_client
