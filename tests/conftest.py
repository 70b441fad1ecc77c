# ── tests/conftest.py ─────────────────────────────────────────────────
import pytest
from fastapi.testclient import TestClient

from main import create_app
from routers.visits.store import VisitStore


@pytest.fixture
def log_file(tmp_path):
    return tmp_path / "data" / "visits.log"


@pytest.fixture
def store(log_file):
    s = VisitStore(log_file)
    s.initialize()
    return s


@pytest.fixture
def app(log_file, tmp_path):
    return create_app(log_file=log_file, public_dir=tmp_path / "no-public")


@pytest.fixture
def client(app):
    # entering the context runs the lifespan, which creates the log file
    with TestClient(app) as c:
        yield c
