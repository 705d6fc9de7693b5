"""
Pytest configuration file for backend testing.
"""
import os
import sys
from pathlib import Path

# Tests run against in-memory SQLite with background workers off
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SESSION_SWEEP_INTERVAL_SECONDS", "0")
os.environ.setdefault("REDIS_URL", "")

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine, get_db

# Import all models to register them with SQLAlchemy
from modules.core.models import core_models  # noqa: F401
from modules.tables.models import table_models  # noqa: F401
from modules.orders.models import order_models  # noqa: F401
from modules.payments.models import payment_models  # noqa: F401
from modules.complaints.models import complaint_models  # noqa: F401

from modules.payments.services.gateway_registry import gateway_registry
from modules.realtime.websocket.realtime_manager import realtime_manager
from tests.factories import use_session


@pytest.fixture
def db_session():
    """Fresh schema per test on the shared in-memory connection."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    use_session(session)

    yield session

    use_session(None)
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Process-wide caches must not leak between tests."""
    gateway_registry.probe.invalidate()
    realtime_manager.connections.clear()
    realtime_manager.subscribers_by_socket.clear()
    realtime_manager._delivery_locks.clear()
    yield
    gateway_registry.probe.invalidate()
    gateway_registry.http_client = None


@pytest.fixture
def client(db_session):
    """Create a test client."""
    from app.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
