"""
Pytest fixtures for the inventory service test suite.

Provides:
- A SQLite database file per test, configured with the same locking
  setup the service uses (BEGIN IMMEDIATE transactions)
- A recording low stock notifier
- A FastAPI TestClient wired to the test database and notifier
- JWT helpers for the admin, manager and plain user roles
"""
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session, sessionmaker

from inventory_ledger import config, models, schemas
from inventory_ledger.database import get_db, make_engine
from inventory_ledger.main import app, get_notifier
from inventory_ledger.reconciliation import ReconciliationEngine


class RecordingNotifier:
    """Keeps every item it is asked to notify about."""

    def __init__(self):
        self.items: List[schemas.Item] = []

    def notify(self, item: schemas.Item) -> None:
        self.items.append(item)

    @property
    def quantities(self) -> List[int]:
        return [item.quantity for item in self.items]


def make_token(role: str = "user", user_id: int = 1, email: Optional[str] = None) -> str:
    claims = {"sub": str(user_id), "email": email or f"{role}@example.com", "role": role}
    return jwt.encode(claims, config.SECRET_KEY, algorithm=config.ALGORITHM)


def auth_header(role: str = "user") -> dict:
    return {"Authorization": f"Bearer {make_token(role)}"}


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'inventory.db'}"


@pytest.fixture
def db_engine(db_url):
    engine = make_engine(db_url)
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def reconciliation(db, notifier) -> ReconciliationEngine:
    return ReconciliationEngine(db, notifier)


@pytest.fixture
def make_item(session_factory):
    """
    Register an item directly in the database and return its ID.

    The session is closed afterwards so no transaction (and no SQLite write
    lock) outlives the call.
    """
    counter = {"n": 0}

    def _make(quantity: int = 0, min_quantity: Optional[int] = None, name: str = "Widget", unit: str = "un") -> str:
        counter["n"] += 1
        with session_factory() as session:
            item = models.Item(
                sku=f"PROD-TEST{counter['n']:02d}",
                name=name,
                unit=unit,
                quantity=quantity,
                min_quantity=min_quantity,
            )
            session.add(item)
            session.flush()
            item_id = item.id
            session.commit()
        return item_id

    return _make


# =============================================================================
# API fixtures
# =============================================================================


@pytest.fixture
def client(session_factory, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return auth_header("admin")


@pytest.fixture
def manager_headers() -> dict:
    return auth_header("manager")


@pytest.fixture
def user_headers() -> dict:
    return auth_header("user")


@pytest.fixture
def token_factory():
    return make_token
