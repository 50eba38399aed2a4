from __future__ import annotations

import pytest
from datetime import datetime, timezone
from pathlib import Path
import sys

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gridstor_analytics.api import dependencies  # noqa: E402
from gridstor_analytics.api.app import create_app  # noqa: E402
from gridstor_analytics.db import models  # noqa: E402,F401
from gridstor_analytics.db.session import Base  # noqa: E402
from gridstor_analytics.persistence import CurveRepository  # noqa: E402

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def sqlite_session_factory():
    """Provide a session factory bound to an in-memory SQLite database."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    yield Session
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def repository(sqlite_session_factory):
    """Provide a CurveRepository bound to the temporary SQLite DB."""
    return CurveRepository(sqlite_session_factory)


@pytest.fixture()
def now() -> datetime:
    return FIXED_NOW


def create_test_client(repository) -> TestClient:
    """Build a FastAPI test client with the repository dependency overridden."""
    app = create_app()
    app.dependency_overrides[dependencies.get_repository] = lambda: repository
    return TestClient(app)


@pytest.fixture()
def client(repository) -> TestClient:
    return create_test_client(repository)


@pytest.fixture()
def definition(repository):
    """A stored ERCOT Houston definition."""
    created, _ = repository.create_or_get_definition(
        {"curve_name": "ERCOT_Houston_REVENUE", "market": "ERCOT", "location": "Houston"}
    )
    return created


@pytest.fixture()
def instance(repository, definition):
    """A DRAFT instance for 2025 restricted to REVENUE / Energy / BASE."""
    return repository.create_instance(
        definition.id,
        {
            "instance_version": "v1",
            "delivery_period_start": "2025-01-01",
            "delivery_period_end": "2025-12-31",
            "curve_types": ["REVENUE"],
            "commodities": ["Energy"],
            "scenarios": ["BASE"],
        },
    )
