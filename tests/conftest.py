# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator, Sequence
from datetime import date, timedelta
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_TYPE", "MEMORY")
os.environ.setdefault("RATE_LIMIT_HMAC_KEY", "test-hmac-key")

from quota_modeler.api.v1.endpoints.modeler import get_modeler_service_dep
from quota_modeler.db.session import Base
from quota_modeler.main import app as fastapi_app
from quota_modeler.models import Realm, RealmStat
from quota_modeler.services.modeler import ModelerConfig, ModelerService
from quota_modeler.services.propagator import QuotaPropagator
from quota_modeler.services.ratelimit import MemoryLimiterStore

TEST_DB_URL = "sqlite://"
TEST_HMAC_KEY = b"test-hmac-key"
TODAY = date(2026, 10, 19)


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def limiter() -> MemoryLimiterStore:
    return MemoryLimiterStore()


@pytest.fixture()
def propagator(limiter: MemoryLimiterStore) -> QuotaPropagator:
    return QuotaPropagator(limiter, TEST_HMAC_KEY)


@pytest.fixture()
def make_service(
    session_factory: sessionmaker[Session], propagator: QuotaPropagator
) -> Callable[..., ModelerService]:
    """Return a factory building modeler services against the test database."""

    def _make(**overrides: Any) -> ModelerService:
        config = overrides.pop("config", ModelerConfig(min_period=timedelta(minutes=20)))
        return ModelerService(
            overrides.pop("session_factory", session_factory),
            overrides.pop("propagator", propagator),
            config=config,
            today=lambda: TODAY,
            **overrides,
        )

    return _make


@pytest.fixture()
def make_realm(db_session: Session) -> Callable[..., Realm]:
    """Return a helper that persists a realm."""

    def _make(name: str, **fields: Any) -> Realm:
        fields.setdefault("abuse_prevention_enabled", True)
        realm = Realm(name=name, **fields)
        db_session.add(realm)
        db_session.commit()
        return realm

    return _make


def add_stats(
    session: Session,
    realm: Realm,
    issued: Sequence[int],
    claimed: Sequence[int] | None = None,
    *,
    end: date = TODAY,
) -> None:
    """Record daily stats for ``realm`` in ascending order, the last entry on ``end``."""
    claimed = list(claimed) if claimed is not None else [0] * len(issued)
    start = end - timedelta(days=len(issued) - 1)
    for offset, (codes_issued, codes_claimed) in enumerate(zip(issued, claimed)):
        session.add(
            RealmStat(
                realm_id=realm.id,
                date=start + timedelta(days=offset),
                codes_issued=codes_issued,
                codes_claimed=codes_claimed,
            )
        )
    session.commit()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def modeler_service(make_service: Callable[..., ModelerService]) -> ModelerService:
    return make_service()


@pytest.fixture()
def client(app: FastAPI, modeler_service: ModelerService) -> Iterator[TestClient]:
    app.dependency_overrides[get_modeler_service_dep] = lambda: modeler_service
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_modeler_service_dep, None)
