"""Engine and session factory for the modeler database."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from quota_modeler.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base for realms, their statistics and execution locks."""


# Model modules register their tables on Base.metadata at import time.
import quota_modeler.models  # noqa: E402,F401

engine = create_engine(
    settings.effective_database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
)

# Realm rows are read again after the computed-field commit.
SessionLocal = sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)


def create_tables() -> None:
    """Create the realm, statistics and lock tables if they are missing."""
    Base.metadata.create_all(bind=engine)
