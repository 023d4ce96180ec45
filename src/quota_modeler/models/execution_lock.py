"""Self-expiring locks that space out periodic jobs across replicas."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from quota_modeler.db.session import Base


class ExecutionLock(Base):
    """A named lock that may be claimed at most once per period.

    Locks are never released; a claim pushes ``not_before`` into the future
    and bumps ``generation`` so that concurrent claimants can detect that
    they lost the race.
    """

    __tablename__ = "execution_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lock_type: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    generation: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    not_before: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
