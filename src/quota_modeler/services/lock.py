"""Distributed execution gate backed by the shared database.

Any number of stateless replicas may receive the modeler trigger at the same
time. Each of them calls :meth:`ExecutionGate.try_acquire`; the claim is a
conditional update on the lock's generation, so at most one caller per
period observes success.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from quota_modeler.db.time import as_utc, utcnow
from quota_modeler.models import ExecutionLock
from quota_modeler.services.errors import LockError

logger = logging.getLogger(__name__)


class ExecutionGate:
    """Grants permission to run a named job at most once per period."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def try_acquire(self, lock_name: str, min_period: timedelta) -> bool:
        """Return True if the caller may proceed with ``lock_name`` this period.

        Returns False, without raising, when the lock is not yet due or another
        caller claimed it first.

        Raises:
            LockError: The lock could not be read or written.
        """
        with self._session_factory() as session:
            try:
                lock = self._find_or_create(session, lock_name)
                now = self._clock()
                if as_utc(lock.not_before) > now:
                    logger.debug(
                        "Lock %s not due until %s", lock_name, as_utc(lock.not_before).isoformat()
                    )
                    return False
                return self._claim(session, lock, now + min_period)
            except SQLAlchemyError as exc:
                session.rollback()
                raise LockError(f"failed to acquire {lock_name} lock: {exc}") from exc

    def status(self, lock_name: str) -> ExecutionLock | None:
        """Return the current state of ``lock_name``, if it has ever been created."""
        with self._session_factory() as session:
            try:
                return session.execute(
                    select(ExecutionLock).where(ExecutionLock.lock_type == lock_name)
                ).scalar_one_or_none()
            except SQLAlchemyError as exc:
                raise LockError(f"failed to read {lock_name} lock: {exc}") from exc

    def _find_or_create(self, session: Session, lock_name: str) -> ExecutionLock:
        stmt = select(ExecutionLock).where(ExecutionLock.lock_type == lock_name)
        lock = session.execute(stmt).scalar_one_or_none()
        if lock is not None:
            return lock

        session.add(ExecutionLock(lock_type=lock_name, generation=1, not_before=self._clock()))
        try:
            session.commit()
        except IntegrityError:
            # Another replica created the row first.
            session.rollback()
        return session.execute(stmt).scalar_one()

    def _claim(self, session: Session, current: ExecutionLock, not_before: datetime) -> bool:
        result = session.execute(
            update(ExecutionLock)
            .where(
                ExecutionLock.lock_type == current.lock_type,
                ExecutionLock.generation == current.generation,
            )
            .values(generation=current.generation + 1, not_before=not_before)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if result.rowcount != 1:
            logger.info("Lock %s was claimed by another caller", current.lock_type)
            return False
        return True
