"""Persistence of modeler output to the realm record and the rate limiter."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quota_modeler.models import Realm
from quota_modeler.services.anomaly import AnomalyStats
from quota_modeler.services.errors import (
    ModelerError,
    PropagationError,
    RateLimitStoreError,
    RealmSaveError,
)
from quota_modeler.services.ratelimit import LimiterStore, quota_key

logger = logging.getLogger(__name__)

QUOTA_TTL = timedelta(hours=24)


class QuotaPropagator:
    """Writes a realm's new limit and ratio statistics, then refreshes its quota bucket."""

    def __init__(self, limiter: LimiterStore, hmac_key: bytes, ttl: timedelta = QUOTA_TTL) -> None:
        self._limiter = limiter
        self._hmac_key = hmac_key
        self._ttl = ttl

    def propagate(
        self,
        session: Session,
        realm_id: int,
        limit: int | None,
        anomaly: AnomalyStats | None,
    ) -> None:
        """Save the computed fields for ``realm_id`` and push its effective quota.

        ``None`` inputs leave the corresponding stored fields untouched, and the
        limiter is only written when there is a new limit. The realm save and
        the limiter write are attempted independently.

        Raises:
            PropagationError: Either write failed; ``errors`` lists each failure.
        """
        values: dict[str, Any] = {}
        if limit is not None:
            values["abuse_prevention_limit"] = int(limit)
        if anomaly is not None:
            values["last_codes_claimed_ratio"] = anomaly.current_ratio
            values["codes_claimed_ratio_mean"] = anomaly.mean
            values["codes_claimed_ratio_stddev"] = anomaly.stddev
        if not values:
            return

        errors: list[ModelerError] = []
        try:
            self._save(session, realm_id, values)
        except RealmSaveError as exc:
            errors.append(exc)

        if limit is not None:
            try:
                self._push_quota(session, realm_id, limit)
            except (RateLimitStoreError, RealmSaveError) as exc:
                errors.append(exc)

        if errors:
            raise PropagationError(errors)

    def _save(self, session: Session, realm_id: int, values: dict[str, Any]) -> None:
        # Column-level update: skips ORM validation and never touches the
        # admin-editable columns.
        try:
            session.execute(
                update(Realm)
                .where(Realm.id == realm_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise RealmSaveError(f"failed to save model: {exc}") from exc

    def _push_quota(self, session: Session, realm_id: int, limit: int) -> None:
        try:
            realm = session.get(Realm, realm_id)
        except SQLAlchemyError as exc:
            session.rollback()
            raise RealmSaveError(f"failed to load realm: {exc}") from exc
        if realm is None:
            raise RealmSaveError(f"realm {realm_id} does not exist")

        effective = realm.effective_limit_for(limit)
        key = quota_key(realm_id, self._hmac_key)
        self._limiter.set(key, effective, self._ttl)
        logger.debug("Set quota for realm %d to %d", realm_id, effective)
