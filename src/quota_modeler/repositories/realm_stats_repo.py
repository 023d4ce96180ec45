"""Read-only access to realm issuance history.

All series returned from this module are in ascending chronological order;
the most recent (possibly still in progress) UTC day is the last element.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from quota_modeler.db.time import utcnow
from quota_modeler.models import Realm, RealmStat

__all__ = ["DailyStat", "RealmStatsRepository", "utc_today"]


@dataclass(frozen=True)
class DailyStat:
    """Issued and claimed code counts for one UTC date."""

    date: date
    codes_issued: int = 0
    codes_claimed: int = 0


def utc_today() -> date:
    """Return the current UTC date."""
    return utcnow().date()


class RealmStatsRepository:
    """Thin wrapper around database access for realm statistics."""

    def __init__(self, session: Session, today: Callable[[], date] = utc_today) -> None:
        """Initialize the repository with a SQLAlchemy session.

        Args:
            session: Session used for all queries.
            today: Returns the current UTC date; rows after it are ignored.
        """
        self.session = session
        self._today = today

    def list_modeling_enabled_realm_ids(self) -> list[int]:
        """Return the IDs of every realm with abuse prevention enabled."""
        result = self.session.execute(
            select(Realm.id)
            .where(Realm.abuse_prevention_enabled.is_(True))
            .order_by(Realm.id)
        )
        return list(result.scalars())

    def historical_issuance(self, realm_id: int, window_days: int) -> list[int]:
        """Return up to ``window_days`` most recent ``codes_issued`` values.

        Only days with a recorded row are returned; gaps are not filled.
        """
        if window_days <= 0:
            return []
        result = self.session.execute(
            select(RealmStat.codes_issued)
            .where(RealmStat.realm_id == realm_id, RealmStat.date <= self._today())
            .order_by(RealmStat.date.desc())
            .limit(window_days)
        )
        issued = [int(value or 0) for value in result.scalars()]
        issued.reverse()
        return issued

    def full_stats_series(self, realm_id: int, lookback_days: int) -> list[DailyStat]:
        """Return one entry per day for the last ``lookback_days`` days, ending today.

        Dates without a recorded row are filled with zero counts.
        """
        if lookback_days <= 0:
            return []
        today = self._today()
        start = today - timedelta(days=lookback_days - 1)
        rows = self.session.execute(
            select(RealmStat.date, RealmStat.codes_issued, RealmStat.codes_claimed)
            .where(
                RealmStat.realm_id == realm_id,
                RealmStat.date >= start,
                RealmStat.date <= today,
            )
        ).all()
        by_date = {
            row_date: DailyStat(row_date, int(issued or 0), int(claimed or 0))
            for (row_date, issued, claimed) in rows
        }

        series = []
        for offset in range(lookback_days):
            day = start + timedelta(days=offset)
            series.append(by_date.get(day, DailyStat(day)))
        return series
