"""SQLAlchemy models for realms and their abuse-prevention state."""

from __future__ import annotations

import math

from sqlalchemy import Boolean, Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from quota_modeler.db.session import Base

# Number of standard deviations the last claimed ratio may drift from the
# mean before the realm is reported as anomalous.
CODES_CLAIMED_RATIO_ANOMALY_STDDEVS = 2.0


class Realm(Base):
    """An isolated tenant whose code issuance is modeled and quota-limited.

    The ``abuse_prevention_limit`` and ``codes_claimed_ratio_*`` columns are
    computed by the modeler and written with a column-level update; the
    remaining columns are realm-admin configuration.
    """

    __tablename__ = "realms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)

    abuse_prevention_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    abuse_prevention_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    abuse_prevention_limit_factor: Mapped[float] = mapped_column(
        Float, nullable=False, default=1.0
    )

    last_codes_claimed_ratio: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    codes_claimed_ratio_mean: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    codes_claimed_ratio_stddev: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    @validates("name")
    def _validate_name(self, _key: str, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("realm name cannot be blank")
        return value.strip()

    @validates("abuse_prevention_limit_factor")
    def _validate_limit_factor(self, _key: str, value: float) -> float:
        if value <= 0:
            raise ValueError("abuse prevention limit factor must be greater than zero")
        return value

    @property
    def abuse_prevention_effective_limit(self) -> int:
        """Return the limit actually enforced, after applying the realm's factor."""
        return self.effective_limit_for(self.abuse_prevention_limit)

    def effective_limit_for(self, limit: int) -> int:
        """Return the enforced limit for ``limit`` under this realm's factor."""
        factor = self.abuse_prevention_limit_factor or 1.0
        return int(math.ceil(limit * factor))

    @property
    def codes_claimed_ratio_anomalous(self) -> bool:
        """Return True if the last claimed ratio is far outside the trailing mean."""
        mean = self.codes_claimed_ratio_mean or 0.0
        if mean <= 0:
            return False
        drift = abs((self.last_codes_claimed_ratio or 0.0) - mean)
        return drift > CODES_CLAIMED_RATIO_ANOMALY_STDDEVS * (self.codes_claimed_ratio_stddev or 0.0)
