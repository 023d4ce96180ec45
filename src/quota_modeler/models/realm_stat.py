"""Per-realm daily issuance statistics."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import Date, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from quota_modeler.db.session import Base


class RealmStat(Base):
    """Codes issued and claimed for a realm on a single UTC date.

    Rows are written by the statistics recorder; the modeler only reads them.
    """

    __tablename__ = "realm_stats"

    realm_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("realms.id", ondelete="CASCADE"),
        primary_key=True,
    )
    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)

    codes_issued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    codes_claimed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
