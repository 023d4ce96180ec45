"""Unit tests for the ORM models."""

import pytest

from quota_modeler.core.settings import Settings
from quota_modeler.models import ExecutionLock, Realm, RealmStat


def test_table_names():
    """Model classes expose expected __tablename__ values."""
    assert Realm.__tablename__ == "realms"
    assert RealmStat.__tablename__ == "realm_stats"
    assert ExecutionLock.__tablename__ == "execution_locks"


def test_realm_stat_composite_primary_key():
    pk_names = {c.name for c in RealmStat.__table__.primary_key}
    assert pk_names == {"realm_id", "date"}


def test_realm_stat_columns_are_issued_and_claimed_counts():
    columns = {c.name for c in RealmStat.__table__.columns}
    assert columns == {"realm_id", "date", "codes_issued", "codes_claimed"}


def test_effective_limit_applies_factor():
    realm = Realm(name="r", abuse_prevention_limit=100, abuse_prevention_limit_factor=1.25)
    assert realm.abuse_prevention_effective_limit == 125
    assert realm.effective_limit_for(101) == 127


def test_limit_factor_must_be_positive():
    with pytest.raises(ValueError):
        Realm(name="r", abuse_prevention_limit_factor=0)


def test_name_cannot_be_blank():
    with pytest.raises(ValueError):
        Realm(name="   ")


@pytest.mark.parametrize(
    ("last", "mean", "stddev", "expected"),
    [
        (0.5, 0.5, 0.1, False),
        (0.25, 0.5, 0.1, True),
        (0.75, 0.5, 0.1, True),
        (0.65, 0.5, 0.1, False),
        (0.0, 0.0, 0.0, False),
    ],
)
def test_codes_claimed_ratio_anomalous(last, mean, stddev, expected):
    realm = Realm(
        name="r",
        last_codes_claimed_ratio=last,
        codes_claimed_ratio_mean=mean,
        codes_claimed_ratio_stddev=stddev,
    )
    assert realm.codes_claimed_ratio_anomalous is expected


def test_test_database_overrides_database_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://app@db/modeler")
    monkeypatch.setenv("TEST_DATABASE_URL", "sqlite://")
    monkeypatch.setenv("USE_TEST_DATABASE", "true")
    assert Settings().effective_database_url == "sqlite://"
