"""Tests for the modeler orchestration."""

from datetime import timedelta

import pytest

from quota_modeler.models import Realm
from quota_modeler.services.errors import ForecastError, LockError, RateLimitStoreError
from quota_modeler.services.forecast import TrendForecaster
from quota_modeler.services.modeler import ModelerConfig, RunStatus
from quota_modeler.services.propagator import QuotaPropagator
from quota_modeler.services.ratelimit import MemoryLimiterStore, quota_key
from tests.conftest import TEST_HMAC_KEY, add_stats


class SelectiveFailingStore(MemoryLimiterStore):
    """Memory store that refuses writes to particular keys."""

    def __init__(self, failing_keys: set[str]) -> None:
        super().__init__()
        self.failing_keys = failing_keys

    def set(self, key, tokens, ttl) -> None:
        if key in self.failing_keys:
            raise RateLimitStoreError("failed to update limit: connection refused")
        super().set(key, tokens, ttl)


def reload(session_factory, realm_id: int) -> Realm:
    with session_factory() as session:
        return session.get(Realm, realm_id)


def seed_realm(db_session, make_realm, name: str, issued: int = 50, **fields) -> Realm:
    realm = make_realm(name, **fields)
    add_stats(db_session, realm, [issued] * 21, [issued // 2] * 21)
    return realm


def test_run_updates_realm_and_limiter(
    db_session, session_factory, make_realm, make_service, limiter
) -> None:
    realm = seed_realm(db_session, make_realm, "realm", abuse_prevention_limit_factor=1.2)

    result = make_service().run()

    assert result.status is RunStatus.COMPLETED
    assert result.ok
    assert result.processed == [realm.id]

    saved = reload(session_factory, realm.id)
    assert saved.abuse_prevention_limit == 50
    assert saved.last_codes_claimed_ratio == pytest.approx(0.5)
    assert saved.codes_claimed_ratio_mean == pytest.approx(0.5)
    assert saved.codes_claimed_ratio_stddev == pytest.approx(0.0)
    assert limiter.get(quota_key(realm.id, TEST_HMAC_KEY))["tokens"] == 60


def test_second_run_in_period_is_skipped(db_session, make_realm, make_service) -> None:
    seed_realm(db_session, make_realm, "realm")
    service = make_service()

    assert service.run().status is RunStatus.COMPLETED
    result = service.run()
    assert result.too_early
    assert result.ok
    assert result.processed == []


def test_force_bypasses_gate(db_session, make_realm, make_service) -> None:
    realm = seed_realm(db_session, make_realm, "realm")
    service = make_service()

    service.run()
    result = service.run(force=True)
    assert result.status is RunStatus.COMPLETED
    assert result.processed == [realm.id]


def test_insufficient_data_leaves_limit_unchanged(
    db_session, session_factory, make_realm, make_service
) -> None:
    realm = make_realm("new-realm", abuse_prevention_limit=77)
    add_stats(db_session, realm, [500] * 10, [250] * 10)

    result = make_service().run()

    assert result.ok
    assert reload(session_factory, realm.id).abuse_prevention_limit == 77


def test_disabled_realms_are_not_modeled(
    db_session, session_factory, make_realm, make_service
) -> None:
    realm = seed_realm(
        db_session, make_realm, "disabled", abuse_prevention_enabled=False, abuse_prevention_limit=77
    )

    result = make_service().run()

    assert result.processed == []
    assert reload(session_factory, realm.id).abuse_prevention_limit == 77


def test_partial_failure_is_isolated(
    db_session, session_factory, make_realm, make_service
) -> None:
    failing = seed_realm(db_session, make_realm, "failing", issued=40)
    healthy = seed_realm(db_session, make_realm, "healthy", issued=60)
    store = SelectiveFailingStore({quota_key(failing.id, TEST_HMAC_KEY)})

    result = make_service(propagator=QuotaPropagator(store, TEST_HMAC_KEY)).run()

    assert result.status is RunStatus.FAILED
    assert result.processed == [failing.id, healthy.id]
    assert [failure.realm_id for failure in result.failures] == [failing.id]
    assert result.error_messages() == [
        f"failed to update realm {failing.id}: failed to update limit: connection refused"
    ]
    assert reload(session_factory, healthy.id).abuse_prevention_limit == 60
    assert store.get(quota_key(healthy.id, TEST_HMAC_KEY))["tokens"] == 60
    # The realm record is the source of truth even when the limiter write fails.
    assert reload(session_factory, failing.id).abuse_prevention_limit == 40


def test_forecast_error_aborts_only_that_realm(
    db_session, session_factory, make_realm, make_service, mocker
) -> None:
    first = seed_realm(db_session, make_realm, "first", abuse_prevention_limit=77)
    second = seed_realm(db_session, make_realm, "second", issued=90)
    forecaster = mocker.create_autospec(TrendForecaster, instance=True)
    forecaster.forecast.side_effect = [ForecastError("failed to solve QR: matrix is singular"), 90]

    result = make_service(forecaster=forecaster).run()

    assert result.error_messages() == [
        f"failed to update realm {first.id}: failed to solve QR: matrix is singular"
    ]
    saved_first = reload(session_factory, first.id)
    assert saved_first.abuse_prevention_limit == 77
    assert saved_first.codes_claimed_ratio_mean == 0.0
    assert reload(session_factory, second.id).abuse_prevention_limit == 90


def test_lock_error_fails_run_without_processing(make_service, db_session, make_realm, mocker) -> None:
    seed_realm(db_session, make_realm, "realm")
    gate = mocker.MagicMock()
    gate.try_acquire.side_effect = LockError("failed to acquire modeler lock: database is down")

    result = make_service(gate=gate).run()

    assert result.status is RunStatus.FAILED
    assert result.processed == []
    assert result.error_messages() == ["failed to acquire modeler lock: database is down"]


def test_gate_receives_configured_lock(make_service, mocker) -> None:
    gate = mocker.MagicMock()
    gate.try_acquire.return_value = False
    config = ModelerConfig(lock_name="modeler-eu", min_period=timedelta(hours=1))

    result = make_service(gate=gate, config=config).run()

    assert result.too_early
    gate.try_acquire.assert_called_once_with("modeler-eu", timedelta(hours=1))


def test_deadline_leaves_remaining_realms(db_session, make_realm, make_service) -> None:
    first = seed_realm(db_session, make_realm, "first")
    second = seed_realm(db_session, make_realm, "second")

    result = make_service(config=ModelerConfig(timeout=0)).run()

    assert result.ok
    assert result.processed == []
    assert result.unprocessed == [first.id, second.id]


def test_worker_pool_collects_every_failure(make_service, make_realm, mocker) -> None:
    realms = [make_realm(f"realm-{i}") for i in range(6)]
    failing_ids = {realms[1].id, realms[4].id}
    service = make_service(config=ModelerConfig(workers=3))

    def rebuild(realm_id: int) -> None:
        if realm_id in failing_ids:
            raise ForecastError("failed to solve QR")

    mocker.patch.object(service, "rebuild_model", side_effect=rebuild)

    result = service.run()

    assert sorted(result.processed) == sorted(realm.id for realm in realms)
    assert sorted(failure.realm_id for failure in result.failures) == sorted(failing_ids)


def test_unexpected_errors_are_collected(make_service, make_realm, mocker) -> None:
    realm = make_realm("realm")
    service = make_service()
    mocker.patch.object(service, "rebuild_model", side_effect=ZeroDivisionError("division by zero"))

    result = service.run()

    assert result.error_messages() == [f"failed to update realm {realm.id}: division by zero"]
