"""Periodic rebuild of every realm's abuse-prevention model.

The modeler is triggered externally, possibly on several replicas at once.
A run first claims the execution gate; the replica that wins forecasts each
enabled realm's next-day issuance, recomputes its claimed-ratio statistics,
and propagates both to the realm record and the rate limiter. Failures are
collected per realm so that one realm's bad data never blocks the others.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from functools import lru_cache

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from quota_modeler.core.settings import Settings, settings
from quota_modeler.db.session import SessionLocal
from quota_modeler.repositories import RealmStatsRepository, utc_today
from quota_modeler.services.anomaly import AnomalyConfig, AnomalyDetector
from quota_modeler.services.errors import LockError, ModelerError, PropagationError
from quota_modeler.services.forecast import ForecastConfig, TrendForecaster
from quota_modeler.services.lock import ExecutionGate
from quota_modeler.services.propagator import QuotaPropagator
from quota_modeler.services.ratelimit import LimiterStore, limiter_store_for

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Terminal state of a modeler run."""

    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RealmFailure:
    """An error raised while rebuilding a single realm."""

    realm_id: int | None
    error: Exception

    def __str__(self) -> str:
        if self.realm_id is None:
            return str(self.error)
        return f"failed to update realm {self.realm_id}: {self.error}"


@dataclass
class ModelerResult:
    """Outcome of one trigger, accumulating every per-realm failure."""

    status: RunStatus = RunStatus.COMPLETED
    processed: list[int] = field(default_factory=list)
    unprocessed: list[int] = field(default_factory=list)
    failures: list[RealmFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def too_early(self) -> bool:
        return self.status is RunStatus.SKIPPED

    def add_failure(self, realm_id: int | None, error: Exception) -> None:
        if isinstance(error, PropagationError):
            for inner in error.errors:
                self.failures.append(RealmFailure(realm_id, inner))
            return
        self.failures.append(RealmFailure(realm_id, error))

    def error_messages(self) -> list[str]:
        return [str(failure) for failure in self.failures]


@dataclass(frozen=True)
class ModelerConfig:
    """Run-level tuning for :class:`ModelerService`."""

    lock_name: str = "modeler"
    min_period: timedelta = timedelta(minutes=20)
    forecast_window_days: int = 21
    anomaly_lookback_days: int = 90
    workers: int = 1
    timeout: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ModelerConfig:
        return cls(
            lock_name=settings.modeler_lock_name,
            min_period=timedelta(seconds=settings.modeler_min_period_seconds),
            forecast_window_days=settings.modeler_forecast_window_days,
            anomaly_lookback_days=settings.modeler_anomaly_lookback_days,
            workers=settings.modeler_workers,
            timeout=settings.modeler_run_timeout_seconds,
        )


class ModelerService:
    """Gates, then rebuilds the models for every realm with abuse prevention enabled."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        propagator: QuotaPropagator,
        *,
        config: ModelerConfig | None = None,
        forecaster: TrendForecaster | None = None,
        detector: AnomalyDetector | None = None,
        gate: ExecutionGate | None = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self.config = config or ModelerConfig()
        self._session_factory = session_factory
        self._propagator = propagator
        self._forecaster = forecaster or TrendForecaster()
        self._detector = detector or AnomalyDetector()
        self._gate = gate or ExecutionGate(session_factory)
        self._today = today

    @property
    def forecaster(self) -> TrendForecaster:
        return self._forecaster

    @property
    def detector(self) -> AnomalyDetector:
        return self._detector

    @property
    def gate(self) -> ExecutionGate:
        return self._gate

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: sessionmaker[Session],
        propagator: QuotaPropagator,
    ) -> ModelerService:
        return cls(
            session_factory,
            propagator,
            config=ModelerConfig.from_settings(settings),
            forecaster=TrendForecaster(ForecastConfig.from_settings(settings)),
            detector=AnomalyDetector(AnomalyConfig.from_settings(settings)),
        )

    def run(self, *, force: bool = False) -> ModelerResult:
        """Claim the execution gate and, if granted, rebuild all models.

        Args:
            force: Skip the gate entirely. Intended for operators only.
        """
        if not force:
            try:
                acquired = self._gate.try_acquire(self.config.lock_name, self.config.min_period)
            except LockError as exc:
                logger.error("Failed to acquire modeler lock: %s", exc)
                result = ModelerResult(status=RunStatus.FAILED)
                result.add_failure(None, exc)
                return result
            if not acquired:
                logger.info("Skipping modeler run, too early")
                return ModelerResult(status=RunStatus.SKIPPED)

        return self.rebuild_models()

    def rebuild_models(self) -> ModelerResult:
        """Rebuild the model of every enabled realm, collecting failures."""
        result = ModelerResult()
        deadline = None
        if self.config.timeout is not None:
            deadline = time.monotonic() + self.config.timeout

        try:
            with self._session_factory() as session:
                repo = RealmStatsRepository(session, self._today)
                realm_ids = repo.list_modeling_enabled_realm_ids()
        except SQLAlchemyError as exc:
            logger.error("Failed to list realms: %s", exc)
            result.add_failure(None, ModelerError(f"failed to fetch ids: {exc}"))
            result.status = RunStatus.FAILED
            return result
        logger.debug("Building models (count=%d)", len(realm_ids))

        if self.config.workers > 1 and len(realm_ids) > 1:
            outcomes = self._run_pool(realm_ids, deadline)
        else:
            outcomes = (self._run_one(realm_id, deadline) for realm_id in realm_ids)

        for realm_id, ran, error in outcomes:
            if not ran:
                result.unprocessed.append(realm_id)
                continue
            result.processed.append(realm_id)
            if error is not None:
                result.add_failure(realm_id, error)

        if result.unprocessed:
            logger.warning(
                "Modeler deadline reached, %d realms left for the next run", len(result.unprocessed)
            )
        if not result.ok:
            result.status = RunStatus.FAILED
            logger.error("Failed to build models: %s", "; ".join(result.error_messages()))
        logger.info(
            "Modeler run finished (processed=%d, failures=%d)",
            len(result.processed),
            len(result.failures),
        )
        return result

    def rebuild_model(self, realm_id: int) -> None:
        """Forecast, analyze and propagate the model for a single realm.

        Raises:
            ModelerError: Any step failed; nothing after the failing step ran.
        """
        with self._session_factory() as session:
            repo = RealmStatsRepository(session, self._today)
            try:
                issued = repo.historical_issuance(realm_id, self.config.forecast_window_days)
                series = repo.full_stats_series(realm_id, self.config.anomaly_lookback_days)
            except SQLAlchemyError as exc:
                raise ModelerError(f"failed to get stats: {exc}") from exc

            limit = self._forecaster.forecast(issued)
            anomaly = self._detector.detect(series)
            if limit is None and anomaly is None:
                logger.info("Skipping realm %d, not enough data", realm_id)
                return
            self._propagator.propagate(session, realm_id, limit, anomaly)

    def _run_one(
        self, realm_id: int, deadline: float | None
    ) -> tuple[int, bool, Exception | None]:
        if deadline is not None and time.monotonic() >= deadline:
            return realm_id, False, None
        try:
            self.rebuild_model(realm_id)
        except ModelerError as exc:
            logger.error("Failed to update realm %d: %s", realm_id, exc)
            return realm_id, True, exc
        except Exception as exc:
            logger.exception("Unexpected error updating realm %d", realm_id)
            return realm_id, True, exc
        return realm_id, True, None

    def _run_pool(
        self, realm_ids: Iterable[int], deadline: float | None
    ) -> list[tuple[int, bool, Exception | None]]:
        with ThreadPoolExecutor(
            max_workers=self.config.workers, thread_name_prefix="modeler"
        ) as executor:
            futures = [
                executor.submit(self._run_one, realm_id, deadline) for realm_id in realm_ids
            ]
            return [future.result() for future in futures]


@lru_cache(maxsize=1)
def get_limiter_store() -> LimiterStore:
    """Return the process-wide limiter store."""
    return limiter_store_for(settings)


def get_modeler_service() -> ModelerService:
    """Return a modeler service wired to the application's database and limiter."""
    propagator = QuotaPropagator(
        get_limiter_store(),
        settings.rate_limit_hmac_key_bytes,
        ttl=timedelta(seconds=settings.rate_limit_quota_ttl_seconds),
    )
    return ModelerService.from_settings(settings, SessionLocal, propagator)
