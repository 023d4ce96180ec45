"""Claimed-to-issued ratio statistics for anomaly reporting."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from quota_modeler.core.settings import Settings
from quota_modeler.repositories import DailyStat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnomalyConfig:
    """Tuning for :class:`AnomalyDetector`."""

    window: int = 30
    min_points: int = 14

    @classmethod
    def from_settings(cls, settings: Settings) -> AnomalyConfig:
        return cls(
            window=settings.modeler_anomaly_window,
            min_points=settings.modeler_anomaly_min_points,
        )


@dataclass(frozen=True)
class AnomalyStats:
    """Ratio of the most recent complete day and the trailing distribution."""

    current_ratio: float
    mean: float
    stddev: float


def claimed_ratio(stat: DailyStat) -> float | None:
    """Return ``codes_claimed / codes_issued`` capped at 1.0, or None if nothing was issued.

    Codes stay valid for 24 hours, so claims can land on the UTC day after
    issuance and exceed that day's issued count.
    """
    if stat.codes_issued <= 0:
        return None
    return min(stat.codes_claimed / stat.codes_issued, 1.0)


class AnomalyDetector:
    """Computes the statistics used to flag unusual claim ratios."""

    def __init__(self, config: AnomalyConfig | None = None) -> None:
        self.config = config or AnomalyConfig()

    def detect(self, series: Sequence[DailyStat]) -> AnomalyStats | None:
        """Return ratio statistics for ``series``, or None if there is too little data.

        Args:
            series: Daily stats in ascending date order. The last entry is an
                incomplete day and is ignored; the one before it is compared
                against the days preceding it.
        """
        if len(series) < 2:
            logger.warning("Skipping anomaly detection, not enough data (days=%d)", len(series))
            return None

        current, history = series[-2], series[:-2]

        ratios: list[float] = []
        for stat in reversed(history):
            ratio = claimed_ratio(stat)
            if ratio is None:
                continue
            ratios.append(ratio)
            if len(ratios) >= self.config.window:
                break

        if len(ratios) < self.config.min_points:
            logger.warning("Skipping anomaly detection, not enough data (points=%d)", len(ratios))
            return None

        values = np.asarray(ratios, dtype=float)
        current_ratio = claimed_ratio(current)
        return AnomalyStats(
            current_ratio=1.0 if current_ratio is None else current_ratio,
            mean=float(values.mean()),
            stddev=float(values.std(ddof=0)),
        )
