"""Trend forecasting of a realm's daily code issuance.

A low-degree polynomial is fitted to the recent history by least squares and
evaluated one step past the last observation. The fit is solved through a QR
decomposition of the Vandermonde matrix rather than the normal equations.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

import numpy as np

from quota_modeler.core.settings import Settings
from quota_modeler.services.errors import ForecastError

logger = logging.getLogger(__name__)

# Diagonal entries of R smaller than this (relative to the largest) mean the
# design matrix is rank deficient.
_RANK_TOLERANCE: Final[float] = 1e-10


@dataclass(frozen=True)
class ForecastConfig:
    """Tuning for :class:`TrendForecaster`."""

    degree: int = 1
    min_points: int = 14
    min_value: int = 10
    max_value: int = 20_000

    def __post_init__(self) -> None:
        if self.degree < 0:
            raise ValueError("degree must be non-negative")
        if self.min_value > self.max_value:
            raise ValueError("min_value must not exceed max_value")

    @classmethod
    def from_settings(cls, settings: Settings) -> ForecastConfig:
        return cls(
            degree=settings.modeler_forecast_degree,
            min_points=settings.modeler_forecast_min_points,
            min_value=settings.modeler_min_value,
            max_value=settings.modeler_max_value,
        )


def vandermonde(xs: Sequence[float], degree: int) -> np.ndarray:
    """Return the ``len(xs) x (degree + 1)`` matrix with columns ``x**0 .. x**degree``."""
    return np.vander(np.asarray(xs, dtype=float), N=degree + 1, increasing=True)


def fit_polynomial(xs: Sequence[float], ys: Sequence[float], degree: int) -> np.ndarray:
    """Return least-squares coefficients, lowest order first.

    Raises:
        ForecastError: The system is singular or underdetermined.
    """
    if len(xs) != len(ys):
        raise ForecastError(f"got {len(xs)} x values but {len(ys)} y values")
    if len(xs) <= degree:
        raise ForecastError(f"need more than {degree} points for a degree {degree} fit")

    alpha = vandermonde(xs, degree)
    beta = np.asarray(ys, dtype=float)
    q, r = np.linalg.qr(alpha)

    diagonal = np.abs(np.diag(r))
    if diagonal.min() <= _RANK_TOLERANCE * max(diagonal.max(), 1.0):
        raise ForecastError("failed to solve QR: matrix is singular")
    try:
        return np.linalg.solve(r, q.T @ beta)
    except np.linalg.LinAlgError as exc:
        raise ForecastError(f"failed to solve QR: {exc}") from exc


def evaluate_polynomial(coefficients: Sequence[float], x: float) -> float:
    """Evaluate the polynomial with ``coefficients`` (lowest order first) at ``x``."""
    result = 0.0
    for coefficient in reversed(list(coefficients)):
        result = result * x + float(coefficient)
    return result


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, with ties going away from zero."""
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return int(math.copysign(whole, value))


class TrendForecaster:
    """Projects the next day's code issuance for a realm."""

    def __init__(self, config: ForecastConfig | None = None) -> None:
        self.config = config or ForecastConfig()

    def forecast(self, issued: Sequence[int]) -> int | None:
        """Return the clamped forecast for the day after ``issued``.

        Args:
            issued: Daily ``codes_issued`` in ascending date order. The last
                entry is treated as an incomplete day and discarded.

        Returns:
            The forecast, or None when there is not enough history to model.

        Raises:
            ForecastError: The regression could not be solved.
        """
        ys = [float(y) for y in issued[:-1]]
        if len(ys) < self.config.min_points:
            logger.warning("Skipping forecast, not enough data (points=%d)", len(ys))
            return None

        xs = list(range(len(ys)))
        coefficients = fit_polynomial(xs, ys, self.config.degree)
        raw = evaluate_polynomial(coefficients, float(len(ys)))
        if not math.isfinite(raw):
            raise ForecastError(f"forecast is not a finite number: {raw}")

        return self.clamp(max(round_half_away_from_zero(raw), 0))

    def clamp(self, value: int) -> int:
        """Clamp ``value`` into the configured business floor and ceiling."""
        if value < self.config.min_value:
            logger.warning(
                "Forecast %d is below the minimum, using %d", value, self.config.min_value
            )
            return self.config.min_value
        if value > self.config.max_value:
            logger.warning(
                "Forecast %d is above the maximum, using %d", value, self.config.max_value
            )
            return self.config.max_value
        return value
