# src/quota_modeler/services/__init__.py
"""Business logic services for the quota modeler."""

from .anomaly import AnomalyDetector
from .forecast import TrendForecaster
from .lock import ExecutionGate
from .modeler import ModelerService
from .propagator import QuotaPropagator

__all__ = [
    "AnomalyDetector",
    "ExecutionGate",
    "ModelerService",
    "QuotaPropagator",
    "TrendForecaster",
]
