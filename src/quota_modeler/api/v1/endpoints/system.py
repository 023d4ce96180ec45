"""System and transparency endpoints for the modeler."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from quota_modeler.api.v1.endpoints.modeler import get_modeler_service_dep
from quota_modeler.db.time import as_utc
from quota_modeler.services.errors import LockError
from quota_modeler.services.modeler import ModelerService

router = APIRouter(prefix="/system", tags=["system"])

ModelerServiceDep = Annotated[ModelerService, Depends(get_modeler_service_dep)]


@router.get("/config")
async def get_public_config(modeler: ModelerServiceDep) -> dict[str, object]:
    """Return a sanitized snapshot of the modeler configuration and lock state.

    Excludes the limiter HMAC key and connection strings.

    Args:
        modeler: Modeler service whose configuration is reported

    Returns:
        Dictionary with run, forecast and anomaly configuration plus the
        current execution lock, if one has been created
    """
    forecast = modeler.forecaster.config
    anomaly = modeler.detector.config
    run = modeler.config

    try:
        lock = modeler.gate.status(run.lock_name)
    except LockError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return {
        "run": {
            "lock_name": run.lock_name,
            "min_period_seconds": int(run.min_period.total_seconds()),
            "workers": run.workers,
            "timeout_seconds": run.timeout,
        },
        "forecast": {
            "window_days": run.forecast_window_days,
            "min_points": forecast.min_points,
            "degree": forecast.degree,
            "min_value": forecast.min_value,
            "max_value": forecast.max_value,
        },
        "anomaly": {
            "lookback_days": run.anomaly_lookback_days,
            "window": anomaly.window,
            "min_points": anomaly.min_points,
        },
        "lock": None
        if lock is None
        else {
            "generation": int(lock.generation),
            "not_before": as_utc(lock.not_before).isoformat(),
        },
    }
