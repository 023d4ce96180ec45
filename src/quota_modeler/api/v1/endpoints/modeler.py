"""Trigger endpoint for the modeler control loop."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from quota_modeler.services.modeler import ModelerService, get_modeler_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/modeler", tags=["modeler"])


def get_modeler_service_dep() -> ModelerService:
    """Get ModelerService dependency for dependency injection."""
    return get_modeler_service()


ModelerServiceDep = Annotated[ModelerService, Depends(get_modeler_service_dep)]


@router.api_route("/", methods=["GET", "POST"])
async def handle_model(modeler: ModelerServiceDep) -> JSONResponse:
    """Rebuild every realm's model if this period has not been handled yet.

    Returns an empty object when the run succeeded or was skipped because
    another replica already ran this period, and a list of error messages
    with status 500 when any realm (or the lock itself) failed.
    """
    result = await run_in_threadpool(modeler.run)
    if not result.ok:
        logger.error("Failed to build models (errors=%d)", len(result.failures))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.error_messages(),
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content={})
