# src/quota_modeler/main.py
"""Main entry point for the quota modeler service."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from quota_modeler.api.v1 import modeler_router, system_router
from quota_modeler.core.settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Forecasts per-realm code issuance quotas and claim-ratio anomalies",
    version=settings.app_version,
)

# Include API routers
app.include_router(modeler_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("quota_modeler.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
