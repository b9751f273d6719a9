"""
Health Check Endpoint

Reports liveness, the resolved CiviCRM endpoint and which secrets are
configured (never their values).
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.config import settings
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if application is running.
    """
    logger.debug("Health check")

    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.app_version,
            "civicrm_endpoint": settings.civicrm_rest_url,
            "config": settings.secrets_present(),
        },
    )
