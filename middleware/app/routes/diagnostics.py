"""
Diagnostics Endpoint

Runs the transaction pipeline against a fixed synthetic donation so an
operator can check the CiviCRM wiring end to end without Givebutter.
"""

import time
from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from app.config import settings
from app.handlers.transaction_handler import transaction_handler
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["diagnostics"])


def build_test_transaction() -> Dict[str, Any]:
    """Synthetic donation on the Local Area campaign"""
    return {
        "id": f"test_{int(time.time() * 1000)}",
        "amount": 25,
        "transacted_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "campaign_id": "195519",
        "campaign_title": "Test Campaign",
        "first_name": "Test",
        "last_name": "Donor",
        "email": "testdonor@example.com",
        "phone": "555-1234",
        "custom_fields": [
            {
                "id": 20768768,
                "field_id": settings.local_area_field_id,
                "title": settings.local_area_field_title,
                "type": "radio",
                "value": "Colorado",
            }
        ],
    }


@router.post("/test")
async def run_test_donation():
    """
    Create a test donation.

    Unlike the webhook, failures here return 500.
    """
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not Found")

    logger.info("Test mode: creating synthetic donation")

    try:
        result = await transaction_handler.handle_transaction_succeeded(build_test_transaction())
    except Exception as e:
        logger.error(f"Test failed: {e}", exc_info=True, extra={"error": str(e)})
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    logger.info("Test successful", extra={"contribution_id": result["contribution_id"]})

    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "message": "Test donation created successfully",
            "contact_id": result["contact_id"],
            "contribution_id": result["contribution_id"],
        },
    )
