"""
Givebutter Webhook Endpoint

Verifies the webhook signature and runs the event through the router.
Processing failures are answered with 200 and a failure flag so Givebutter
does not re-deliver an event that may already be partly recorded.
"""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from app.handlers.event_router import get_event_router
from app.models.givebutter_events import GivebutterWebhook
from app.services.givebutter_service import givebutter_service
from app.utils.exceptions import MiddlewareException, SignatureException, ValidationException
from app.utils.logging_config import get_correlation_id, get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/givebutter")
async def givebutter_webhook(request: Request):
    """
    Givebutter webhook endpoint.

    Returns:
        200 {success, contact_id, contribution_id} for handled events,
        200 {success: false, error} when handling failed,
        200 "OK" for event types that are not handled or malformed envelopes,
        400 when the body is not a JSON object,
        401 on signature mismatch
    """
    correlation_id = get_correlation_id()

    try:
        payload, signature, body = await givebutter_service.extract_webhook_data(request)
    except ValidationException as e:
        logger.error(f"Rejected webhook body: {e.message}", extra={"error": e.to_dict()})
        raise HTTPException(status_code=400, detail=e.message)

    try:
        givebutter_service.verify_signature(payload, signature)
    except SignatureException as e:
        logger.error(
            "Webhook signature verification failed",
            extra={"error": e.message, "correlation_id": correlation_id},
        )
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        webhook = GivebutterWebhook.model_validate(body)
    except ValidationError as e:
        # A malformed envelope is an unhandled event, never a non-2xx answer
        event_type = body.get("event")
        logger.warning(
            f"Webhook envelope is malformed: {e.error_count()} error(s)",
            extra={"event_type": event_type, "error": str(e)},
        )
        if event_type in get_event_router().get_supported_event_types():
            return JSONResponse(
                status_code=200,
                content={"success": False, "error": "Malformed webhook payload"},
            )
        return PlainTextResponse("OK", status_code=200)

    logger.info(
        "Received Givebutter webhook event",
        extra={
            "event_type": webhook.event,
            "transaction_id": webhook.data.get("id"),
            "correlation_id": correlation_id,
        },
    )

    try:
        outcome = await get_event_router().route_event(webhook)

    except MiddlewareException as e:
        logger.error(
            f"Error processing webhook: {e.message}",
            exc_info=True,
            extra={"error": e.to_dict(), "event_type": webhook.event},
        )
        return JSONResponse(status_code=200, content={"success": False, "error": e.message})

    except Exception as e:
        logger.error(
            f"Unexpected error processing webhook: {e}",
            exc_info=True,
            extra={"error": str(e), "event_type": webhook.event},
        )
        return JSONResponse(status_code=200, content={"success": False, "error": str(e)})

    if outcome["status"] == "ignored":
        return PlainTextResponse("OK", status_code=200)

    result = outcome["result"]
    logger.info(
        "Webhook processed",
        extra={
            "event_type": webhook.event,
            "contact_id": result["contact_id"],
            "contribution_id": result["contribution_id"],
        },
    )

    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "contact_id": result["contact_id"],
            "contribution_id": result["contribution_id"],
        },
    )
