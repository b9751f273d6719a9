"""
AWS Lambda Handler for FastAPI Middleware

Lambda entry point using the Mangum adapter to translate API Gateway events
to the FastAPI ASGI interface.
"""

from mangum import Mangum

from app.main import app
from app.utils.logging_config import get_logger, set_correlation_id

logger = get_logger(__name__)


# api_gateway_base_path "/" lets Mangum strip stage prefixes itself
handler = Mangum(app, lifespan="off", api_gateway_base_path="/")


def lambda_handler(event, context):
    """
    AWS Lambda handler function with invocation logging.

    Args:
        event: API Gateway event containing HTTP request details
        context: Lambda context with runtime information

    Returns:
        API Gateway response format
    """
    set_correlation_id(context.aws_request_id)

    http = event.get("requestContext", {}).get("http", {})
    logger.info(
        "Lambda invocation started",
        extra={
            "request_id": context.aws_request_id,
            "function_name": context.function_name,
            "remaining_time": context.get_remaining_time_in_millis(),
            "http_method": http.get("method"),
            "path": http.get("path") or event.get("rawPath"),
        },
    )

    try:
        response = handler(event, context)
    except Exception as e:
        logger.error(
            f"Lambda invocation failed: {e}",
            extra={
                "request_id": context.aws_request_id,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        raise

    logger.info(
        "Lambda invocation completed",
        extra={
            "request_id": context.aws_request_id,
            "status_code": response.get("statusCode"),
        },
    )
    return response


__all__ = ["handler", "lambda_handler"]
