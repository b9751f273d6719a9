"""
Givebutter Service

Handles webhook signature verification and recurring plan lookups against
the Givebutter API.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, Optional, Tuple

import httpx
from fastapi import Request

from app.config import Settings, settings
from app.utils.exceptions import GivebutterException, SignatureException, ValidationException
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "Givebutter-Signature"


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of the payload keyed by the shared secret"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class GivebutterService:
    """Givebutter webhook and API service"""

    def __init__(
        self,
        config: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_secret = config.givebutter_webhook_secret
        self.allow_unsigned = config.allow_unsigned_webhooks
        self.api_key = config.givebutter_api_key
        self.api_base_url = config.givebutter_api_base_url.rstrip("/")
        self.timeout = config.http_timeout
        self._transport = transport

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """
        Verify a webhook body against its signature header.

        Args:
            payload: Raw request body as bytes
            signature: Givebutter-Signature header value, if sent

        Returns:
            True if the signature matched, False if the request was unsigned
            and unsigned requests are allowed

        Raises:
            SignatureException: If the signature is wrong, or missing while
                unsigned requests are not allowed
        """
        if not signature:
            if self.allow_unsigned:
                logger.warning("No signature provided - skipping verification")
                return False
            raise SignatureException("Missing webhook signature")

        if not self.webhook_secret:
            logger.error("Signed webhook received but no webhook secret is configured")
            raise SignatureException("Webhook secret not configured")

        expected = compute_signature(payload, self.webhook_secret)
        if not hmac.compare_digest(expected, signature.strip()):
            logger.error("Invalid webhook signature")
            raise SignatureException()

        logger.info("Webhook signature verified")
        return True

    async def extract_webhook_data(
        self, request: Request
    ) -> Tuple[bytes, Optional[str], Dict[str, Any]]:
        """
        Extract raw body, signature header and decoded JSON from a request.

        Raises:
            ValidationException: If the body is empty or not a JSON object
        """
        payload = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER)

        if not payload:
            raise ValidationException("Empty request body", details={"body": "empty"})

        try:
            body = json.loads(payload)
        except ValueError as e:
            raise ValidationException(
                "Request body is not valid JSON", details={"error": str(e)}
            ) from e

        if not isinstance(body, dict):
            raise ValidationException("Request body must be a JSON object")

        return payload, signature, body

    async def get_plan(self, plan_id: str) -> Dict[str, Any]:
        """
        Retrieve a recurring plan from the Givebutter API.

        Raises:
            GivebutterException: If no API key is configured or retrieval fails
        """
        if not self.api_key:
            raise GivebutterException(
                "Givebutter API key not configured", details={"plan_id": plan_id}
            )

        url = f"{self.api_base_url}/plans/{plan_id}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise GivebutterException(
                    "Failed to retrieve plan",
                    details={
                        "plan_id": plan_id,
                        "status_code": e.response.status_code,
                        "error": e.response.text,
                    },
                ) from e
            except httpx.RequestError as e:
                raise GivebutterException(
                    "Failed to retrieve plan",
                    details={"plan_id": plan_id, "error": str(e)},
                ) from e

        logger.info("Retrieved plan from Givebutter", extra={"plan_id": plan_id})
        return response.json()

    async def get_plan_frequency(self, plan_id: Optional[str]) -> Optional[str]:
        """
        Look up the billing frequency (monthly, quarterly, yearly) of a plan.
        Any failure leaves the frequency unresolved.
        """
        if not plan_id:
            return None

        try:
            plan = await self.get_plan(plan_id)
        except GivebutterException as e:
            logger.warning(
                f"Could not resolve plan frequency: {e.message}",
                extra={"plan_id": plan_id, "error": e.to_dict()},
            )
            return None
        except ValueError as e:
            logger.warning(
                f"Plan response was not JSON: {e}",
                extra={"plan_id": plan_id},
            )
            return None

        # The API wraps single objects in "data"
        plan_data = plan.get("data", plan) if isinstance(plan, dict) else {}
        frequency = plan_data.get("frequency") if isinstance(plan_data, dict) else None

        logger.info(
            f"Plan frequency: {frequency}",
            extra={"plan_id": plan_id, "frequency": frequency},
        )
        return frequency.lower() if isinstance(frequency, str) else None


# Global Givebutter service instance
givebutter_service = GivebutterService(settings)
