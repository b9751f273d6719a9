"""
CiviCRM REST API Service

Thin wrapper around the CiviCRM APIv3 REST endpoint. Every call is a single
attempt; failures surface to the caller with the response body attached.
"""

import json
from typing import Any, Dict, Optional

import httpx

from app.config import Settings, settings
from app.utils.exceptions import (
    CiviCRMAPIException,
    CiviCRMResponseException,
    ConfigurationException,
)
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


def extract_entity_id(response: Dict[str, Any]) -> int:
    """
    Pull the created/updated entity id out of an APIv3 response.

    APIv3 answers in several shapes depending on the call and the
    `sequential` flag:

        {"id": 12, ...}
        {"values": [{"id": 12, ...}]}
        {"values": {"12": {...}}}

    Raises:
        CiviCRMResponseException: If no recognizable shape matches
    """
    candidate: Any = None

    if isinstance(response, dict):
        candidate = response.get("id")
        values = response.get("values")
        if candidate in (None, "") and isinstance(values, list) and values:
            first = values[0]
            if isinstance(first, dict):
                candidate = first.get("id")
        elif candidate in (None, "") and isinstance(values, dict) and values:
            candidate = next(iter(values))

    try:
        return int(candidate)
    except (TypeError, ValueError):
        error_message = response.get("error_message") if isinstance(response, dict) else None
        raise CiviCRMResponseException(
            f"No entity id in CiviCRM response: {error_message or 'unrecognized shape'}",
            details={"response": response},
        )


class CiviCRMService:
    """Service for calling the CiviCRM APIv3 REST endpoint"""

    def __init__(
        self,
        config: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = config.civicrm_base_url
        self.rest_url = config.civicrm_rest_url
        self.site_key = config.civicrm_site_key
        self.api_key = config.civicrm_api_key
        self.timeout = config.http_timeout
        self._transport = transport

    def _get_http_client(self) -> httpx.AsyncClient:
        """Create a fresh client per call; nothing is shared between requests"""
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def call(
        self,
        entity: str,
        action: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Invoke `entity.action` with the given parameters.

        Args:
            entity: CiviCRM entity name (e.g., 'Contact')
            action: API action (e.g., 'get', 'create')
            params: Parameters, sent JSON-encoded in the `json` query field

        Returns:
            Decoded response body, unmodified

        Raises:
            ConfigurationException: If the endpoint or keys are not configured
            CiviCRMAPIException: On transport errors or non-2xx responses
        """
        if not (self.base_url and self.site_key and self.api_key):
            raise ConfigurationException(
                "CiviCRM base URL, site key and API key must be configured",
                details={"entity": entity, "action": action},
            )

        query = {
            "entity": entity,
            "action": action,
            "key": self.site_key,
            "api_key": self.api_key,
            "json": json.dumps(params or {}),
        }

        logger.info(
            f"CiviCRM API call: {entity}.{action}",
            extra={"entity": entity, "action": action},
        )

        async with self._get_http_client() as client:
            try:
                response = await client.post(self.rest_url, params=query)
            except httpx.RequestError as e:
                logger.error(
                    f"Network error calling CiviCRM ({entity}.{action}): {e}",
                    extra={"entity": entity, "action": action, "error": str(e)},
                )
                raise CiviCRMAPIException(
                    f"Network error: {e}",
                    details={"entity": entity, "action": action, "error": str(e)},
                ) from e

        if response.status_code >= 300:
            try:
                error_data = response.json()
            except ValueError:
                error_data = {"message": response.text}

            logger.error(
                f"CiviCRM API error ({entity}.{action}): {response.status_code}",
                extra={
                    "entity": entity,
                    "action": action,
                    "status_code": response.status_code,
                    "error": error_data,
                },
            )
            raise CiviCRMAPIException(
                f"CiviCRM API error: {error_data}",
                status_code=response.status_code,
                details={"entity": entity, "action": action, "error": error_data},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CiviCRMAPIException(
                "CiviCRM returned a non-JSON body",
                status_code=response.status_code,
                details={"entity": entity, "action": action, "body": response.text},
            ) from e

        if isinstance(data, dict) and data.get("is_error"):
            logger.warning(
                f"CiviCRM reported an error for {entity}.{action}",
                extra={"entity": entity, "action": action, "error": data.get("error_message")},
            )
        else:
            logger.info(f"{entity}.{action} successful")

        return data


# Global CiviCRM service instance
civicrm_service = CiviCRMService(settings)
