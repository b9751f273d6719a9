"""
Pytest Configuration and Fixtures

Provides common fixtures and an in-memory CiviCRM double for middleware tests.
"""

import asyncio
import hashlib
import hmac
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.handlers.contact_handler import ContactHandler
from app.handlers.contribution_handler import ContributionHandler
from app.handlers.event_router import EventRouter
from app.handlers.membership_handler import MembershipHandler
from app.handlers.transaction_handler import TransactionHandler
from app.main import app
from app.services.givebutter_service import GivebutterService

TEST_WEBHOOK_SECRET = "gb_test_secret"
LOCAL_AREA_FIELD = "custom_820"


class FakeCiviCRM:
    """
    In-memory stand-in for CiviCRMService.call.

    Answers Contact, Contribution and Membership get/create in the APIv3
    non-sequential shape for creates and the sequential shape for gets.
    Every call is recorded in `calls` as (entity, action, params).
    """

    def __init__(self, first_id: int = 100):
        self.records: Dict[str, Dict[int, Dict[str, Any]]] = {
            "Contact": {},
            "Contribution": {},
            "Membership": {},
        }
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self._next_id = first_id

    def add(self, entity: str, **fields: Any) -> int:
        record_id = fields.pop("id", None) or self._allocate_id()
        self.records[entity][record_id] = {"id": str(record_id), **fields}
        return record_id

    def fail(self, entity: str, action: str, exc: Exception) -> None:
        self.failures[(entity, action)] = exc

    def calls_to(self, entity: str, action: str) -> List[Dict[str, Any]]:
        return [params for e, a, params in self.calls if (e, a) == (entity, action)]

    def _allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def call(
        self, entity: str, action: str, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        params = dict(params or {})
        self.calls.append((entity, action, params))
        # Let concurrent callers interleave the way real HTTP calls would
        await asyncio.sleep(0)

        if (entity, action) in self.failures:
            raise self.failures[(entity, action)]

        if action == "get":
            return self._get(entity, params)
        if action == "create":
            return self._create(entity, params)
        raise AssertionError(f"Unexpected CiviCRM call {entity}.{action}")

    def _get(self, entity: str, params: Dict[str, Any]) -> Dict[str, Any]:
        filters = {
            key: value
            for key, value in params.items()
            if key not in ("sequential", "return", "options")
        }
        matches = [
            record
            for record in self.records[entity].values()
            if all(str(record.get(key)) == str(value) for key, value in filters.items())
        ]

        options = params.get("options") or {}
        if options.get("sort") == "end_date DESC":
            matches.sort(key=lambda record: record.get("end_date", ""), reverse=True)
        if options.get("limit"):
            matches = matches[: options["limit"]]

        return {"is_error": 0, "version": 3, "count": len(matches), "values": matches}

    def _create(self, entity: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if "id" in params:
            record_id = int(params["id"])
            self.records[entity].setdefault(record_id, {"id": str(record_id)})
            self.records[entity][record_id].update(
                {key: value for key, value in params.items() if key != "id"}
            )
        else:
            record_id = self.add(entity, **params)

        return {
            "is_error": 0,
            "version": 3,
            "count": 1,
            "id": record_id,
            "values": {str(record_id): self.records[entity][record_id]},
        }


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's environment"""
    return Settings(
        _env_file=None,
        environment="test",
        givebutter_webhook_secret=TEST_WEBHOOK_SECRET,
        givebutter_api_key="gb_test_api_key",
        civicrm_base_url="https://crm.example.org",
        civicrm_site_key="site-key",
        civicrm_api_key="api-key",
        local_area_custom_field=LOCAL_AREA_FIELD,
        campaign_financial_types={"195519": "use_custom_field", "200001": 7},
    )


@pytest.fixture
def fake_civicrm() -> FakeCiviCRM:
    return FakeCiviCRM()


@pytest.fixture
def givebutter(test_settings) -> GivebutterService:
    return GivebutterService(test_settings)


@pytest.fixture
def contacts(fake_civicrm, test_settings) -> ContactHandler:
    return ContactHandler(fake_civicrm, test_settings)


@pytest.fixture
def memberships(fake_civicrm, givebutter, test_settings) -> MembershipHandler:
    return MembershipHandler(fake_civicrm, givebutter, test_settings)


@pytest.fixture
def contributions(fake_civicrm, contacts, memberships, test_settings):
    return ContributionHandler(fake_civicrm, contacts, memberships, test_settings)


@pytest.fixture
def transactions(contacts, contributions) -> TransactionHandler:
    return TransactionHandler(contacts, contributions)


@pytest.fixture
def event_router(transactions) -> EventRouter:
    return EventRouter(transactions)


@pytest.fixture
def test_client():
    """FastAPI test client"""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client():
    """Async HTTP client for testing"""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def transaction_data() -> Dict[str, Any]:
    """A one-time donation to the Local Area campaign"""
    return {
        "id": "tx_test123",
        "amount": 25,
        "transacted_at": "2024-05-01T12:00:00Z",
        "campaign_id": 195519,
        "campaign_title": "Spring Appeal",
        "first_name": "Jane",
        "last_name": "Donor",
        "email": "jane@example.com",
        "phone": "555-0100",
        "custom_fields": [
            {
                "id": 20768768,
                "field_id": 64260,
                "title": "Local Area",
                "type": "radio",
                "value": "Colorado",
            }
        ],
    }


@pytest.fixture
def webhook_event(transaction_data) -> Dict[str, Any]:
    """transaction.succeeded webhook envelope"""
    return {"event": "transaction.succeeded", "data": transaction_data}


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    """Givebutter-Signature header value for a raw body"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def encode_event(event: Dict[str, Any]) -> bytes:
    return json.dumps(event, separators=(",", ":")).encode("utf-8")
