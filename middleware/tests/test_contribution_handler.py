"""
Tests for Contribution Handler

Tests financial type selection, contribution payload mapping and the
follow-up Local Area and membership writes.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.models.civicrm_records import CiviContribution, ContactMatch
from app.models.givebutter_events import GivebutterTransaction
from app.utils.exceptions import CiviCRMAPIException, CiviCRMResponseException

from conftest import LOCAL_AREA_FIELD


def make_transaction(data, **overrides) -> GivebutterTransaction:
    return GivebutterTransaction.model_validate({**data, **overrides})


@pytest.fixture
def contact(fake_civicrm) -> ContactMatch:
    contact_id = fake_civicrm.add("Contact", email="jane@example.com")
    return ContactMatch(id=contact_id)


class TestResolveFinancialType:
    """Tests for campaign and Local Area financial type selection"""

    def test_local_area_label_maps_to_financial_type(self, contributions, contact, transaction_data):
        choice = contributions.resolve_financial_type(contact, make_transaction(transaction_data))

        assert choice.financial_type_id == 20
        assert choice.local_area == "Colorado"
        assert choice.update_contact is True

    def test_unknown_label_uses_default(self, contributions, contact, transaction_data):
        transaction = make_transaction(
            transaction_data,
            custom_fields=[{"title": "Local Area", "value": "Atlantis"}],
        )

        choice = contributions.resolve_financial_type(contact, transaction)

        assert choice.financial_type_id == 49

    def test_no_local_area_anywhere_uses_default(self, contributions, contact, transaction_data):
        transaction = make_transaction(transaction_data, custom_fields=[])

        choice = contributions.resolve_financial_type(contact, transaction)

        assert choice == (49, None, False)

    def test_stored_local_area_used_when_transaction_has_none(
        self, contributions, transaction_data
    ):
        contact = ContactMatch(id=101, local_area="Heartland")
        transaction = make_transaction(transaction_data, custom_fields=[])

        choice = contributions.resolve_financial_type(contact, transaction)

        assert choice.financial_type_id == 139
        assert choice.local_area == "Heartland"
        assert choice.update_contact is False

    def test_transaction_value_wins_over_stored_value(self, contributions, transaction_data):
        contact = ContactMatch(id=101, local_area="Heartland")

        choice = contributions.resolve_financial_type(contact, make_transaction(transaction_data))

        assert choice.financial_type_id == 20
        assert choice.update_contact is True

    def test_matching_stored_value_needs_no_update(self, contributions, transaction_data):
        contact = ContactMatch(id=101, local_area="Colorado")

        choice = contributions.resolve_financial_type(contact, make_transaction(transaction_data))

        assert choice.update_contact is False

    def test_local_area_matched_by_field_id(self, contributions, contact, transaction_data):
        transaction = make_transaction(
            transaction_data,
            custom_fields=[{"field_id": 64260, "title": "Your Area", "value": "Colorado"}],
        )

        assert contributions.resolve_financial_type(contact, transaction).financial_type_id == 20

    def test_fixed_campaign_mapping(self, contributions, contact, transaction_data):
        """Test a campaign mapped to a number ignores the Local Area answer"""
        transaction = make_transaction(transaction_data, campaign_id=200001)

        choice = contributions.resolve_financial_type(contact, transaction)

        assert choice == (7, None, False)

    def test_unlisted_campaign_uses_default(self, contributions, contact, transaction_data):
        transaction = make_transaction(transaction_data, campaign_id="999999")

        choice = contributions.resolve_financial_type(contact, transaction)

        assert choice.financial_type_id == 49
        assert choice.update_contact is False


class TestBuildContribution:
    """Tests for mapping a transaction onto Contribution.create"""

    def test_payload_fields(self, contributions, contact, transaction_data):
        contribution = contributions.build_contribution(
            contact, make_transaction(transaction_data), 20
        )

        assert contribution.to_params() == {
            "contact_id": contact.id,
            "financial_type_id": 20,
            "total_amount": 25.0,
            "receive_date": "2024-05-01T12:00:00Z",
            "source": "Givebutter: Spring Appeal",
            "trxn_id": "tx_test123",
            "invoice_id": "tx_test123",
            "contribution_status_id": 1,
            "payment_instrument_id": 1,
        }

    def test_source_falls_back_to_campaign_id(self, contributions, contact, transaction_data):
        transaction = make_transaction(transaction_data, campaign_title=None)

        contribution = contributions.build_contribution(contact, transaction, 20)

        assert contribution.source == "Givebutter: 195519"

    def test_source_without_campaign(self, contributions, contact, transaction_data):
        transaction = make_transaction(transaction_data, campaign_title=None, campaign_id=None)

        contribution = contributions.build_contribution(contact, transaction, 49)

        assert contribution.source == "Givebutter: Unknown Campaign"

    def test_missing_transacted_at_uses_current_time(self, contributions, contact, transaction_data):
        transaction = make_transaction(transaction_data, transacted_at=None)

        contribution = contributions.build_contribution(contact, transaction, 49)

        assert contribution.receive_date

    def test_minor_units_are_converted(self, contributions, contact, transaction_data):
        contributions.config = contributions.config.model_copy(
            update={"amount_in_minor_units": True}
        )

        contribution = contributions.build_contribution(
            contact, make_transaction(transaction_data, amount=2500), 20
        )

        assert contribution.total_amount == 25.0

    def test_schema_carries_example(self):
        example = CiviContribution.model_json_schema()["example"]

        assert example["source"] == "Givebutter: Spring Appeal"
        assert CiviContribution.model_validate(example).trxn_id == "tx_abc123"


class TestCreateContribution:
    """Tests for the contribution write and its follow-ups"""

    @pytest.mark.asyncio
    async def test_creates_contribution_and_stores_new_local_area(
        self, contributions, contact, fake_civicrm, transaction_data
    ):
        result = await contributions.create_contribution(contact, make_transaction(transaction_data))

        assert result.financial_type_id == 20
        assert result.contribution_id in fake_civicrm.records["Contribution"]
        assert result.local_area_updated is True
        assert fake_civicrm.records["Contact"][contact.id][LOCAL_AREA_FIELD] == "Colorado"

        # Contribution is written before the contact update
        entities = [(entity, action) for entity, action, _ in fake_civicrm.calls]
        assert entities.index(("Contribution", "create")) < entities.index(("Contact", "create"))

    @pytest.mark.asyncio
    async def test_failed_local_area_update_does_not_block(
        self, contributions, contact, fake_civicrm, transaction_data
    ):
        fake_civicrm.fail("Contact", "create", CiviCRMAPIException("boom", status_code=500))

        result = await contributions.create_contribution(contact, make_transaction(transaction_data))

        assert result.contribution_id in fake_civicrm.records["Contribution"]
        assert result.local_area_updated is False

    @pytest.mark.asyncio
    async def test_stored_local_area_is_not_rewritten(
        self, contributions, fake_civicrm, transaction_data
    ):
        contact_id = fake_civicrm.add(
            "Contact", email="jane@example.com", **{LOCAL_AREA_FIELD: "Colorado"}
        )

        await contributions.create_contribution(
            ContactMatch(id=contact_id, local_area="Colorado"),
            make_transaction(transaction_data),
        )

        assert fake_civicrm.calls_to("Contact", "create") == []

    @pytest.mark.asyncio
    async def test_contribution_failure_propagates(
        self, contributions, contact, fake_civicrm, transaction_data
    ):
        fake_civicrm.fail("Contribution", "create", CiviCRMAPIException("down", status_code=503))

        with pytest.raises(CiviCRMAPIException):
            await contributions.create_contribution(contact, make_transaction(transaction_data))

        assert fake_civicrm.calls_to("Membership", "create") == []

    @pytest.mark.asyncio
    async def test_is_error_contribution_raises(self, contributions, contact, transaction_data):
        contributions.civicrm = AsyncMock()
        contributions.civicrm.call.return_value = {
            "is_error": 1,
            "error_message": "financial_type_id is not valid",
        }

        with pytest.raises(CiviCRMResponseException):
            await contributions.create_contribution(contact, make_transaction(transaction_data))

    @pytest.mark.asyncio
    async def test_one_time_gift_creates_non_renewing_membership(
        self, contributions, contact, fake_civicrm, transaction_data
    ):
        result = await contributions.create_contribution(contact, make_transaction(transaction_data))

        membership = fake_civicrm.calls_to("Membership", "create")[0]
        assert result.membership_id is not None
        assert membership["contribution_id"] == result.contribution_id
        assert membership["membership_type_id"] == 3

    @pytest.mark.asyncio
    async def test_plan_frequency_selects_membership_type(
        self, contributions, contact, fake_civicrm, transaction_data
    ):
        """Test a recurring plan's frequency drives the membership term"""
        transaction = make_transaction(transaction_data, is_recurring=True, plan_id="plan_1")

        with patch.object(
            contributions.memberships.givebutter,
            "get_plan_frequency",
            AsyncMock(return_value="monthly"),
        ) as get_frequency:
            await contributions.create_contribution(contact, transaction)

        get_frequency.assert_awaited_once_with("plan_1")
        membership = fake_civicrm.calls_to("Membership", "create")[0]
        assert membership["membership_type_id"] == 2

    @pytest.mark.asyncio
    async def test_no_plan_skips_frequency_lookup(self, contributions, contact, transaction_data):
        with patch.object(
            contributions.memberships.givebutter, "get_plan_frequency", AsyncMock()
        ) as get_frequency:
            await contributions.create_contribution(contact, make_transaction(transaction_data))

        get_frequency.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_membership_disabled(self, contributions, contact, fake_civicrm, transaction_data):
        contributions.config = contributions.config.model_copy(update={"membership_enabled": False})

        result = await contributions.create_contribution(contact, make_transaction(transaction_data))

        assert result.membership_id is None
        assert fake_civicrm.calls_to("Membership", "get") == []

    @pytest.mark.asyncio
    async def test_membership_failure_does_not_block(
        self, contributions, contact, fake_civicrm, transaction_data
    ):
        fake_civicrm.fail("Membership", "get", CiviCRMAPIException("down", status_code=503))

        result = await contributions.create_contribution(contact, make_transaction(transaction_data))

        assert result.contribution_id in fake_civicrm.records["Contribution"]
        assert result.membership_id is None

    @pytest.mark.asyncio
    async def test_plan_lookup_crash_does_not_fail_contribution(
        self, contributions, contact, fake_civicrm, transaction_data
    ):
        """Test an unexpected plan lookup error leaves the contribution recorded"""
        transaction = make_transaction(transaction_data, is_recurring=True, plan_id="plan_1")

        with patch.object(
            contributions.memberships.givebutter,
            "get_plan_frequency",
            AsyncMock(side_effect=httpx.InvalidURL("bad base url")),
        ):
            result = await contributions.create_contribution(contact, transaction)

        assert result.contribution_id in fake_civicrm.records["Contribution"]
        assert result.membership_id is None
