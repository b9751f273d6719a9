"""
Contribution Handler

Maps a Givebutter transaction to a CiviCRM contribution, choosing the
financial type from the campaign policy and the donor's local area.
"""

from datetime import datetime, timezone
from typing import NamedTuple, Optional

from app.config import USE_CUSTOM_FIELD, Settings, settings
from app.handlers.contact_handler import ContactHandler, contact_handler
from app.handlers.membership_handler import MembershipHandler, membership_handler
from app.models.civicrm_records import CiviContribution, ContactMatch, ContributionResult
from app.models.givebutter_events import GivebutterTransaction
from app.services.civicrm_service import CiviCRMService, civicrm_service, extract_entity_id
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

SOURCE_PREFIX = "Givebutter"


class FinancialTypeChoice(NamedTuple):
    financial_type_id: int
    local_area: Optional[str] = None
    update_contact: bool = False


class ContributionHandler:
    """Builds and submits contributions"""

    def __init__(
        self,
        civicrm: CiviCRMService,
        contacts: ContactHandler,
        memberships: MembershipHandler,
        config: Settings,
    ):
        self.civicrm = civicrm
        self.contacts = contacts
        self.memberships = memberships
        self.config = config

    def _transaction_local_area(self, transaction: GivebutterTransaction) -> Optional[str]:
        field = transaction.find_custom_field(
            self.config.local_area_field_title, self.config.local_area_field_id
        )
        if field is None or field.value in (None, ""):
            return None
        return str(field.value).strip() or None

    def resolve_financial_type(
        self, contact: ContactMatch, transaction: GivebutterTransaction
    ) -> FinancialTypeChoice:
        """
        Decide the financial type for a transaction.

        Campaigns mapped to the custom field policy use the transaction's
        Local Area answer, falling back to the value stored on the contact.
        Campaigns mapped to a number use it directly. Anything else, and any
        unknown Local Area label, gets the default financial type.
        """
        default_id = self.config.default_financial_type_id
        policy = self.config.campaign_financial_types.get(transaction.campaign_id or "")

        if policy is None:
            logger.info(
                f"Campaign not in mapping, using default financial type {default_id}",
                extra={"campaign_id": transaction.campaign_id},
            )
            return FinancialTypeChoice(default_id)

        if policy != USE_CUSTOM_FIELD:
            logger.info(
                f"Using financial type {policy} from campaign mapping",
                extra={"campaign_id": transaction.campaign_id},
            )
            return FinancialTypeChoice(int(policy))

        local_area = self._transaction_local_area(transaction)
        update_contact = False

        if local_area:
            logger.info(f"Found Local Area in transaction: {local_area}")
            update_contact = local_area != contact.local_area
        elif contact.local_area:
            local_area = contact.local_area
            logger.info(f"Using stored Local Area from contact: {local_area}")

        if not local_area:
            logger.warning(
                f"No Local Area in transaction or contact record, using default {default_id}",
                extra={"contact_id": contact.id},
            )
            return FinancialTypeChoice(default_id)

        financial_type_id = self.config.local_area_financial_types.get(local_area, default_id)
        logger.info(
            f"Using financial type {financial_type_id} for Local Area: {local_area}",
            extra={"local_area": local_area, "financial_type_id": financial_type_id},
        )
        return FinancialTypeChoice(financial_type_id, local_area, update_contact)

    def build_contribution(
        self,
        contact: ContactMatch,
        transaction: GivebutterTransaction,
        financial_type_id: int,
    ) -> CiviContribution:
        """Map the transaction onto a Contribution.create payload"""
        amount = transaction.amount
        if self.config.amount_in_minor_units:
            amount = amount / 100

        campaign = transaction.campaign_title or transaction.campaign_id or "Unknown Campaign"

        return CiviContribution(
            contact_id=contact.id,
            financial_type_id=financial_type_id,
            total_amount=amount,
            receive_date=transaction.transacted_at or datetime.now(timezone.utc).isoformat(),
            source=f"{SOURCE_PREFIX}: {campaign}",
            trxn_id=transaction.id,
            invoice_id=transaction.id,
            contribution_status_id=self.config.contribution_status_id,
            payment_instrument_id=self.config.payment_instrument_id,
        )

    async def create_contribution(
        self, contact: ContactMatch, transaction: GivebutterTransaction
    ) -> ContributionResult:
        """
        Create the contribution, then apply the follow-up writes it implies:
        storing a newly supplied Local Area on the contact and renewing the
        donor's membership. Follow-up failures never fail the contribution.

        Raises:
            CiviCRMException: If the contribution itself cannot be created
        """
        logger.info(
            f"Creating contribution for contact: {contact.id}",
            extra={
                "contact_id": contact.id,
                "transaction_id": transaction.id,
                "campaign_id": transaction.campaign_id,
                "campaign_title": transaction.campaign_title,
            },
        )

        choice = self.resolve_financial_type(contact, transaction)
        contribution = self.build_contribution(contact, transaction, choice.financial_type_id)

        logger.debug("Contribution data", extra={"contribution": contribution.to_params()})

        response = await self.civicrm.call("Contribution", "create", contribution.to_params())
        contribution_id = extract_entity_id(response)

        logger.info(
            f"Created contribution: {contribution_id}",
            extra={"contribution_id": contribution_id, "response": response},
        )

        local_area_updated = False
        if choice.update_contact and choice.local_area:
            local_area_updated = await self.contacts.update_local_area(
                contact.id, choice.local_area
            )

        membership_id = None
        if self.config.membership_enabled:
            membership_id = await self.memberships.upsert(contact.id, contribution_id, transaction)

        return ContributionResult(
            contribution_id=contribution_id,
            financial_type_id=choice.financial_type_id,
            local_area=choice.local_area,
            local_area_updated=local_area_updated,
            membership_id=membership_id,
            response=response,
        )


# Global contribution handler instance
contribution_handler = ContributionHandler(
    civicrm_service,
    contact_handler,
    membership_handler,
    settings,
)
