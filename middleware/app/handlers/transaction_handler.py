"""
Transaction Event Handler

Handles Givebutter transaction.succeeded events: resolve the donor's contact,
then record the contribution (and the membership it pays for).
"""

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import ValidationError

from app.handlers.contact_handler import ContactHandler, contact_handler
from app.handlers.contribution_handler import ContributionHandler, contribution_handler
from app.models.givebutter_events import GivebutterTransaction
from app.utils.exceptions import ValidationException
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class TransactionHandler:
    """Handler for transaction events"""

    def __init__(self, contacts: ContactHandler, contributions: ContributionHandler):
        self.contacts = contacts
        self.contributions = contributions

    async def handle_transaction_succeeded(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle transaction.succeeded event.

        Args:
            data: The event's `data` object

        Returns:
            Processing result with the contact and contribution ids

        Raises:
            ValidationException: If the transaction payload is malformed
            CiviCRMException: If the contact or contribution cannot be written
        """
        try:
            transaction = GivebutterTransaction.model_validate(data)
        except ValidationError as e:
            raise ValidationException(
                f"Invalid transaction payload: {e.error_count()} error(s)",
                details={"errors": e.errors(include_url=False)},
            ) from e

        logger.info(
            "Processing transaction.succeeded event",
            extra={
                "transaction_id": transaction.id,
                "amount": transaction.amount,
                "campaign_id": transaction.campaign_id,
            },
        )

        contact = await self.contacts.resolve(transaction.donor)
        result = await self.contributions.create_contribution(contact, transaction)

        logger.info(
            f"Contribution created: {result.contribution_id}",
            extra={
                "transaction_id": transaction.id,
                "contact_id": contact.id,
                "contribution_id": result.contribution_id,
                "membership_id": result.membership_id,
            },
        )

        return {
            "transaction_id": transaction.id,
            "contact_id": contact.id,
            "contact_created": contact.created,
            "contribution_id": result.contribution_id,
            "financial_type_id": result.financial_type_id,
            "membership_id": result.membership_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


# Global transaction handler instance
transaction_handler = TransactionHandler(contact_handler, contribution_handler)
