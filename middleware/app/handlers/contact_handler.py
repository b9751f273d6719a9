"""
Contact Handler

Finds or creates the CiviCRM contact for a donor and keeps the contact's
stored local area in step with what donors tell us.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from app.config import Settings, settings
from app.models.civicrm_records import CiviContact, ContactMatch
from app.models.givebutter_events import DonorInfo
from app.services.civicrm_service import CiviCRMService, civicrm_service, extract_entity_id
from app.utils.exceptions import CiviCRMException, CiviCRMResponseException, ValidationException
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class ContactHandler:
    """Resolver for donor contacts"""

    def __init__(self, civicrm: CiviCRMService, config: Settings):
        self.civicrm = civicrm
        self.local_area_field = config.local_area_custom_field
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def _email_lock(self, email: str) -> AsyncIterator[None]:
        """
        Serialize resolution per email within this process.
        Locks are dropped as soon as nobody is waiting on them.
        """
        lock = self._locks.setdefault(email, asyncio.Lock())
        self._waiters[email] = self._waiters.get(email, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[email] -= 1
            if not self._waiters[email]:
                del self._waiters[email]
                del self._locks[email]

    async def find_contact(self, email: str) -> Optional[ContactMatch]:
        """
        Look up a contact by email.

        Returns:
            The first matching contact with its stored local area, or None
        """
        result = await self.civicrm.call(
            "Contact",
            "get",
            {
                "email": email,
                "sequential": 1,
                "return": f"id,display_name,{self.local_area_field}",
            },
        )

        if result.get("is_error"):
            raise CiviCRMResponseException(
                f"Contact lookup failed: {result.get('error_message')}",
                details={"response": result},
            )

        values = result.get("values") or []
        if not result.get("count") or not values:
            return None

        contact = values[0]
        contact_id = contact.get("id") or contact.get("contact_id")
        stored_local_area = contact.get(self.local_area_field) or None

        logger.info(
            f"Found existing contact: {contact_id}",
            extra={"contact_id": contact_id, "stored_local_area": stored_local_area},
        )
        return ContactMatch(id=int(contact_id), local_area=stored_local_area)

    async def create_contact(self, donor: DonorInfo) -> ContactMatch:
        """Create an Individual contact for the donor"""
        contact = CiviContact(
            first_name=donor.first_name,
            last_name=donor.last_name,
            email=donor.email,
            phone=donor.phone or None,
        )

        result = await self.civicrm.call("Contact", "create", contact.to_params())
        contact_id = extract_entity_id(result)

        logger.info(
            f"Created new contact: {contact_id}",
            extra={"contact_id": contact_id, "response": result},
        )
        return ContactMatch(id=contact_id, local_area=None, created=True)

    async def resolve(self, donor: DonorInfo) -> ContactMatch:
        """
        Find the donor's contact by email, creating it if none exists.

        Raises:
            ValidationException: If the donor has no email
            CiviCRMException: If a CiviCRM call fails
        """
        if not donor.email:
            raise ValidationException("Donor email is required to resolve a contact")

        logger.info("Searching for contact", extra={"email": donor.email})

        async with self._email_lock(donor.email.strip().lower()):
            match = await self.find_contact(donor.email)
            if match is not None:
                return match

            logger.info("No contact found, creating one", extra={"email": donor.email})
            return await self.create_contact(donor)

    async def update_local_area(self, contact_id: int, local_area: str) -> bool:
        """
        Store the local area on the contact. Failures are logged, never raised.

        Returns:
            True if CiviCRM accepted the update
        """
        logger.info(
            f"Updating contact {contact_id} with Local Area: {local_area}",
            extra={"contact_id": contact_id, "local_area": local_area},
        )

        try:
            result = await self.civicrm.call(
                "Contact",
                "create",
                {"id": contact_id, self.local_area_field: local_area},
            )
            if result.get("is_error"):
                raise CiviCRMResponseException(
                    str(result.get("error_message")), details={"response": result}
                )
        except CiviCRMException as e:
            logger.error(
                f"Failed to update contact Local Area: {e.message}",
                extra={"contact_id": contact_id, "error": e.to_dict()},
            )
            return False
        except Exception as e:
            logger.error(
                f"Failed to update contact Local Area: {e}",
                extra={"contact_id": contact_id, "error": str(e)},
                exc_info=True,
            )
            return False

        logger.info("Contact Local Area updated", extra={"contact_id": contact_id})
        return True


# Global contact handler instance
contact_handler = ContactHandler(civicrm_service, settings)
