"""
Membership Handler

Derives a membership type and term from how a donor gives, then renews the
donor's existing membership of that type or creates a new one.
"""

import calendar
from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple

from app.config import Settings, settings
from app.models.civicrm_records import CiviMembership, MembershipTerm
from app.models.givebutter_events import GivebutterTransaction
from app.services.civicrm_service import CiviCRMService, civicrm_service, extract_entity_id
from app.services.givebutter_service import GivebutterService, givebutter_service
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

# frequency -> (membership type, months)
RECURRING_TERMS = {
    "monthly": ("monthly_renewing", 1),
    "quarterly": ("monthly_renewing", 3),
    "yearly": ("annual_renewing", 12),
    "annual": ("annual_renewing", 12),
    "annually": ("annual_renewing", 12),
}

NON_RENEWING_TERM = ("annual_non_renewing", 12)


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_window(
    existing_end: Optional[date],
    today: date,
    months: int,
) -> Tuple[date, date]:
    """
    Membership window for a new payment.

    End dates are inclusive, so the window starts the day after the existing
    end date, or today if that is later.
    """
    start = today
    if existing_end is not None:
        start = max(today, existing_end + timedelta(days=1))
    return start, add_months(start, months)


class MembershipHandler:
    """Creates and renews memberships for contributions"""

    def __init__(self, civicrm: CiviCRMService, givebutter: GivebutterService, config: Settings):
        self.civicrm = civicrm
        self.givebutter = givebutter
        self.type_ids = config.membership_type_ids
        self.status_id = config.membership_status_id

    def determine_term(self, recurring: bool, frequency: Optional[str]) -> MembershipTerm:
        """Pick membership type and duration from recurrence and plan frequency"""
        frequency_key = (frequency or "").strip().lower()

        if not recurring:
            type_key, months = NON_RENEWING_TERM
        elif frequency_key in RECURRING_TERMS:
            type_key, months = RECURRING_TERMS[frequency_key]
        else:
            logger.warning(
                f"Unrecognized recurring frequency: {frequency}",
                extra={"frequency": frequency},
            )
            type_key, months = NON_RENEWING_TERM

        return MembershipTerm(
            type_key=type_key,
            type_id=self.type_ids[type_key],
            months=months,
        )

    async def find_latest_membership(
        self, contact_id: int, membership_type_id: int
    ) -> Optional[Dict[str, Any]]:
        """The contact's membership of this type with the latest end date"""
        result = await self.civicrm.call(
            "Membership",
            "get",
            {
                "contact_id": contact_id,
                "membership_type_id": membership_type_id,
                "sequential": 1,
                "options": {"sort": "end_date DESC", "limit": 1},
            },
        )
        values = result.get("values") or []
        if not result.get("count") or not values:
            return None
        return values[0]

    async def upsert(
        self,
        contact_id: int,
        contribution_id: int,
        transaction: GivebutterTransaction,
        today: Optional[date] = None,
    ) -> Optional[int]:
        """
        Renew or create the membership paid for by a contribution.

        A current membership of the resolved type is extended in place. A
        missing or expired one is left untouched and a new membership is
        created from today.

        Never raises: any failure, including the plan frequency lookup, is
        logged and reported as no membership.

        Returns:
            Membership id, or None if nothing was written
        """
        today = today or date.today()

        try:
            frequency = None
            if transaction.plan_id:
                frequency = await self.givebutter.get_plan_frequency(transaction.plan_id)

            term = self.determine_term(transaction.recurring, frequency)
            existing = await self.find_latest_membership(contact_id, term.type_id)

            existing_end = None
            if existing and existing.get("end_date"):
                existing_end = date.fromisoformat(str(existing["end_date"])[:10])

            # Expired records keep their history; only a current one is extended
            current = existing_end is not None and existing_end >= today
            start, end = compute_window(existing_end if current else None, today, term.months)

            if current:
                membership = CiviMembership(
                    id=int(existing["id"]),
                    start_date=start,
                    end_date=end,
                    status_id=self.status_id,
                    contribution_id=contribution_id,
                )
                action = "renewed"
            else:
                membership = CiviMembership(
                    contact_id=contact_id,
                    membership_type_id=term.type_id,
                    join_date=today,
                    start_date=start,
                    end_date=end,
                    status_id=self.status_id,
                    contribution_id=contribution_id,
                )
                action = "created"

            result = await self.civicrm.call("Membership", "create", membership.to_params())
            membership_id = extract_entity_id(result)

        except Exception as e:
            logger.error(
                f"Membership update failed: {e}",
                extra={
                    "contact_id": contact_id,
                    "contribution_id": contribution_id,
                    "error": str(e),
                },
                exc_info=True,
            )
            return None

        logger.info(
            f"Membership {action}: {membership_id}",
            extra={
                "contact_id": contact_id,
                "membership_id": membership_id,
                "membership_type": term.type_key,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            },
        )
        return membership_id


# Global membership handler instance
membership_handler = MembershipHandler(civicrm_service, givebutter_service, settings)
