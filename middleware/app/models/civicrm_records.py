"""
CiviCRM Record Models

Pydantic models for CiviCRM APIv3 payloads and the typed results the
handlers pass between each other.
"""

from datetime import date
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CiviContact(BaseModel):
    """Contact.create payload for a new individual donor"""

    contact_type: Literal["Individual"] = "Individual"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str
    phone: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ContactMatch(BaseModel):
    """A resolved contact and its stored local area, if any"""

    id: int = Field(description="CiviCRM contact ID")
    local_area: Optional[str] = None
    created: bool = False


class CiviContribution(BaseModel):
    """Contribution.create payload"""

    contact_id: int
    financial_type_id: int
    total_amount: float
    receive_date: str
    source: str
    trxn_id: str
    invoice_id: str
    contribution_status_id: int = 1
    payment_instrument_id: int = 1

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "contact_id": 1042,
                "financial_type_id": 20,
                "total_amount": 25,
                "receive_date": "2024-05-01T12:00:00Z",
                "source": "Givebutter: Spring Appeal",
                "trxn_id": "tx_abc123",
                "invoice_id": "tx_abc123",
            }
        }
    )

    def to_params(self) -> Dict[str, Any]:
        return self.model_dump()


class ContributionResult(BaseModel):
    """Outcome of building one contribution"""

    contribution_id: int
    financial_type_id: int
    local_area: Optional[str] = None
    local_area_updated: bool = False
    membership_id: Optional[int] = None
    response: Dict[str, Any] = Field(default_factory=dict)


class MembershipTerm(BaseModel):
    """Membership type and duration chosen from donation recurrence"""

    type_key: Literal["annual_renewing", "monthly_renewing", "annual_non_renewing"]
    type_id: int
    months: int


class CiviMembership(BaseModel):
    """Membership.create payload; carries `id` when renewing in place"""

    id: Optional[int] = None
    contact_id: Optional[int] = None
    membership_type_id: Optional[int] = None
    join_date: Optional[date] = None
    start_date: date
    end_date: date
    status_id: int
    contribution_id: Optional[int] = None

    def to_params(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
