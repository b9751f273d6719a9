"""
Givebutter Event Models

Pydantic models for Givebutter webhook payloads.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

TRANSACTION_SUCCEEDED = "transaction.succeeded"


class GivebutterCustomField(BaseModel):
    """One answer to a campaign custom question"""

    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    field_id: Optional[int] = None
    title: Optional[str] = None
    type: Optional[str] = None
    value: Optional[Any] = None


class GivebutterMember(BaseModel):
    """Donor details nested under a transaction's member object"""

    model_config = ConfigDict(extra="allow")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class DonorInfo(BaseModel):
    """Flattened donor identity used to find or create a contact"""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class GivebutterTransaction(BaseModel):
    """Transaction object delivered with transaction.* events"""

    model_config = ConfigDict(extra="allow")

    id: str = Field(description="Givebutter transaction ID")
    amount: float = Field(default=0, description="Transaction amount")
    transacted_at: Optional[str] = Field(None, description="ISO-8601 timestamp")
    campaign_id: Optional[str] = Field(None, description="Campaign ID")
    campaign_title: Optional[str] = None
    is_recurring: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_recurring", "recurring"),
    )
    plan_id: Optional[str] = Field(None, description="Recurring plan ID")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    member: Optional[GivebutterMember] = None

    custom_fields: List[GivebutterCustomField] = Field(default_factory=list)

    @field_validator("id", "campaign_id", "plan_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Union[int, str, None]) -> Optional[str]:
        """Givebutter sends some identifiers as numbers"""
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("custom_fields", mode="before")
    @classmethod
    def default_custom_fields(cls, v):
        return v or []

    @property
    def donor(self) -> DonorInfo:
        """Donor fields, preferring top-level values over the member object"""
        member = self.member or GivebutterMember()
        return DonorInfo(
            first_name=self.first_name or member.first_name,
            last_name=self.last_name or member.last_name,
            email=self.email or member.email,
            phone=self.phone or member.phone,
        )

    @property
    def recurring(self) -> bool:
        """A transaction belonging to a plan is recurring even if unflagged"""
        return self.is_recurring or self.plan_id is not None

    def find_custom_field(
        self, title: str, field_id: Optional[int] = None
    ) -> Optional[GivebutterCustomField]:
        """Return the first custom field matching the title or field id"""
        for field in self.custom_fields:
            if field.title == title:
                return field
            if field_id is not None and field.field_id == field_id:
                return field
        return None


class GivebutterWebhook(BaseModel):
    """
    Givebutter webhook envelope.
    `data` is kept raw; handlers validate it for the event types they own.
    """

    model_config = ConfigDict(extra="allow")

    event: str = Field(description="Event type (e.g., transaction.succeeded)")
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def event_category(self) -> str:
        """Get the event category (e.g., 'transaction' from 'transaction.succeeded')"""
        return self.event.split(".")[0] if "." in self.event else self.event
