"""Schedule A condition and fulfillment notice models."""

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from offerintel.typing.enums import ConditionStatus


def _new_id() -> str:
    return uuid4().hex


class OfferCondition(BaseModel):
    """One Schedule A condition tracked on an offer.

    `matching_key` is the normalized description. Conditions listed on a later Form 124 are
    matched against it.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=_new_id)
    description: str
    matching_key: str
    status: ConditionStatus = ConditionStatus.PENDING
    fulfilled_at: datetime | None = None
    note: str | None = None


class FulfilledCondition(BaseModel):
    """Condition declared fulfilled or waived on a Form 124."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    description: str
    note: str | None = None


class FulfillmentNotice(BaseModel):
    """Parsed Form 124, Notice of Fulfillment of Conditions."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    document_date: str | None = None
    fulfilled_conditions: list[FulfilledCondition] = Field(default_factory=list)
