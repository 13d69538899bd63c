"""Canonical Agreement of Purchase and Sale schema.

Every vision backend and the AcroForm tier map into `ApsContract`. Nested sections default to
empty instances so that the set of leaf fields is identical for every result, which keeps the
fill-rate confidence comparable across documents.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from offerintel.processing.normalization import parse_amount


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "yes" if value else None
    if isinstance(value, int | float):
        return str(int(value)) if float(value).is_integer() else str(value)
    text = str(value).strip()
    if text.lower() in {"", "null", "none", "n/a"}:
        return None
    return text


def _to_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list | tuple):
        items = value
    else:
        items = [value]
    cleaned = (_to_text(item) for item in items)
    return [item for item in cleaned if item]


def _to_amount(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    return parse_amount(str(value))


Text = Annotated[str | None, BeforeValidator(_to_text)]
TextList = Annotated[list[str], BeforeValidator(_to_text_list)]
Amount = Annotated[float | None, BeforeValidator(_to_amount)]


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Models answer `null` for whole sections; fall back to the empty defaults.
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class DateParts(_Section):
    """Date kept as the separate strings written on the form."""

    day: Text = None
    month: Text = None
    year: Text = None


class PropertyDetails(_Section):
    """Property block of Form 100."""

    property_address: Text = None
    property_fronting: Text = None
    property_side_of_street: Text = None
    property_frontage: Text = None
    property_depth: Text = None
    property_legal_description: Text = None


class PurchasePrice(_Section):
    """Purchase price in numbers and words."""

    numeric: Amount = None
    written: Text = None
    currency: Text = None


class Deposit(_Section):
    """Deposit amount and timing."""

    numeric: Amount = None
    written: Text = None
    timing: Text = None
    currency: Text = None


class PriceAndDeposit(_Section):
    """Financial terms."""

    purchase_price: PurchasePrice = Field(default_factory=PurchasePrice)
    deposit: Deposit = Field(default_factory=Deposit)


class Irrevocability(_Section):
    """Deadline until which the offer stays open."""

    by_whom: Text = None
    time: Text = None
    day: Text = None
    month: Text = None
    year: Text = None


class Notices(_Section):
    """Fax and email addresses for service of notices."""

    seller_fax: Text = None
    seller_email: Text = None
    buyer_fax: Text = None
    buyer_email: Text = None


class InclusionsExclusions(_Section):
    """Itemized chattels, fixtures and rental items."""

    chattels_included: TextList = Field(default_factory=list)
    fixtures_excluded: TextList = Field(default_factory=list)
    rental_items: TextList = Field(default_factory=list)


class Lawyer(_Section):
    """Solicitor contact."""

    name: Text = None
    address: Text = None
    email: Text = None


class PartyAcknowledgment(_Section):
    """Acknowledgment line of one party."""

    name: Text = None
    date: Text = None
    lawyer: Lawyer = Field(default_factory=Lawyer)


class Acknowledgment(_Section):
    """Acknowledgment block of both parties."""

    buyer: PartyAcknowledgment = Field(default_factory=PartyAcknowledgment)
    seller: PartyAcknowledgment = Field(default_factory=PartyAcknowledgment)


class CommissionTrust(_Section):
    """Commission trust agreement."""

    cooperating_brokerage_signature: Text = None


class SignatureRecord(_Section):
    """One signature line found on the form."""

    party: Text = None
    name: Text = None
    date: Text = None


class ApsContract(_Section):
    """Structured contents of an Agreement of Purchase and Sale."""

    agreement_date: DateParts = Field(default_factory=DateParts)
    buyer_full_name: Text = None
    seller_full_name: Text = None
    property: PropertyDetails = Field(default_factory=PropertyDetails)
    price_and_deposit: PriceAndDeposit = Field(default_factory=PriceAndDeposit)
    irrevocability: Irrevocability = Field(default_factory=Irrevocability)
    completion: DateParts = Field(default_factory=DateParts)
    title_search: DateParts = Field(default_factory=DateParts)
    notices: Notices = Field(default_factory=Notices)
    inclusions_exclusions: InclusionsExclusions = Field(default_factory=InclusionsExclusions)
    hst: Text = None
    acknowledgment: Acknowledgment = Field(default_factory=Acknowledgment)
    commission_trust: CommissionTrust = Field(default_factory=CommissionTrust)
    schedules: TextList = Field(default_factory=list)
    signatures: list[SignatureRecord] = Field(default_factory=list)
