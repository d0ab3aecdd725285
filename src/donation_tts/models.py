"""Shared domain models for webhook payloads and broadcast events."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, model_validator


AUDIO_PATH = "/audio"


class WebhookValidationError(ValueError):
    """Raised when an inbound webhook body is missing required fields."""


class Asset(BaseModel):
    """Donated asset descriptor."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Asset name, e.g. 'diamonds'")


class Donor(BaseModel):
    """Donor descriptor as supplied by the payment provider."""

    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None


class WebhookPayload(BaseModel):
    """Inbound donation webhook body.

    The structured payment-provider schema is canonical. The legacy flat
    shape (string ``donor``, string ``asset`` or ``currency``, ``id`` instead
    of ``paymentID``) is folded into it before validation.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    payment_id: str = Field(..., alias="paymentID")
    amount: Decimal
    asset: Asset
    message: Optional[str] = None
    donor: Optional[Donor] = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("paymentID") is None and data.get("id") is not None:
            data["paymentID"] = data["id"]
        if data.get("paymentID") is not None:
            data["paymentID"] = str(data["paymentID"])
        if data.get("asset") is None and isinstance(data.get("currency"), str):
            data["asset"] = data["currency"]
        if isinstance(data.get("asset"), str):
            data["asset"] = {"name": data["asset"]}
        if isinstance(data.get("donor"), str):
            data["donor"] = {"username": data["donor"]}
        return data

    def donor_name(self, default: str) -> str:
        if self.donor and self.donor.username:
            return self.donor.username
        return default

    def has_message(self) -> bool:
        """Absent and whitespace-only messages both count as no message."""

        return bool(self.message and self.message.strip())


def parse_webhook(data: Any) -> WebhookPayload:
    """Validate a decoded webhook body, raising ``WebhookValidationError`` on bad input."""

    if not isinstance(data, dict):
        raise WebhookValidationError("Webhook body must be a JSON object")
    try:
        return WebhookPayload.model_validate(data)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise WebhookValidationError(f"Missing or invalid fields: {', '.join(fields) or 'body'}") from exc


def _plain_number(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def audio_reference(text: str) -> Optional[str]:
    """Return the synthesis locator for ``text`` or ``None`` when there is nothing to say."""

    if not text:
        return None
    return f"{AUDIO_PATH}?text={quote(text, safe='')}"


class DonationEvent(BaseModel):
    """Donation announcement broadcast to every connected client."""

    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(..., alias="paymentID")
    donor: str
    amount_value: Decimal = Field(..., alias="amountValue")
    asset_type: str = Field(..., alias="assetType")
    display_amount: str = Field(..., alias="displayAmount")
    original: Optional[str] = None
    normalized_text: str = Field("", alias="normalizedText")
    audio_reference: Optional[str] = Field(None, alias="audioReference")

    @field_serializer("amount_value")
    def _serialize_amount(self, value: Decimal) -> Union[int, float]:
        return _plain_number(value)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class NoMessageNotice(BaseModel):
    """Reduced notification for donations without a message."""

    donor: str
    amount: Decimal
    asset: str

    @field_serializer("amount")
    def _serialize_amount(self, value: Decimal) -> Union[int, float]:
        return _plain_number(value)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump()


class ChannelEvent(str, Enum):
    """Event names carried over the push channel."""

    DONATION = "donation"
    DONATION_NO_MESSAGE = "donation_nomessage"
    THRESHOLD_UPDATE = "threshold_update"
    SET_THRESHOLD = "set_threshold"
    AUDIO_FINISHED = "audioFinished"
