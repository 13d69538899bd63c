"""E-signature webhook verification and parsing."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

from pydantic import ValidationError

from offerintel.exceptions import ValidationFailureError
from offerintel.typing.enums import SigningEventType
from offerintel.typing.models import SigningEvent


def compute_event_hash(secret: str, event_time: str, event_type: str) -> str:
    """Return the hex HMAC-SHA256 of `event_time + event_type` keyed by the shared secret."""
    return hmac.new(secret.encode("utf-8"), f"{event_time}{event_type}".encode(), hashlib.sha256).hexdigest()


def verify_event_hash(event: SigningEvent, secret: str | None) -> bool:
    """Check a webhook event against the shared secret in constant time."""
    if not secret or not event.event_hash:
        return False
    expected = compute_event_hash(secret, event.event_time, event.event_type.value)
    return hmac.compare_digest(expected, event.event_hash)


def parse_signing_event(payload: dict[str, Any] | str | bytes) -> SigningEvent:
    """Parse a provider webhook body.

    Args:
        payload: Decoded JSON object or the raw body.

    Raises:
        ValidationFailureError: If the body is not a supported signing event.

    Returns:
        SigningEvent: Parsed event.
    """
    if isinstance(payload, str | bytes):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationFailureError(message="Webhook body is not JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationFailureError(message="Webhook body is not a JSON object")

    event = payload.get("event") or {}
    request = payload.get("signature_request") or {}
    event_type = event.get("event_type")
    if event_type not in {member.value for member in SigningEventType}:
        raise ValidationFailureError(message=f"Unsupported webhook event: {event_type}")

    try:
        return SigningEvent(
            event_type=SigningEventType(event_type),
            event_time=str(event.get("event_time", "")),
            event_hash=event.get("event_hash"),
            request_id=request.get("signature_request_id") or "",
        )
    except ValidationError as exc:
        raise ValidationFailureError(message="Webhook event is malformed") from exc
