"""
Webhook ingestion: turn raw gateway query parameters into an SmsEvent.
"""

import logging
from typing import Any, Mapping, Optional, Tuple

from smsrelay.errors import MissingFieldError
from smsrelay.schemas import SmsEvent

logger = logging.getLogger(__name__)

# Parameters that must be present and non-empty, in the order they are checked
REQUIRED_PARAMS = ("to", "msisdn")


def ingest(params: Mapping[str, Any]) -> Tuple[Optional[SmsEvent], Optional[MissingFieldError]]:
    """
    Validate and normalize an inbound webhook request.

    Only `to` and `msisdn` are checked; everything else is passed through
    uninspected. Never raises on malformed input.

    Args:
        params: Raw query parameters from the gateway callback

    Returns:
        Tuple of (event, error)
        - (SmsEvent, None): Valid inbound SMS
        - (None, MissingFieldError): `to` or `msisdn` absent or empty
    """
    for field in REQUIRED_PARAMS:
        if not params.get(field):
            logger.warning(f"This is not a valid inbound SMS message: missing {field}")
            return None, MissingFieldError(field)

    event = SmsEvent(
        message_id=params.get("messageId"),
        from_msisdn=params["msisdn"],
        text=params.get("text"),
        type=params.get("type"),
        timestamp=params.get("message-timestamp"),
    )
    logger.debug(f"Ingested SMS event: messageId={event.message_id}, from={event.from_msisdn}")
    return event, None
