"""
Pydantic schemas for events and API responses.

This module contains:
- SmsEvent, the canonical record of one inbound SMS notification
- ChannelEnvelope, the message shape carried on the pub/sub channel
- Response models for the HTTP endpoints
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


# Fixed pub/sub channel and event label shared by publisher and subscribers
CHANNEL_NAME = "sms-notifications"
EVENT_NAME = "smsEvent"


# =============================================================================
# Event Models
# =============================================================================

class SmsEvent(BaseModel):
    """
    Canonical, immutable representation of one inbound SMS notification.

    Only built by ingestion once `to` and `msisdn` are known to be present.
    Every field is carried exactly as the gateway supplied it.
    """
    message_id: Optional[str] = Field(
        None,
        alias="messageId",
        description="Gateway message identifier, not guaranteed unique"
    )
    # Note: 'from' is a reserved word in Python, so we use alias
    from_msisdn: str = Field(
        ...,
        alias="from",
        min_length=1,
        description="Sender number, taken verbatim from the gateway msisdn"
    )
    text: Optional[str] = Field(None, description="Message body, may be empty")
    type: Optional[str] = Field(None, description="Gateway message classification")
    timestamp: Optional[Union[int, str]] = Field(
        None,
        description="Gateway message-timestamp, epoch millis or ISO string"
    )

    model_config = {
        "frozen": True,
        "populate_by_name": True,  # Allow both 'from' and 'from_msisdn'
        "json_schema_extra": {
            "examples": [
                {
                    "messageId": "0A0000001234567B",
                    "from": "447911123456",
                    "text": "Hello",
                    "type": "text",
                    "timestamp": "1700000000000"
                }
            ]
        }
    }

    def to_wire(self) -> dict:
        """Serialize with gateway-style field names."""
        return self.model_dump(by_alias=True)


class ChannelEnvelope(BaseModel):
    """Message published on the channel: a fixed name plus the event."""
    name: Literal["smsEvent"] = EVENT_NAME
    data: SmsEvent


# =============================================================================
# Pydantic Response Models
# =============================================================================

class WebhookResponse(BaseModel):
    """Response body for a webhook whose event was published."""
    success: bool = Field(default=True, description="Event was published")
    message_id: Optional[str] = Field(None, serialization_alias="messageId")
    from_msisdn: str = Field(..., serialization_alias="from")
    text: Optional[str] = None
    type: Optional[str] = None
    timestamp: Optional[Union[int, str]] = None


class ErrorResponse(BaseModel):
    """Response body for a webhook whose publish failed."""
    success: bool = Field(default=False, description="Always false")
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
