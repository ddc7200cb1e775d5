"""
Event publishing and the channel envelope codec.

One webhook call results in at most one PUBLISH; nothing is retried.
"""

import asyncio
import json
import logging
import time
from typing import Optional

from pydantic import ValidationError
from redis.exceptions import (
    AuthenticationError,
    ConnectionError as RedisConnectionError,
    NoPermissionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from smsrelay.config import settings
from smsrelay.errors import PublishFailedError, PublishUnauthorizedError, PublishUnreachableError
from smsrelay.metrics import record_publish_latency
from smsrelay.schemas import CHANNEL_NAME, EVENT_NAME, ChannelEnvelope, SmsEvent

logger = logging.getLogger(__name__)


def encode_envelope(event: SmsEvent) -> str:
    """Serialize an event into the channel envelope."""
    return json.dumps({"name": EVENT_NAME, "data": event.to_wire()})


def decode_envelope(raw) -> Optional[SmsEvent]:
    """
    Parse a channel payload back into an SmsEvent.

    Returns None for anything that is not a structured smsEvent envelope,
    including the legacy shape where `data` was a bare string.
    """
    try:
        return ChannelEnvelope.model_validate_json(raw).data
    except ValidationError as e:
        logger.warning(f"Dropping malformed channel message: {e.error_count()} error(s)")
        return None


class EventPublisher:
    """
    Pushes SmsEvents onto the fixed pub/sub channel.

    The broker client is shared across concurrent requests; redis.asyncio
    hands each call its own pooled connection.
    """

    def __init__(self, broker, channel: str = CHANNEL_NAME, timeout: Optional[float] = None):
        self.broker = broker
        self.channel = channel
        self.timeout = settings.PUBLISH_TIMEOUT_SECONDS if timeout is None else timeout

    async def publish(self, event: SmsEvent) -> int:
        """
        Publish one event as a single broker operation.

        Args:
            event: The canonical event to publish

        Returns:
            Number of subscribers the broker delivered the message to

        Raises:
            PublishUnauthorizedError: Credentials or ACL rejected by the broker
            PublishUnreachableError: Broker unreachable or no answer within timeout
            PublishFailedError: Any other error reply from the broker
        """
        payload = encode_envelope(event)
        logger.debug(f"Publishing to {self.channel}: messageId={event.message_id}")

        start_time = time.time()
        try:
            receivers = await asyncio.wait_for(
                self.broker.publish(self.channel, payload),
                timeout=self.timeout,
            )
        # AuthenticationError subclasses ConnectionError, so it goes first
        except (AuthenticationError, NoPermissionError) as e:
            logger.error(f"Broker rejected credentials: {e}")
            raise PublishUnauthorizedError(str(e)) from e
        except asyncio.TimeoutError as e:
            logger.error(f"Publish timed out after {self.timeout}s")
            raise PublishUnreachableError(f"publish timed out after {self.timeout}s") from e
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error(f"Broker unreachable: {e}")
            raise PublishUnreachableError(str(e)) from e
        except RedisError as e:
            logger.error(f"Broker refused publish: {e}")
            raise PublishFailedError(str(e)) from e
        finally:
            record_publish_latency(time.time() - start_time)

        logger.info(f"Published messageId={event.message_id} to {receivers} subscriber(s)")
        return receivers
