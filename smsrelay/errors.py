"""
Error taxonomy for the relay.

Ingestion failures are returned as values, publish and subscription
failures are raised. Transport exceptions from redis are translated into
these types at the publisher/subscriber boundary.
"""


class SmsRelayError(Exception):
    """Base class for all relay errors."""


class InvalidWebhookError(SmsRelayError):
    """The inbound webhook request is not a usable SMS notification."""


class MissingFieldError(InvalidWebhookError):
    """A required query parameter is absent or empty."""

    def __init__(self, field: str):
        super().__init__(f"missing required field: {field}")
        self.field = field


class PublishError(SmsRelayError):
    """Publishing an event to the broker failed."""


class PublishUnreachableError(PublishError):
    """The broker could not be reached, or did not answer in time."""


class PublishUnauthorizedError(PublishError):
    """The broker rejected our credentials."""


class SubscriptionError(SmsRelayError):
    """A subscription could not be established."""


class PublishFailedError(PublishError):
    """The broker answered but refused the command (read-only replica, OOM...)."""
