"""
Webhook response finalization.

The webhook answers exactly once, after the publish attempt is over, with
status and body built together from the real outcome.
"""

from typing import Union

from fastapi import Response, status
from fastapi.responses import JSONResponse

from smsrelay.errors import (
    InvalidWebhookError,
    PublishError,
    PublishFailedError,
    PublishUnauthorizedError,
)
from smsrelay.schemas import ErrorResponse, SmsEvent

Outcome = Union[SmsEvent, InvalidWebhookError, PublishError]


def finalize_response(outcome: Outcome) -> Response:
    """
    Build the one response for a webhook call.

    - SmsEvent: 200 with the published event
    - InvalidWebhookError: 400, empty body
    - PublishUnauthorizedError: 502
    - PublishFailedError: 503, broker error
    - other PublishError: 503, broker unreachable
    """
    if isinstance(outcome, SmsEvent):
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"success": True, **outcome.to_wire()},
        )

    if isinstance(outcome, InvalidWebhookError):
        return Response(status_code=status.HTTP_400_BAD_REQUEST)

    if isinstance(outcome, PublishUnauthorizedError):
        status_code = status.HTTP_502_BAD_GATEWAY
        detail = "broker rejected credentials"
    elif isinstance(outcome, PublishFailedError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        detail = "broker error"
    else:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        detail = "broker unreachable"
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=detail).model_dump(),
    )
