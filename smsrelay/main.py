import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response, Request, Depends, WebSocket, status
from redis.exceptions import RedisError
from starlette.websockets import WebSocketState

from smsrelay.config import settings
from smsrelay.broker import init_redis, close_redis, get_redis
from smsrelay.errors import (
    PublishError,
    PublishFailedError,
    PublishUnauthorizedError,
    SubscriptionError,
)
from smsrelay.ingest import ingest
from smsrelay.logging_utils import setup_logging, correlation_id, RequestLoggingMiddleware, log_webhook_data
from smsrelay.metrics import record_webhook_outcome, get_metrics, get_metrics_content_type
from smsrelay.publisher import EventPublisher
from smsrelay.responses import finalize_response
from smsrelay.schemas import ErrorResponse, HealthResponse, WebhookResponse
from smsrelay.subscriber import ChannelSubscriber
from smsrelay.viewer import ViewerSession


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Create the broker connection pool
    - Shutdown: Close it
    """
    init_redis()
    yield
    await close_redis()


app = FastAPI(
    title="SMS Relay",
    description="Relays inbound SMS webhooks to live viewers over pub/sub",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


def get_publisher(broker=Depends(get_redis)) -> EventPublisher:
    return EventPublisher(broker)


def get_subscriber(broker=Depends(get_redis)) -> ChannelSubscriber:
    return ChannelSubscriber(broker)


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response, broker=Depends(get_redis)) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the broker answers PING.
    Otherwise returns 503 (Service Unavailable).
    """
    try:
        await broker.ping()
    except RedisError as e:
        logger.error(f"Broker health check failed: {e}")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Broker not reachable")

    return HealthResponse(status="ready")


# =============================================================================
# Webhook Route
# =============================================================================

@app.api_route(
    "/webhook",
    methods=["GET", "POST"],
    response_model=WebhookResponse,
    responses={
        400: {"description": "Missing `to` or `msisdn`"},
        502: {"model": ErrorResponse, "description": "Broker rejected credentials"},
        503: {"model": ErrorResponse, "description": "Broker unreachable or refused the publish"},
    }
)
async def webhook(
    request: Request,
    publisher: EventPublisher = Depends(get_publisher),
) -> Response:
    """
    Relay an inbound SMS notification from the gateway to live viewers.

    Query parameters: to, msisdn, messageId, text, type, message-timestamp.

    The response is sent only after the publish attempt has finished and
    reflects its real outcome.
    """
    params = request.query_params
    logger.info("Webhook request received")

    event, error = ingest(params)
    if error is not None:
        record_webhook_outcome("validation_error")
        log_webhook_data(request, message_id=params.get("messageId"), result="validation_error")
        return finalize_response(error)

    try:
        await publisher.publish(event)
    except PublishError as e:
        if isinstance(e, PublishUnauthorizedError):
            result = "publish_unauthorized"
        elif isinstance(e, PublishFailedError):
            result = "publish_failed"
        else:
            result = "publish_unreachable"
        logger.error(f"Failed to publish messageId={event.message_id}: {e}")
        record_webhook_outcome(result)
        log_webhook_data(request, message_id=event.message_id, result=result)
        return finalize_response(e)

    record_webhook_outcome("published")
    log_webhook_data(request, message_id=event.message_id, result="published")
    return finalize_response(event)


# =============================================================================
# Viewer Route
# =============================================================================

@app.websocket("/ws/sms")
async def sms_feed(websocket: WebSocket, subscriber: ChannelSubscriber = Depends(get_subscriber)):
    """
    Live SMS feed. Each connection gets its own bounded history,
    dropped when the connection ends.
    """
    with correlation_id():
        await websocket.accept()
        logger.info("Viewer connected")
        session = ViewerSession(websocket, subscriber)
        try:
            await session.run()
        except SubscriptionError:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Broker unavailable")
        except Exception:
            logger.exception("Viewer session failed")
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Session failed")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
