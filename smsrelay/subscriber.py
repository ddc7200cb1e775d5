"""
Channel subscriptions for viewers.

Each subscription runs two tasks:
1. Reader: listens on the Redis pub/sub connection, decodes envelopes and
   queues the events
2. Consumer: drains the queue and calls the handler once per event

The queue has a single consumer, so a viewer's handler never runs twice at
the same time and events are handled in the order the transport delivered
them.
"""

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from redis.exceptions import ConnectionError as RedisConnectionError, RedisError

from smsrelay.config import settings
from smsrelay.errors import SubscriptionError
from smsrelay.metrics import active_subscriptions, record_viewer_delivery
from smsrelay.publisher import decode_envelope
from smsrelay.schemas import SmsEvent

logger = logging.getLogger(__name__)

MessageHandler = Callable[[SmsEvent], Union[None, Awaitable[None]]]


class SubscriptionHandle:
    """A live subscription. Must be released when the viewer goes away."""

    def __init__(self, pubsub, channel: str, on_message: MessageHandler, retry_delay: float):
        self.channel = channel
        self.delivered = 0
        self.released = False
        self._pubsub = pubsub
        self._on_message = on_message
        self._retry_delay = retry_delay
        self._queue: asyncio.Queue = asyncio.Queue()
        self._reader: Optional[asyncio.Task] = None
        self._consumer: Optional[asyncio.Task] = None

    async def start(self) -> None:
        await self._pubsub.subscribe(self.channel)
        self._reader = asyncio.create_task(self._read())
        self._consumer = asyncio.create_task(self._consume())
        active_subscriptions.inc()
        logger.info(f"Subscribed to {self.channel}")

    async def _read(self) -> None:
        while True:
            try:
                async for message in self._pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    event = decode_envelope(message["data"])
                    if event is not None:
                        self._queue.put_nowait(event)
                # listen() only ends once nothing is subscribed
                return
            except RedisConnectionError as e:
                # The pubsub connection reconnects and re-subscribes on next read
                logger.warning(f"Subscription to {self.channel} interrupted, resuming: {e}")
                await asyncio.sleep(self._retry_delay)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                result = self._on_message(event)
                if inspect.isawaitable(result):
                    await result
                self.delivered += 1
                record_viewer_delivery()
            finally:
                self._queue.task_done()

    async def wait(self) -> None:
        """
        Wait until delivery stops.
        Re-raises the exception if the handler or the reader failed.
        """
        tasks = [t for t in (self._reader, self._consumer) if t is not None]
        if not tasks:
            return
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def release(self) -> None:
        """Stop delivery, unsubscribe and close the connection. Idempotent."""
        if self.released:
            return
        self.released = True

        tasks = [t for t in (self._reader, self._consumer) if t is not None]
        for task in tasks:
            task.cancel()
        # Outcomes were already surfaced through wait()
        await asyncio.gather(*tasks, return_exceptions=True)

        try:
            await self._pubsub.unsubscribe(self.channel)
        except RedisError as e:
            logger.warning(f"Unsubscribe from {self.channel} failed, closing anyway: {e}")
        finally:
            await self._pubsub.aclose()
            if tasks:
                active_subscriptions.dec()
        logger.info(f"Released subscription to {self.channel} after {self.delivered} event(s)")


class ChannelSubscriber:
    """
    Opens subscriptions on the broker.

    Connection management and reconnection belong to redis.asyncio; this
    class only wires a per-message handler to a channel.
    """

    def __init__(self, broker, retry_delay: Optional[float] = None):
        self.broker = broker
        self.retry_delay = settings.RESUBSCRIBE_DELAY_SECONDS if retry_delay is None else retry_delay

    async def open(self, channel: str, on_message: MessageHandler) -> SubscriptionHandle:
        """
        Subscribe to `channel` and start delivering events to `on_message`.

        Raises:
            SubscriptionError: The initial subscribe could not reach the broker
        """
        handle = SubscriptionHandle(self.broker.pubsub(), channel, on_message, self.retry_delay)
        try:
            await handle.start()
        except RedisError as e:
            logger.error(f"Could not subscribe to {channel}: {e}")
            await handle.release()
            raise SubscriptionError(str(e)) from e
        return handle

    @asynccontextmanager
    async def subscribe(self, channel: str, on_message: MessageHandler) -> AsyncIterator[SubscriptionHandle]:
        """Scoped subscription, released on every exit path."""
        handle = await self.open(channel, on_message)
        try:
            yield handle
        finally:
            # Shielded so a cancelled viewer task still frees the connection
            await asyncio.shield(handle.release())
