"""
Pytest configuration and shared fixtures.

Required settings are seeded before any app import, then the settings
cache is cleared so they are picked up.
"""

import asyncio
import os

import pytest

os.environ.setdefault("BROKER_URL", "redis://localhost:6379/15")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from smsrelay.config import get_settings
get_settings.cache_clear()


class InMemoryPubSub:
    """Stands in for a redis.asyncio PubSub connection."""

    def __init__(self, broker):
        self.broker = broker
        self.channels = set()
        self.queue = asyncio.Queue()
        self.closed = False

    async def subscribe(self, *channels):
        self.channels.update(channels)
        if self not in self.broker.subscribers:
            self.broker.subscribers.append(self)

    async def unsubscribe(self, *channels):
        self.channels.difference_update(channels)
        if not self.channels and self in self.broker.subscribers:
            self.broker.subscribers.remove(self)

    async def aclose(self):
        self.closed = True

    async def listen(self):
        while True:
            yield await self.queue.get()


class InMemoryBroker:
    """Fans PUBLISH out to every subscribed InMemoryPubSub, like Redis does."""

    def __init__(self):
        self.subscribers = []
        self.published = []

    async def publish(self, channel, payload):
        self.published.append((channel, payload))
        receivers = 0
        for pubsub in self.subscribers:
            if channel in pubsub.channels:
                pubsub.queue.put_nowait({"type": "message", "channel": channel, "data": payload})
                receivers += 1
        return receivers

    def pubsub(self):
        return InMemoryPubSub(self)

    async def ping(self):
        return True


@pytest.fixture
def broker():
    return InMemoryBroker()
