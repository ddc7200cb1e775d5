"""
Viewer sessions: live SMS feed over a WebSocket.

Each connected viewer owns one subscription and one HistoryBuffer. Both
live exactly as long as the socket; nothing is shared between viewers or
carried over a reconnect.
"""

import asyncio
import json
import logging
from typing import List

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from smsrelay.history import HistoryBuffer
from smsrelay.schemas import CHANNEL_NAME, EVENT_NAME, SmsEvent
from smsrelay.subscriber import ChannelSubscriber

logger = logging.getLogger(__name__)


class ViewerSession:
    """
    Relays channel events to one WebSocket client.

    Client frames:
    - {"type": "ping"} -> {"type": "pong"}
    - {"type": "history", "limit": k} -> the k most recent events
    """

    def __init__(self, websocket: WebSocket, subscriber: ChannelSubscriber, channel: str = CHANNEL_NAME):
        self.websocket = websocket
        self.subscriber = subscriber
        self.channel = channel
        self.history = HistoryBuffer()
        # Frames produced by the history on append, waiting to be sent
        self._outbox: List[dict] = []
        self.history.on_append(self._frame_appended)

    def _frame_appended(self, event: SmsEvent) -> None:
        # Runs after the append, so history_size already counts this event
        self._outbox.append({
            "type": EVENT_NAME,
            "data": event.to_wire(),
            "history_size": len(self.history),
        })

    async def on_message(self, event: SmsEvent) -> None:
        self.history.append(event)
        while self._outbox:
            await self.websocket.send_json(self._outbox.pop(0))

    async def _client_listener(self) -> None:
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info("Viewer disconnected")
                    return
                data = message.get("text")
                if data is None:
                    # Binary frames carry nothing we understand
                    continue
                try:
                    msg = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if not isinstance(msg, dict):
                    continue
                if msg.get("type") == "ping":
                    await self.websocket.send_json({"type": "pong"})
                elif msg.get("type") == "history":
                    limit = msg.get("limit", self.history.capacity)
                    if not isinstance(limit, int):
                        limit = self.history.capacity
                    await self.websocket.send_json({
                        "type": "history",
                        "data": [event.to_wire() for event in self.history.latest(limit)],
                    })
        except WebSocketDisconnect:
            logger.info("Viewer disconnected")

    async def run(self) -> None:
        """
        Serve the viewer until it disconnects or delivery fails.
        The subscription is released however this returns.
        """
        async with self.subscriber.subscribe(self.channel, self.on_message) as handle:
            # Only listen to the client once the subscription is live
            client_task = asyncio.create_task(self._client_listener())
            delivery_task = asyncio.create_task(handle.wait())
            try:
                done, pending = await asyncio.wait(
                    [client_task, delivery_task],
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                for task in done:
                    task.result()
            finally:
                for task in (client_task, delivery_task):
                    task.cancel()

        if self.websocket.client_state == WebSocketState.CONNECTED:
            await self.websocket.close()
