"""
WebSocket connection manager for cinema-explorer.

Pushes dataset lifecycle, selection, axis order, highlight and pick updates
to every browser view subscribed to the matching channel, so linked views
stay in sync with changes made through any of them.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from explorer.shared.logger import get_logger

logger = get_logger(__name__)


class MessageType(str, Enum):
    """Types of WebSocket messages."""

    # Dataset lifecycle
    DATASET_LOADING = "dataset_loading"
    DATASET_READY = "dataset_ready"
    DATASET_FAILED = "dataset_failed"
    DATASET_WARNING = "dataset_warning"

    # Selection and axes
    SELECTION_CHANGED = "selection_changed"
    AXIS_ORDER_CHANGED = "axis_order_changed"
    AXIS_ORDER_SET = "axis_order_set"

    # Pointer interaction
    HIGHLIGHT_CHANGED = "highlight_changed"
    PICKED_CHANGED = "picked_changed"
    MOUSEOVER = "mouseover"

    # System messages
    PING = "ping"
    PONG = "pong"
    ERROR = "error"
    CONNECTED = "connected"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


class Channel(str, Enum):
    """Broadcast channels clients can subscribe to."""

    DATASET = "dataset"
    SELECTION = "selection"
    AXES = "axes"
    PICKS = "picks"
    SYSTEM = "system"

    @classmethod
    def names(cls) -> List[str]:
        return [c.value for c in cls]


@dataclass
class WebSocketMessage:
    """A message pushed to (or received from) a browser view."""

    type: MessageType
    channel: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now().isoformat()

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "channel": self.channel,
            "data": self.data,
            "timestamp": self.timestamp,
        })

    @classmethod
    def from_json(cls, json_str: str) -> "WebSocketMessage":
        """Parse a client message. Unknown types raise ValueError."""
        data = json.loads(json_str)
        if not isinstance(data, dict):
            raise ValueError("Message must be a JSON object")
        return cls(
            type=MessageType(data.get("type", "error")),
            channel=data.get("channel", ""),
            data=data.get("data") or {},
            timestamp=data.get("timestamp"),
        )


class WebSocketManager:
    """
    Tracks open WebSocket connections and their channel subscriptions.

    Broadcasting to a channel only reaches connections subscribed to it;
    connections that fail to receive are dropped.
    """

    def __init__(self):
        self._connections: Set[WebSocket] = set()

        # channel -> subscribed connections
        self._channels: Dict[str, Set[WebSocket]] = {}

        # connection -> client id, connect time, subscriptions
        self._connection_info: Dict[WebSocket, Dict[str, Any]] = {}

        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None) -> None:
        """Accept a connection and confirm it to the client."""
        await websocket.accept()

        async with self._lock:
            self._connections.add(websocket)
            self._connection_info[websocket] = {
                "client_id": client_id,
                "connected_at": datetime.now().isoformat(),
                "subscriptions": set(),
            }

        logger.info("WebSocket client connected: %s", client_id or "anonymous")
        await self.send_to_connection(
            websocket,
            WebSocketMessage(
                type=MessageType.CONNECTED,
                channel=Channel.SYSTEM.value,
                data={
                    "client_id": client_id,
                    "channels": Channel.names(),
                },
            ),
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        """Forget a connection and all of its subscriptions."""
        async with self._lock:
            subscriptions = self._connection_info.get(websocket, {}).get("subscriptions", set())
            for channel in subscriptions:
                if channel in self._channels:
                    self._channels[channel].discard(websocket)
                    if not self._channels[channel]:
                        del self._channels[channel]

            self._connections.discard(websocket)
            self._connection_info.pop(websocket, None)

    async def subscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._channels.setdefault(channel, set()).add(websocket)
            if websocket in self._connection_info:
                self._connection_info[websocket]["subscriptions"].add(channel)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(
                type=MessageType.SUBSCRIBED,
                channel=channel,
                data={"channel": channel},
            ),
        )

    async def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            if channel in self._channels:
                self._channels[channel].discard(websocket)
                if not self._channels[channel]:
                    del self._channels[channel]

            if websocket in self._connection_info:
                self._connection_info[websocket]["subscriptions"].discard(channel)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(
                type=MessageType.UNSUBSCRIBED,
                channel=channel,
                data={"channel": channel},
            ),
        )

    async def send_to_connection(
        self,
        websocket: WebSocket,
        message: WebSocketMessage,
    ) -> bool:
        """
        Send a message to one connection.

        Returns:
            True if sent, False if the connection failed and was dropped
        """
        try:
            await websocket.send_text(message.to_json())
            return True
        except Exception as e:
            logger.warning("Error sending WebSocket message: %s", e)
            await self.disconnect(websocket)
            return False

    async def broadcast_to_channel(
        self,
        channel: str,
        message: WebSocketMessage,
    ) -> int:
        """
        Broadcast a message to all subscribers of a channel.

        Returns:
            Number of connections that received the message
        """
        async with self._lock:
            subscribers = list(self._channels.get(channel, set()))

        sent_count = 0
        disconnected = []

        for websocket in subscribers:
            try:
                await websocket.send_text(message.to_json())
                sent_count += 1
            except Exception:
                disconnected.append(websocket)

        for ws in disconnected:
            await self.disconnect(ws)

        return sent_count

    def get_channel_subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, set()))

    def get_connection_count(self) -> int:
        return len(self._connections)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_connections": self.get_connection_count(),
            "channels": {c: self.get_channel_subscribers(c) for c in Channel.names()},
        }

    async def handle_message(
        self,
        websocket: WebSocket,
        message_text: str,
    ) -> Optional[WebSocketMessage]:
        """
        Handle a client message (ping, subscribe or unsubscribe).

        Returns:
            Response message or None
        """
        try:
            message = WebSocketMessage.from_json(message_text)
        except (json.JSONDecodeError, ValueError) as e:
            return WebSocketMessage(
                type=MessageType.ERROR,
                channel=Channel.SYSTEM.value,
                data={"error": f"Invalid message format: {e}"},
            )

        if message.type == MessageType.PING:
            return WebSocketMessage(
                type=MessageType.PONG,
                channel=Channel.SYSTEM.value,
                data={"timestamp": datetime.now().isoformat()},
            )

        if message.type in (MessageType.SUBSCRIBE, MessageType.UNSUBSCRIBE):
            channel = message.data.get("channel") or message.channel
            if channel not in Channel.names():
                return WebSocketMessage(
                    type=MessageType.ERROR,
                    channel=Channel.SYSTEM.value,
                    data={"error": f"Unknown channel: {channel}"},
                )
            if message.type == MessageType.SUBSCRIBE:
                await self.subscribe(websocket, channel)
            else:
                await self.unsubscribe(websocket, channel)
            return None

        return None


# Global WebSocket manager instance
ws_manager = WebSocketManager()


# ============= Helper Functions for Explorer Updates =============


async def _broadcast(message_type: MessageType, channel: Channel, data: Dict[str, Any]) -> int:
    message = WebSocketMessage(type=message_type, channel=channel.value, data=data)
    return await ws_manager.broadcast_to_channel(channel.value, message)


async def notify_dataset_loading(name: str, generation: int) -> None:
    """Notify subscribers that a dataset load has started."""
    await _broadcast(
        MessageType.DATASET_LOADING,
        Channel.DATASET,
        {"name": name, "generation": generation},
    )


async def notify_dataset_ready(summary: Dict[str, Any]) -> None:
    """
    Notify subscribers that a dataset finished loading.

    Args:
        summary: Dataset summary (row count, dimensions, warnings)
    """
    await _broadcast(MessageType.DATASET_READY, Channel.DATASET, summary)


async def notify_dataset_failed(name: str, error: str) -> None:
    await _broadcast(
        MessageType.DATASET_FAILED,
        Channel.DATASET,
        {"name": name, "error": error},
    )


async def notify_dataset_warning(name: str, warning: str) -> None:
    await _broadcast(
        MessageType.DATASET_WARNING,
        Channel.DATASET,
        {"name": name, "warning": warning},
    )


async def notify_selection_changed(selection: List[int], row_count: int) -> None:
    """
    Notify subscribers of a new row selection.

    Args:
        selection: Selected row indices, ascending
        row_count: Total number of rows in the dataset
    """
    await _broadcast(
        MessageType.SELECTION_CHANGED,
        Channel.SELECTION,
        {"selection": selection, "count": len(selection), "row_count": row_count},
    )


async def notify_axis_order_changed(order: List[str]) -> None:
    """Notify subscribers that a drag produced a custom axis order."""
    await _broadcast(MessageType.AXIS_ORDER_CHANGED, Channel.AXES, {"order": order})


async def notify_axis_order_set(order: List[str], category: Optional[str] = None,
                                name: Optional[str] = None) -> None:
    """Notify subscribers that an explicit axis order was applied."""
    await _broadcast(
        MessageType.AXIS_ORDER_SET,
        Channel.AXES,
        {"order": order, "category": category, "name": name},
    )


async def notify_highlight_changed(rows: List[int]) -> None:
    await _broadcast(MessageType.HIGHLIGHT_CHANGED, Channel.PICKS, {"rows": rows})


async def notify_picked_changed(picked: List[int]) -> None:
    await _broadcast(MessageType.PICKED_CHANGED, Channel.PICKS, {"picked": picked})


async def notify_mouseover(chart: str, index: Optional[int], row: Optional[Dict[str, Any]]) -> None:
    """
    Notify subscribers of the row under the pointer.

    Args:
        chart: Name of the chart the pointer is over
        index: Row index, or None when the pointer left every item
        row: Row values for the info pane, or None
    """
    await _broadcast(
        MessageType.MOUSEOVER,
        Channel.PICKS,
        {"chart": chart, "index": index, "row": row},
    )
