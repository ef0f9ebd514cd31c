"""
WebSocket module for cinema-explorer.

Keeps linked browser views in sync by broadcasting dataset, selection,
axis order and pick updates over channel-based WebSocket subscriptions.
"""

from .manager import (
    Channel,
    MessageType,
    WebSocketManager,
    WebSocketMessage,
    notify_axis_order_changed,
    notify_axis_order_set,
    notify_dataset_failed,
    notify_dataset_loading,
    notify_dataset_ready,
    notify_dataset_warning,
    notify_highlight_changed,
    notify_mouseover,
    notify_picked_changed,
    notify_selection_changed,
    ws_manager,
)

__all__ = [
    "WebSocketManager",
    "WebSocketMessage",
    "MessageType",
    "Channel",
    "ws_manager",
    "notify_dataset_loading",
    "notify_dataset_ready",
    "notify_dataset_failed",
    "notify_dataset_warning",
    "notify_selection_changed",
    "notify_axis_order_changed",
    "notify_axis_order_set",
    "notify_highlight_changed",
    "notify_picked_changed",
    "notify_mouseover",
]
