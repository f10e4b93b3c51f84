"""Client-side session handling for the WolframAlpha results websocket."""

from __future__ import annotations

from .assumptions import expand_template
from .completion import Completion
from .connection import ChannelState, QueryChannel
from .session import DID_YOU_MEAN_SUFFIX, QueryResult
from .transport import ChannelHandle, ChannelListener, Transport, WebSocketTransport

__all__ = [
    "ChannelHandle",
    "ChannelListener",
    "ChannelState",
    "Completion",
    "DID_YOU_MEAN_SUFFIX",
    "QueryChannel",
    "QueryResult",
    "Transport",
    "WebSocketTransport",
    "expand_template",
]
