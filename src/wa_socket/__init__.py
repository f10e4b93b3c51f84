"""
wa-socket: asyncio client for the WolframAlpha results websocket.

Queries are submitted over a single persistent socket; the server streams
result fragments (pods, assumptions, warnings, ...) which are collected into
one :class:`~wa_socket.client.QueryResult` per query.
"""

from wa_socket.client import ChannelState, Completion, QueryChannel, QueryResult
from wa_socket.config import ClientConfig, load_client_config
from wa_socket.errors import ChannelError, MalformedFragmentError, WolframAlphaError

__version__ = "0.1.0"

__all__ = [
    "ChannelError",
    "ChannelState",
    "ClientConfig",
    "Completion",
    "MalformedFragmentError",
    "QueryChannel",
    "QueryResult",
    "WolframAlphaError",
    "__version__",
    "load_client_config",
]
