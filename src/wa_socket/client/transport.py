"""Channel transport used by :class:`QueryChannel`.

The channel only needs to open a connection, push text frames and hear
about ``ready``/``error``/``closed``/``message`` events. The default
implementation runs a :mod:`websockets` client on the caller's event loop.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Mapping, Optional, Protocol

import websockets
from websockets.exceptions import ConnectionClosedError

from wa_socket.debug import maybe_enable_debug_logger
from wa_socket.errors import ChannelError

logger = logging.getLogger(__name__)

_WS_DEBUG = maybe_enable_debug_logger(logger)


class ChannelListener(Protocol):
    def on_ready(self) -> None: ...

    def on_error(self, error: BaseException) -> None: ...

    def on_closed(self, code: int, reason: str) -> None: ...

    def on_message(self, raw: str | bytes) -> None: ...


class ChannelHandle(Protocol):
    def send_text(self, text: str) -> None: ...

    def close(self) -> None: ...


class Transport(Protocol):
    def open(self, url: str, headers: Mapping[str, str], listener: ChannelListener) -> ChannelHandle: ...


class WebSocketChannel:
    """One websocket connection plus its outbound queue.

    ``send_text`` is safe to call from any thread; frames are handed to a
    sender task on the owning loop in submission order.
    """

    def __init__(
        self,
        url: str,
        headers: Mapping[str, str],
        listener: ChannelListener,
        *,
        open_timeout: float | None = 10.0,
    ) -> None:
        self.url = url
        self.headers = dict(headers)
        self.listener = listener
        self.open_timeout = open_timeout
        self.loop: asyncio.AbstractEventLoop | None = None
        self.websocket: Any = None
        self.outbox: asyncio.Queue[str] = asyncio.Queue()
        self.task: asyncio.Task[None] | None = None
        self.stop_requested = False

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self.task = loop.create_task(self._run())

    def send_text(self, text: str) -> None:
        loop = self.loop
        if loop is None or self.stop_requested:
            raise ChannelError("websocket channel is not open")
        loop.call_soon_threadsafe(self.outbox.put_nowait, text)

    def close(self) -> None:
        self.stop_requested = True
        loop = self.loop
        if loop is None or loop.is_closed():
            return

        async def _shutdown() -> None:
            ws = self.websocket
            if ws is not None:
                try:
                    await ws.close()
                except Exception:
                    logger.debug("WebSocketChannel.close: close failed", exc_info=True)

        def _schedule() -> None:
            loop.create_task(_shutdown())

        loop.call_soon_threadsafe(_schedule)

    def _connect_kwargs(self) -> dict[str, Any]:
        headers = dict(self.headers)
        user_agent = headers.pop("User-Agent", None)
        kwargs: dict[str, Any] = {
            "additional_headers": headers,
            "open_timeout": self.open_timeout,
        }
        if user_agent is not None:
            kwargs["user_agent_header"] = user_agent
        return kwargs

    async def _run(self) -> None:
        logger.info("Connecting to results websocket at %s", self.url)
        close_code: Optional[int] = None
        close_reason = ""
        try:
            async with websockets.connect(self.url, **self._connect_kwargs()) as ws:
                self.websocket = ws
                if self.stop_requested:
                    logger.info("Results websocket closed before it was used")
                    return
                send_task = asyncio.create_task(self._sender(ws))
                logger.info("Connected to results websocket")
                try:
                    self.listener.on_ready()
                    async for message in ws:
                        if _WS_DEBUG:
                            logger.debug("websocket <- %s", message)
                        try:
                            self.listener.on_message(message)
                        except Exception:
                            logger.debug("websocket message handler failed", exc_info=True)
                finally:
                    send_task.cancel()
                    with suppress(asyncio.CancelledError):
                        await send_task
                close_code = getattr(ws, "close_code", None)
                close_reason = getattr(ws, "close_reason", None) or ""
        except asyncio.CancelledError:
            raise
        except ConnectionClosedError as exc:
            rcvd = getattr(exc, "rcvd", None)
            logger.info("Results websocket closed abnormally (%s)", exc)
            self.listener.on_error(exc)
            self.listener.on_closed(
                int(rcvd.code) if rcvd is not None else 1006,
                str(rcvd.reason) if rcvd is not None else "",
            )
            return
        except Exception as exc:
            msg = str(exc) or exc.__class__.__name__
            if isinstance(exc, (OSError, asyncio.TimeoutError)):
                logger.info("Results websocket unavailable (%s)", msg)
            else:
                logger.exception("Results websocket error")
            self.listener.on_error(exc)
            return
        finally:
            self.websocket = None
        self.listener.on_closed(1005 if close_code is None else int(close_code), str(close_reason))

    async def _sender(self, ws: Any) -> None:
        while True:
            msg = await self.outbox.get()
            try:
                if _WS_DEBUG:
                    logger.debug("websocket -> %s", msg)
                await ws.send(msg)
            except Exception:
                logger.debug("websocket sender failed; stopping", exc_info=True)
                break


class WebSocketTransport:
    """Open :class:`WebSocketChannel` connections on the running event loop."""

    def __init__(self, *, open_timeout: float | None = 10.0) -> None:
        self.open_timeout = open_timeout

    def open(self, url: str, headers: Mapping[str, str], listener: ChannelListener) -> WebSocketChannel:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise ChannelError("the websocket transport needs a running asyncio event loop") from exc
        channel = WebSocketChannel(url, headers, listener, open_timeout=self.open_timeout)
        channel.start(loop)
        return channel


__all__ = [
    "ChannelHandle",
    "ChannelListener",
    "Transport",
    "WebSocketChannel",
    "WebSocketTransport",
]
