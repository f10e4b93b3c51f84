"""Query channel: one websocket, many in-flight queries."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from wa_socket.config import ClientConfig, load_client_config
from wa_socket.debug import maybe_enable_debug_logger
from wa_socket.errors import ChannelError, MalformedFragmentError
from wa_socket.protocol import FragmentParser, build_init, build_new_query

from .session import QueryResult
from .transport import ChannelHandle, Transport, WebSocketTransport

logger = logging.getLogger(__name__)

_CHANNEL_DEBUG = maybe_enable_debug_logger(logger)


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"


class _ChannelCallbacks:
    """Transport listener bound to one connection attempt.

    Events from an attempt that has since been replaced are ignored by the
    channel, so a late ``closed`` from an old socket cannot tear down a new one.
    """

    __slots__ = ("_channel",)

    def __init__(self, channel: "QueryChannel") -> None:
        self._channel = channel

    def on_ready(self) -> None:
        self._channel._on_ready(self)

    def on_error(self, error: BaseException) -> None:
        self._channel._on_error(self, error)

    def on_closed(self, code: int, reason: str) -> None:
        self._channel._on_closed(self, code, reason)

    def on_message(self, raw: str | bytes) -> None:
        self._channel._on_message(self, raw)


def _encode(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


class QueryChannel:
    """Submit queries to the WolframAlpha results websocket.

    The socket is opened lazily by the first :meth:`send`. Messages sent
    before it is ready are queued and flushed inside a single ``init`` frame.
    Inbound fragments are routed to sessions by ``locationId``; fragments for
    unknown ids are dropped.

    A transport error rejects every outstanding session's completion (the
    sessions stay registered so they can be inspected). A clean close only
    resets the channel; the next :meth:`submit` reconnects.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: Transport | None = None,
        id_factory: Callable[[], str] | None = None,
        **overrides: Any,
    ) -> None:
        if config is None:
            config = load_client_config(**overrides)
        elif overrides:
            config = config.with_overrides(**overrides)
        self.config = config
        self._debug = _CHANNEL_DEBUG or (config.debug and maybe_enable_debug_logger(logger, force=True))
        self.transport: Transport = transport or WebSocketTransport(open_timeout=config.open_timeout_s)
        self.url = config.api_url
        self.language = config.language
        self.headers = config.request_headers()
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._parser = FragmentParser()
        self._lock = threading.RLock()
        self.pending: Dict[str, QueryResult] = {}
        self.queue: List[Dict[str, Any]] = []
        self.state = ChannelState.DISCONNECTED
        self._handle: ChannelHandle | None = None
        self._callbacks: _ChannelCallbacks | None = None
        self._ready_early = False

    @property
    def ready(self) -> bool:
        return self.state is ChannelState.READY

    # --- queries -------------------------------------------------------------
    def submit(self, input: str, assumptions: Sequence[str] | None = None) -> QueryResult:
        """Start a query and return its session without waiting for results."""

        location_id = str(self._id_factory())
        assumptions = tuple(assumptions or ())
        session = QueryResult(self, location_id, input, assumptions)
        request = build_new_query(
            input=input,
            location_id=location_id,
            language=self.language,
            assumptions=assumptions,
        )
        with self._lock:
            self.pending[location_id] = session
        logger.debug("submit query id=%s input=%r assumptions=%s", location_id, input, list(assumptions))
        self.send(request.to_dict())
        return session

    async def query(
        self,
        input: str,
        assumptions: Sequence[str] | None = None,
        *,
        timeout: float | None = None,
    ) -> QueryResult:
        session = self.submit(input, assumptions)
        try:
            return await session.wait(timeout)
        except asyncio.TimeoutError:
            self.discard(session)
            raise

    def get(self, location_id: str) -> Optional[QueryResult]:
        with self._lock:
            return self.pending.get(location_id)

    def rebind(self, old_id: str, session: QueryResult) -> None:
        """Move *session* from *old_id* to its current ``id`` in one step."""

        with self._lock:
            if self.pending.get(old_id) is not session:
                logger.debug("rebind: %s is no longer routed; not registering %s", old_id, session.id)
                return
            del self.pending[old_id]
            self.pending[session.id] = session

    def release(self, session: QueryResult) -> None:
        with self._lock:
            if self.pending.get(session.id) is session:
                del self.pending[session.id]

    def discard(self, session: QueryResult) -> None:
        """Stop routing fragments to *session*; later fragments are dropped."""

        self.release(session)
        logger.debug("discarded session id=%s", session.id)

    # --- outbound ------------------------------------------------------------
    def send(self, message: Mapping[str, Any]) -> None:
        """Send *message* now if the socket is ready, otherwise queue it."""

        payload = dict(message)
        connect = False
        with self._lock:
            handle = self._handle if self.state is ChannelState.READY else None
            callbacks = self._callbacks
            if handle is None:
                self.queue.append(payload)
                connect = self._callbacks is None
        if handle is not None:
            self._send_payload(handle, callbacks, payload)
            return
        if self._debug:
            logger.debug("queued message (%d pending): %s", len(self.queue), payload)
        if connect:
            self.connect()

    def connect(self) -> None:
        """Open the socket unless an attempt is already in flight."""

        with self._lock:
            if self._callbacks is not None:
                return
            callbacks = _ChannelCallbacks(self)
            self._callbacks = callbacks
            self._ready_early = False
            self.state = ChannelState.CONNECTING
        logger.info("Opening results channel %s", self.url)
        try:
            handle = self.transport.open(self.url, self.headers, callbacks)
        except Exception as exc:
            self._on_error(callbacks, exc)
            return
        with self._lock:
            current = self._callbacks is callbacks
            if current:
                self._handle = handle
                ready = self._ready_early
        if current:
            if ready:
                self._flush_queue(callbacks)
            return
        # the attempt already failed or was closed while opening
        try:
            handle.close()
        except Exception:
            logger.debug("close of abandoned channel failed", exc_info=True)

    def close(self) -> None:
        """Close the socket. Outstanding sessions are left untouched."""

        with self._lock:
            handle = self._handle
            self._handle = None
            self._callbacks = None
            self.state = ChannelState.DISCONNECTED
        if handle is not None:
            logger.info("Closing results channel")
            handle.close()

    async def __aenter__(self) -> "QueryChannel":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def _send_payload(
        self,
        handle: ChannelHandle,
        callbacks: _ChannelCallbacks | None,
        payload: Mapping[str, Any],
    ) -> None:
        text = _encode(payload)
        if self._debug:
            logger.debug("send -> %s", text)
        try:
            handle.send_text(text)
        except Exception as exc:
            if callbacks is None:
                raise
            self._on_error(callbacks, exc)

    # --- transport events ----------------------------------------------------
    def _on_ready(self, callbacks: _ChannelCallbacks) -> None:
        with self._lock:
            if callbacks is not self._callbacks:
                logger.debug("ignoring ready from a stale channel")
                return
            if self._handle is None:
                # fired inside transport.open(); connect() flushes once it holds the handle
                self._ready_early = True
                return
        self._flush_queue(callbacks)

    def _flush_queue(self, callbacks: _ChannelCallbacks) -> None:
        with self._lock:
            handle = self._handle
            if callbacks is not self._callbacks or handle is None:
                return
            queued, self.queue = self.queue, []
            init = build_init(lang=self.language, messages=queued)
            self._ready_early = False
            self.state = ChannelState.READY
        logger.info("Results channel ready; flushing %d queued messages", len(queued))
        self._send_payload(handle, callbacks, init.to_dict())

    def _on_error(self, callbacks: _ChannelCallbacks, error: BaseException) -> None:
        with self._lock:
            if callbacks is not self._callbacks:
                logger.debug("ignoring error from a stale channel: %s", error)
                return
            self._callbacks = None
            self._handle = None
            self.state = ChannelState.DISCONNECTED
            # queued queries belong to the sessions rejected below; never resent
            dropped = len(self.queue)
            self.queue = []
            sessions = list(self.pending.values())
        failure = ChannelError.wrap(error)
        logger.warning(
            "Results channel error (%s); failing %d outstanding queries, dropped %d queued messages",
            failure,
            len(sessions),
            dropped,
        )
        for session in sessions:
            session.completion.reject(failure)

    def _on_closed(self, callbacks: _ChannelCallbacks, code: int, reason: str) -> None:
        with self._lock:
            if callbacks is not self._callbacks:
                logger.debug("ignoring close from a stale channel (%s %s)", code, reason)
                return
            self._callbacks = None
            self._handle = None
            self.state = ChannelState.DISCONNECTED
        logger.info("Results channel closed %s (%s)", code, reason)

    def _on_message(self, callbacks: _ChannelCallbacks, raw: str | bytes) -> None:
        if callbacks is not self._callbacks:
            logger.debug("ignoring message from a stale channel")
            return
        try:
            fragment = self._parser.parse_json(raw)
        except MalformedFragmentError as exc:
            logger.warning("dropping malformed fragment: %s", exc)
            return
        with self._lock:
            session = self.pending.get(fragment.location_id) if fragment.location_id is not None else None
        if session is None:
            logger.debug("no session for locationId=%s (type=%s)", fragment.location_id, fragment.type)
            return
        if self._debug:
            logger.debug("fragment type=%s -> session %s", fragment.type, session.id)
        session.apply(fragment)


__all__ = ["ChannelState", "QueryChannel"]
