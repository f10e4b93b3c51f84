"""Single-settlement completion handle shared by query sessions."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Generator, List, Optional

logger = logging.getLogger(__name__)


class Completion:
    """Resolve-or-reject-once handle that can be awaited from asyncio.

    Settlement is guarded by an explicit flag: the first ``resolve`` or
    ``reject`` wins and every later call is a no-op that returns ``False``.
    The backing :class:`asyncio.Future` is only created when someone awaits,
    so handles can be settled from plain synchronous code.
    """

    __slots__ = ("_lock", "_settled", "_result", "_exception", "_futures", "_callbacks")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._settled = False
        self._result: Any = None
        self._exception: BaseException | None = None
        self._futures: List[asyncio.Future] = []
        self._callbacks: List[Callable[["Completion"], None]] = []

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def resolved(self) -> bool:
        return self._settled and self._exception is None

    @property
    def rejected(self) -> bool:
        return self._settled and self._exception is not None

    def exception(self) -> BaseException | None:
        return self._exception

    def result(self) -> Any:
        if not self._settled:
            raise asyncio.InvalidStateError("completion is still pending")
        if self._exception is not None:
            raise self._exception
        return self._result

    def resolve(self, value: Any = None) -> bool:
        return self._settle(value, None)

    def reject(self, error: BaseException) -> bool:
        return self._settle(None, error)

    def add_done_callback(self, callback: Callable[["Completion"], None]) -> None:
        with self._lock:
            if not self._settled:
                self._callbacks.append(callback)
                return
        self._run_callback(callback)

    def _settle(self, value: Any, error: Optional[BaseException]) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            self._result = value
            self._exception = error
            futures, self._futures = self._futures, []
            callbacks, self._callbacks = self._callbacks, []
        for future in futures:
            self._transfer(future)
        for callback in callbacks:
            self._run_callback(callback)
        return True

    def _run_callback(self, callback: Callable[["Completion"], None]) -> None:
        try:
            callback(self)
        except Exception:
            logger.debug("completion callback failed", exc_info=True)

    def _transfer(self, future: asyncio.Future) -> None:
        loop = future.get_loop()
        if loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._copy_state(future)
        else:
            loop.call_soon_threadsafe(self._copy_state, future)

    def _copy_state(self, future: asyncio.Future) -> None:
        if future.done():
            return
        if self._exception is not None:
            future.set_exception(self._exception)
        else:
            future.set_result(self._result)

    def _future(self) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        with self._lock:
            if not self._settled:
                self._futures.append(future)
                future.add_done_callback(self._forget)
                return future
        self._copy_state(future)
        return future

    def _forget(self, future: asyncio.Future) -> None:
        if not future.cancelled():
            return
        with self._lock:
            if future in self._futures:
                self._futures.remove(future)

    @property
    def waiters(self) -> int:
        return len(self._futures)

    def __await__(self) -> Generator[Any, None, Any]:
        return self._future().__await__()

    def __repr__(self) -> str:
        if not self._settled:
            state = "pending"
        elif self._exception is not None:
            state = f"rejected {self._exception!r}"
        else:
            state = "resolved"
        return f"<Completion {state}>"


__all__ = ["Completion"]
