"""Exception types raised by wa-socket."""

from __future__ import annotations


class WolframAlphaError(Exception):
    """Base class for every error raised by this package."""


class ChannelError(WolframAlphaError):
    """The results websocket failed while queries were outstanding.

    Outstanding completions reject with this error. When the transport
    raised something else, the original exception is kept as ``__cause__``.
    """

    @classmethod
    def wrap(cls, error: BaseException) -> "ChannelError":
        if isinstance(error, ChannelError):
            return error
        msg = str(error) or error.__class__.__name__
        wrapped = cls(msg)
        wrapped.__cause__ = error
        return wrapped


class MalformedFragmentError(WolframAlphaError, ValueError):
    """An inbound message could not be parsed into a fragment."""


__all__ = ["ChannelError", "MalformedFragmentError", "WolframAlphaError"]
