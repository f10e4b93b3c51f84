"""Wire protocol definitions for the WolframAlpha results websocket."""

from __future__ import annotations

from .messages import *  # noqa: F401,F403
from .parser import FragmentParser

__all__ = [name for name in globals().keys() if not name.startswith("_")]
