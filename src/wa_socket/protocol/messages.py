"""Message shapes for the WolframAlpha results websocket.

Outbound frames (``init`` and ``newQuery``) serialise to the exact key layout
the fetcher endpoint expects. Inbound frames are *fragments*: each carries a
``locationId`` naming the query it belongs to and a ``type`` selecting one of
the payload classes below.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

INIT_TYPE = "init"
NEW_QUERY_TYPE = "newQuery"

QUERY_COMPLETE_TYPE = "queryComplete"
DID_YOU_MEAN_TYPE = "didyoumean"
ASSUMPTIONS_TYPE = "assumptions"
PODS_TYPE = "pods"
STEP_BY_STEP_TYPE = "stepByStep"
WARNINGS_TYPE = "warnings"
NO_RESULT_TYPE = "noResult"
FUTURE_TOPIC_TYPE = "futureTopic"


def _epoch_ms(timestamp: float | None = None) -> int:
    value = time.time() if timestamp is None else float(timestamp)
    return int(value * 1000)


@dataclass(slots=True)
class NewQueryMessage:
    """Request that the server start streaming results for *input*."""

    input: str
    location_id: str
    language: str = "en"
    assumption: Sequence[str] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": NEW_QUERY_TYPE,
            "language": self.language,
            "file": None,
            "input": self.input,
            "assumption": list(self.assumption),
            "locationId": self.location_id,
        }


@dataclass(slots=True)
class InitMessage:
    """First frame on a fresh socket, batching everything queued before open."""

    lang: str
    messages: Sequence[Mapping[str, Any]] = ()
    exp: int = field(default_factory=_epoch_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": INIT_TYPE,
            "lang": self.lang,
            "exp": int(self.exp),
            "messages": [dict(message) for message in self.messages],
        }


def build_new_query(
    *,
    input: str,
    location_id: str,
    language: str = "en",
    assumptions: Sequence[str] | None = None,
) -> NewQueryMessage:
    return NewQueryMessage(
        input=str(input),
        location_id=str(location_id),
        language=str(language),
        assumption=tuple(str(a) for a in (assumptions or ())),
    )


def build_init(
    *,
    lang: str,
    messages: Sequence[Mapping[str, Any]],
    timestamp: float | None = None,
) -> InitMessage:
    return InitMessage(lang=str(lang), messages=tuple(messages), exp=_epoch_ms(timestamp))


class FragmentKind(str, Enum):
    QUERY_COMPLETE = QUERY_COMPLETE_TYPE
    DID_YOU_MEAN = DID_YOU_MEAN_TYPE
    ASSUMPTIONS = ASSUMPTIONS_TYPE
    PODS = PODS_TYPE
    STEP_BY_STEP = STEP_BY_STEP_TYPE
    WARNINGS = WARNINGS_TYPE
    NO_RESULT = NO_RESULT_TYPE
    FUTURE_TOPIC = FUTURE_TOPIC_TYPE
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, value: Any) -> "FragmentKind":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(slots=True)
class QueryCompletePayload:
    timed_out: List[Any] = field(default_factory=list)


@dataclass(slots=True)
class DidYouMeanPayload:
    suggestions: List[Any] = field(default_factory=list)


@dataclass(slots=True)
class AssumptionValue:
    desc: Optional[str] = None
    word: Optional[str] = None
    name: Optional[str] = None
    input: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssumptionValue":
        return cls(
            desc=_optional_str(data.get("desc")),
            word=_optional_str(data.get("word")),
            name=_optional_str(data.get("name")),
            input=_optional_str(data.get("input")),
        )


@dataclass(slots=True)
class Assumption:
    """One assumption block; ``display`` is filled in once the template is expanded."""

    template: str
    values: List[AssumptionValue] = field(default_factory=list)
    type: Optional[str] = None
    word: Optional[str] = None
    query: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict)
    display: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.raw)
        data["string"] = self.display
        return data


@dataclass(slots=True)
class AssumptionsPayload:
    assumptions: List[Assumption] = field(default_factory=list)


@dataclass(slots=True)
class PodsPayload:
    pods: List[Mapping[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class StepByStepPayload:
    pod: Mapping[str, Any]


@dataclass(slots=True)
class WarningsPayload:
    warnings: List[Any] = field(default_factory=list)


@dataclass(slots=True)
class NoResultPayload:
    pass


@dataclass(slots=True)
class FutureTopicPayload:
    topic: Any = None


@dataclass(slots=True)
class UnknownPayload:
    type: Optional[str] = None


FragmentPayload = Union[
    QueryCompletePayload,
    DidYouMeanPayload,
    AssumptionsPayload,
    PodsPayload,
    StepByStepPayload,
    WarningsPayload,
    NoResultPayload,
    FutureTopicPayload,
    UnknownPayload,
]


@dataclass(slots=True)
class Fragment:
    """A single inbound message, already routed and typed."""

    kind: FragmentKind
    location_id: Optional[str]
    payload: FragmentPayload
    corrected_input: Optional[str] = None
    server: Optional[str] = None
    host: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        if self.kind is FragmentKind.UNKNOWN:
            return str(self.raw.get("type") or "")
        return self.kind.value


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


__all__ = [
    "ASSUMPTIONS_TYPE",
    "DID_YOU_MEAN_TYPE",
    "FUTURE_TOPIC_TYPE",
    "INIT_TYPE",
    "NEW_QUERY_TYPE",
    "NO_RESULT_TYPE",
    "PODS_TYPE",
    "QUERY_COMPLETE_TYPE",
    "STEP_BY_STEP_TYPE",
    "WARNINGS_TYPE",
    "Assumption",
    "AssumptionValue",
    "AssumptionsPayload",
    "DidYouMeanPayload",
    "Fragment",
    "FragmentKind",
    "FragmentPayload",
    "FutureTopicPayload",
    "InitMessage",
    "NewQueryMessage",
    "NoResultPayload",
    "PodsPayload",
    "QueryCompletePayload",
    "StepByStepPayload",
    "UnknownPayload",
    "WarningsPayload",
    "build_init",
    "build_new_query",
]
