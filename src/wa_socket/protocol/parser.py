"""Parse inbound websocket text into typed :class:`Fragment` objects."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping

from wa_socket.errors import MalformedFragmentError

from .messages import (
    Assumption,
    AssumptionValue,
    AssumptionsPayload,
    DidYouMeanPayload,
    Fragment,
    FragmentKind,
    FragmentPayload,
    FutureTopicPayload,
    NoResultPayload,
    PodsPayload,
    QueryCompletePayload,
    StepByStepPayload,
    UnknownPayload,
    WarningsPayload,
)


def _sequence(data: Mapping[str, Any], key: str, *, required: bool = True) -> List[Any]:
    value = data.get(key)
    if value is None:
        if required:
            raise MalformedFragmentError(f"fragment missing '{key}'")
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    raise MalformedFragmentError(f"fragment '{key}' must be a list, got {type(value).__name__}")


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedFragmentError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _optional_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _load_query_complete(data: Mapping[str, Any]) -> QueryCompletePayload:
    return QueryCompletePayload(timed_out=_sequence(data, "timedOut", required=False))


def _load_did_you_mean(data: Mapping[str, Any]) -> DidYouMeanPayload:
    return DidYouMeanPayload(suggestions=_sequence(data, "didyoumean"))


def _load_assumption(entry: Any) -> Assumption:
    block = _mapping(entry, "assumption")
    template = block.get("template")
    if not isinstance(template, str):
        raise MalformedFragmentError("assumption 'template' must be a string")
    values = [AssumptionValue.from_dict(_mapping(v, "assumption value")) for v in _sequence(block, "values", required=False)]
    return Assumption(
        template=template,
        values=values,
        type=_optional_text(block.get("type")),
        word=_optional_text(block.get("word")),
        query=_optional_text(block.get("query")),
        raw=dict(block),
    )


def _load_assumptions(data: Mapping[str, Any]) -> AssumptionsPayload:
    return AssumptionsPayload(assumptions=[_load_assumption(entry) for entry in _sequence(data, "assumptions")])


def _load_pods(data: Mapping[str, Any]) -> PodsPayload:
    pods: List[Mapping[str, Any]] = []
    for entry in _sequence(data, "pods"):
        pod = _mapping(entry, "pod")
        if not pod.get("error") and pod.get("position") is None:
            raise MalformedFragmentError("pod without error flag is missing 'position'")
        pods.append(pod)
    return PodsPayload(pods=pods)


def _load_step_by_step(data: Mapping[str, Any]) -> StepByStepPayload:
    pod = _mapping(data.get("pod"), "stepByStep pod")
    if pod.get("position") is None:
        raise MalformedFragmentError("stepByStep pod is missing 'position'")
    return StepByStepPayload(pod=pod)


def _load_warnings(data: Mapping[str, Any]) -> WarningsPayload:
    value = data.get("warnings")
    if value is None:
        raise MalformedFragmentError("fragment missing 'warnings'")
    if isinstance(value, (list, tuple)):
        return WarningsPayload(warnings=list(value))
    return WarningsPayload(warnings=[value])


def _load_no_result(data: Mapping[str, Any]) -> NoResultPayload:
    return NoResultPayload()


def _load_future_topic(data: Mapping[str, Any]) -> FutureTopicPayload:
    return FutureTopicPayload(topic=data.get("futureTopic"))


_LOADERS: Dict[FragmentKind, Callable[[Mapping[str, Any]], FragmentPayload]] = {
    FragmentKind.QUERY_COMPLETE: _load_query_complete,
    FragmentKind.DID_YOU_MEAN: _load_did_you_mean,
    FragmentKind.ASSUMPTIONS: _load_assumptions,
    FragmentKind.PODS: _load_pods,
    FragmentKind.STEP_BY_STEP: _load_step_by_step,
    FragmentKind.WARNINGS: _load_warnings,
    FragmentKind.NO_RESULT: _load_no_result,
    FragmentKind.FUTURE_TOPIC: _load_future_topic,
}


class FragmentParser:
    """Turn decoded JSON objects into :class:`Fragment` instances.

    Unknown ``type`` values are not an error; they produce a fragment with
    :attr:`FragmentKind.UNKNOWN` so the session can still record it. Shapes
    that cannot be routed or accumulated raise :class:`MalformedFragmentError`.
    """

    def parse(self, data: Mapping[str, Any]) -> Fragment:
        data = _mapping(data, "fragment")
        raw_type = data.get("type")
        kind = FragmentKind.from_wire(raw_type)
        loader = _LOADERS.get(kind)
        try:
            payload = loader(data) if loader is not None else UnknownPayload(type=_optional_text(raw_type))
        except MalformedFragmentError:
            raise
        except (TypeError, ValueError, AttributeError) as exc:
            raise MalformedFragmentError(f"{raw_type} fragment could not be parsed: {exc}") from exc
        return Fragment(
            kind=kind,
            location_id=_optional_text(data.get("locationId")),
            payload=payload,
            corrected_input=_optional_text(data.get("input")),
            server=_optional_text(data.get("s")),
            host=_optional_text(data.get("host")),
            raw=data,
        )

    def parse_json(self, raw: str | bytes | bytearray) -> Fragment:
        try:
            mapping = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as exc:
            raise MalformedFragmentError(f"fragment is not valid JSON: {exc}") from exc
        return self.parse(mapping)


__all__ = ["FragmentParser"]
