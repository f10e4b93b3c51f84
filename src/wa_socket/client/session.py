"""Per-query result aggregation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from wa_socket.protocol import (
    Assumption,
    AssumptionsPayload,
    DidYouMeanPayload,
    Fragment,
    FragmentKind,
    FutureTopicPayload,
    PodsPayload,
    QueryCompletePayload,
    StepByStepPayload,
    WarningsPayload,
)

from .assumptions import expand_template
from .completion import Completion

logger = logging.getLogger(__name__)

DID_YOU_MEAN_SUFFIX = "_dym"

FragmentListener = Callable[[Fragment], None]


class SessionRouter(Protocol):
    """Routing table the session reports identity changes and completion to."""

    def rebind(self, old_id: str, session: "QueryResult") -> None: ...

    def release(self, session: "QueryResult") -> None: ...


class QueryResult:
    """Accumulated state for one query, fed by :meth:`apply`.

    A session is created by :meth:`QueryChannel.submit` and registered under
    ``id`` (the wire ``locationId``). Fragments mutate the public fields
    below; :attr:`completion` resolves when the server sends
    ``queryComplete`` and rejects if the channel fails first.
    """

    def __init__(
        self,
        router: Optional[SessionRouter],
        id: str,
        input: str,
        assumptions: Sequence[str] = (),
    ) -> None:
        self.router = router
        self.id = str(id)
        self.original_input = str(input)
        self.input_assumptions: tuple[str, ...] = tuple(assumptions)

        self.corrected_input: Optional[str] = None
        self.did_you_mean: List[Any] = []
        self.pods: Dict[Any, Mapping[str, Any]] = {}
        self.errored_pods: List[Mapping[str, Any]] = []
        # only partially filled without a pro subscription
        self.step_by_step: Dict[Any, Mapping[str, Any]] = {}
        self.assumptions: List[Assumption] = []
        self.warnings: List[Any] = []
        self.failed = False
        self.future_topics: List[Any] = []
        self.timed_out: List[Any] = []
        self.fragments: List[Fragment] = []

        self.server: Optional[str] = None
        self.host: Optional[str] = None

        self.completion = Completion()
        self._listeners: List[FragmentListener] = []
        self._handlers: Dict[FragmentKind, Callable[[Fragment], None]] = {
            FragmentKind.QUERY_COMPLETE: self._on_query_complete,
            FragmentKind.DID_YOU_MEAN: self._on_did_you_mean,
            FragmentKind.ASSUMPTIONS: self._on_assumptions,
            FragmentKind.PODS: self._on_pods,
            FragmentKind.STEP_BY_STEP: self._on_step_by_step,
            FragmentKind.WARNINGS: self._on_warnings,
            FragmentKind.NO_RESULT: self._on_no_result,
            FragmentKind.FUTURE_TOPIC: self._on_future_topic,
        }

    # --- caller surface ------------------------------------------------------
    @property
    def done(self) -> bool:
        return self.completion.settled

    def on_fragment(self, listener: FragmentListener) -> Callable[[], None]:
        """Register *listener* for every applied fragment; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _remove

    async def wait(self, timeout: float | None = None) -> "QueryResult":
        if timeout is None:
            await self.completion
        else:
            await asyncio.wait_for(self.completion, timeout)
        return self

    def sorted_pods(self) -> List[Mapping[str, Any]]:
        return [self.pods[key] for key in sorted(self.pods, key=_position_key)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "input": self.original_input,
            "assumption": list(self.input_assumptions),
            "correctedInput": self.corrected_input,
            "didyoumean": list(self.did_you_mean),
            "assumptions": [a.to_dict() for a in self.assumptions],
            "warnings": list(self.warnings),
            "pods": [dict(pod) for pod in self.sorted_pods()],
            "erroredPods": [dict(pod) for pod in self.errored_pods],
            "stepByStep": [dict(self.step_by_step[k]) for k in sorted(self.step_by_step, key=_position_key)],
            "futureTopic": list(self.future_topics),
            "timedOut": list(self.timed_out),
            "failed": self.failed,
        }

    # --- fragment ingestion --------------------------------------------------
    def apply(self, fragment: Fragment) -> None:
        """Fold *fragment* into the session. Never raises."""

        if self.completion.settled:
            logger.debug("session %s settled; dropping %s fragment", self.id, fragment.type)
            return
        self.fragments.append(fragment)
        if fragment.corrected_input is not None:
            self.corrected_input = fragment.corrected_input
        if fragment.server:
            self.server = fragment.server
        if fragment.host:
            self.host = fragment.host

        handler = self._handlers.get(fragment.kind)
        if handler is None:
            logger.debug("session %s ignoring fragment type=%s", self.id, fragment.type)
        else:
            try:
                handler(fragment)
            except Exception:
                logger.warning("session %s failed to apply %s fragment", self.id, fragment.type, exc_info=True)

        for listener in list(self._listeners):
            try:
                listener(fragment)
            except Exception:
                logger.debug("fragment listener failed (session=%s)", self.id, exc_info=True)

    def _on_query_complete(self, fragment: Fragment) -> None:
        payload: QueryCompletePayload = fragment.payload  # type: ignore[assignment]
        self.timed_out = list(payload.timed_out)
        self.completion.resolve(None)
        if self.router is not None:
            self.router.release(self)
        logger.debug(
            "session %s complete: pods=%d errored=%d timed_out=%s",
            self.id,
            len(self.pods),
            len(self.errored_pods),
            self.timed_out,
        )

    def _on_did_you_mean(self, fragment: Fragment) -> None:
        payload: DidYouMeanPayload = fragment.payload  # type: ignore[assignment]
        self.did_you_mean.extend(payload.suggestions)
        old_id = self.id
        self.id = old_id + DID_YOU_MEAN_SUFFIX
        if self.router is not None:
            self.router.rebind(old_id, self)
        logger.debug("session re-keyed %s -> %s", old_id, self.id)

    def _on_assumptions(self, fragment: Fragment) -> None:
        payload: AssumptionsPayload = fragment.payload  # type: ignore[assignment]
        for assumption in payload.assumptions:
            assumption.display = expand_template(assumption, self.original_input)
            self.assumptions.append(assumption)

    def _on_pods(self, fragment: Fragment) -> None:
        payload: PodsPayload = fragment.payload  # type: ignore[assignment]
        for pod in payload.pods:
            if pod.get("error"):
                self.errored_pods.append(pod)
            else:
                self.pods[pod["position"]] = pod

    def _on_step_by_step(self, fragment: Fragment) -> None:
        payload: StepByStepPayload = fragment.payload  # type: ignore[assignment]
        self.step_by_step[payload.pod["position"]] = payload.pod

    def _on_warnings(self, fragment: Fragment) -> None:
        payload: WarningsPayload = fragment.payload  # type: ignore[assignment]
        self.warnings.extend(payload.warnings)

    def _on_no_result(self, fragment: Fragment) -> None:
        self.failed = True

    def _on_future_topic(self, fragment: Fragment) -> None:
        payload: FutureTopicPayload = fragment.payload  # type: ignore[assignment]
        self.future_topics.append(payload.topic)

    def __repr__(self) -> str:
        return (
            f"<QueryResult id={self.id!r} input={self.original_input!r} "
            f"pods={len(self.pods)} {self.completion!r}>"
        )


def _position_key(position: Any) -> tuple[int, Any]:
    try:
        return (0, float(position))
    except (TypeError, ValueError):
        return (1, str(position))


__all__ = ["DID_YOU_MEAN_SUFFIX", "FragmentListener", "QueryResult", "SessionRouter"]
