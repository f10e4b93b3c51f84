from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest

from wa_socket.client import DID_YOU_MEAN_SUFFIX, QueryResult
from wa_socket.errors import ChannelError
from wa_socket.protocol import FragmentParser

_PARSER = FragmentParser()


class RecordingRouter:
    def __init__(self) -> None:
        self.routes: Dict[str, QueryResult] = {}
        self.released: List[str] = []

    def add(self, session: QueryResult) -> QueryResult:
        self.routes[session.id] = session
        return session

    def rebind(self, old_id: str, session: QueryResult) -> None:
        del self.routes[old_id]
        self.routes[session.id] = session

    def release(self, session: QueryResult) -> None:
        self.released.append(session.id)
        self.routes.pop(session.id, None)


def _frag(type: str, location_id: str = "q1", **fields: Any):
    return _PARSER.parse({"type": type, "locationId": location_id, **fields})


@pytest.fixture
def router() -> RecordingRouter:
    return RecordingRouter()


@pytest.fixture
def session(router) -> QueryResult:
    return router.add(QueryResult(router, "q1", "integrate x", ["*C.x-_*Variable-"]))


def test_initial_state(session) -> None:
    assert session.original_input == "integrate x"
    assert session.input_assumptions == ("*C.x-_*Variable-",)
    assert session.corrected_input is None
    assert session.pods == {}
    assert session.failed is False
    assert not session.done


def test_pods_last_write_wins(session) -> None:
    session.apply(_frag("pods", pods=[{"position": 100, "title": "Input"}, {"position": 200, "title": "Result"}]))
    session.apply(_frag("pods", pods=[{"position": 200, "title": "Result (exact)"}]))

    assert set(session.pods) == {100, 200}
    assert session.pods[200]["title"] == "Result (exact)"
    assert [pod["title"] for pod in session.sorted_pods()] == ["Input", "Result (exact)"]


def test_errored_pods_never_enter_pods(session) -> None:
    session.apply(
        _frag(
            "pods",
            pods=[
                {"position": 300, "title": "Plot", "error": True},
                {"position": 100, "title": "Input"},
            ],
        )
    )

    assert list(session.pods) == [100]
    assert [pod["title"] for pod in session.errored_pods] == ["Plot"]


def test_step_by_step_overwrites_by_position(session) -> None:
    session.apply(_frag("stepByStep", pod={"position": 200, "title": "step 1"}))
    session.apply(_frag("stepByStep", pod={"position": 200, "title": "step 2"}))

    assert session.step_by_step == {200: {"position": 200, "title": "step 2"}}


def test_warnings_single_and_array(router) -> None:
    single = router.add(QueryResult(router, "w1", "x"))
    single.apply(_frag("warnings", location_id="w1", warnings={"text": "spelling"}))
    assert len(single.warnings) == 1

    many = router.add(QueryResult(router, "w2", "x"))
    many.apply(_frag("warnings", location_id="w2", warnings=[{"text": "a"}, {"text": "b"}, {"text": "c"}]))
    assert len(many.warnings) == 3


def test_corrected_input_tracks_last_non_null(session) -> None:
    session.apply(_frag("pods", input="integrate x dx", pods=[]))
    session.apply(_frag("futureTopic", futureTopic={"topic": "Calculus"}))

    assert session.corrected_input == "integrate x dx"
    assert session.future_topics == [{"topic": "Calculus"}]


def test_server_and_host_recorded(session) -> None:
    session.apply(_frag("warnings", s="srv-1", host="www4", warnings=[]))

    assert session.server == "srv-1"
    assert session.host == "www4"


def test_no_result_does_not_complete(session) -> None:
    session.apply(_frag("noResult"))

    assert session.failed is True
    assert not session.completion.settled


def test_query_complete_resolves_and_releases(session, router) -> None:
    session.apply(_frag("queryComplete", timedOut=["Timeline"]))

    assert session.completion.resolved
    assert session.timed_out == ["Timeline"]
    assert router.released == ["q1"]
    assert "q1" not in router.routes


def test_duplicate_query_complete_is_ignored(session, router) -> None:
    session.apply(_frag("queryComplete", timedOut=["first"]))
    session.apply(_frag("queryComplete", timedOut=["second"]))

    assert session.timed_out == ["first"]
    assert router.released == ["q1"]
    assert len(session.fragments) == 1


def test_did_you_mean_rekeys_session(session, router) -> None:
    session.apply(_frag("didyoumean", didyoumean=[{"val": "integrate x^2", "score": "0.5"}]))

    assert session.id == "q1" + DID_YOU_MEAN_SUFFIX
    assert session.did_you_mean == [{"val": "integrate x^2", "score": "0.5"}]
    assert router.routes == {"q1_dym": session}


def test_assumptions_are_expanded(session) -> None:
    session.apply(
        _frag(
            "assumptions",
            assumptions=[
                {
                    "type": "Clash",
                    "template": "Assuming ${desc} is ${word}",
                    "values": [{"desc": "x", "word": "a variable"}],
                }
            ],
        )
    )

    (assumption,) = session.assumptions
    assert assumption.display == "Assuming x is a variable"
    assert assumption.to_dict()["string"] == "Assuming x is a variable"


def test_unknown_fragment_is_recorded_only(session) -> None:
    session.apply(_frag("imageSearch", images=[]))

    assert len(session.fragments) == 1
    assert session.pods == {}


def test_listeners_fire_after_mutation(session) -> None:
    seen = []
    session.on_fragment(lambda fragment: seen.append((fragment.type, dict(session.pods))))

    session.apply(_frag("pods", pods=[{"position": 100, "title": "Input"}]))

    assert seen == [("pods", {100: {"position": 100, "title": "Input"}})]


def test_listener_failure_is_contained(session) -> None:
    seen = []

    def _boom(_fragment):
        raise RuntimeError("listener failure")

    session.on_fragment(_boom)
    unsubscribe = session.on_fragment(seen.append)
    session.apply(_frag("noResult"))
    unsubscribe()
    session.apply(_frag("futureTopic", futureTopic="x"))

    assert [f.type for f in seen] == ["noResult"]
    assert session.future_topics == ["x"]


def test_rejected_session_ignores_later_fragments(session) -> None:
    session.completion.reject(ChannelError("gone"))
    session.apply(_frag("pods", pods=[{"position": 100}]))

    assert session.pods == {}


def test_wait_returns_session(session) -> None:
    async def _run():
        asyncio.get_running_loop().call_soon(session.apply, _frag("queryComplete"))
        return await session.wait(timeout=1.0)

    assert asyncio.run(_run()) is session


def test_wait_times_out(session) -> None:
    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(session.wait(timeout=0.01))


def test_to_dict_summary(session) -> None:
    session.apply(_frag("pods", input="integrate x", pods=[{"position": 200, "title": "B"}, {"position": 100, "title": "A"}]))
    session.apply(_frag("noResult"))

    summary = session.to_dict()

    assert [pod["title"] for pod in summary["pods"]] == ["A", "B"]
    assert summary["failed"] is True
    assert summary["correctedInput"] == "integrate x"
