import asyncio
import threading
import time

import pytest

from semsummarize.engine.errors import ForwardPassError
from semsummarize.engine.session import SessionGuard
from semsummarize.engine.types import GenerationRequest, GenerationResult


class _FakeEngine:
    def __init__(self, delay_s: float = 0.0) -> None:
        self.delay_s = delay_s
        self.active = 0
        self.max_active = 0
        self.calls: list[str] = []
        self.shutdown_calls = 0
        self.fail_next = False
        self._counter_lock = threading.Lock()

    @property
    def model_info(self) -> dict:
        return {"model_family": "fake"}

    def generate(self, request: GenerationRequest) -> GenerationResult:
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.fail_next:
                self.fail_next = False
                raise ForwardPassError("boom")
            time.sleep(self.delay_s)
            self.calls.append(request.prompt)
            return GenerationResult(text=request.prompt.upper())
        finally:
            with self._counter_lock:
                self.active -= 1

    def shutdown(self) -> None:
        self.shutdown_calls += 1


def test_concurrent_callers_are_serialized() -> None:
    engine = _FakeEngine(delay_s=0.02)
    guard = SessionGuard(engine)  # type: ignore[arg-type]

    results: dict[int, str] = {}

    def _worker(i: int) -> None:
        results[i] = guard.generate(GenerationRequest(prompt=f"p{i}")).text

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert engine.max_active == 1
    assert sorted(engine.calls) == [f"p{i}" for i in range(6)]
    assert results == {i: f"P{i}" for i in range(6)}
    assert not guard.in_flight


def test_guard_is_released_after_an_error() -> None:
    engine = _FakeEngine()
    guard = SessionGuard(engine)  # type: ignore[arg-type]

    engine.fail_next = True
    with pytest.raises(ForwardPassError):
        guard.generate(GenerationRequest(prompt="x"))

    assert not guard.in_flight
    assert guard.generate(GenerationRequest(prompt="y")).text == "Y"


def test_agenerate_runs_off_the_event_loop_and_serializes() -> None:
    engine = _FakeEngine(delay_s=0.02)
    guard = SessionGuard(engine)  # type: ignore[arg-type]

    async def _run() -> list[str]:
        results = await asyncio.gather(
            *(guard.agenerate(GenerationRequest(prompt=f"q{i}")) for i in range(4))
        )
        return [r.text for r in results]

    assert asyncio.run(_run()) == ["Q0", "Q1", "Q2", "Q3"]
    assert engine.max_active == 1


def test_close_unloads_once_and_rejects_later_calls() -> None:
    engine = _FakeEngine()
    guard = SessionGuard(engine)  # type: ignore[arg-type]

    guard.close()
    guard.close()

    assert guard.closed
    assert engine.shutdown_calls == 1
    with pytest.raises(RuntimeError):
        guard.generate(GenerationRequest(prompt="late"))


def test_model_info_is_forwarded() -> None:
    guard = SessionGuard(_FakeEngine())  # type: ignore[arg-type]
    assert guard.model_info == {"model_family": "fake"}
