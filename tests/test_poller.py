from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from pyhyperbeam.exceptions import HyperBeamTimeoutError, PredicateNotMetError, RequestFailedError
from pyhyperbeam.poller import PollState, ProcessPoller


def _failure() -> RequestFailedError:
    return RequestFailedError("HTTP 503: Service Unavailable", status_code=503, status_text="Service Unavailable")


@dataclass
class FakeHandle:
    """Stands in for ProcessHandle; each view pops scripted results in order.

    Exceptions in a script are raised; once a script runs out its last
    entry repeats.
    """

    process_id: str = "PID"
    states: list[Any] = field(default_factory=lambda: [{"n": 1}])
    logs: list[Any] = field(default_factory=lambda: [[]])
    caches: list[Any] = field(default_factory=lambda: [{}])
    calls: dict[str, int] = field(default_factory=dict)

    def _next(self, view: str, script: list[Any]) -> Any:
        index = self.calls.get(view, 0)
        self.calls[view] = index + 1
        result = script[min(index, len(script) - 1)]
        if isinstance(result, Exception):
            raise result
        return result

    async def live_state(self) -> Any:
        return self._next("now", self.states)

    async def log(self) -> Any:
        return self._next("schedule", self.logs)

    async def cached_subtree(self, path: str | None = None) -> Any:
        return self._next("cache", self.caches)


def _poller(handle: FakeHandle, on_error: Callable[[Exception], None] | None = None) -> ProcessPoller:
    return ProcessPoller(handle, on_error=on_error)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_poll_once_delivers_to_every_subscriber() -> None:
    poller = _poller(FakeHandle(states=[{"n": 1}]))
    received_a: list[Any] = []
    received_b: list[Any] = []
    poller.subscribe(received_a.append)
    poller.subscribe(received_b.append)

    state = await poller.poll_once()

    assert state == {"n": 1}
    assert received_a == [{"n": 1}]
    assert received_b == [{"n": 1}]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    poller = _poller(FakeHandle())
    received: list[Any] = []

    def _broken(_state: Any) -> None:
        raise RuntimeError("observer bug")

    broken = poller.subscribe(_broken)
    healthy = poller.subscribe(received.append)

    with caplog.at_level(logging.WARNING, logger="pyhyperbeam.poller"):
        await poller.poll_once()

    assert received == [{"n": 1}]
    assert broken.delivered == 0
    assert healthy.delivered == 1
    assert broken.active
    assert any(r.exc_info and "observer bug" in str(r.exc_info[1]) for r in caplog.records)


@pytest.mark.asyncio
async def test_unsubscribed_callbacks_receive_nothing() -> None:
    poller = _poller(FakeHandle())
    received: list[Any] = []
    subscription = poller.subscribe(received.append)

    poller.unsubscribe(subscription)
    await poller.poll_once()

    assert received == []
    assert poller.subscriptions == ()


@pytest.mark.asyncio
async def test_subscription_cancelled_mid_round_is_skipped() -> None:
    poller = _poller(FakeHandle())
    received: list[Any] = []
    later = None

    def _cancel_later(_state: Any) -> None:
        assert later is not None
        later.cancel()

    poller.subscribe(_cancel_later)
    later = poller.subscribe(received.append)

    await poller.poll_once()

    assert received == []
    assert len(poller.subscriptions) == 1


@pytest.mark.asyncio
async def test_tick_failure_is_reported_and_not_delivered() -> None:
    errors: list[Exception] = []
    poller = _poller(FakeHandle(states=[_failure()]), on_error=errors.append)
    received: list[Any] = []
    poller.subscribe(received.append)

    assert await poller.poll_once() is None

    assert received == []
    assert len(errors) == 1
    assert isinstance(errors[0], RequestFailedError)


@pytest.mark.asyncio
async def test_timer_survives_tick_failures() -> None:
    errors: list[Exception] = []
    handle = FakeHandle(states=[_failure(), _failure(), {"n": 2}])
    poller = _poller(handle, on_error=errors.append)
    received: list[Any] = []
    poller.subscribe(received.append)

    poller.start(0.01)
    await asyncio.sleep(0.2)
    assert poller.state is PollState.POLLING
    await poller.close()

    assert len(errors) == 2
    assert received and all(state == {"n": 2} for state in received)


@pytest.mark.asyncio
async def test_on_error_callback_failure_is_contained() -> None:
    def _bad_reporter(_exc: Exception) -> None:
        raise RuntimeError("reporter bug")

    poller = _poller(FakeHandle(states=[_failure()]), on_error=_bad_reporter)
    assert await poller.poll_once() is None


@pytest.mark.asyncio
async def test_start_twice_keeps_a_single_timer() -> None:
    handle = FakeHandle()
    poller = _poller(handle)
    received: list[Any] = []
    poller.subscribe(received.append)

    poller.start(0.1)
    poller.start(0.1)
    assert poller.state is PollState.POLLING
    assert poller.interval == 0.1

    await asyncio.sleep(0.35)
    await poller.close()

    # One timer ticks ~3 times in 0.35s; two would deliver ~6.
    assert 2 <= len(received) <= 4
    assert handle.calls["now"] == len(received)


@pytest.mark.asyncio
async def test_restart_changes_interval() -> None:
    poller = _poller(FakeHandle())
    poller.start(10.0)
    poller.start(0.5)
    assert poller.interval == 0.5
    await poller.close()


@pytest.mark.asyncio
async def test_stop_cancels_timer_and_is_idempotent() -> None:
    handle = FakeHandle()
    poller = _poller(handle)

    poller.stop()
    assert poller.state is PollState.IDLE

    poller.start(0.02)
    await asyncio.sleep(0.07)
    poller.stop()
    poller.stop()
    assert poller.state is PollState.IDLE
    assert poller.interval is None

    ticks = handle.calls.get("now", 0)
    await asyncio.sleep(0.08)
    assert handle.calls.get("now", 0) == ticks


@pytest.mark.asyncio
async def test_close_drops_subscriptions() -> None:
    poller = _poller(FakeHandle())
    subscription = poller.subscribe(lambda _state: None)
    poller.start(0.05)

    async with poller:
        pass

    assert poller.state is PollState.IDLE
    assert poller.subscriptions == ()
    assert not subscription.active


@pytest.mark.asyncio
async def test_polling_without_interval_is_rejected_and_timer_kept() -> None:
    poller = _poller(FakeHandle())
    poller.start(10.0)

    with pytest.raises(ValueError):
        poller._transition(PollState.POLLING)

    assert poller.state is PollState.POLLING
    assert poller.interval == 10.0
    await poller.close()


@pytest.mark.parametrize("interval", [0, -1.0])
def test_start_rejects_non_positive_interval(interval: float) -> None:
    with pytest.raises(ValueError):
        _poller(FakeHandle()).start(interval)


@pytest.mark.asyncio
async def test_wait_for_never_true_makes_exactly_max_attempts() -> None:
    handle = FakeHandle(states=[{"n": 1}])
    poller = _poller(handle)

    with pytest.raises(PredicateNotMetError) as exc_info:
        await poller.wait_for(lambda _state: False, max_attempts=3, interval=0)

    assert handle.calls["now"] == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.last_state == {"n": 1}


@pytest.mark.asyncio
async def test_wait_for_returns_first_matching_state() -> None:
    handle = FakeHandle(states=[{"n": 1}, {"n": 2}, {"n": 3}])
    poller = _poller(handle)

    state = await poller.wait_for(lambda s: s["n"] >= 2, max_attempts=5, interval=0.001)

    assert state == {"n": 2}
    assert handle.calls["now"] == 2


@pytest.mark.asyncio
async def test_wait_for_counts_fetch_errors_as_failed_attempts() -> None:
    handle = FakeHandle(states=[_failure(), HyperBeamTimeoutError("timed out"), {"ready": True}])
    poller = _poller(handle)

    state = await poller.wait_for(lambda s: s.get("ready") is True, max_attempts=3, interval=0)

    assert state == {"ready": True}
    assert handle.calls["now"] == 3


@pytest.mark.asyncio
async def test_wait_for_surfaces_error_on_final_attempt() -> None:
    handle = FakeHandle(states=[{"ready": False}, _failure()])
    poller = _poller(handle)

    with pytest.raises(RequestFailedError):
        await poller.wait_for(lambda s: s.get("ready") is True, max_attempts=2, interval=0)

    assert handle.calls["now"] == 2


@pytest.mark.asyncio
async def test_wait_for_sleeps_between_attempts_only(monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []

    async def _fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr("pyhyperbeam.poller.asyncio.sleep", _fake_sleep)
    poller = _poller(FakeHandle())

    with pytest.raises(PredicateNotMetError):
        await poller.wait_for(lambda _state: False, max_attempts=3, interval=1.5)

    assert sleeps == [1.5, 1.5]


@pytest.mark.asyncio
async def test_wait_for_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        await _poller(FakeHandle()).wait_for(lambda _state: True, max_attempts=0)


@pytest.mark.asyncio
async def test_aggregate_collects_all_views() -> None:
    handle = FakeHandle(states=[{"n": 1}], logs=[[{"slot": 0}]], caches=[{"balances": {"a": "1"}}])

    snapshot = await _poller(handle).aggregate()

    assert snapshot.process_id == "PID"
    assert snapshot.state == {"n": 1}
    assert snapshot.log == [{"slot": 0}]
    assert snapshot.cache == {"balances": {"a": "1"}}
    assert snapshot.cache_available
    assert snapshot.fetched_at.tzinfo is not None


@pytest.mark.asyncio
async def test_aggregate_tolerates_cache_failure() -> None:
    handle = FakeHandle(states=[{"n": 1}], logs=[[{"slot": 0}]], caches=[_failure()])

    snapshot = await _poller(handle).aggregate()

    assert snapshot.state == {"n": 1}
    assert snapshot.log == [{"slot": 0}]
    assert snapshot.cache is None
    assert not snapshot.cache_available
    assert "503" in (snapshot.cache_error or "")


@pytest.mark.asyncio
@pytest.mark.parametrize("broken", ["states", "logs"])
async def test_aggregate_fails_when_state_or_log_fails(broken: str) -> None:
    handle = FakeHandle()
    setattr(handle, broken, [_failure()])

    with pytest.raises(RequestFailedError):
        await _poller(handle).aggregate()
