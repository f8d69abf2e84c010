"""Polling and subscription engine for a single process.

The poller samples ``live_state()`` on an asyncio timer and fans each
result out to registered subscriptions.  It is an explicit two-state
machine::

    IDLE --start()--> POLLING --stop()--> IDLE
                      POLLING --start()--> POLLING (timer replaced)

Only :meth:`ProcessPoller._transition` creates or cancels the timer task,
so there is never more than one per poller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pyhyperbeam._transport import Representation
from pyhyperbeam.exceptions import HyperBeamError, PredicateNotMetError
from pyhyperbeam.models import ProcessSnapshot
from pyhyperbeam.process import ProcessHandle

_logger = logging.getLogger(__name__)

StateCallback = Callable[[Representation], None]
ErrorCallback = Callable[[Exception], None]


class PollState(StrEnum):
    IDLE = "idle"
    POLLING = "polling"


@dataclass(slots=True, eq=False)
class Subscription:
    """Registration handle returned by :meth:`ProcessPoller.subscribe`.

    Cancelling is idempotent; a cancelled subscription receives nothing
    further, even from a delivery round already in progress.
    """

    callback: StateCallback
    active: bool = True
    delivered: int = field(default=0, repr=False)

    def cancel(self) -> None:
        self.active = False


class ProcessPoller:
    """Turns repeated live-state reads of one process into notifications.

    Usage::

        poller = ProcessPoller(handle, on_error=report)
        poller.subscribe(print)
        poller.start(5.0)
        ...
        await poller.close()
    """

    def __init__(self, handle: ProcessHandle, *, on_error: ErrorCallback | None = None) -> None:
        self._handle = handle
        self._on_error = on_error
        self._subscriptions: list[Subscription] = []
        self._state = PollState.IDLE
        self._interval: float | None = None
        self._task: asyncio.Task[None] | None = None
        self._retired: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Subscription registry
    # ------------------------------------------------------------------

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(s for s in self._subscriptions if s.active)

    def subscribe(self, callback: StateCallback) -> Subscription:
        """Register *callback* to receive every successfully polled state."""
        subscription = Subscription(callback=callback)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.cancel()
        self._prune()

    def _prune(self) -> None:
        self._subscriptions = [s for s in self._subscriptions if s.active]

    def _dispatch(self, state: Representation) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.callback(state)
            except Exception:
                _logger.warning(
                    "Subscriber %r failed for process %s",
                    subscription.callback,
                    self._handle.process_id,
                    exc_info=True,
                )
            else:
                subscription.delivered += 1
        self._prune()

    def _report(self, exc: Exception) -> None:
        _logger.warning("Polling process %s failed: %s", self._handle.process_id, exc)
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception:
            _logger.debug("on_error callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Timer state machine
    # ------------------------------------------------------------------

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def interval(self) -> float | None:
        return self._interval

    def _transition(self, target: PollState, interval: float | None = None) -> None:
        if target is PollState.POLLING and interval is None:
            raise ValueError("entering POLLING requires an interval")
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            self._retired.add(task)
            task.add_done_callback(self._retired.discard)

        if target is PollState.POLLING:
            self._task = asyncio.get_running_loop().create_task(
                self._run(interval),
                name=f"pyhyperbeam-poll-{self._handle.process_id}",
            )
            self._interval = interval
        else:
            self._interval = None
        self._state = target

    def start(self, interval: float) -> None:
        """Poll every *interval* seconds, replacing any running timer.

        Must be called from within a running event loop.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if self._state is PollState.POLLING:
            _logger.debug("Replacing poll timer for process %s (%.3fs)", self._handle.process_id, interval)
        self._transition(PollState.POLLING, interval)

    def stop(self) -> None:
        """Cancel the timer. A no-op when already idle."""
        if self._state is PollState.IDLE:
            return
        self._transition(PollState.IDLE)

    async def close(self) -> None:
        """Stop polling, wait for the timer to unwind and drop all subscriptions."""
        self.stop()
        if self._retired:
            await asyncio.gather(*self._retired, return_exceptions=True)
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()

    async def __aenter__(self) -> ProcessPoller:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.poll_once()

    async def poll_once(self) -> Representation | None:
        """Run a single tick: fetch, then deliver or report.

        Returns the polled state, or ``None`` when the fetch failed.
        """
        try:
            state = await self._handle.live_state()
        except Exception as exc:
            self._report(exc)
            return None
        self._dispatch(state)
        return state

    # ------------------------------------------------------------------
    # One-shot helpers (independent of the timer)
    # ------------------------------------------------------------------

    async def wait_for(
        self,
        predicate: Callable[[Representation], bool],
        max_attempts: int = 10,
        interval: float = 2.0,
    ) -> Representation:
        """Re-read the live state until *predicate* holds.

        A failed fetch counts as a failed attempt; on the final attempt
        it is raised instead.

        Raises
        ------
        PredicateNotMetError
            No state satisfied *predicate* within *max_attempts* reads.
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        last_state: Representation = None
        for attempt in range(1, max_attempts + 1):
            try:
                state = await self._handle.live_state()
            except HyperBeamError as exc:
                if attempt == max_attempts:
                    raise
                _logger.warning(
                    "Attempt %d/%d reading process %s failed: %s",
                    attempt,
                    max_attempts,
                    self._handle.process_id,
                    exc,
                )
            else:
                last_state = state
                if predicate(state):
                    _logger.debug("Predicate met for process %s on attempt %d", self._handle.process_id, attempt)
                    return state

            if attempt < max_attempts and interval > 0:
                await asyncio.sleep(interval)

        raise PredicateNotMetError(
            f"State of process {self._handle.process_id} did not change as expected after {max_attempts} attempts",
            attempts=max_attempts,
            last_state=last_state,
        )

    async def aggregate(self) -> ProcessSnapshot:
        """Fetch live state, log and cached sub-tree concurrently.

        The cached sub-tree is best-effort; live state and log are not.
        """
        state, log, cache = await asyncio.gather(
            self._handle.live_state(),
            self._handle.log(),
            self._handle.cached_subtree(),
            return_exceptions=True,
        )
        for result in (state, log):
            if isinstance(result, BaseException):
                raise result

        cache_error: str | None = None
        if isinstance(cache, Exception):
            _logger.debug("Cached sub-tree of process %s unavailable: %s", self._handle.process_id, cache)
            cache_error = str(cache) or type(cache).__name__
            cache = None
        elif isinstance(cache, BaseException):
            raise cache

        return ProcessSnapshot(
            process_id=self._handle.process_id,
            state=state,
            log=log,
            cache=cache,
            cache_error=cache_error,
        )
