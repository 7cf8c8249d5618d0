"""Delegated credential refresh with cooldown and in-flight deduplication.

When credentials owned by an external tool expire, usagehub cannot refresh
them itself. Instead it asks the tool to do it (``tool.touch``) and then
watches the secure store for a change. The touch is expensive and may show
UI, so all callers in the process share one coordinator:

* concurrent callers join the attempt already in flight;
* a cooldown (short after a failure, long after a success) limits how often
  the tool is triggered, and is persisted across restarts.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import itertools
import logging
import math
import threading
import time
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from enum import StrEnum
from typing import Protocol

import msgspec

from usagehub.config.cache import CooldownState
from usagehub.config.cache import CooldownStore
from usagehub.config.cache import MemoryCooldownStore

logger = logging.getLogger(__name__)

DEFAULT_LONG_COOLDOWN = timedelta(minutes=5)
DEFAULT_SHORT_COOLDOWN = timedelta(seconds=20)
DEFAULT_POLL_DELAYS = (0.2, 0.5, 0.8)
MAX_OBSERVATION_WINDOW = 2.0

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]
FingerprintReader = Callable[[], str | None]
Monotonic = Callable[[], float]


class DelegatedRefreshTool(Protocol):
    """External tool that refreshes credentials it owns as a side effect."""

    def is_available(self) -> bool: ...

    async def touch(self, timeout: float) -> None: ...


class RefreshOutcomeKind(StrEnum):
    SKIPPED_BY_COOLDOWN = "skipped_by_cooldown"
    CLI_UNAVAILABLE = "cli_unavailable"
    ATTEMPTED_SUCCEEDED = "attempted_succeeded"
    ATTEMPTED_FAILED = "attempted_failed"


class RefreshOutcome(msgspec.Struct, frozen=True):
    """Result of a delegated refresh. Returned, never raised."""

    kind: RefreshOutcomeKind
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED


SKIPPED_BY_COOLDOWN = RefreshOutcome(RefreshOutcomeKind.SKIPPED_BY_COOLDOWN)
CLI_UNAVAILABLE = RefreshOutcome(RefreshOutcomeKind.CLI_UNAVAILABLE)
ATTEMPTED_SUCCEEDED = RefreshOutcome(RefreshOutcomeKind.ATTEMPTED_SUCCEEDED)
NO_CHANGE_REASON = "secure store did not change after the refresh tool ran"


class _InFlightAttempt:
    __slots__ = ("attempt_id", "future")

    def __init__(self, attempt_id: int):
        self.attempt_id = attempt_id
        self.future: concurrent.futures.Future[RefreshOutcome] = (
            concurrent.futures.Future()
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RefreshCoordinator:
    """Rate-limited, deduplicated delegated refresh."""

    def __init__(
        self,
        tool: DelegatedRefreshTool,
        fingerprint_reader: FingerprintReader,
        store: CooldownStore | None = None,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
        poll_delays: Sequence[float] = DEFAULT_POLL_DELAYS,
        long_cooldown: timedelta = DEFAULT_LONG_COOLDOWN,
        short_cooldown: timedelta = DEFAULT_SHORT_COOLDOWN,
        monotonic: Monotonic = time.monotonic,
    ):
        self.tool = tool
        self.fingerprint_reader = fingerprint_reader
        self.store = store or MemoryCooldownStore()
        self.clock = clock or _utcnow
        self.sleep = sleep or asyncio.sleep
        self.poll_delays = tuple(poll_delays)
        self.long_cooldown = long_cooldown
        self.short_cooldown = short_cooldown
        self.monotonic = monotonic

        self._lock = threading.Lock()
        self._state = self.store.load()
        self._in_flight: _InFlightAttempt | None = None
        self._attempt_ids = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()

    # State (call with self._lock held)

    def _remaining_locked(self, now: datetime) -> float:
        last = self._state.last_attempt_at
        if last is None:
            return 0.0
        cooldown = self._state.cooldown_seconds
        if cooldown is None:
            cooldown = self.long_cooldown.total_seconds()
        return cooldown - (now - last).total_seconds()

    def _record_locked(self, now: datetime, cooldown: timedelta) -> CooldownState:
        self._state = CooldownState(
            last_attempt_at=now, cooldown_seconds=cooldown.total_seconds()
        )
        return self._state

    def _record(self, now: datetime, cooldown: timedelta) -> None:
        with self._lock:
            state = self._record_locked(now, cooldown)
        self.store.save(state)

    # Queries

    def is_in_cooldown(self, now: datetime | None = None) -> bool:
        now = now or self.clock()
        with self._lock:
            return self._remaining_locked(now) > 0

    def cooldown_remaining_seconds(self, now: datetime | None = None) -> int | None:
        """Seconds left in the cooldown, rounded up, or None when not cooling down."""
        now = now or self.clock()
        with self._lock:
            remaining = self._remaining_locked(now)
        if remaining <= 0:
            return None
        return math.ceil(remaining)

    def cooldown_state(self) -> CooldownState:
        with self._lock:
            return self._state

    def reset(self) -> None:
        """Forget cooldown and any in-flight attempt."""
        with self._lock:
            self._state = CooldownState()
            self._in_flight = None
        self.store.clear()

    # Attempt

    async def attempt(
        self, now: datetime | None = None, timeout: float = 8.0
    ) -> RefreshOutcome:
        """Run a delegated refresh, or join the one already running.

        Cancelling the caller only detaches it; the shared attempt continues
        and its outcome is delivered to every other joined caller.
        """
        now = now or self.clock()
        reserved: CooldownState | None = None

        with self._lock:
            in_flight = self._in_flight
            if in_flight is None:
                if self._remaining_locked(now) > 0:
                    logger.debug("Delegated refresh skipped by cooldown")
                    return SKIPPED_BY_COOLDOWN
                # Reserve with a short cooldown; the outcome extends it or keeps it.
                reserved = self._record_locked(now, self.short_cooldown)
                in_flight = _InFlightAttempt(next(self._attempt_ids))
                self._in_flight = in_flight

        if reserved is not None:
            self.store.save(reserved)
            task = asyncio.get_running_loop().create_task(
                self._run(in_flight, now, timeout)
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.debug("Joining in-flight delegated refresh %d", in_flight.attempt_id)

        return await asyncio.shield(asyncio.wrap_future(in_flight.future))

    async def _run(
        self, in_flight: _InFlightAttempt, now: datetime, timeout: float
    ) -> None:
        outcome: RefreshOutcome | None = None
        try:
            outcome = await self._perform(now, timeout)
        except Exception as e:
            logger.exception("Delegated refresh crashed")
            self._record(now, self.short_cooldown)
            outcome = RefreshOutcome(RefreshOutcomeKind.ATTEMPTED_FAILED, str(e))
        finally:
            with self._lock:
                if (
                    self._in_flight is not None
                    and self._in_flight.attempt_id == in_flight.attempt_id
                ):
                    self._in_flight = None
            if outcome is None:
                in_flight.future.cancel()
            else:
                in_flight.future.set_result(outcome)

    async def _perform(self, now: datetime, timeout: float) -> RefreshOutcome:
        if not self.tool.is_available():
            logger.info("Delegated refresh skipped: refresh tool unavailable")
            return CLI_UNAVAILABLE

        baseline = await self._read_fingerprint()
        touch_error: str | None = None
        try:
            await self.tool.touch(timeout)
        except Exception as e:
            touch_error = str(e) or type(e).__name__
            logger.debug("Delegated refresh touch error: %s", touch_error)

        window = min(max(timeout, 1.0), MAX_OBSERVATION_WINDOW)
        if await self._wait_for_change(baseline, window):
            self._record(now, self.long_cooldown)
            logger.info("Delegated refresh succeeded")
            return ATTEMPTED_SUCCEEDED

        self._record(now, self.short_cooldown)
        if touch_error is not None:
            logger.warning("Delegated refresh touch failed: %s", touch_error)
            return RefreshOutcome(RefreshOutcomeKind.ATTEMPTED_FAILED, touch_error)
        logger.warning("Delegated refresh did not update the secure store")
        return RefreshOutcome(RefreshOutcomeKind.ATTEMPTED_FAILED, NO_CHANGE_REASON)

    async def _read_fingerprint(self) -> str | None:
        # Readers hit the keyring or spawn a helper process.
        try:
            return await asyncio.to_thread(self.fingerprint_reader)
        except Exception as e:
            logger.debug("Fingerprint read failed: %s", e)
            return None

    async def _changed(self, baseline: str | None) -> bool:
        # An unreadable fingerprint on either side is never evidence of change.
        if baseline is None:
            return False
        current = await self._read_fingerprint()
        return current is not None and current != baseline

    async def _wait_for_change(self, baseline: str | None, window: float) -> bool:
        if baseline is None:
            return False
        deadline = self.monotonic() + window
        if await self._changed(baseline):
            return True

        # Bounded by both scheduled sleep and wall time spent reading.
        slept = 0.0
        for delay in (d for d in self.poll_delays if d <= window):
            if slept >= window or self.monotonic() + delay > deadline:
                break
            await self.sleep(delay)
            slept += delay
            if await self._changed(baseline):
                return True
        return False
