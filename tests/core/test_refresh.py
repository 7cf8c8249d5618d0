"""Tests for core/refresh.py (delegated refresh coordinator)."""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta

import pytest

from conftest import FakeClock
from conftest import FakeFingerprint
from conftest import FakeRefreshTool
from conftest import no_sleep
from usagehub.config.cache import CooldownState
from usagehub.config.cache import FileCooldownStore
from usagehub.config.cache import MemoryCooldownStore
from usagehub.core.refresh import NO_CHANGE_REASON
from usagehub.core.refresh import RefreshCoordinator
from usagehub.core.refresh import RefreshOutcomeKind


def make_coordinator(
    tool: FakeRefreshTool,
    fingerprint: FakeFingerprint,
    clock: FakeClock,
    **kwargs,
) -> RefreshCoordinator:
    kwargs.setdefault("sleep", no_sleep)
    return RefreshCoordinator(
        tool=tool, fingerprint_reader=fingerprint, clock=clock, **kwargs
    )


class TestRefreshOutcomes:
    @pytest.mark.asyncio
    async def test_changed_fingerprint_succeeds_with_long_cooldown(self, clock, fingerprint):
        tool = FakeRefreshTool(fingerprint=fingerprint)
        coordinator = make_coordinator(tool, fingerprint, clock)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED
        assert outcome.succeeded
        assert tool.touch_count == 1
        state = coordinator.cooldown_state()
        assert state.last_attempt_at == clock.now
        assert state.cooldown_seconds == 300

    @pytest.mark.asyncio
    async def test_unchanged_fingerprint_fails_with_short_cooldown(self, clock, fingerprint):
        tool = FakeRefreshTool()
        coordinator = make_coordinator(tool, fingerprint, clock)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_FAILED
        assert outcome.reason == NO_CHANGE_REASON
        assert coordinator.cooldown_state().cooldown_seconds == 20

    @pytest.mark.asyncio
    async def test_touch_error_is_reported(self, clock, fingerprint):
        tool = FakeRefreshTool(error=TimeoutError("claude CLI timed out after 8s"))
        coordinator = make_coordinator(tool, fingerprint, clock)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_FAILED
        assert outcome.reason == "claude CLI timed out after 8s"

    @pytest.mark.asyncio
    async def test_touch_error_with_change_still_succeeds(self, clock, fingerprint):
        tool = FakeRefreshTool(fingerprint=fingerprint, error=RuntimeError("exit 1"))
        coordinator = make_coordinator(tool, fingerprint, clock)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED

    @pytest.mark.asyncio
    async def test_unavailable_tool(self, clock, fingerprint):
        tool = FakeRefreshTool(available=False)
        coordinator = make_coordinator(tool, fingerprint, clock)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.CLI_UNAVAILABLE
        assert tool.touch_count == 0
        # The reservation still holds a short cooldown.
        assert coordinator.is_in_cooldown()
        assert coordinator.cooldown_state().cooldown_seconds == 20

    @pytest.mark.asyncio
    async def test_unreadable_baseline_is_never_success(self, clock):
        fingerprint = FakeFingerprint(value=None)
        tool = FakeRefreshTool(fingerprint=fingerprint)
        coordinator = make_coordinator(tool, fingerprint, clock)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_FAILED
        assert tool.touch_count == 1

    @pytest.mark.asyncio
    async def test_unreadable_current_fingerprint_is_not_change(self, clock, fingerprint):
        class VanishingTool(FakeRefreshTool):
            async def touch(self, timeout):
                await super().touch(timeout)
                fingerprint.value = None

        coordinator = make_coordinator(VanishingTool(), fingerprint, clock)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_FAILED

    @pytest.mark.asyncio
    async def test_fingerprint_reader_exception_is_not_change(self, clock):
        def broken_reader():
            raise OSError("unreadable")

        coordinator = RefreshCoordinator(
            tool=FakeRefreshTool(), fingerprint_reader=broken_reader, clock=clock, sleep=no_sleep
        )

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_FAILED


class TestCooldown:
    @pytest.mark.asyncio
    async def test_cooldown_boundary(self, clock, fingerprint):
        tool = FakeRefreshTool(fingerprint=fingerprint)
        coordinator = make_coordinator(tool, fingerprint, clock)
        t0 = clock.now

        await coordinator.attempt(now=t0)

        just_before = t0 + timedelta(seconds=299)
        assert coordinator.is_in_cooldown(just_before)
        skipped = await coordinator.attempt(now=just_before)
        assert skipped.kind == RefreshOutcomeKind.SKIPPED_BY_COOLDOWN
        assert tool.touch_count == 1

        at_boundary = t0 + timedelta(seconds=300)
        assert not coordinator.is_in_cooldown(at_boundary)
        outcome = await coordinator.attempt(now=at_boundary)
        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED
        assert tool.touch_count == 2

    @pytest.mark.asyncio
    async def test_failed_attempt_uses_short_cooldown(self, clock, fingerprint):
        tool = FakeRefreshTool()
        coordinator = make_coordinator(tool, fingerprint, clock)
        t0 = clock.now

        await coordinator.attempt(now=t0)

        assert coordinator.is_in_cooldown(t0 + timedelta(seconds=19))
        assert not coordinator.is_in_cooldown(t0 + timedelta(seconds=20))

    @pytest.mark.asyncio
    async def test_remaining_seconds_rounds_up(self, clock, fingerprint):
        coordinator = make_coordinator(
            FakeRefreshTool(fingerprint=fingerprint), fingerprint, clock
        )
        t0 = clock.now
        await coordinator.attempt(now=t0)

        assert coordinator.cooldown_remaining_seconds(t0 + timedelta(seconds=0.5)) == 300
        assert coordinator.cooldown_remaining_seconds(t0 + timedelta(seconds=299.2)) == 1
        assert coordinator.cooldown_remaining_seconds(t0 + timedelta(seconds=300)) is None

    @pytest.mark.asyncio
    async def test_reset_clears_cooldown_and_store(self, clock, fingerprint):
        store = MemoryCooldownStore()
        coordinator = make_coordinator(
            FakeRefreshTool(fingerprint=fingerprint), fingerprint, clock, store=store
        )
        await coordinator.attempt()
        assert coordinator.is_in_cooldown()

        coordinator.reset()

        assert not coordinator.is_in_cooldown()
        assert store.load() == CooldownState()

    @pytest.mark.asyncio
    async def test_cooldown_persists_across_instances(self, tmp_path, clock, fingerprint):
        path = tmp_path / "refresh.json"
        first = make_coordinator(
            FakeRefreshTool(fingerprint=fingerprint),
            fingerprint,
            clock,
            store=FileCooldownStore("refresh", path=path),
        )
        await first.attempt()

        tool = FakeRefreshTool(fingerprint=fingerprint)
        second = make_coordinator(
            tool, fingerprint, clock, store=FileCooldownStore("refresh", path=path)
        )
        clock.advance(seconds=60)

        outcome = await second.attempt()

        assert outcome.kind == RefreshOutcomeKind.SKIPPED_BY_COOLDOWN
        assert tool.touch_count == 0
        assert second.cooldown_remaining_seconds() == 240


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_touch(self, clock, fingerprint):
        tool = FakeRefreshTool(fingerprint=fingerprint, delay=0.01)
        coordinator = make_coordinator(tool, fingerprint, clock)

        outcomes = await asyncio.gather(*(coordinator.attempt() for _ in range(8)))

        assert tool.touch_count == 1
        assert len(set(outcomes)) == 1
        assert outcomes[0].kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_shared_attempt(self, clock, fingerprint):
        tool = FakeRefreshTool(fingerprint=fingerprint, delay=0.05)
        coordinator = make_coordinator(tool, fingerprint, clock)

        first = asyncio.create_task(coordinator.attempt())
        second = asyncio.create_task(coordinator.attempt())
        await asyncio.sleep(0.01)
        first.cancel()

        outcome = await second
        with pytest.raises(asyncio.CancelledError):
            await first

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED
        assert tool.touch_count == 1
        assert coordinator.cooldown_state().cooldown_seconds == 300

    @pytest.mark.asyncio
    async def test_new_attempt_after_completion_is_fresh(self, clock, fingerprint):
        tool = FakeRefreshTool(fingerprint=fingerprint)
        coordinator = make_coordinator(
            tool, fingerprint, clock, long_cooldown=timedelta(seconds=0)
        )

        await coordinator.attempt()
        await coordinator.attempt()

        assert tool.touch_count == 2


class TestPolling:
    @pytest.mark.asyncio
    async def test_delays_longer_than_window_are_skipped(self, clock, fingerprint):
        slept: list[float] = []

        async def recording_sleep(delay: float) -> None:
            slept.append(delay)

        coordinator = make_coordinator(
            FakeRefreshTool(),
            fingerprint,
            clock,
            sleep=recording_sleep,
            poll_delays=(0.2, 0.5, 0.8, 5.0),
        )

        await coordinator.attempt(timeout=8.0)

        assert slept == [0.2, 0.5, 0.8]

    @pytest.mark.asyncio
    async def test_short_timeout_narrows_window(self, clock, fingerprint):
        slept: list[float] = []

        async def recording_sleep(delay: float) -> None:
            slept.append(delay)

        coordinator = make_coordinator(
            FakeRefreshTool(),
            fingerprint,
            clock,
            sleep=recording_sleep,
            poll_delays=(0.2, 0.5, 0.8, 1.5),
        )

        await coordinator.attempt(timeout=0.1)

        # Window is clamped to at least one second.
        assert slept == [0.2, 0.5, 0.8]
        assert sum(slept) <= 1.5

    @pytest.mark.asyncio
    async def test_change_seen_while_polling(self, clock, fingerprint):
        async def rotating_sleep(delay: float) -> None:
            fingerprint.rotate()

        tool = FakeRefreshTool(delay=0)
        coordinator = make_coordinator(tool, fingerprint, clock, sleep=rotating_sleep)

        outcome = await coordinator.attempt()

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED

    @pytest.mark.asyncio
    async def test_slow_reader_does_not_block_event_loop(self, clock):
        class SlowFingerprint(FakeFingerprint):
            def __call__(self):
                time.sleep(0.1)
                return super().__call__()

        reader = SlowFingerprint()
        coordinator = make_coordinator(FakeRefreshTool(fingerprint=reader), reader, clock)
        gaps: list[float] = []
        done = asyncio.Event()

        async def ticker() -> None:
            last = time.monotonic()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        ticking = asyncio.create_task(ticker())
        outcome = await coordinator.attempt()
        done.set()
        await ticking

        assert outcome.kind == RefreshOutcomeKind.ATTEMPTED_SUCCEEDED
        assert gaps
        assert max(gaps) < 0.08

    @pytest.mark.asyncio
    async def test_window_counts_time_spent_reading(self, clock):
        ticks = [0.0]

        def slow_reader() -> str:
            ticks[0] += 0.9
            return "aaaaaaaaaaaa"

        slept: list[float] = []

        async def recording_sleep(delay: float) -> None:
            slept.append(delay)
            ticks[0] += delay

        coordinator = make_coordinator(
            FakeRefreshTool(),
            slow_reader,
            clock,
            sleep=recording_sleep,
            monotonic=lambda: ticks[0],
        )

        outcome = await coordinator.attempt(timeout=8.0)

        assert outcome.reason == NO_CHANGE_REASON
        assert slept == [0.2]
