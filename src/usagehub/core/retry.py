"""Ordered candidate fallback for usagehub."""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
from typing import TypeVar

from usagehub.errors.types import NoCandidatesError

C = TypeVar("C")
T = TypeVar("T")


async def run_candidates(
    candidates: Sequence[C],
    should_retry: Callable[[C, Exception], bool],
    attempt: Callable[[C], Awaitable[T]],
    on_retry: Callable[[C, Exception], None] | None = None,
) -> T:
    """Try candidates in order until one succeeds.

    A failure moves on to the next candidate only when one remains and
    ``should_retry(candidate, error)`` agrees; otherwise the error propagates
    unchanged. Cancellation is never caught.

    Args:
        candidates: Ordered candidates to try
        should_retry: Decides whether a failed candidate may fall through
        attempt: Coroutine function run for each candidate
        on_retry: Optional callback invoked before moving to the next candidate

    Returns:
        Result of the first successful attempt

    Raises:
        NoCandidatesError: If ``candidates`` is empty
    """
    if not candidates:
        raise NoCandidatesError()

    for index, candidate in enumerate(candidates):
        try:
            return await attempt(candidate)
        except Exception as e:
            has_more = index + 1 < len(candidates)
            if not has_more or not should_retry(candidate, e):
                raise
            if on_retry is not None:
                on_retry(candidate, e)

    raise NoCandidatesError()
