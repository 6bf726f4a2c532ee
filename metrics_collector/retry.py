from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .errors import MetricsError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed escalating backoff: one attempt per delay, waiting after each failure."""

    delays: Tuple[float, ...] = (1.0, 3.0, 5.0)

    @property
    def max_attempts(self) -> int:
        return len(self.delays)


DEFAULT_RETRY_POLICY = RetryPolicy()


async def wait_or_stop(delay: float, stop_event: Optional[asyncio.Event]) -> bool:
    """Sleep for ``delay`` seconds; return True early if ``stop_event`` fires."""
    if stop_event is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


async def retry(
    op: str,
    fn: Callable[[], Awaitable[T]],
    is_retriable: Callable[[BaseException], bool],
    exhausted: Type[MetricsError],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    stop_event: Optional[asyncio.Event] = None,
) -> T:
    """Run ``fn`` until it succeeds, fails permanently, or the policy runs out.

    Non-retriable exceptions propagate unchanged. Once every attempt has
    failed, or the stop event interrupts a backoff wait, ``exhausted`` is
    raised chained to the last transient error.
    """
    last_error: Optional[BaseException] = None
    for attempt, delay in enumerate(policy.delays, start=1):
        try:
            return await fn()
        except Exception as exc:
            if not is_retriable(exc):
                raise
            last_error = exc

        logger.warning(
            "%s failed (attempt %d/%d), retrying in %.0fs: %s",
            op,
            attempt,
            policy.max_attempts,
            delay,
            last_error,
        )
        if await wait_or_stop(delay, stop_event):
            raise exhausted(f"{op}: interrupted by shutdown") from last_error

    raise exhausted(f"{op}: gave up after {policy.max_attempts} attempts") from last_error
