from __future__ import annotations

import asyncio
import random
from typing import Optional


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, cap: float = 60.0
) -> float:
    """Compute exponential backoff with jitter, capped at ``cap`` seconds."""
    delay = min(base ** attempt, cap)
    return delay + random.uniform(0, jitter)


async def schedule_retry(
    attempt: int,
    base: float = 1.5,
    jitter: float = 0.5,
    cap: float = 60.0,
    cancel: Optional[asyncio.Event] = None,
) -> bool:
    """Sleep for computed backoff delay before retrying.

    Returns ``True`` when ``cancel`` was set before the delay elapsed.
    """
    delay = compute_backoff(attempt, base=base, jitter=jitter, cap=cap)
    if cancel is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True
