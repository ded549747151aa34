"""指数退避 + 抖动。"""

from __future__ import annotations

import asyncio
import random
from typing import Callable

JITTER_MS = 100


def backoff_delay_ms(base_ms: float, attempt_index: int, *, rng: Callable[[], float] = random.random) -> float:
    """attempt_index 从 0 开始；结果落在 [base*2^i, base*2^i + 100)。"""
    base = float(base_ms or 0)
    if base <= 0:
        return 0.0
    idx = max(0, int(attempt_index))
    return base * (2**idx) + rng() * JITTER_MS


async def sleep_backoff(base_ms: float, attempt_index: int) -> float:
    delay = backoff_delay_ms(base_ms, attempt_index)
    if delay > 0:
        await asyncio.sleep(delay / 1000.0)
    return delay
