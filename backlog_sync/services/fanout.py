"""
Concurrent fan-out with independent failures.

Every board call inside one operation (scanning several lists, updating
several proxies) is started together and joined before the operation
returns. One failing call never cancels its siblings; failures are logged
and handed back to the caller. Request concurrency itself is bounded by the
repository, not here.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, List, Tuple

logger = logging.getLogger(__name__)


@dataclass
class FanoutResult:
    results: List[Any] = field(default_factory=list)
    errors: List[Tuple[int, BaseException]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


async def run_all(coros: Iterable[Awaitable[Any]], label: str) -> FanoutResult:
    """
    Await every coroutine concurrently and split results from failures.

    Args:
        coros: Awaitables to run
        label: Short description used in log lines

    Returns:
        FanoutResult with successful results (in submission order) and
        (index, exception) pairs for the failures
    """
    outcome = FanoutResult()
    gathered = await asyncio.gather(*coros, return_exceptions=True)

    for i, result in enumerate(gathered):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.error(f"{label} [{i}] failed: {result}")
            outcome.errors.append((i, result))
        else:
            outcome.results.append(result)

    if outcome.errors:
        logger.warning(f"{label}: {len(outcome.errors)} of {len(gathered)} calls failed")
    return outcome
