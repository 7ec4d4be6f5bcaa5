"""Batch dispatcher that keeps calls to a quota-limited API under a requests-per-second ceiling."""

import logging
import time
from typing import Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A full batch of limit_per_second calls uses up one second
BATCH_WINDOW = 1.0

# Added to BATCH_WINDOW when no interval is given, absorbs clock drift
DEFAULT_SAFETY_MARGIN = 0.1


def for_each_batch(
    items: Sequence[T],
    limit_per_second: int,
    work: Callable[[List[T]], Optional[bool]],
    interval: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Run work once per consecutive batch of at most limit_per_second items.

    Sleeps interval seconds between batches, never after the last one.
    When work returns True the dispatch stops there, without a further sleep.
    The caller decides how many API calls work issues per batch item and is
    responsible for any cancellation checks.

    Args:
        items: Items to process
        limit_per_second: Batch size, the API's requests-per-second ceiling
        work: Called with each batch; return True when no more batches are needed
        interval: Pause between batches; must be greater than one second
        sleep: Sleep function

    Returns:
        Number of batches processed, including the one that stopped the dispatch

    Raises:
        ValueError: On a non-positive limit or an interval that would exceed the ceiling
    """
    if limit_per_second < 1:
        raise ValueError(f"limit_per_second must be >= 1, got {limit_per_second}")

    if interval is None:
        interval = BATCH_WINDOW + DEFAULT_SAFETY_MARGIN
    if interval <= BATCH_WINDOW:
        raise ValueError(f"interval {interval}s must be greater than {BATCH_WINDOW}s for batches of {limit_per_second}")

    if not items:
        return 0

    batches = [list(items[i:i + limit_per_second]) for i in range(0, len(items), limit_per_second)]
    total = len(batches)

    for index, batch in enumerate(batches):
        if work(batch):
            logger.debug(f"Dispatch stopped after batch {index + 1}/{total}")
            return index + 1

        if index < total - 1:
            logger.debug(f"Sleeping {interval}s before next batch ({index + 1}/{total})")
            sleep(interval)

    return total

