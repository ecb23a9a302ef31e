"""Bounded retry with exponential backoff for adapter calls.

The engine treats each adapter call as a single attempt; adapters that
talk to the network wrap their backend call with call_with_retry().
"""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from paramarr.utilities.masking import mask_secrets

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    func: Callable[[], T],
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[BaseException], ...],
    label: str,
    give_up_on: tuple[type[BaseException], ...] = (),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call `func`, retrying up to `retries` extra times on `retry_on`.

    Waits delay * 2**attempt between attempts. Exceptions matching
    `give_up_on` are re-raised at once even when they also match
    `retry_on`. The last exception is re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return func()
        except retry_on as e:
            if attempt >= retries or isinstance(e, give_up_on):
                raise
            wait = delay * (2**attempt)
            logger.debug(
                "[RETRY] %s failed (attempt %d/%d), retrying in %.1fs: %s",
                label,
                attempt + 1,
                retries + 1,
                wait,
                mask_secrets(str(e)),
            )
            attempt += 1
            if wait > 0:
                sleep(wait)


def retry_budget(timeout: float, retries: int, delay: float) -> float:
    """Worst-case wall time of call_with_retry() around a call bounded by `timeout`."""
    backoff = sum(delay * (2**attempt) for attempt in range(retries))
    return timeout * (retries + 1) + backoff
