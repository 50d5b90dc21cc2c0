"""Bounded retry helper."""

import logging
import time
from typing import Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


def retry(
    operation: Callable[[], object],
    attempts: int = 3,
    delay: float = 2.0,
    succeeded: Optional[Callable[[], bool]] = None,
    exceptions: Tuple[Type[BaseException], ...] = (OSError,),
    sleep: Callable[[float], None] = time.sleep,
    log: Optional[logging.Logger] = None,
) -> bool:
    """
    Run ``operation`` until ``succeeded`` holds or attempts are exhausted.

    Args:
        operation: Callable performing one attempt
        attempts: Maximum number of attempts (at least one is made)
        delay: Seconds to wait between attempts
        succeeded: Success predicate checked after each attempt; without one
            an attempt succeeds when it does not raise
        exceptions: Exception types counted as a failed attempt
        sleep: Sleep function, replaceable in tests
        log: Logger for per-attempt messages

    Returns:
        bool: True if an attempt succeeded
    """
    log = log or logger
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            operation()
        except exceptions as e:
            log.warning("Attempt %d/%d failed: %s", attempt, attempts, e)
        else:
            if succeeded is None or succeeded():
                return True
            log.warning("Attempt %d/%d did not complete", attempt, attempts)

        if attempt < attempts:
            sleep(delay)

    return False
