import time
from typing import Callable, NamedTuple


class PollResult(NamedTuple):
    succeeded: bool
    attempts: int


def poll(
    check: Callable[[], bool],
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Call ``check`` until it returns truthy or ``attempts`` run out.

    Sleeps ``interval`` seconds between failed attempts, not after the last one.
    """
    for attempt in range(1, attempts + 1):
        if check():
            return PollResult(True, attempt)
        if attempt < attempts:
            sleep(interval)
    return PollResult(False, attempts)
