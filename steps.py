"""
Step rules shared by the object form and the callable form.

Each producer type keeps its state in one place and calls into these
functions to decide what to emit next, so both representations run the
exact same logic.
"""

from typing import Any, Callable, Optional, Tuple


def range_step(current: Any, end: Any, step: Any) -> Tuple[Optional[Any], Any]:
    """Return (item, next_current); item is None once current reaches end."""
    if current < end:
        return current, current + step
    return None, current


def in_bounds(value: Any, low: Any, high: Any) -> bool:
    return low <= value < high


def pull_until(pull: Callable[[], Optional[Any]], accept: Callable[[Any], bool]) -> Optional[Any]:
    """
    Pull from `pull` until an accepted item shows up or the source ends.

    Rejected items are dropped. There is no cap on how many get dropped, so
    a sparse source may be scanned to its end before None comes back.
    """
    while True:
        value = pull()
        if value is None:
            return None
        if accept(value):
            return value


def fib(n: int) -> int:
    a, b = 0, 1
    for _ in range(n):
        a, b = b, a + b
    return a


def fib_step(current: int, until: int) -> Tuple[Optional[Tuple[int, int]], int]:
    """Return ((n, fib(n)), next_n) while n <= until, else (None, current)."""
    if current > until:
        return None, current
    return (current, fib(current)), current + 1
