"""
Object-form producers.

Every producer here exposes `produce_next()`, which returns the next item
or None once the sequence is exhausted. Producers are also regular Python
iterators, and they all share the chaining operators from ProducerBase, so
pipelines read left to right:

    Range(1, 20, 1).bound(3, 13).filter_with(lambda v: v % 2 == 0)

A transformer takes ownership of the producer it wraps. Pulling from the
inner producer directly after wrapping it interleaves the two consumers and
is not supported.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, Callable, Iterator, List, Optional

from steps import fib_step, in_bounds, pull_until, range_step

logger = logging.getLogger(__name__)


class ProducerError(Exception):
    """Base error for misuse of the producer API."""
    pass


class NotAProducerError(ProducerError, TypeError):
    """Raised when a value can't be used as a producer."""
    pass


class ProducerBase(ABC):
    """
    Common surface for object-form producers.

    Subclasses implement `produce_next`; iteration and the chaining
    operators are derived from it.
    """

    @abstractmethod
    def produce_next(self) -> Optional[Any]:
        """Return the next item, or None when there are no more."""

    # --------- chainable operators ----------
    def bound(self, low, high) -> "Bounds":
        return Bounds(self, low, high)

    def filter_with(self, predicate: Callable[[Any], bool]) -> "Filter":
        return Filter(self, predicate)

    # --------- forcing evaluation ----------
    def to_list(self, limit: Optional[int] = None) -> List[Any]:
        """Drain into a list, stopping early after `limit` items if given."""
        items = []
        while limit is None or len(items) < limit:
            value = self.produce_next()
            if value is None:
                break
            items.append(value)
        return items

    # --------- iterator protocol ----------
    def __iter__(self) -> Iterator[Any]:
        return self

    def __next__(self) -> Any:
        value = self.produce_next()
        if value is None:
            raise StopIteration
        return value


class Range(ProducerBase):
    """Arithmetic progression from `start` (inclusive) to `end` (exclusive)."""

    def __init__(self, start, end, step):
        self.current = start
        self.end = end
        self.step = step
        self._exhausted = False

    def produce_next(self) -> Optional[Any]:
        if self._exhausted:
            return None
        value, self.current = range_step(self.current, self.end, self.step)
        if value is None:
            self._exhausted = True
            logger.debug(f"Range exhausted at {self.current!r} (end={self.end!r})")
        return value

    def __repr__(self):
        return f"Range(current={self.current!r}, end={self.end!r}, step={self.step!r})"


class Fibonacci(ProducerBase):
    """Yields (n, fib(n)) for n = 0..until inclusive."""

    def __init__(self, until: int):
        self.current = 0
        self.until = until

    def produce_next(self) -> Optional[Any]:
        value, self.current = fib_step(self.current, self.until)
        return value


class Bounds(ProducerBase):
    """Passes through inner items with low <= item < high, drops the rest."""

    def __init__(self, inner, low, high):
        self.inner = as_producer(inner)
        self.low = low
        self.high = high

    def produce_next(self) -> Optional[Any]:
        return pull_until(self.inner.produce_next, self._accept)

    def _accept(self, value) -> bool:
        return in_bounds(value, self.low, self.high)

    def __repr__(self):
        return f"Bounds({self.inner!r}, {self.low!r}, {self.high!r})"


class Filter(ProducerBase):
    """Passes through inner items for which `predicate(item)` is true."""

    def __init__(self, inner, predicate: Callable[[Any], bool]):
        self.inner = as_producer(inner)
        self.predicate = predicate

    def produce_next(self) -> Optional[Any]:
        return pull_until(self.inner.produce_next, self.predicate)


class IterProducer(ProducerBase):
    """Adapts a plain Python iterable to the produce_next protocol."""

    def __init__(self, source: Iterable[Any]):
        self._it = iter(source)

    def produce_next(self) -> Optional[Any]:
        return next(self._it, None)


def is_producer(obj) -> bool:
    return callable(getattr(obj, "produce_next", None))


def as_producer(obj) -> ProducerBase:
    """Return `obj` as an object-form producer, wrapping iterables."""
    if is_producer(obj):
        return obj
    if isinstance(obj, Iterable):
        return IterProducer(obj)
    raise NotAProducerError(f"Expected a producer or iterable, got {type(obj).__name__}")


def from_iterable(source: Iterable[Any]) -> IterProducer:
    return IterProducer(source)
