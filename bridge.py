"""
Conversions between the object form and the callable form, plus the public
constructors that accept either one.

Round trips are exact: `to_producer(to_callable(p))` yields what `p` would
have yielded from its current position, and exhausts at the same point.
"""

import logging
from typing import Any, Callable, Optional

from closures import ChainableFn, bounds_fn, filter_fn, range_fn
from lazy import (
    Bounds,
    Filter,
    IterProducer,
    NotAProducerError,
    ProducerBase,
    Range,
    as_producer,
    is_producer,
)

logger = logging.getLogger(__name__)

OBJECT = "object"
CALLABLE = "callable"


class CallableProducer(ProducerBase):
    """Object-form view over a callable producer."""

    def __init__(self, fn: Callable[[], Optional[Any]]):
        self.fn = fn

    def produce_next(self) -> Optional[Any]:
        return self.fn()

    def __repr__(self):
        return f"CallableProducer({self.fn!r})"


def to_callable(producer) -> ChainableFn:
    """Wrap an object-form producer (or iterable) as a callable producer."""
    producer = as_producer(producer)
    logger.debug(f"Converting {type(producer).__name__} to callable form")
    return ChainableFn(producer.produce_next)


def to_producer(fn) -> CallableProducer:
    """Wrap a callable producer as an object-form producer."""
    if not callable(fn):
        raise NotAProducerError(f"Expected a callable producer, got {type(fn).__name__}")
    logger.debug(f"Converting {fn!r} to object form")
    return CallableProducer(fn)


def representation_of(obj) -> str:
    """Return OBJECT or CALLABLE, treating plain iterables as OBJECT."""
    if is_producer(obj):
        return OBJECT
    if callable(obj):
        return CALLABLE
    if hasattr(obj, "__iter__"):
        return OBJECT
    raise NotAProducerError(f"{type(obj).__name__} is neither a producer nor a callable")


def make_range(start, end, step, representation: str = OBJECT):
    if representation == CALLABLE:
        return range_fn(start, end, step)
    if representation == OBJECT:
        return Range(start, end, step)
    raise ValueError(f"Unknown representation: {representation}")


def make_bound(producer, low, high):
    """Bound `producer` to low <= item < high, keeping its representation."""
    if representation_of(producer) == CALLABLE:
        return bounds_fn(producer, low, high)
    return Bounds(producer, low, high)


def make_filter(producer, predicate: Callable[[Any], bool]):
    """Filter `producer` with `predicate`, keeping its representation."""
    if representation_of(producer) == CALLABLE:
        return filter_fn(producer, predicate)
    return Filter(producer, predicate)


def chain(obj):
    """Give any producer, callable or iterable the chaining operators."""
    if isinstance(obj, (ProducerBase, ChainableFn)):
        return obj
    if is_producer(obj):
        return CallableProducer(obj.produce_next)
    if callable(obj):
        return ChainableFn(obj)
    if hasattr(obj, "__iter__"):
        return IterProducer(obj)
    raise NotAProducerError(f"Can't chain {type(obj).__name__}")
