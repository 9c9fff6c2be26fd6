"""
Callable-state producers.

A callable-state producer is a zero-argument callable that returns the next
item on each call and None once it is exhausted. The state lives in what the
callable captures: closure cells for plain functions, attributes for
callable objects. Producers built here are wrapped in ChainableFn so they
get the same chaining operators as the object form, and `iter(fn)` works
on them.
"""

import functools
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from lazy import NotAProducerError
from steps import fib_step, in_bounds, pull_until, range_step

StepFn = Callable[[], Optional[Any]]


class ChainableFn:
    """Wraps a step callable and adds chaining, iteration and capture info."""

    def __init__(self, fn: StepFn):
        self.fn = fn
        self.__doc__ = getattr(fn, "__doc__", None)

    def __call__(self) -> Optional[Any]:
        return self.fn()

    # --------- chainable operators ----------
    def bound(self, low, high) -> "ChainableFn":
        return bounds_fn(self, low, high)

    def filter_with(self, predicate: Callable[[Any], bool]) -> "ChainableFn":
        return filter_fn(self, predicate)

    # --------- iteration ----------
    def __iter__(self):
        return iter(self.fn, None)

    @property
    def captures(self) -> "CaptureInfo":
        return inspect_captures(self.fn)

    def __repr__(self):
        name = getattr(self.fn, "__qualname__", type(self.fn).__name__)
        return f"ChainableFn({name})"


def as_step_fn(obj) -> StepFn:
    if callable(obj):
        return obj
    raise NotAProducerError(f"Expected a callable producer, got {type(obj).__name__}")


def range_fn(start, end, step) -> ChainableFn:
    """Callable form of lazy.Range."""
    current = start

    def next_in_range():
        nonlocal current
        value, current = range_step(current, end, step)
        return value

    return ChainableFn(next_in_range)


def fibonacci_fn(until: int) -> ChainableFn:
    current = 0

    def next_fib():
        nonlocal current
        value, current = fib_step(current, until)
        return value

    return ChainableFn(next_fib)


def bounds_fn(inner, low, high) -> ChainableFn:
    """Callable form of lazy.Bounds; takes ownership of `inner`."""
    pull = as_step_fn(inner)

    def accept(value):
        return in_bounds(value, low, high)

    def next_in_bounds():
        return pull_until(pull, accept)

    return ChainableFn(next_in_bounds)


def filter_fn(inner, predicate: Callable[[Any], bool]) -> ChainableFn:
    """Callable form of lazy.Filter; takes ownership of `inner`."""
    pull = as_step_fn(inner)

    def next_matching():
        return pull_until(pull, predicate)

    return ChainableFn(next_matching)


# --------- captured state ----------

class CaptureKind(str, Enum):
    """Storage shape of a callable's state."""
    EMPTY = "empty"
    CAPTURING = "capturing"


@dataclass(frozen=True)
class CaptureInfo:
    """What a callable holds on to between calls."""
    kind: CaptureKind
    names: Tuple[str, ...] = ()
    size_bytes: int = 0
    values: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _closure_values(fn) -> Dict[str, Any]:
    values = {}
    cells = fn.__closure__ or ()
    for name, cell in zip(fn.__code__.co_freevars, cells):
        try:
            values[name] = cell.cell_contents
        except ValueError:
            # cell not bound yet
            values[name] = None
    return values


def inspect_captures(fn) -> CaptureInfo:
    """
    Classify what `fn` captures.

    Closures report their free variables, functools.partial its bound
    arguments, bound methods their instance and callable objects their
    instance attributes. `size_bytes` is a shallow estimate: the callable
    itself plus each captured value, without following references.
    """
    if isinstance(fn, ChainableFn):
        return inspect_captures(fn.fn)

    if isinstance(fn, functools.partial):
        values = {f"arg{i}": v for i, v in enumerate(fn.args)}
        values.update(fn.keywords)
    elif hasattr(fn, "__self__") and hasattr(fn, "__func__"):
        values = {"self": fn.__self__}
    elif hasattr(fn, "__code__"):
        values = _closure_values(fn)
    elif hasattr(fn, "__dict__"):
        values = dict(vars(fn))
    else:
        values = {}

    size = sys.getsizeof(fn) + sum(sys.getsizeof(v) for v in values.values())
    kind = CaptureKind.CAPTURING if values else CaptureKind.EMPTY
    return CaptureInfo(kind=kind, names=tuple(values), size_bytes=size, values=values)
