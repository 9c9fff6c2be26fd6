"""
Cooperative, non-blocking production.

A poll-capable producer is asked for its next item with `poll(notifier)`
and answers with one of:

    Ready(item)   an item is available; poll again whenever you like
    Ready(None)   the sequence is over; further polls are pointless
    NOT_READY     nothing yet; stop polling until `notifier` fires

`poll` must never block. A producer that returns NOT_READY owns the duty of
calling `notifier.notify()` once it can make progress, possibly from another
thread. Forgetting to do so leaves the caller waiting forever; nothing here
can detect that locally.

This module defines the contract and a few producers. It does not schedule
anything. See utils.drain_polled and utils.apoll_items for host loops.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from bridge import to_producer
from lazy import ProducerError, as_producer, is_producer
from steps import in_bounds

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(ProducerError, TimeoutError):
    """Raised by a driver when a notifier didn't fire within its timeout."""
    pass


@dataclass(frozen=True)
class Ready(Generic[T]):
    """An answer to a poll: an item, or None for end of sequence."""
    value: Optional[T] = None

    @property
    def is_end(self) -> bool:
        return self.value is None


class NotReady:
    """No item yet; wait for the notifier. Use the NOT_READY singleton."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "NOT_READY"


NOT_READY = NotReady()
END = Ready(None)

PollResult = Union[Ready, NotReady]


class Notifier:
    """
    One-shot wake handle handed to `poll`.

    Safe to fire from any thread. Only the first `notify()` counts: it marks
    the notifier as fired, then runs the optional callback. Later calls do
    nothing and return False. Drivers pass a fresh notifier on every poll.
    """

    def __init__(self, callback: Optional[Callable[[], None]] = None):
        self._callback = callback
        self._lock = threading.Lock()
        self._event = threading.Event()

    def notify(self) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
        logger.debug("Notifier fired")
        if self._callback is not None:
            self._callback()
        return True

    __call__ = notify

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block the caller until fired; False if `timeout` ran out first."""
        return self._event.wait(timeout)


class PollProducer(ABC):
    """Base for poll-capable producers; adds the chaining operators."""

    @abstractmethod
    def poll(self, notifier: Notifier) -> PollResult:
        """Return Ready(item), Ready(None) or NOT_READY without blocking."""

    def bound(self, low, high) -> "PollBounds":
        return PollBounds(self, low, high)

    def filter_with(self, predicate: Callable[[Any], bool]) -> "PollFilter":
        return PollFilter(self, predicate)


class ReadyAdapter(PollProducer):
    """Poll view of a synchronous producer; it is never NOT_READY."""

    def __init__(self, producer):
        if callable(producer) and not is_producer(producer):
            producer = to_producer(producer)
        self.producer = as_producer(producer)

    def poll(self, notifier: Notifier) -> PollResult:
        return Ready(self.producer.produce_next())


class ChannelProducer(PollProducer):
    """
    Poll-capable producer fed from outside.

    An event source pushes items with `send()` and ends the stream with
    `close()`, from any thread. While the buffer is empty and the channel is
    open, `poll` returns NOT_READY and keeps the notifier; the next `send`
    or `close` fires it.
    """

    def __init__(self):
        self._items = deque()
        self._closed = False
        self._lock = threading.Lock()
        self._waiting: Optional[Notifier] = None

    def send(self, item) -> None:
        if item is None:
            raise ValueError("None is reserved for end of sequence")
        with self._lock:
            if self._closed:
                raise ProducerError("send() on a closed channel")
            self._items.append(item)
            notifier, self._waiting = self._waiting, None
        if notifier is not None:
            notifier.notify()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            notifier, self._waiting = self._waiting, None
        logger.debug("Channel closed")
        if notifier is not None:
            notifier.notify()

    @property
    def closed(self) -> bool:
        return self._closed

    def poll(self, notifier: Notifier) -> PollResult:
        with self._lock:
            if self._items:
                return Ready(self._items.popleft())
            if self._closed:
                return END
            self._waiting = notifier
        logger.debug("Channel empty, returning NOT_READY")
        return NOT_READY


def as_poll_producer(obj) -> PollProducer:
    if callable(getattr(obj, "poll", None)):
        return obj
    return ReadyAdapter(obj)


class _PollTransformer(PollProducer):

    def __init__(self, inner):
        self.inner = as_poll_producer(inner)

    @abstractmethod
    def _accept(self, value) -> bool:
        """True when a Ready item should be passed through."""

    def poll(self, notifier: Notifier) -> PollResult:
        # same drop-and-retry loop as steps.pull_until, but NOT_READY
        # hands control back to the caller
        while True:
            result = self.inner.poll(notifier)
            if isinstance(result, NotReady) or result.is_end:
                return result
            if self._accept(result.value):
                return result


class PollBounds(_PollTransformer):

    def __init__(self, inner, low, high):
        super().__init__(inner)
        self.low = low
        self.high = high

    def _accept(self, value) -> bool:
        return in_bounds(value, self.low, self.high)


class PollFilter(_PollTransformer):

    def __init__(self, inner, predicate: Callable[[Any], bool]):
        super().__init__(inner)
        self.predicate = predicate

    def _accept(self, value) -> bool:
        return self.predicate(value)
