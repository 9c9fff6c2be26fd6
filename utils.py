"""
Helpers around the producer core: logging setup, building pipelines from
declarative specs, draining producers of either form, and the host loops
that drive poll-capable producers.
"""

import asyncio
import functools
import logging
import time
import tracemalloc
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from bridge import chain, make_bound, make_filter, make_range
from models import (
    LazySettings,
    OperationSpec,
    OperationType,
    PipelineReport,
    PipelineSpec,
    PipelineSpecError,
    PollReport,
)
from poll import NotReady, Notifier, PollTimeoutError, as_poll_producer

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def configure_logging(settings: Optional[LazySettings] = None) -> LazySettings:
    """Apply the configured log level to the root logger."""
    settings = settings or LazySettings.from_env()
    logging.getLogger().setLevel(settings.log_level)
    return settings


# --------- declarative pipelines ----------

def build_predicate(op: OperationSpec) -> Callable[[Any], bool]:
    """Turn the rule fields of a filter operation into a predicate."""
    low, high, modulo, remainder = op.min, op.max, op.modulo, op.remainder

    def predicate(v):
        if low is not None and v < low:
            return False
        if high is not None and not v < high:
            return False
        if modulo is not None and v % modulo != remainder:
            return False
        return True

    return predicate


def _coerce_spec(spec) -> PipelineSpec:
    if isinstance(spec, PipelineSpec):
        return spec
    try:
        return PipelineSpec.model_validate(spec)
    except ValidationError as e:
        raise PipelineSpecError(f"Invalid pipeline spec: {e}") from e


def build_pipeline(spec: Union[PipelineSpec, Dict[str, Any]]):
    """Build the producer a spec describes, in the spec's representation."""
    spec = _coerce_spec(spec)

    src = spec.source
    producer = make_range(src.start, src.end, src.step, representation=spec.representation.value)
    for op in spec.operations:
        if op.type == OperationType.BOUND:
            producer = make_bound(producer, op.min, op.max)
        else:
            producer = make_filter(producer, build_predicate(op))
    return producer


def drain(producer, limit: Optional[int] = None) -> List[Any]:
    """Pull every item (or the first `limit`) from a producer of either form."""
    producer = chain(producer)
    if hasattr(producer, "to_list"):
        return producer.to_list(limit)

    items = []
    while limit is None or len(items) < limit:
        value = producer()
        if value is None:
            break
        items.append(value)
    return items


def run_pipeline(spec: Union[PipelineSpec, Dict[str, Any]],
                 settings: Optional[LazySettings] = None) -> PipelineReport:
    """Build and drain a pipeline, recording time and peak traced memory."""
    spec = _coerce_spec(spec)

    limit = spec.limit
    if settings is not None and settings.max_items is not None:
        limit = settings.max_items if limit is None else min(limit, settings.max_items)

    tracemalloc.start()
    start_time = time.perf_counter()
    try:
        items = drain(build_pipeline(spec), limit)
        processing_time_ms = (time.perf_counter() - start_time) * 1000
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()

    logger.info(
        f"Pipeline ({spec.representation.value}, {len(spec.operations)} ops) "
        f"produced {len(items)} items in {processing_time_ms:.2f} ms"
    )
    return PipelineReport(
        items=items,
        item_count=len(items),
        representation=spec.representation,
        operations_applied=[op.type.value for op in spec.operations],
        processing_time_ms=processing_time_ms,
        peak_memory_kb=peak / 1024,
    )


# --------- poll drivers ----------

def drain_polled(producer, timeout: Optional[float] = None,
                 max_items: Optional[int] = None,
                 settings: Optional[LazySettings] = None) -> PollReport:
    """
    Drive a poll-capable producer to the end on the current thread.

    A fresh Notifier goes with every poll. After NOT_READY the loop blocks on
    that notifier instead of polling again, so it never spins. With a
    timeout, a notifier that stays silent raises PollTimeoutError. Unset
    limits fall back to `settings`.
    """
    if settings is not None:
        timeout = settings.poll_timeout_seconds if timeout is None else timeout
        max_items = settings.max_items if max_items is None else max_items
    producer = as_poll_producer(producer)
    report = PollReport()

    while max_items is None or len(report.items) < max_items:
        notifier = Notifier()
        result = producer.poll(notifier)
        report.polls += 1

        if isinstance(result, NotReady):
            report.not_ready_count += 1
            report.events.append("not_ready")
            if not notifier.wait(timeout):
                logger.error(f"No wake-up after {timeout}s; producer {producer!r} starved the driver")
                raise PollTimeoutError(f"Notifier did not fire within {timeout} seconds")
            continue

        if result.is_end:
            report.events.append("end")
            report.finished = True
            break

        report.events.append("ready")
        report.items.append(result.value)

    logger.info(f"Poll driver finished: {len(report.items)} items, {report.not_ready_count} waits")
    return report


async def apoll_items(producer, timeout: Optional[float] = None) -> AsyncIterator[Any]:
    """
    Async iterator over a poll-capable producer.

    The notifier schedules the wake-up on the running loop with
    call_soon_threadsafe, so it may fire from any thread.
    """
    loop = asyncio.get_running_loop()
    producer = as_poll_producer(producer)

    def wake(event):
        # the producer may keep the notifier after this loop is gone
        if loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(event.set)
        except RuntimeError:
            # closed between the check and the call
            logger.debug("Wake-up dropped: event loop is closed")

    while True:
        woken = asyncio.Event()
        notifier = Notifier(functools.partial(wake, woken))
        result = producer.poll(notifier)

        if isinstance(result, NotReady):
            try:
                await asyncio.wait_for(woken.wait(), timeout)
            except asyncio.TimeoutError:
                raise PollTimeoutError(f"Notifier did not fire within {timeout} seconds") from None
            continue

        if result.is_end:
            return
        yield result.value
