import asyncio
import threading

import pytest

from closures import range_fn
from lazy import ProducerError, Range
from models import LazySettings
from poll import (
    END,
    NOT_READY,
    ChannelProducer,
    Notifier,
    NotReady,
    PollBounds,
    PollProducer,
    PollTimeoutError,
    Ready,
    ReadyAdapter,
    _PollTransformer,
)
from utils import apoll_items, drain_polled


class Silent(PollProducer):
    """Breaks the contract: NOT_READY without ever notifying."""

    def poll(self, notifier):
        return NOT_READY


class TestPollResult:

    def test_ready_shapes(self):
        assert Ready(3).value == 3
        assert not Ready(3).is_end
        assert END.is_end
        assert Ready(None) == END

    def test_not_ready_is_singleton(self):
        assert NotReady() is NOT_READY
        assert repr(NOT_READY) == "NOT_READY"


class TestNotifier:
    """One-shot, thread-safe wake handle"""

    def test_first_notify_wins(self):
        calls = []
        n = Notifier(lambda: calls.append(1))
        assert not n.fired
        assert n.notify() is True
        assert n.notify() is False
        assert n() is False
        assert n.fired
        assert calls == [1]

    def test_concurrent_notify_fires_once(self):
        calls = []
        lock = threading.Lock()

        def callback():
            with lock:
                calls.append(1)

        n = Notifier(callback)
        results = []
        barrier = threading.Barrier(16)

        def fire():
            barrier.wait()
            results.append(n.notify())

        threads = [threading.Thread(target=fire) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert calls == [1]

    def test_wait_times_out(self):
        assert Notifier().wait(0.01) is False

    def test_wait_returns_after_notify_from_other_thread(self):
        n = Notifier()
        threading.Timer(0.02, n.notify).start()
        assert n.wait(5) is True


class TestChannelProducer:
    """Poll-capable producer fed by an external event source"""

    def test_not_ready_then_ready_after_notify(self, channel):
        notifier = Notifier()
        assert channel.poll(notifier) is NOT_READY
        assert not notifier.fired

        channel.send(42)
        assert notifier.fired, "send() must wake the waiting poller"
        assert channel.poll(Notifier()) == Ready(42)

    def test_close_ends_stream_and_wakes(self, channel):
        notifier = Notifier()
        assert channel.poll(notifier) is NOT_READY
        channel.close()
        assert notifier.fired
        assert channel.poll(Notifier()) == END
        assert channel.poll(Notifier()) == END

    def test_buffered_items_drain_before_end(self, channel):
        for v in (1, 2, 3):
            channel.send(v)
        channel.close()
        report = drain_polled(channel)
        assert report.items == [1, 2, 3]
        assert report.not_ready_count == 0
        assert report.finished

    def test_send_after_close(self, channel):
        channel.close()
        channel.close()
        with pytest.raises(ProducerError):
            channel.send(1)

    def test_none_is_not_an_item(self, channel):
        with pytest.raises(ValueError):
            channel.send(None)


class TestDrainPolled:
    """Host driver loop"""

    def test_single_wait_no_busy_spin(self, channel):
        """One NOT_READY, then the item once the notifier fires"""
        threading.Timer(0.05, channel.send, args=(7,)).start()

        report = drain_polled(channel, timeout=5, max_items=1)

        assert report.items == [7]
        assert report.events == ["not_ready", "ready"]
        assert report.polls == 2, f"Driver polled {report.polls} times; it should wait, not spin"

    def test_items_from_background_thread(self, channel):
        def feed():
            for v in range(5):
                channel.send(v)
            channel.close()

        threading.Timer(0.02, feed).start()
        report = drain_polled(channel, timeout=5)

        assert report.items == [0, 1, 2, 3, 4]
        assert report.finished
        assert report.events[-1] == "end"
        assert report.polls == len(report.events)

    def test_silent_producer_times_out(self):
        with pytest.raises(PollTimeoutError) as exc_info:
            drain_polled(Silent(), timeout=0.05)
        assert isinstance(exc_info.value, TimeoutError)

    def test_sync_producers_are_always_ready(self):
        report = drain_polled(Range(1, 4, 1))
        assert report.items == [1, 2, 3]
        assert report.events == ["ready", "ready", "ready", "end"]

        report = drain_polled(ReadyAdapter(range_fn(1, 4, 1)))
        assert report.items == [1, 2, 3]


class TestPollTransformers:

    def test_bound_over_channel(self, channel):
        for v in range(10):
            channel.send(v)
        channel.close()
        assert drain_polled(channel.bound(3, 6)).items == [3, 4, 5]

    def test_not_ready_passes_through(self, channel):
        bounded = PollBounds(channel, 10, 20)
        channel.send(1)

        notifier = Notifier()
        assert bounded.poll(notifier) is NOT_READY, "Rejected item then empty channel"
        channel.send(15)
        assert notifier.fired
        assert bounded.poll(Notifier()) == Ready(15)

    def test_filter_over_sync_producer(self):
        filtered = ReadyAdapter(Range(0, 10, 1)).filter_with(lambda v: v % 3 == 0)
        assert drain_polled(filtered).items == [0, 3, 6, 9]

    def test_transformer_requires_accept_rule(self):
        class NoRule(_PollTransformer):
            pass

        with pytest.raises(TypeError):
            NoRule(ReadyAdapter(Range(0, 3, 1)))


class TestAsyncDriver:

    @pytest.mark.asyncio
    async def test_apoll_items_from_thread(self, channel):
        def feed():
            for v in ("a", "b", "c"):
                channel.send(v)
            channel.close()

        threading.Timer(0.02, feed).start()
        items = [v async for v in apoll_items(channel, timeout=5)]
        assert items == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_apoll_items_from_loop_callback(self, channel):
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, channel.send, 1)
        loop.call_later(0.02, channel.close)

        items = [v async for v in apoll_items(channel.bound(0, 5), timeout=5)]
        assert items == [1]

    @pytest.mark.asyncio
    async def test_apoll_items_timeout(self):
        with pytest.raises(PollTimeoutError):
            async for _ in apoll_items(Silent(), timeout=0.05):
                pass

    def test_send_after_loop_closed(self, channel):
        """A notifier kept past the driver's loop must not break the sender"""
        async def consume():
            with pytest.raises(PollTimeoutError):
                async for _ in apoll_items(channel, timeout=0.01):
                    pass

        asyncio.run(consume())

        channel.send(1)
        channel.close()
        assert channel.poll(Notifier()) == Ready(1)
        assert channel.poll(Notifier()) == END


class TestDriverSettings:

    def test_settings_supply_timeout(self):
        with pytest.raises(PollTimeoutError):
            drain_polled(Silent(), settings=LazySettings(poll_timeout_seconds=0.05))

    def test_settings_supply_max_items(self):
        report = drain_polled(Range(0, 100, 1), settings=LazySettings(max_items=3))
        assert report.items == [0, 1, 2]
        assert not report.finished
