"""Tests for the publish/subscribe channel."""

from __future__ import annotations

import logging
import threading

from treeflow.core.observable import ChannelObserver, Observable


class TestPublish:
    """Tests for delivery order and subscription handling."""

    def test_delivers_in_registration_order(self):
        """Every subscriber sees every value, first registered first."""
        channel: Observable[int] = Observable("numbers")
        seen: list[tuple[str, int]] = []
        channel.subscribe(lambda v: seen.append(("a", v)))
        channel.subscribe(lambda v: seen.append(("b", v)))

        channel.publish(1)
        channel.publish(2)

        assert seen == [("a", 1), ("b", 1), ("a", 2), ("b", 2)]

    def test_unsubscribe_stops_delivery(self):
        channel: Observable[str] = Observable()
        seen: list[str] = []
        sub = channel.subscribe(seen.append)

        channel.publish("x")
        sub.unsubscribe()
        sub.unsubscribe()
        channel.publish("y")

        assert seen == ["x"]
        assert sub.closed
        assert channel.subscriber_count == 0

    def test_unsubscribe_during_publish(self):
        """A subscriber removing itself mid-pass does not disturb the pass."""
        channel: Observable[int] = Observable()
        seen: list[str] = []
        subs = {}

        def first(v):
            seen.append("first")
            subs["first"].unsubscribe()

        subs["first"] = channel.subscribe(first)
        channel.subscribe(lambda v: seen.append("second"))

        channel.publish(1)
        channel.publish(2)

        assert seen == ["first", "second", "second"]


class TestFailureIsolation:
    """A failing subscriber never affects the publisher or its siblings."""

    def test_raising_subscriber_is_reported_and_skipped(self, caplog):
        sink = logging.getLogger("test.observable.sink")
        channel: Observable[int] = Observable("isolated", sink=sink)
        seen: list[int] = []

        def broken(v):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(seen.append)

        with caplog.at_level(logging.ERROR, logger="test.observable.sink"):
            channel.publish(42)

        assert seen == [42]
        assert any("isolated" in r.getMessage() and "boom" in r.getMessage() for r in caplog.records)

    def test_error_signal_is_isolated(self):
        channel: Observable[int] = Observable()
        errors: list[BaseException] = []

        def broken(err):
            raise ValueError("observer bug")

        channel.subscribe(ChannelObserver(on_error=broken))
        channel.subscribe(ChannelObserver(on_error=errors.append))

        err = RuntimeError("upstream")
        channel.signal_error(err)

        assert errors == [err]


class TestComplete:
    """Tests for completion semantics."""

    def test_complete_notifies_then_clears(self):
        channel: Observable[int] = Observable()
        completed: list[str] = []
        channel.subscribe(ChannelObserver(on_complete=lambda: completed.append("done")))

        channel.complete()
        channel.complete()

        assert completed == ["done"]
        assert channel.completed
        assert channel.subscriber_count == 0

    def test_publish_after_complete_is_noop(self):
        channel: Observable[int] = Observable()
        seen: list[int] = []
        channel.subscribe(seen.append)
        channel.complete()

        channel.publish(1)
        late = channel.subscribe(seen.append)
        channel.publish(2)

        assert seen == []
        assert late.closed


class TestThreadSafety:
    """Concurrent publishers never interleave calls into one subscriber."""

    def test_no_concurrent_entry_into_subscriber(self):
        channel: Observable[int] = Observable()
        active = 0
        max_active = 0
        guard = threading.Lock()
        received: list[int] = []

        def slow(v):
            nonlocal active, max_active
            with guard:
                active += 1
                max_active = max(max_active, active)
            received.append(v)
            with guard:
                active -= 1

        channel.subscribe(slow)

        def publisher(start):
            for i in range(start, start + 200):
                channel.publish(i)

        threads = [threading.Thread(target=publisher, args=(n * 1000,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert max_active == 1
        assert len(received) == 800
