"""Minimal publish/subscribe channel.

Delivers values to a dynamic set of subscribers. A failing subscriber never
affects the publisher or the remaining subscribers: the failure is reported to
a diagnostic sink (a `logging.Logger`) and delivery continues.

USAGE:
    channel: Observable[str] = Observable("events")
    sub = channel.subscribe(lambda value: print(value))
    channel.publish("hello")
    sub.unsubscribe()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ChannelObserver(Generic[T]):
    """Callbacks for one subscriber. Every callback is optional."""

    on_next: Callable[[T], None] | None = None
    on_error: Callable[[BaseException], None] | None = None
    on_complete: Callable[[], None] | None = None


@dataclass(eq=False)
class _Subscriber(Generic[T]):
    observer: ChannelObserver[T]
    # Serializes delivery to this observer when several threads publish.
    # Re-entrant so an observer may publish on the same channel.
    lock: threading.RLock = field(default_factory=threading.RLock)


class Subscription:
    """Handle returned by `Observable.subscribe`."""

    def __init__(self, channel: Observable | None, subscriber: _Subscriber | None):
        self._channel = channel
        self._subscriber = subscriber

    @property
    def closed(self) -> bool:
        return self._channel is None

    def unsubscribe(self) -> None:
        """Remove the subscriber. Calling twice is a no-op."""
        if self._channel is not None and self._subscriber is not None:
            self._channel._remove(self._subscriber)
        self._channel = None
        self._subscriber = None


class Observable(Generic[T]):
    """Publish/subscribe channel with per-subscriber failure isolation."""

    def __init__(self, name: str = "observable", sink: logging.Logger | None = None):
        self.name = name
        self._sink = sink or logger
        self._subscribers: list[_Subscriber[T]] = []
        self._lock = threading.Lock()
        self._completed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def completed(self) -> bool:
        return self._completed

    def subscribe(self, observer: ChannelObserver[T] | Callable[[T], None]) -> Subscription:
        """Register an observer; a bare callable is treated as `on_next`."""
        if not isinstance(observer, ChannelObserver):
            observer = ChannelObserver(on_next=observer)

        with self._lock:
            if self._completed:
                self._sink.debug(f"Subscribe after completion on '{self.name}' ignored")
                return Subscription(None, None)
            subscriber = _Subscriber(observer)
            self._subscribers.append(subscriber)
        return Subscription(self, subscriber)

    def _remove(self, subscriber: _Subscriber[T]) -> None:
        with self._lock:
            try:
                self._subscribers.remove(subscriber)
            except ValueError:
                pass  # Already removed by complete()

    def _snapshot(self) -> list[_Subscriber[T]]:
        with self._lock:
            return list(self._subscribers)

    def _deliver(
        self,
        subscriber: _Subscriber[T],
        callback: Callable[..., None] | None,
        *args: object,
        phase: str,
    ) -> None:
        if callback is None:
            return
        with subscriber.lock:
            try:
                callback(*args)
            except Exception as e:
                self._sink.error(
                    f"Subscriber to '{self.name}' failed during {phase}: {e}",
                    exc_info=True,
                )

    def publish(self, value: T) -> None:
        """Deliver `value` to every subscriber in registration order."""
        if self._completed:
            return
        for subscriber in self._snapshot():
            self._deliver(subscriber, subscriber.observer.on_next, value, phase="publish")

    def signal_error(self, err: BaseException) -> None:
        """Deliver an error signal to every subscriber."""
        if self._completed:
            return
        for subscriber in self._snapshot():
            self._deliver(subscriber, subscriber.observer.on_error, err, phase="error")

    def complete(self) -> None:
        """Signal completion, then drop all subscribers."""
        with self._lock:
            if self._completed:
                return
            self._completed = True
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for subscriber in subscribers:
            self._deliver(subscriber, subscriber.observer.on_complete, phase="complete")
