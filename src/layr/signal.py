"""Signal — a single observable value with push-based subscribers.

A Signal holds one current value. Subscribers are (notify, teardown)
records: notify receives every new value, teardown runs once when the
signal is destroyed. Subscribing replays the current value immediately,
so a new subscriber is never stale.

Writes are deduplicated by structural equality (``==`` on dicts and lists
compares deeply). Subscriber code always runs behind a protective
boundary: one failing callback is logged and never blocks the others.

Derived signals (``map``) subscribe to their parent. Destroying the parent
cascades down; destroying the derived signal only detaches it.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]

logger = logging.getLogger("layr.signal")


class _Subscriber(Generic[T]):
    __slots__ = ("notify", "teardown")

    def __init__(self, notify: Callable[[T], None], teardown: Disposer | None) -> None:
        self.notify = notify
        self.teardown = teardown


class Signal(Generic[T]):
    """A single observable value."""

    def __init__(self, value: T, *, on_destroy: Disposer | None = None) -> None:
        self._value = value
        self._subscribers: list[_Subscriber[T]] = []
        self._destroyed = False
        self._on_destroy = on_destroy
        self._detach: Disposer | None = None

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def get(self) -> T:
        """Read the current value. No side effects."""
        return self._value

    def set(self, value: T) -> None:
        """Write a new value and notify subscribers if it changed."""
        if self._destroyed:
            return
        if not self._subscribers:
            # Nobody is listening: store without comparing.
            self._value = value
            return
        old = self._value
        if old is value or old == value:
            return
        self._value = value
        for subscriber in list(self._subscribers):
            try:
                subscriber.notify(value)
            except Exception:
                logger.exception("Error in signal subscriber")

    def update(self, fn: Callable[[T], T]) -> None:
        """Functional update: set(fn(get()))."""
        self.set(fn(self._value))

    def subscribe(
        self,
        notify: Callable[[T], None],
        teardown: Disposer | None = None,
    ) -> Disposer:
        """Register a subscriber and replay the current value to it.

        Returns a function that removes this subscriber only.
        """
        subscriber = _Subscriber(notify, teardown)
        self._subscribers.append(subscriber)
        try:
            notify(self._value)
        except Exception:
            logger.exception("Error in initial subscriber notification")

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(subscriber)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def destroy(self) -> None:
        """Run every teardown once, drop subscribers, run on_destroy.

        Idempotent: repeated calls do nothing.
        """
        if self._destroyed:
            return
        self._destroyed = True
        detach, self._detach = self._detach, None
        if detach is not None:
            detach()
        self._run_teardowns("Error in signal destroy callback")
        if self._on_destroy is not None:
            try:
                self._on_destroy()
            except Exception:
                logger.exception("Error in signal on_destroy callback")

    def clean_subscribers(self) -> None:
        """Tear down all subscribers but keep the signal alive."""
        self._run_teardowns("Error in clean_subscribers destroy callback")

    def map(self, fn: Callable[[T], U]) -> Signal[U]:
        """Create a derived signal holding fn(value).

        Parent destruction cascades to the derived signal. Destroying the
        derived signal detaches it from the parent first.
        """
        derived: Signal[U] = Signal(fn(self._value))
        unsubscribe = self.subscribe(
            lambda value: derived.set(fn(value)),
            derived.destroy,
        )
        derived._detach = unsubscribe
        return derived

    def _run_teardowns(self, message: str) -> None:
        subscribers, self._subscribers = self._subscribers, []
        for subscriber in subscribers:
            if subscriber.teardown is None:
                continue
            try:
                subscriber.teardown()
            except Exception:
                logger.exception(message)

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"{len(self._subscribers)} subscribers"
        return f"Signal({self._value!r}, {state})"


def create_signal(value: T, *, on_destroy: Disposer | None = None) -> Signal[T]:
    """Factory for Signal."""
    return Signal(value, on_destroy=on_destroy)


def is_signal(value: object) -> bool:
    return isinstance(value, Signal)
