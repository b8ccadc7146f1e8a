"""
Synchronous publish/subscribe for LifeEvents.

Observers are notified in subscription order. A failing observer never stops
delivery to the ones after it: every observer receives the event, failures are
collected, and publish raises a single ObserverNotificationError at the end.

Observers may be LifeEventObserver instances or plain callables taking the
event. Subscribing or unsubscribing from inside a notification takes effect
from the next publish.
"""

from abc import ABC, abstractmethod
from itertools import count
from typing import Callable, Dict, List, Tuple, Union

from .errors import ObserverNotificationError, _observer_name
from .logging_utils import log_warning
from .schemas import LifeEvent


class LifeEventObserver(ABC):
    """Receives every published LifeEvent."""

    @abstractmethod
    def on_life_event(self, event: LifeEvent) -> None:
        pass


Observer = Union[LifeEventObserver, Callable[[LifeEvent], None]]
SubscriptionHandle = int


class EventBus:
    """Fan-out of LifeEvents to registered observers."""

    def __init__(self) -> None:
        self._observers: Dict[SubscriptionHandle, Observer] = {}
        self._handles = count(1)

    def subscribe(self, observer: Observer) -> SubscriptionHandle:
        """Register an observer and return a handle for unsubscribe()."""
        if not isinstance(observer, LifeEventObserver) and not callable(observer):
            raise TypeError(f"Observer must be a LifeEventObserver or callable, got {type(observer).__name__}")
        handle = next(self._handles)
        self._observers[handle] = observer
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Remove a subscription. Returns False if the handle was unknown."""
        return self._observers.pop(handle, None) is not None

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def publish(self, event: LifeEvent) -> None:
        """Deliver ``event`` to every observer, then report failures together.

        Raises:
            ObserverNotificationError: if at least one observer raised. The
                first failure is chained as the cause.
        """
        failures: List[Tuple[Observer, BaseException]] = []

        # Snapshot so (un)subscribe during delivery only affects later publishes
        for observer in list(self._observers.values()):
            try:
                if isinstance(observer, LifeEventObserver):
                    observer.on_life_event(event)
                else:
                    observer(event)
            except Exception as exc:
                log_warning(f"Observer {_observer_name(observer)} failed on {event.type.value}: {exc}")
                failures.append((observer, exc))

        if failures:
            raise ObserverNotificationError(event=event, failures=failures) from failures[0][1]

    def publish_all(self, events: List[LifeEvent]) -> List[ObserverNotificationError]:
        """Publish events in order, collecting (not raising) notification errors."""
        errors: List[ObserverNotificationError] = []
        for event in events:
            try:
                self.publish(event)
            except ObserverNotificationError as exc:
                errors.append(exc)
        return errors
