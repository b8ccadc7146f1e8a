"""
Error taxonomy for LifeEngine simulations.

Four failure classes cross module boundaries:

1. RecoverablePerBeingError - one being is malformed; the pass skips it
2. FatalWorldStateError - a world-level invariant is broken; the tick is abandoned
3. ObserverNotificationError - one or more event observers raised during publish
4. PersistenceIOError - save/load failed; surfaced directly, never retried

Pipeline passes resolve per-being errors locally. Everything structural is
surfaced to the caller and the scheduler stops.
"""

from typing import Any, List, Optional, Tuple


class LifeEngineError(Exception):
    """Base class for every error raised by the engine."""


class RecoverablePerBeingError(LifeEngineError):
    """Raised by a pass when a single being cannot be processed this tick.

    The pipeline restores the being to its pre-pass state and records a
    SystemWarning event instead of aborting the tick.
    """

    def __init__(self, *, being_id: str, reason: str) -> None:
        self.being_id = being_id
        self.reason = reason
        super().__init__(f"Being '{being_id}' skipped: {reason}")


class FatalWorldStateError(LifeEngineError):
    """Raised when the world violates a structural invariant.

    Malformed world state is a caller bug, not a runtime condition, so the
    scheduler abandons the tick and transitions to Stopped.
    """

    def __init__(self, reason: str, *, tick: Optional[int] = None, being_id: Optional[str] = None) -> None:
        self.reason = reason
        self.tick = tick
        self.being_id = being_id
        where = f" at tick {tick}" if tick is not None else ""
        who = f" (being '{being_id}')" if being_id else ""
        message = (
            f"Invalid world state{where}{who}: {reason}\n\n"
            "Remediation tips:\n"
            "  - Place every being in a registered location (World.add_being / World.move_being)\n"
            "  - Only create relationships towards beings that exist in the world\n"
            "  - Mutate beings and locations through World helpers so occupancy stays in sync"
        )
        super().__init__(message)


class ObserverNotificationError(LifeEngineError):
    """Raised by EventBus.publish after every observer ran and at least one failed.

    ``failures`` keeps (observer, exception) pairs in subscription order. The
    first failure is chained as ``__cause__``.
    """

    def __init__(self, *, event: Any, failures: List[Tuple[Any, BaseException]]) -> None:
        self.event = event
        self.failures = failures
        lines = [f"{len(failures)} observer(s) failed while handling {event.type.value} event:"]
        for observer, exc in failures:
            lines.append(f"  - {_observer_name(observer)}: {exc!r}")
        super().__init__("\n".join(lines))

    @property
    def first(self) -> BaseException:
        return self.failures[0][1]


class PersistenceIOError(LifeEngineError):
    """Raised when a world snapshot cannot be written, read or decoded."""

    def __init__(self, *, operation: str, underlying: BaseException, target: Optional[str] = None) -> None:
        self.operation = operation
        self.underlying = underlying
        self.target = target
        location = f" ({target})" if target else ""
        message = (
            f"Persistence {operation} failed{location}: {underlying}\n\n"
            "No retry was attempted. Check that the save directory is writable and that\n"
            "the snapshot was produced by a compatible LifeEngine version."
        )
        super().__init__(message)


def _observer_name(observer: Any) -> str:
    name = getattr(observer, "__qualname__", None) or getattr(observer, "__name__", None)
    if name:
        return name
    return type(observer).__name__
