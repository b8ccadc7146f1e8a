"""
Simulation scheduler.

Fully decoupled: the world, pipeline, event bus, renderer, persistence store,
clock and sleep primitive are all injected. Tests drive it with a fake clock
and an instant sleep; the demo uses time.monotonic and asyncio.sleep.

Per tick while Running:
1. Compute delta from the injected clock
2. Apply queued intents (the only external way to change the world)
3. Run the life systems pipeline
4. Publish each event, in emission order, on the event bus
5. Hand the world to the renderer (failures isolated)
6. Autosave every N ticks if configured
7. Sleep until the next tick boundary; overruns proceed immediately with no
   catch-up (drop-frame)

States: Stopped -> Running on run(); Running <-> Paused via pause()/resume();
stop() lets the current tick finish and then returns to Stopped.
"""

import asyncio
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from .config import Config
from .errors import FatalWorldStateError, ObserverNotificationError
from .event_bus import EventBus
from .intents import Intent
from .logging_utils import log_deterministic, log_error, log_info, log_success, log_warning
from .persistence import PersistenceStrategy
from .presentation import Renderer, ViewMode
from .schemas import LifeEvent, World
from .systems import LifePipeline


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


class LifeEngine:
    """Drives the tick loop for one World."""

    RECENT_ERRORS_KEPT = 10

    def __init__(
        self,
        world: World,
        pipeline: Optional[LifePipeline] = None,
        bus: Optional[EventBus] = None,
        renderer: Optional[Renderer] = None,
        persistence: Optional[PersistenceStrategy] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        tick_interval: Optional[float] = None,
        autosave_every: Optional[int] = None,
        autosave_slot: str = "autosave",
        view_mode: ViewMode = ViewMode.OVERVIEW,
        raise_observer_errors: bool = False,
        verbose: Optional[bool] = None,
    ):
        """Initialize the engine with all collaborators injected.

        Args:
            world: World to simulate (mutated in place)
            pipeline: Life systems pipeline (defaults to the canonical passes)
            bus: Event bus events are published on (defaults to an empty bus)
            renderer: Optional renderer called after every tick and while paused
            persistence: Optional store used for autosaves and save()
            clock: Monotonic time source in seconds
            sleep: Awaitable delay used between ticks
            tick_interval: Target seconds per tick (defaults to LIFEENGINE_TICK_INTERVAL_MS)
            autosave_every: Save every N ticks (0/None disables unless configured)
            autosave_slot: Slot name used by autosaves
            view_mode: Initial view mode handed to the renderer
            raise_observer_errors: Re-raise observer failures after publishing a
                tick's events instead of only logging them
            verbose: Log one line per tick (defaults to LIFEENGINE_VERBOSE)
        """
        self.world = world
        self.pipeline = pipeline or LifePipeline()
        self.bus = bus or EventBus()
        self.renderer = renderer
        self.persistence = persistence
        self.clock = clock
        self.sleep = sleep
        self.tick_interval = (
            tick_interval if tick_interval is not None else Config.TICK_INTERVAL_MS / 1000.0
        )
        if self.tick_interval < 0:
            raise ValueError("tick_interval must be >= 0")
        self.autosave_every = autosave_every if autosave_every is not None else Config.AUTOSAVE_EVERY
        self.autosave_slot = autosave_slot
        self.view_mode = view_mode
        self.raise_observer_errors = raise_observer_errors
        self.verbose = Config.VERBOSE if verbose is None else verbose

        self.state = SchedulerState.STOPPED
        self._intents: Deque[Intent] = deque()
        self._stop_requested = False

        # Diagnostics for the current/last run. Only the most recent observer
        # errors are kept; observer_failures counts all of them.
        self.observer_failures = 0
        self.recent_observer_errors: Deque[ObserverNotificationError] = deque(
            maxlen=self.RECENT_ERRORS_KEPT
        )
        self.render_failures = 0
        self.events_published = 0

    # -- control --------------------------------------------------------------

    def submit(self, intent: Intent) -> None:
        """Queue an intent for the start of the next tick."""
        self._intents.append(intent)

    def pause(self) -> None:
        if self.state == SchedulerState.RUNNING:
            self.state = SchedulerState.PAUSED

    def resume(self) -> None:
        if self.state == SchedulerState.PAUSED:
            self.state = SchedulerState.RUNNING

    def stop(self) -> None:
        """Ask the loop to exit once the current tick has finished."""
        if self.state != SchedulerState.STOPPED:
            self._stop_requested = True

    # -- loop -----------------------------------------------------------------

    async def run(self, max_ticks: Optional[int] = None) -> Dict[str, Any]:
        """Run ticks until stop() is called or ``max_ticks`` ticks have run.

        Returns:
            Dict with ticks_run, final_tick, events_published, observer_failures,
            render_failures and the world

        Raises:
            FatalWorldStateError: if the world breaks a structural invariant;
                the scheduler is Stopped when this propagates
            PersistenceIOError: if an autosave fails
        """
        if self.state != SchedulerState.STOPPED:
            raise RuntimeError(f"LifeEngine is already {self.state.value}")

        self.state = SchedulerState.RUNNING
        self._stop_requested = False
        self.observer_failures = 0
        self.recent_observer_errors.clear()
        self.render_failures = 0
        self.events_published = 0
        ticks_run = 0

        if self.persistence:
            await self.persistence.initialize()

        if self.verbose:
            log_info(
                f"Starting simulation: {len(self.world.beings)} beings, "
                f"{len(self.world.locations)} locations, interval {self.tick_interval * 1000:.0f}ms"
            )

        try:
            last = self.clock()
            while not self._stop_requested and (max_ticks is None or ticks_run < max_ticks):
                if self.state == SchedulerState.PAUSED:
                    self._render()
                    await self.sleep(self.tick_interval)
                    # Time spent paused never reaches the pipeline
                    last = self.clock()
                    continue

                started = self.clock()
                delta = max(0.0, started - last)
                last = started

                self.tick(delta)
                ticks_run += 1
                await self._autosave()

                elapsed = self.clock() - started
                await self.sleep(max(0.0, self.tick_interval - elapsed))
        finally:
            self.state = SchedulerState.STOPPED
            self._stop_requested = False
            if self.persistence:
                await self.persistence.close()

        if self.verbose:
            log_success(f"Simulation stopped after {ticks_run} ticks (world tick {self.world.tick})")

        return {
            "ticks_run": ticks_run,
            "final_tick": self.world.tick,
            "events_published": self.events_published,
            "observer_failures": self.observer_failures,
            "render_failures": self.render_failures,
            "world": self.world,
        }

    def tick(self, delta: float) -> List[LifeEvent]:
        """Execute a single tick synchronously and return its events.

        Raises:
            FatalWorldStateError: the tick is abandoned, the world (intent
                effects included) is rolled back and the scheduler stops
            ObserverNotificationError: only when raise_observer_errors is set,
                after every event of the tick was published
        """
        checkpoint = self.world.checkpoint()
        intent_events = self._apply_intents()

        try:
            events = self.pipeline.run(delta, self.world, initial_events=intent_events)
        except FatalWorldStateError as exc:
            # Undo the intents too, their events never reach history
            self.world.restore(checkpoint)
            log_error(f"Tick {self.world.tick + 1} abandoned: {exc.reason}")
            self._stop_requested = True
            self.state = SchedulerState.STOPPED
            raise

        if self.verbose:
            log_deterministic(f"Tick {self.world.tick}: {len(events)} events (delta={delta:.3f}s)")

        errors = self.bus.publish_all(events)
        self.events_published += len(events)
        self.observer_failures += len(errors)
        self.recent_observer_errors.extend(errors)

        self._render()

        if errors and self.raise_observer_errors:
            raise errors[0]
        return events

    # -- helpers --------------------------------------------------------------

    def _apply_intents(self) -> List[LifeEvent]:
        events: List[LifeEvent] = []
        while self._intents:
            intent = self._intents.popleft()
            try:
                events.extend(intent.apply(self))
            except (KeyError, ValueError) as exc:
                log_warning(f"Dropped {type(intent).__name__}: {exc}")
        return events

    def _render(self) -> None:
        if self.renderer is None:
            return
        try:
            self.renderer.render(self.world, self.view_mode)
        except Exception as exc:
            self.render_failures += 1
            log_warning(f"Renderer {type(self.renderer).__name__} failed: {exc}")

    async def _autosave(self) -> None:
        if not self.persistence or not self.autosave_every:
            return
        if self.world.tick % self.autosave_every != 0:
            return
        await self.persistence.save(self.autosave_slot, self.world)
        if self.verbose:
            log_success(f"Autosaved tick {self.world.tick} to '{self.autosave_slot}'")

    async def save(self, slot: str) -> None:
        """Save the world to ``slot`` through the configured store."""
        if self.persistence is None:
            raise RuntimeError("LifeEngine has no persistence strategy configured")
        await self.persistence.save(slot, self.world)
