"""Tests for the scheduler loop with an injected clock and sleep."""

from datetime import timedelta

import pytest

from lifeengine.engine import LifeEngine, SchedulerState
from lifeengine.errors import FatalWorldStateError, ObserverNotificationError
from lifeengine.event_bus import EventBus
from lifeengine.intents import FocusLocation, MoveBeing, SelectBeing, SetViewMode, SpawnBeing
from lifeengine.needs import DEFAULT_CATALOG
from lifeengine.persistence import InMemoryPersistence
from lifeengine.presentation import Renderer, ViewMode
from lifeengine.schemas import SIM_EPOCH, Being, LifeEventType, Location, NeedKind, World
from lifeengine.systems import LifePipeline, LifeSystem, NeedDecaySystem, make_event


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Advances the fake clock instead of waiting; optional hook per call."""

    def __init__(self, clock: FakeClock, hook=None) -> None:
        self.clock = clock
        self.hook = hook
        self.calls: list = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.now += seconds
        if self.hook:
            self.hook(len(self.calls))


class RecordingRenderer(Renderer):
    def __init__(self, hook=None) -> None:
        self.frames: list = []
        self.hook = hook

    def render(self, world: World, view_mode: ViewMode) -> None:
        self.frames.append((world.tick, view_mode))
        if self.hook:
            self.hook(world)


class BrokenRenderer(Renderer):
    def render(self, world: World, view_mode: ViewMode) -> None:
        raise RuntimeError("display unplugged")


class SlowSystem(LifeSystem):
    """Burns fake time to simulate a tick that overruns the interval."""

    name = "slow"

    def __init__(self, clock: FakeClock, cost: float) -> None:
        super().__init__()
        self.clock = clock
        self.cost = cost

    def update(self, delta, world):
        self.clock.now += self.cost
        return []


class CollapsingSystem(LifeSystem):
    """Reports a structural failure after earlier passes have run."""

    name = "collapsing"

    def update(self, delta, world):
        raise FatalWorldStateError("occupancy lost mid-tick", tick=world.tick)


class ChattySystem(LifeSystem):
    """Emits one event every tick."""

    name = "chatty"

    def update(self, delta, world):
        return [make_event(world, LifeEventType.SYSTEM_WARNING, "ada", "Ada hums")]


def make_world() -> World:
    world = World()
    world.add_location(Location(id="square", name="Village Square"))
    world.add_location(Location(id="tavern", name="Tavern"))
    world.add_being(Being.create("ada", "Ada", intensities={NeedKind.HUNGER: 0.9}), "square")
    world.add_being(Being.create("bo", "Bo"), "square")
    return world


def make_engine(world=None, clock=None, sleep=None, **kwargs) -> LifeEngine:
    clock = clock or FakeClock()
    return LifeEngine(
        world or make_world(),
        kwargs.pop("pipeline", LifePipeline(catalog=DEFAULT_CATALOG)),
        kwargs.pop("bus", EventBus()),
        kwargs.pop("renderer", None),
        kwargs.pop("persistence", None),
        clock=clock,
        sleep=sleep or FakeSleep(clock),
        tick_interval=kwargs.pop("tick_interval", 0.5),
        autosave_every=kwargs.pop("autosave_every", 0),
        verbose=False,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_run_stops_after_max_ticks():
    clock = FakeClock()
    sleep = FakeSleep(clock)
    engine = make_engine(clock=clock, sleep=sleep)

    summary = await engine.run(max_ticks=3)

    assert summary["ticks_run"] == 3
    assert summary["final_tick"] == 3
    assert engine.world.tick == 3
    assert engine.state == SchedulerState.STOPPED
    assert sleep.calls == [0.5, 0.5, 0.5]
    # First tick has no elapsed time, the next two one interval each
    assert engine.world.current_time == SIM_EPOCH + timedelta(seconds=1.0)


@pytest.mark.asyncio
async def test_events_are_published_in_emission_order():
    seen: list = []
    bus = EventBus()
    bus.subscribe(seen.append)
    engine = make_engine(bus=bus)

    summary = await engine.run(max_ticks=2)

    assert seen == engine.world.event_history
    assert seen[0].type == LifeEventType.ACTION_STARTED
    assert summary["events_published"] == len(seen)


@pytest.mark.asyncio
async def test_overrun_ticks_do_not_sleep_or_catch_up():
    clock = FakeClock()
    sleep = FakeSleep(clock)
    pipeline = LifePipeline([SlowSystem(clock, cost=0.8)])
    engine = make_engine(clock=clock, sleep=sleep, pipeline=pipeline)

    summary = await engine.run(max_ticks=3)

    assert summary["ticks_run"] == 3
    assert sleep.calls == [0.0, 0.0, 0.0]
    assert all(seconds >= 0 for seconds in sleep.calls)
    # Deltas: 0, then 0.8 per overrun tick
    assert engine.world.current_time == SIM_EPOCH + timedelta(seconds=1.6)


@pytest.mark.asyncio
async def test_stop_lets_the_current_tick_finish():
    engine = None

    def stop_on_second_tick(world: World) -> None:
        if world.tick == 2:
            engine.stop()

    renderer = RecordingRenderer(hook=stop_on_second_tick)
    engine = make_engine(renderer=renderer)

    summary = await engine.run()

    assert summary["ticks_run"] == 2
    assert engine.world.tick == 2
    assert engine.world.pending_events == []
    assert engine.state == SchedulerState.STOPPED


@pytest.mark.asyncio
async def test_pause_keeps_rendering_and_excludes_paused_time():
    clock = FakeClock()
    engine = None

    def control(call_number: int) -> None:
        if call_number == 1:
            engine.pause()
        elif call_number == 3:
            engine.resume()

    renderer = RecordingRenderer()
    engine = make_engine(clock=clock, sleep=FakeSleep(clock, hook=control), renderer=renderer)

    summary = await engine.run(max_ticks=2)

    assert summary["ticks_run"] == 2
    # tick 1, two paused frames of tick 1, then tick 2
    assert [tick for tick, _ in renderer.frames] == [1, 1, 1, 2]
    assert engine.world.current_time == SIM_EPOCH


@pytest.mark.asyncio
async def test_fatal_world_error_stops_the_scheduler():
    clock = FakeClock()
    engine = None

    def corrupt(call_number: int) -> None:
        engine.world.beings["ada"].location_id = "nowhere"

    engine = make_engine(clock=clock, sleep=FakeSleep(clock, hook=corrupt))

    with pytest.raises(FatalWorldStateError):
        await engine.run(max_ticks=5)

    assert engine.state == SchedulerState.STOPPED
    assert engine.world.tick == 1
    assert engine.world.pending_events == []


@pytest.mark.asyncio
async def test_observer_failures_are_logged_and_the_run_continues():
    bus = EventBus()

    def broken(event) -> None:
        raise ValueError("observer bug")

    bus.subscribe(broken)
    engine = make_engine(bus=bus)

    summary = await engine.run(max_ticks=3)

    assert summary["ticks_run"] == 3
    assert summary["observer_failures"] >= 1


@pytest.mark.asyncio
async def test_observer_failure_state_stays_bounded():
    bus = EventBus()

    def broken(event) -> None:
        raise ValueError("observer bug")

    bus.subscribe(broken)
    engine = make_engine(bus=bus, pipeline=LifePipeline([ChattySystem()]))

    summary = await engine.run(max_ticks=400)

    assert summary["events_published"] == 400
    assert summary["observer_failures"] == 400
    assert len(engine.recent_observer_errors) == LifeEngine.RECENT_ERRORS_KEPT
    assert engine.recent_observer_errors[-1].event.tick == 400


@pytest.mark.asyncio
async def test_observer_failures_can_be_raised():
    bus = EventBus()
    seen: list = []

    def broken(event) -> None:
        raise ValueError("observer bug")

    bus.subscribe(broken)
    bus.subscribe(seen.append)
    engine = make_engine(bus=bus, raise_observer_errors=True)

    with pytest.raises(ObserverNotificationError):
        await engine.run(max_ticks=3)

    assert engine.state == SchedulerState.STOPPED
    assert engine.world.tick == 1
    # The sibling observer still received every event of the tick
    assert seen == engine.world.event_history


@pytest.mark.asyncio
async def test_renderer_failures_are_isolated():
    engine = make_engine(renderer=BrokenRenderer())

    summary = await engine.run(max_ticks=2)

    assert summary["ticks_run"] == 2
    assert summary["render_failures"] == 2


def test_intents_apply_at_the_start_of_the_next_tick():
    engine = make_engine()
    engine.submit(MoveBeing(being_id="bo", location_id="tavern"))
    engine.submit(SelectBeing(being_id="ada"))
    engine.submit(FocusLocation(location_id="tavern"))
    engine.submit(SetViewMode(view_mode=ViewMode.FOCUSED_BEING))

    # Nothing happens until a tick runs
    assert engine.world.beings["bo"].location_id == "square"

    events = engine.tick(0.5)

    assert events[0].type == LifeEventType.BEING_MOVED
    assert events[0].tick == 1
    assert events[0].metadata == {"origin": "square", "destination": "tavern"}
    assert engine.world.locations["tavern"].occupants == ["bo"]
    assert engine.world.selected_being_id == "ada"
    assert engine.world.focused_location_id == "tavern"
    assert engine.view_mode == ViewMode.FOCUSED_BEING


def test_fatal_tick_undoes_intents_and_earlier_passes():
    pipeline = LifePipeline([NeedDecaySystem(DEFAULT_CATALOG), CollapsingSystem()])
    engine = make_engine(pipeline=pipeline)
    before = engine.world.model_dump()

    engine.submit(MoveBeing(being_id="ada", location_id="tavern"))
    engine.submit(SpawnBeing(being=Being.create("cy", "Cy"), location_id="tavern"))
    engine.submit(SelectBeing(being_id="bo"))

    with pytest.raises(FatalWorldStateError):
        engine.tick(10.0)

    assert engine.world.model_dump() == before
    assert engine.world.beings["ada"].location_id == "square"
    assert "cy" not in engine.world.beings
    assert engine.world.event_history == []
    assert engine.state == SchedulerState.STOPPED


def test_spawn_intent_adds_a_being():
    engine = make_engine()
    engine.submit(SpawnBeing(being=Being.create("cy", "Cy"), location_id="tavern"))

    events = engine.tick(0.5)

    assert "cy" in engine.world.beings
    assert engine.world.locations["tavern"].occupants == ["cy"]
    assert (events[0].type, events[0].primary_being) == (LifeEventType.BEING_SPAWNED, "cy")
    engine.world.check_invariants()


def test_invalid_intents_are_dropped():
    engine = make_engine()
    engine.submit(MoveBeing(being_id="ghost", location_id="tavern"))
    engine.submit(SpawnBeing(being=Being.create("ada"), location_id="square"))
    engine.submit(FocusLocation(location_id="moon"))

    events = engine.tick(0.5)

    assert all(event.type == LifeEventType.ACTION_STARTED for event in events)
    assert engine.world.focused_location_id is None
    engine.world.check_invariants()


@pytest.mark.asyncio
async def test_autosave_writes_every_n_ticks():
    persistence = InMemoryPersistence()
    engine = make_engine(persistence=persistence, autosave_every=2)

    await engine.run(max_ticks=4)

    saved = await persistence.load("autosave")
    assert saved is not None
    assert saved.tick == 4
    assert await persistence.list_slots() == ["autosave"]


@pytest.mark.asyncio
async def test_run_cannot_start_twice():
    engine = make_engine()
    engine.state = SchedulerState.RUNNING

    with pytest.raises(RuntimeError):
        await engine.run(max_ticks=1)
