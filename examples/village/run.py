"""Village demo: four villagers living on need pressure alone.

Loads examples/scenarios/village.json, runs the engine in real time (optionally
sped up), prints events as they happen and renders the village every tick.

Lonely villagers who find nobody to talk to walk over to the busiest other
location. That move goes through the intent queue, the same way a UI would
ask for it.

Usage:
    # One simulated minute per real second, 600 ticks
    python examples/village/run.py --ticks 600 --speed 60

    # Follow one villager
    python examples/village/run.py --view focused_being --focus ada

    # Resume from a save, autosaving every 100 ticks
    python examples/village/run.py --load autosave --autosave-every 100
"""

import argparse
import asyncio
import sys
import time
from pathlib import Path

# Add project root to path for imports when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from lifeengine import (
    ActionKind,
    EventBus,
    EventLogObserver,
    JsonPersistence,
    LifeEngine,
    LifeEvent,
    LifeEventType,
    LifePipeline,
    MoveBeing,
    ScenarioLoader,
    SelectBeing,
    TerminalRenderer,
    ViewMode,
)
from lifeengine.config import Config


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Need-driven village simulation")
    parser.add_argument("--scenario", default="village", help="Scenario name (default: village)")
    parser.add_argument("--ticks", type=int, default=600, help="Ticks to run (default: 600)")
    parser.add_argument(
        "--speed",
        type=float,
        default=60.0,
        help="Simulated seconds per real second (default: 60)",
    )
    parser.add_argument(
        "--view",
        choices=[mode.value for mode in ViewMode],
        default=ViewMode.OVERVIEW.value,
        help="Renderer view mode",
    )
    parser.add_argument("--focus", help="Being id to select for the focused view")
    parser.add_argument("--load", metavar="SLOT", help="Resume from a saved slot instead of the scenario")
    parser.add_argument("--save", metavar="SLOT", help="Save the final world to this slot")
    parser.add_argument("--autosave-every", type=int, default=None, help="Autosave every N ticks")
    parser.add_argument("--quiet", action="store_true", help="Do not print individual events")
    return parser.parse_args()


class Wanderer:
    """Sends lonely beings with nobody around to the busiest other location."""

    def __init__(self, engine: LifeEngine):
        self.engine = engine

    def __call__(self, event: LifeEvent) -> None:
        if event.type != LifeEventType.ACTION_STARTED:
            return
        if event.metadata.get("action") != ActionKind.SOCIALIZE.value or event.secondary_being:
            return

        world = self.engine.world
        being = world.beings[event.primary_being]
        others = [loc for loc in sorted(world.locations) if loc != being.location_id]
        if not others:
            return
        destination = max(others, key=lambda loc: len(world.locations[loc].occupants))
        self.engine.submit(MoveBeing(being_id=being.id, location_id=destination))


async def main() -> None:
    args = parse_args()
    Config.validate()
    print(Config.display())
    print()

    persistence = JsonPersistence(Config.SAVE_DIR)
    if args.load:
        await persistence.initialize()
        world = await persistence.load(args.load)
        if world is None:
            print(f"No save named '{args.load}' in {Config.SAVE_DIR}")
            sys.exit(1)
        print(f"Resumed '{args.load}' at tick {world.tick}")
    else:
        loader = ScenarioLoader()
        info = loader.get_scenario_info(args.scenario)
        print(f"Scenario: {info['name']} - {info['description']}")
        world = loader.load(args.scenario)

    bus = EventBus()
    if not args.quiet:
        bus.subscribe(EventLogObserver())

    start = time.monotonic()
    engine = LifeEngine(
        world,
        LifePipeline(),
        bus,
        TerminalRenderer(),
        persistence,
        # Engine time runs ``speed`` times faster than the wall clock
        clock=lambda: (time.monotonic() - start) * args.speed,
        sleep=lambda seconds: asyncio.sleep(seconds / args.speed),
        tick_interval=Config.TICK_INTERVAL_MS / 1000.0 * args.speed,
        autosave_every=args.autosave_every,
        view_mode=ViewMode(args.view),
    )
    bus.subscribe(Wanderer(engine))
    if args.focus:
        engine.submit(SelectBeing(being_id=args.focus))

    summary = await engine.run(max_ticks=args.ticks)

    if args.save:
        await persistence.initialize()
        await persistence.save(args.save, world)
        print(f"Saved world to '{args.save}'")

    print(
        f"\nRan {summary['ticks_run']} ticks, published {summary['events_published']} events "
        f"({len(world.event_history)} in history)."
    )
    for being in world.ordered_beings():
        friends = [
            world.beings[target].name
            for target, edge in sorted(being.relationships.items())
            if edge.kind.value == "friend"
        ]
        print(f"  {being.name}: {len(being.memories)} memories, friends: {', '.join(friends) or 'none'}")


if __name__ == "__main__":
    asyncio.run(main())
