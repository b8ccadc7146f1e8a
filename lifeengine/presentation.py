"""
Presentation collaborators: view modes, the renderer contract, and plain
terminal implementations.

Renderers and observers only read the world they are handed. Layout and
colouring are intentionally minimal; richer front-ends implement Renderer.
"""

import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, TextIO

from .config import Config
from .event_bus import LifeEventObserver
from .logging_utils import Color, colored
from .memory import recall
from .schemas import Being, LifeEvent, LifeEventType, NeedKind, World


class ViewMode(str, Enum):
    """What the renderer should focus on."""

    OVERVIEW = "overview"
    FOCUSED_BEING = "focused_being"
    LOCATION = "location"


class Renderer(ABC):
    """Draws the current world. Must not mutate it."""

    @abstractmethod
    def render(self, world: World, view_mode: ViewMode) -> None:
        pass


def format_needs(being: Being) -> str:
    return " ".join(f"{kind.value}={being.needs[kind].intensity:.2f}" for kind in NeedKind)


def format_being_line(being: Being, world: World) -> str:
    action = being.current_action
    if action is None:
        activity = "Idle"
    else:
        activity = action.description
        if action.target_id is not None and action.target_id in world.beings:
            activity += f" with {world.beings[action.target_id].name}"
        activity += f" ({action.elapsed:.1f}/{action.duration:.1f}s)"
    return f"{being.name}: {activity} [{format_needs(being)}]"


class TerminalRenderer(Renderer):
    """Plain-text renderer writing one block per rendered frame.

    Args:
        stream: Output stream (defaults to stdout)
        only_on_change: Skip frames where neither the tick nor the view changed,
            so a paused engine does not flood the terminal
        memory_limit: Memories listed in the focused-being view
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        *,
        only_on_change: bool = True,
        memory_limit: int = 3,
    ) -> None:
        self.stream = stream
        self.only_on_change = only_on_change
        self.memory_limit = memory_limit
        self._last_frame = None

    def _write(self, line: str = "") -> None:
        print(line, file=self.stream or sys.stdout)

    def render(self, world: World, view_mode: ViewMode) -> None:
        frame = (world.tick, view_mode, world.selected_being_id, world.focused_location_id)
        if self.only_on_change and frame == self._last_frame:
            return
        self._last_frame = frame

        self._write(f"=== Tick {world.tick} | {world.current_time.isoformat()} ===")
        if view_mode == ViewMode.FOCUSED_BEING and world.selected_being_id in world.beings:
            self._render_being(world, world.beings[world.selected_being_id])
        elif view_mode == ViewMode.LOCATION and world.focused_location_id in world.locations:
            self._render_location(world, world.focused_location_id)
        else:
            for location_id in sorted(world.locations):
                self._render_location(world, location_id)
        self._write()

    def _render_location(self, world: World, location_id: str) -> None:
        location = world.locations[location_id]
        self._write(f"  {location.name}:")
        beings = world.beings_at(location_id)
        if not beings:
            self._write("    (empty)")
        for being in beings:
            self._write(f"    {format_being_line(being, world)}")

    def _render_being(self, world: World, being: Being) -> None:
        self._write(f"  {format_being_line(being, world)}")
        location = world.locations.get(being.location_id)
        self._write(f"  Location: {location.name if location else being.location_id}")
        if being.traits:
            self._write(f"  Traits: {', '.join(trait.name for trait in being.traits)}")
        for target_id in sorted(being.relationships):
            edge = being.relationships[target_id]
            other = world.beings.get(target_id)
            name = other.name if other else target_id
            self._write(f"  -> {name}: {edge.kind.value} ({edge.strength:+.2f})")
        memories = recall(
            being,
            now=world.current_time,
            half_life=Config.MEMORY_HALF_LIFE_SECONDS,
            limit=self.memory_limit,
        )
        for memory in memories:
            self._write(f"  * {memory.description}")


_EVENT_COLORS = {
    LifeEventType.ACTION_STARTED: Color.BLUE,
    LifeEventType.ACTION_COMPLETED: Color.GREEN,
    LifeEventType.ACTION_INTERRUPTED: Color.YELLOW,
    LifeEventType.RELATIONSHIP_CHANGED: Color.CYAN,
    LifeEventType.SYSTEM_WARNING: Color.RED,
    LifeEventType.BEING_MOVED: Color.CYAN,
    LifeEventType.BEING_SPAWNED: Color.CYAN,
}


class EventLogObserver(LifeEventObserver):
    """Prints one coloured line per LifeEvent."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream

    def format(self, event: LifeEvent) -> str:
        return f"  EVENT [{event.tick}] {event.type.value}: {event.description}"

    def on_life_event(self, event: LifeEvent) -> None:
        line = colored(self.format(event), _EVENT_COLORS.get(event.type, Color.CYAN))
        print(line, file=self.stream or sys.stdout)
