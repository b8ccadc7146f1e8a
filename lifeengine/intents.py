"""
Intents: discrete requests from input collaborators.

Collaborators never touch the world directly. They submit intents to the
engine, which applies the whole queue atomically at the start of the next
tick, before the pipeline runs. Intents that change the world emit LifeEvents
stamped with the tick about to run.
"""

from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, Field

from .presentation import ViewMode
from .schemas import Being, LifeEvent, LifeEventType, World

if TYPE_CHECKING:
    from .engine import LifeEngine


def _intent_event(world: World, event_type: LifeEventType, primary: str, description: str, **metadata) -> LifeEvent:
    return LifeEvent(
        tick=world.tick + 1,
        timestamp=world.current_time,
        type=event_type,
        primary_being=primary,
        description=description,
        metadata=metadata,
    )


class Intent(BaseModel):
    """Base class for queued intents.

    ``apply`` raises ValueError or KeyError when the intent no longer makes
    sense (e.g. the being was removed); the engine logs and drops it.
    """

    def apply(self, engine: "LifeEngine") -> List[LifeEvent]:
        raise NotImplementedError


class SelectBeing(Intent):
    """Focus the presentation on one being (None clears the selection)."""

    being_id: Optional[str] = None

    def apply(self, engine: "LifeEngine") -> List[LifeEvent]:
        if self.being_id is not None:
            engine.world.get_being(self.being_id)
        engine.world.selected_being_id = self.being_id
        return []


class FocusLocation(Intent):
    """Focus the presentation on one location (None clears the focus)."""

    location_id: Optional[str] = None

    def apply(self, engine: "LifeEngine") -> List[LifeEvent]:
        if self.location_id is not None and self.location_id not in engine.world.locations:
            raise KeyError(f"Location '{self.location_id}' not found")
        engine.world.focused_location_id = self.location_id
        return []


class SetViewMode(Intent):
    view_mode: ViewMode

    def apply(self, engine: "LifeEngine") -> List[LifeEvent]:
        engine.view_mode = self.view_mode
        return []


class MoveBeing(Intent):
    """Move a being to another location."""

    being_id: str
    location_id: str

    def apply(self, engine: "LifeEngine") -> List[LifeEvent]:
        world = engine.world
        being = world.get_being(self.being_id)
        previous = being.location_id
        if previous == self.location_id:
            return []
        world.move_being(self.being_id, self.location_id)
        destination = world.locations[self.location_id]
        return [
            _intent_event(
                world,
                LifeEventType.BEING_MOVED,
                being.id,
                f"{being.name} went to {destination.name}",
                origin=previous,
                destination=self.location_id,
            )
        ]


class SpawnBeing(Intent):
    """Add a new being to the world at ``location_id``."""

    being: Being = Field(..., description="Being to add; its id must be unused")
    location_id: str

    def apply(self, engine: "LifeEngine") -> List[LifeEvent]:
        world = engine.world
        for target_id in self.being.relationships:
            if target_id == self.being.id or target_id not in world.beings:
                raise ValueError(f"Spawned being '{self.being.id}' has an invalid relationship to '{target_id}'")
        being = self.being.model_copy(deep=True)
        world.add_being(being, self.location_id)
        location = world.locations[self.location_id]
        return [
            _intent_event(
                world,
                LifeEventType.BEING_SPAWNED,
                being.id,
                f"{being.name} arrived at {location.name}",
                location=self.location_id,
            )
        ]
