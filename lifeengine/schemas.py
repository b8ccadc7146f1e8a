"""
Pydantic schemas for the LifeEngine world model.

All state mutated by the simulation is defined here. The models carry data and
invariants only; behaviour lives in needs.py (decision policy) and systems.py
(the per-tick pipeline).

Design Philosophy:
- One aggregate root (World) owns every Being and Location
- Needs are a closed tagged variant (NeedKind) configured by a catalog table,
  not a class hierarchy
- Records that must never change after creation (Trait, Memory, LifeEvent)
  are frozen models
- Pydantic validation keeps snapshots loadable and comparable across persistence
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import FatalWorldStateError


BeingId = str
LocationId = str

# Simulated time starts here unless a scenario says otherwise. A fixed origin
# keeps fresh worlds byte-identical between runs.
SIM_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)


# ============================================================================
# Enumerations
# ============================================================================


class NeedKind(str, Enum):
    """The closed set of needs every being carries."""

    HUNGER = "hunger"
    SOCIAL = "social"
    REST = "rest"


class ActionKind(str, Enum):
    """Actions a being can take to satisfy a need."""

    EAT = "eat"
    SLEEP = "sleep"
    SOCIALIZE = "socialize"


ACTION_PARTICIPLES: Dict[ActionKind, str] = {
    ActionKind.EAT: "eating",
    ActionKind.SLEEP: "sleeping",
    ActionKind.SOCIALIZE: "socializing",
}


class RelationshipKind(str, Enum):
    """Tag on a directed relationship edge, derived from its strength."""

    ACQUAINTANCE = "acquaintance"
    FRIEND = "friend"
    RIVAL = "rival"


class LifeEventType(str, Enum):
    """Type tag carried by every LifeEvent."""

    ACTION_STARTED = "ActionStarted"
    ACTION_COMPLETED = "ActionCompleted"
    ACTION_INTERRUPTED = "ActionInterrupted"
    RELATIONSHIP_CHANGED = "RelationshipChanged"
    SYSTEM_WARNING = "SystemWarning"
    BEING_MOVED = "BeingMoved"
    BEING_SPAWNED = "BeingSpawned"


# ============================================================================
# Being components
# ============================================================================


class Need(BaseModel):
    """A decaying internal pressure.

    Intensity lives in [0.0, 1.0]; 0.0 means fully satisfied. Between
    satisfactions intensity only moves up, so the only two mutators are
    raise_by() (clamped, non-negative) and satisfy().
    """

    model_config = ConfigDict(validate_assignment=True)

    kind: NeedKind = Field(..., description="Which need this is")
    intensity: float = Field(0.0, ge=0.0, le=1.0, description="Pressure in [0, 1]")
    last_satisfied: datetime = Field(SIM_EPOCH, description="Simulated time of last satisfaction")

    def raise_by(self, amount: float) -> float:
        """Increase intensity by ``amount`` and clamp to [0, 1]."""
        if amount < 0:
            raise ValueError(f"Need intensity cannot decrease without satisfaction (amount={amount})")
        self.intensity = min(1.0, max(0.0, self.intensity + amount))
        return self.intensity

    def satisfy(self, at: datetime) -> None:
        """Reset intensity to exactly 0.0 and stamp the satisfaction time."""
        self.intensity = 0.0
        self.last_satisfied = at


class Trait(BaseModel):
    """Immutable modifier attached to a being at creation.

    A trait with ``need=None`` applies to every need.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Trait label (e.g. 'glutton', 'night_owl')")
    need: Optional[NeedKind] = Field(None, description="Need this trait modifies; None = all needs")
    # Multiplies the per-second decay rate of the targeted need(s)
    decay_multiplier: float = Field(1.0, ge=0.0)
    # Multiplies the outcome of actions satisfying the targeted need(s),
    # e.g. relationship drift after socializing
    outcome_multiplier: float = Field(1.0, ge=0.0)

    def applies_to(self, kind: NeedKind) -> bool:
        """Whether this trait modifies ``kind``.

        Args:
            kind: Need being decayed or satisfied

        Returns:
            True for traits targeting ``kind`` and for untargeted (all-need) traits
        """
        return self.need is None or self.need == kind


class Relationship(BaseModel):
    """Directed edge from the owning being to ``target_id``.

    The reverse edge, if any, lives on the other being and evolves on its own.
    """

    model_config = ConfigDict(validate_assignment=True)

    target_id: BeingId = Field(..., description="Being this edge points to")
    strength: float = Field(0.0, ge=-1.0, le=1.0, description="Affinity in [-1, 1]")
    kind: RelationshipKind = Field(RelationshipKind.ACQUAINTANCE)
    interactions: int = Field(0, ge=0, description="Completed interactions along this edge")
    last_interaction: Optional[datetime] = Field(None)


class Memory(BaseModel):
    """Immutable record of something a being lived through.

    Relevance is not stored; it is computed from importance and age
    (see memory.relevance) so it decays without mutating the record.
    """

    model_config = ConfigDict(frozen=True)

    created_at: datetime = Field(..., description="Simulated time the memory formed")
    event_type: LifeEventType = Field(..., description="Kind of event remembered")
    description: str = Field(..., description="Human-readable memory text")
    other_being_id: Optional[BeingId] = Field(None, description="Other being involved, if any")
    importance: int = Field(5, ge=1, le=10, description="Salience 1-10")


class Action(BaseModel):
    """The single action a being is currently performing."""

    kind: ActionKind
    need: NeedKind = Field(..., description="Need this action satisfies on completion")
    started_at: datetime
    duration: float = Field(..., ge=0.0, description="Seconds of simulated time required")
    elapsed: float = Field(0.0, ge=0.0, description="Seconds performed so far")
    target_id: Optional[BeingId] = Field(None, description="Partner for social actions")

    @property
    def is_complete(self) -> bool:
        return self.elapsed >= self.duration

    @property
    def description(self) -> str:
        return ACTION_PARTICIPLES[self.kind]


class Being(BaseModel):
    """An autonomous simulated agent."""

    id: BeingId = Field(..., description="Stable unique identifier")
    name: str = Field(..., description="Display name")
    needs: Dict[NeedKind, Need] = Field(..., description="Exactly one Need per NeedKind")
    traits: Tuple[Trait, ...] = Field(default_factory=tuple)
    relationships: Dict[BeingId, Relationship] = Field(
        default_factory=dict, description="Outgoing edges keyed by target id"
    )
    memories: List[Memory] = Field(default_factory=list, description="Bounded memory stream")
    current_action: Optional[Action] = Field(None)
    location_id: Optional[LocationId] = Field(None, description="Location currently occupied")
    last_update: datetime = Field(SIM_EPOCH)

    @model_validator(mode="after")
    def _one_need_per_kind(self) -> "Being":
        missing = [kind.value for kind in NeedKind if kind not in self.needs]
        if missing:
            raise ValueError(f"Being '{self.id}' is missing needs: {missing}")
        for kind, need in self.needs.items():
            if need.kind != kind:
                raise ValueError(
                    f"Being '{self.id}' stores a {need.kind.value} need under the {kind.value} key"
                )
        for target_id, relationship in self.relationships.items():
            if relationship.target_id != target_id:
                raise ValueError(
                    f"Being '{self.id}' stores the edge to '{relationship.target_id}' under '{target_id}'"
                )
        return self

    @classmethod
    def create(
        cls,
        being_id: BeingId,
        name: Optional[str] = None,
        *,
        intensities: Optional[Dict[NeedKind, float]] = None,
        traits: Iterable[Trait] = (),
        at: datetime = SIM_EPOCH,
    ) -> "Being":
        """Build a being with one need per kind.

        Args:
            being_id: Unique id, also the key in World.beings
            name: Display name (defaults to the id)
            intensities: Starting intensity per need kind; missing kinds start at 0.0
            traits: Traits scaling decay and outcomes
            at: Timestamp used for last_update and every need's last_satisfied

        Returns:
            An unplaced Being; place it with World.add_being()
        """
        intensities = intensities or {}
        needs = {
            kind: Need(kind=kind, intensity=intensities.get(kind, 0.0), last_satisfied=at)
            for kind in NeedKind
        }
        return cls(
            id=being_id,
            name=name or being_id,
            needs=needs,
            traits=tuple(traits),
            last_update=at,
        )

    def need(self, kind: NeedKind) -> Need:
        """The being's Need of the given kind (every being carries all kinds)."""
        return self.needs[kind]


class Location(BaseModel):
    """A place. ``occupants`` mirrors Being.location_id and is kept sorted."""

    id: LocationId
    name: str
    occupants: List[BeingId] = Field(default_factory=list)


# ============================================================================
# Events
# ============================================================================


class LifeEvent(BaseModel):
    """Immutable record of a life-significant occurrence during a tick."""

    model_config = ConfigDict(frozen=True)

    tick: int = Field(..., ge=0, description="Tick that produced the event")
    timestamp: datetime = Field(..., description="Simulated time of the event")
    type: LifeEventType
    primary_being: BeingId
    secondary_being: Optional[BeingId] = None
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Aggregate root
# ============================================================================


class World(BaseModel):
    """Aggregate root owning all simulation state for a session.

    Mutated only by the life systems pipeline and by intents the scheduler
    applies at tick start. ``event_history`` is append-only; ``pending_events``
    buffers the current tick and is empty between ticks.
    """

    tick: int = Field(0, ge=0, description="Ticks completed so far")
    current_time: datetime = Field(SIM_EPOCH, description="Simulated time")
    beings: Dict[BeingId, Being] = Field(default_factory=dict)
    locations: Dict[LocationId, Location] = Field(default_factory=dict)
    event_history: List[LifeEvent] = Field(default_factory=list)
    pending_events: List[LifeEvent] = Field(default_factory=list)
    # Presentation focus, set through intents
    selected_being_id: Optional[BeingId] = None
    focused_location_id: Optional[LocationId] = None

    # -- construction helpers -------------------------------------------------

    def add_location(self, location: Location) -> Location:
        if location.id in self.locations:
            raise ValueError(f"Location '{location.id}' already exists")
        self.locations[location.id] = location
        return location

    def add_being(self, being: Being, location_id: Optional[LocationId] = None) -> Being:
        """Register a being and place it in ``location_id`` (or its own location_id)."""
        if being.id in self.beings:
            raise ValueError(f"Being '{being.id}' already exists")
        target = location_id or being.location_id
        if target is None or target not in self.locations:
            raise ValueError(f"Being '{being.id}' must be placed in a known location, got {target!r}")
        being.location_id = None
        self.beings[being.id] = being
        self.move_being(being.id, target)
        return being

    def move_being(self, being_id: BeingId, location_id: LocationId) -> None:
        """Move a being, keeping Location.occupants in sync."""
        being = self.get_being(being_id)
        if location_id not in self.locations:
            raise KeyError(f"Location '{location_id}' not found")
        previous = being.location_id
        if previous == location_id:
            return
        if previous is not None and previous in self.locations:
            occupants = self.locations[previous].occupants
            if being_id in occupants:
                occupants.remove(being_id)
        destination = self.locations[location_id].occupants
        destination.append(being_id)
        destination.sort()
        being.location_id = location_id

    # -- queries --------------------------------------------------------------

    def get_being(self, being_id: BeingId) -> Being:
        if being_id not in self.beings:
            raise KeyError(f"Being '{being_id}' not found")
        return self.beings[being_id]

    def ordered_beings(self) -> List[Being]:
        """Beings in ascending id order, the processing order of every pass."""
        return [self.beings[key] for key in sorted(self.beings)]

    def beings_at(self, location_id: LocationId) -> List[Being]:
        return [
            being for being in self.ordered_beings() if being.location_id == location_id
        ]

    # -- invariants -----------------------------------------------------------

    def check_invariants(self) -> None:
        """Raise FatalWorldStateError if a structural invariant is broken."""
        for key, being in self.beings.items():
            if key != being.id:
                raise FatalWorldStateError(
                    f"being stored under '{key}' has id '{being.id}'", tick=self.tick, being_id=being.id
                )
            if being.location_id is None:
                raise FatalWorldStateError("being has no location", tick=self.tick, being_id=being.id)
            location = self.locations.get(being.location_id)
            if location is None:
                raise FatalWorldStateError(
                    f"being references unknown location '{being.location_id}'",
                    tick=self.tick,
                    being_id=being.id,
                )
            if being.id not in location.occupants:
                raise FatalWorldStateError(
                    f"location '{location.id}' does not list the being as an occupant",
                    tick=self.tick,
                    being_id=being.id,
                )
            for target_id in being.relationships:
                if target_id == being.id:
                    raise FatalWorldStateError(
                        "being has a relationship with itself", tick=self.tick, being_id=being.id
                    )
                if target_id not in self.beings:
                    raise FatalWorldStateError(
                        f"relationship points to unknown being '{target_id}'",
                        tick=self.tick,
                        being_id=being.id,
                    )

        for location in self.locations.values():
            if len(set(location.occupants)) != len(location.occupants):
                raise FatalWorldStateError(
                    f"location '{location.id}' lists an occupant twice", tick=self.tick
                )
            for occupant in location.occupants:
                being = self.beings.get(occupant)
                if being is None or being.location_id != location.id:
                    raise FatalWorldStateError(
                        f"location '{location.id}' lists '{occupant}' who is not there",
                        tick=self.tick,
                    )

        if self.pending_events:
            raise FatalWorldStateError(
                f"{len(self.pending_events)} events left pending from a previous tick", tick=self.tick
            )

    def record(self, events: Iterable[LifeEvent]) -> None:
        """Append events to the authoritative history."""
        self.event_history.extend(events)

    # -- rollback -------------------------------------------------------------

    def checkpoint(self) -> "World":
        """Copy everything a tick can change, for use with ``restore``.

        Beings and locations are deep-copied. ``event_history`` is shared with
        the live world rather than copied: it is append-only and only the flush
        pass, the last step of a tick, writes to it.

        Returns:
            A detached World holding this world's current state
        """
        return self.model_copy(
            update={
                "beings": {key: being.model_copy(deep=True) for key, being in self.beings.items()},
                "locations": {
                    key: location.model_copy(deep=True) for key, location in self.locations.items()
                },
                "pending_events": list(self.pending_events),
            }
        )

    def restore(self, checkpoint: "World") -> None:
        """Put every field back to the state captured by ``checkpoint()``.

        The world is reset in place so callers holding a reference to it (the
        scheduler, renderers, observers) keep seeing the live object.
        """
        for field_name in type(self).model_fields:
            setattr(self, field_name, getattr(checkpoint, field_name))
