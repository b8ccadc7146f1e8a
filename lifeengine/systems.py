"""
Life systems: the ordered passes that mutate the world every tick.

Each pass implements a single capability, ``update(delta, world) -> events``,
and must be deterministic for identical ``(delta, world)`` inputs. The
pipeline runs them strictly in registration order; later passes read the
writes of earlier ones (action resolution sees decayed needs, relationship
maintenance sees the actions completed this tick via ``world.pending_events``).

Canonical order:
1. NeedDecaySystem - needs drift toward 1.0
2. ActionSystem - decision policy picks, progresses, completes or interrupts actions
3. RelationshipMemorySystem - relationship drift and memory formation/eviction
4. EventFlushSystem - pending events move into history and are returned

Per-being problems (RecoverablePerBeingError) are resolved locally: the being
is restored to its pre-pass state and a SystemWarning event is emitted.
Structural problems (FatalWorldStateError) abort the tick and roll the world
back to its state before the tick started.
"""

from abc import ABC
from datetime import timedelta
from typing import List, Optional, Sequence, Set, Tuple

from .config import Config
from .errors import FatalWorldStateError, RecoverablePerBeingError
from .logging_utils import log_warning
from .memory import remember
from .needs import (
    DEFAULT_CATALOG,
    NeedCatalog,
    apply_decay,
    check_evaluable,
    choose_partner,
    outcome_multiplier,
    satisfy,
    select_need,
)
from .schemas import (
    ACTION_PARTICIPLES,
    Action,
    ActionKind,
    Being,
    LifeEvent,
    LifeEventType,
    Memory,
    NeedKind,
    Relationship,
    RelationshipKind,
    World,
)


def make_event(
    world: World,
    event_type: LifeEventType,
    primary: str,
    description: str,
    secondary: Optional[str] = None,
    **metadata,
) -> LifeEvent:
    """Build a LifeEvent stamped with the world's current tick and time."""
    return LifeEvent(
        tick=world.tick,
        timestamp=world.current_time,
        type=event_type,
        primary_being=primary,
        secondary_being=secondary,
        description=description,
        metadata=metadata,
    )


class LifeSystem(ABC):
    """One deterministic update pass over the world.

    The default ``update`` visits beings in ascending id order and delegates
    to ``update_being``. Systems that work on the world as a whole override
    ``update`` directly.
    """

    name: str = "life_system"

    def __init__(self, *, emit_warnings: bool = True) -> None:
        self.emit_warnings = emit_warnings

    def update(self, delta: float, world: World) -> List[LifeEvent]:
        events: List[LifeEvent] = []
        for being in world.ordered_beings():
            snapshot = being.model_copy(deep=True)
            try:
                events.extend(self.update_being(delta, world, being))
            except RecoverablePerBeingError as exc:
                # Leave the being exactly as it was before this pass touched it
                world.beings[being.id] = snapshot
                log_warning(f"[{self.name}] tick {world.tick}: {exc}")
                if self.emit_warnings:
                    events.append(
                        make_event(
                            world,
                            LifeEventType.SYSTEM_WARNING,
                            being.id,
                            f"{being.name} was skipped by {self.name}: {exc.reason}",
                            system=self.name,
                        )
                    )
                continue
            being.last_update = world.current_time
        return events

    def update_being(self, delta: float, world: World, being: Being) -> List[LifeEvent]:
        """Process one being. Raise RecoverablePerBeingError to skip it."""
        raise NotImplementedError(f"{type(self).__name__} must implement update_being or update")


class NeedDecaySystem(LifeSystem):
    """Raise every need by its trait-scaled rate times ``delta``."""

    name = "need_decay"

    def __init__(self, catalog: NeedCatalog = DEFAULT_CATALOG, **kwargs) -> None:
        super().__init__(**kwargs)
        self.catalog = catalog

    def update_being(self, delta: float, world: World, being: Being) -> List[LifeEvent]:
        apply_decay(being, delta, self.catalog)
        return []


class ActionSystem(LifeSystem):
    """Apply the decision policy and resolve each being's current action.

    Per being, every tick:
    - the highest-priority need over threshold is selected (None = idle)
    - an action already serving that need progresses by ``delta`` and
      completes (satisfying the need) once ``elapsed >= duration``
    - any other running action is interrupted
    - a new action starts for the selected need

    A malformed action skips the being once (restored, with a warning). If it
    is still there on the next tick it is discarded with an
    ``ActionInterrupted`` event (``reason=invalid``) and the being decides
    afresh.
    """

    name = "action_resolution"

    def __init__(self, catalog: NeedCatalog = DEFAULT_CATALOG, **kwargs) -> None:
        super().__init__(**kwargs)
        self.catalog = catalog
        # Beings skipped last time they were seen for a malformed action
        self._rejected: Set[str] = set()

    def update_being(self, delta: float, world: World, being: Being) -> List[LifeEvent]:
        check_evaluable(being, world)

        events: List[LifeEvent] = []
        try:
            self._check_action(world, being)
        except RecoverablePerBeingError:
            if being.id not in self._rejected:
                self._rejected.add(being.id)
                raise
            events.append(self._discard(world, being))
        self._rejected.discard(being.id)

        selected = select_need(being, self.catalog)
        current = being.current_action

        if current is not None and current.need == selected:
            if current.target_id is not None and not self._partner_present(world, being, current.target_id):
                events.append(self._interrupt(world, being, "partner_left"))
            else:
                current.elapsed += delta
                if current.is_complete:
                    events.append(self._complete(world, being))
                return events

        if being.current_action is not None:
            events.append(self._interrupt(world, being, "idle" if selected is None else "preempted"))

        if selected is not None:
            events.append(self._start(world, being, selected))

        return events

    # -- helpers --------------------------------------------------------------

    def _check_action(self, world: World, being: Being) -> None:
        action = being.current_action
        if action is None:
            return
        expected = self.catalog.spec(action.need).action
        if action.kind != expected:
            raise RecoverablePerBeingError(
                being_id=being.id,
                reason=f"action '{action.kind.value}' cannot satisfy the {action.need.value} need",
            )
        if action.target_id is not None:
            if action.target_id == being.id:
                raise RecoverablePerBeingError(being_id=being.id, reason="action targets the being itself")
            if action.target_id not in world.beings:
                raise RecoverablePerBeingError(
                    being_id=being.id, reason=f"action targets unknown being '{action.target_id}'"
                )

    @staticmethod
    def _partner_present(world: World, being: Being, partner_id: str) -> bool:
        partner = world.beings.get(partner_id)
        return partner is not None and partner.location_id == being.location_id

    def _start(self, world: World, being: Being, kind: NeedKind) -> LifeEvent:
        spec = self.catalog.spec(kind)
        target_id = choose_partner(being, world) if spec.action == ActionKind.SOCIALIZE else None
        being.current_action = Action(
            kind=spec.action,
            need=kind,
            started_at=world.current_time,
            duration=spec.action_duration,
            target_id=target_id,
        )
        description = f"{being.name} began {ACTION_PARTICIPLES[spec.action]}"
        if target_id is not None:
            description += f" with {world.beings[target_id].name}"
        return make_event(
            world,
            LifeEventType.ACTION_STARTED,
            being.id,
            description,
            secondary=target_id,
            action=spec.action.value,
            need=kind.value,
        )

    def _complete(self, world: World, being: Being) -> LifeEvent:
        action = being.current_action
        satisfy(being, action.need, world.current_time)
        being.current_action = None
        description = f"{being.name} finished {action.description}"
        if action.target_id is not None:
            description += f" with {world.beings[action.target_id].name}"
        return make_event(
            world,
            LifeEventType.ACTION_COMPLETED,
            being.id,
            description,
            secondary=action.target_id,
            action=action.kind.value,
            need=action.need.value,
        )

    def _discard(self, world: World, being: Being) -> LifeEvent:
        action = being.current_action
        being.current_action = None
        target_id = action.target_id
        if target_id == being.id or target_id not in world.beings:
            target_id = None
        log_warning(f"[{self.name}] tick {world.tick}: discarded invalid action of '{being.id}'")
        return make_event(
            world,
            LifeEventType.ACTION_INTERRUPTED,
            being.id,
            f"{being.name} gave up {action.description}",
            secondary=target_id,
            action=action.kind.value,
            need=action.need.value,
            reason="invalid",
        )

    def _interrupt(self, world: World, being: Being, reason: str) -> LifeEvent:
        action = being.current_action
        being.current_action = None
        return make_event(
            world,
            LifeEventType.ACTION_INTERRUPTED,
            being.id,
            f"{being.name} stopped {action.description}",
            secondary=action.target_id,
            action=action.kind.value,
            need=action.need.value,
            reason=reason,
        )


# Memory salience per remembered event
MEMORY_IMPORTANCE = {
    ActionKind.EAT: 2,
    ActionKind.SLEEP: 2,
    ActionKind.SOCIALIZE: 5,
}
INTERRUPTION_IMPORTANCE = 3
RELATIONSHIP_IMPORTANCE = 7

FRIEND_THRESHOLD = 0.6
RIVAL_THRESHOLD = -0.4


def derive_relationship_kind(
    strength: float,
    friend_threshold: float = FRIEND_THRESHOLD,
    rival_threshold: float = RIVAL_THRESHOLD,
) -> RelationshipKind:
    if strength >= friend_threshold:
        return RelationshipKind.FRIEND
    if strength <= rival_threshold:
        return RelationshipKind.RIVAL
    return RelationshipKind.ACQUAINTANCE


class RelationshipMemorySystem(LifeSystem):
    """Relationship drift and memory maintenance.

    Reads this tick's pending events:
    - a completed social action strengthens both directed edges between the
      pair, each scaled by its owner's social outcome multiplier
    - a social action abandoned because the partner left weakens the actor's
      edge toward the partner
    - every other edge fades toward 0 with time
    - completed/interrupted actions and relationship changes become memories
      for the beings involved; streams are bounded by ``memory_capacity``
    """

    name = "relationship_memory"

    def __init__(
        self,
        *,
        relationship_gain: float = Config.RELATIONSHIP_GAIN,
        relationship_decay: float = Config.RELATIONSHIP_DECAY,
        memory_capacity: int = Config.MEMORY_CAPACITY,
        memory_half_life: float = Config.MEMORY_HALF_LIFE_SECONDS,
        friend_threshold: float = FRIEND_THRESHOLD,
        rival_threshold: float = RIVAL_THRESHOLD,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.relationship_gain = relationship_gain
        self.relationship_decay = relationship_decay
        self.memory_capacity = memory_capacity
        self.memory_half_life = memory_half_life
        self.friend_threshold = friend_threshold
        self.rival_threshold = rival_threshold

    def update(self, delta: float, world: World) -> List[LifeEvent]:
        tick_events = list(world.pending_events)
        events: List[LifeEvent] = []
        touched: Set[Tuple[str, str]] = set()

        for event in tick_events:
            partner_id = event.secondary_being
            if partner_id is None or event.metadata.get("action") != ActionKind.SOCIALIZE.value:
                continue
            if event.primary_being not in world.beings or partner_id not in world.beings:
                continue
            if event.type == LifeEventType.ACTION_COMPLETED:
                for source, target in ((event.primary_being, partner_id), (partner_id, event.primary_being)):
                    source_being = world.beings[source]
                    gain = self.relationship_gain * outcome_multiplier(source_being, NeedKind.SOCIAL)
                    events.extend(self._drift(world, source_being, target, gain, interaction=True))
                    touched.add((source, target))
            elif event.type == LifeEventType.ACTION_INTERRUPTED and event.metadata.get("reason") == "partner_left":
                source_being = world.beings[event.primary_being]
                events.extend(
                    self._drift(world, source_being, partner_id, -self.relationship_gain * 0.5, interaction=False)
                )
                touched.add((event.primary_being, partner_id))

        fade = self.relationship_decay * delta
        if fade > 0:
            for being in world.ordered_beings():
                for target_id in sorted(being.relationships):
                    if (being.id, target_id) in touched:
                        continue
                    edge = being.relationships[target_id]
                    if edge.strength > 0:
                        new_strength = max(0.0, edge.strength - fade)
                    else:
                        new_strength = min(0.0, edge.strength + fade)
                    events.extend(self._set_strength(world, being, edge, new_strength))

        for event in tick_events + events:
            self._remember(world, event)

        return events

    # -- relationships --------------------------------------------------------

    def _derive_kind(self, strength: float) -> RelationshipKind:
        return derive_relationship_kind(strength, self.friend_threshold, self.rival_threshold)

    def _drift(
        self, world: World, being: Being, target_id: str, amount: float, *, interaction: bool
    ) -> List[LifeEvent]:
        edge = being.relationships.get(target_id)
        if edge is None:
            edge = Relationship(target_id=target_id)
            being.relationships[target_id] = edge
        if interaction:
            edge.interactions += 1
            edge.last_interaction = world.current_time
        new_strength = max(-1.0, min(1.0, edge.strength + amount))
        return self._set_strength(world, being, edge, new_strength)

    def _set_strength(self, world: World, being: Being, edge: Relationship, strength: float) -> List[LifeEvent]:
        edge.strength = strength
        kind = self._derive_kind(strength)
        if kind == edge.kind:
            return []
        previous = edge.kind
        edge.kind = kind
        other = world.beings[edge.target_id]
        return [
            make_event(
                world,
                LifeEventType.RELATIONSHIP_CHANGED,
                being.id,
                f"{being.name} now sees {other.name} as a {kind.value} (was {previous.value})",
                secondary=edge.target_id,
                previous=previous.value,
                kind=kind.value,
                strength=round(strength, 6),
            )
        ]

    # -- memories -------------------------------------------------------------

    def _importance(self, event: LifeEvent) -> Optional[int]:
        if event.type == LifeEventType.ACTION_COMPLETED:
            return MEMORY_IMPORTANCE.get(ActionKind(event.metadata["action"]), 3)
        if event.type == LifeEventType.ACTION_INTERRUPTED:
            return INTERRUPTION_IMPORTANCE
        if event.type == LifeEventType.RELATIONSHIP_CHANGED:
            return RELATIONSHIP_IMPORTANCE
        return None

    def _remember(self, world: World, event: LifeEvent) -> None:
        importance = self._importance(event)
        if importance is None:
            return

        participants: Sequence[Tuple[str, Optional[str]]] = [(event.primary_being, event.secondary_being)]
        # Only shared experiences are remembered by the partner as well
        if event.secondary_being is not None and event.type == LifeEventType.ACTION_COMPLETED:
            participants = [*participants, (event.secondary_being, event.primary_being)]

        for being_id, other_id in participants:
            being = world.beings.get(being_id)
            if being is None:
                continue
            remember(
                being,
                Memory(
                    created_at=event.timestamp,
                    event_type=event.type,
                    description=event.description,
                    other_being_id=other_id,
                    importance=importance,
                ),
                capacity=self.memory_capacity,
                now=world.current_time,
                half_life=self.memory_half_life,
            )


class EventFlushSystem(LifeSystem):
    """Move this tick's pending events into history and hand them back."""

    name = "event_flush"

    def update(self, delta: float, world: World) -> List[LifeEvent]:
        flushed = list(world.pending_events)
        world.record(flushed)
        world.pending_events.clear()
        return flushed


class LifePipeline:
    """Runs life systems in a fixed order, finishing with the flush pass.

    Every pass's output is appended to ``world.pending_events`` before the
    next pass runs; ``run`` returns the flushed events in emission order.
    """

    def __init__(
        self,
        systems: Optional[Sequence[LifeSystem]] = None,
        flush: Optional[EventFlushSystem] = None,
        *,
        catalog: Optional[NeedCatalog] = None,
    ) -> None:
        if systems is None:
            systems = self.default_systems(catalog or Config.need_catalog())
        self.systems: List[LifeSystem] = list(systems)
        self.flush = flush or EventFlushSystem()

    @staticmethod
    def default_systems(catalog: NeedCatalog = DEFAULT_CATALOG) -> List[LifeSystem]:
        return [
            NeedDecaySystem(catalog),
            ActionSystem(catalog),
            RelationshipMemorySystem(),
        ]

    def run(
        self, delta: float, world: World, initial_events: Sequence[LifeEvent] = ()
    ) -> List[LifeEvent]:
        """Advance the world by ``delta`` seconds and return the tick's events.

        ``initial_events`` (e.g. from intents applied at tick start) lead the
        tick's event list and share its fate if the tick is abandoned.
        """
        if delta < 0:
            raise ValueError(f"delta must be >= 0, got {delta}")

        world.check_invariants()

        checkpoint = world.checkpoint()
        world.tick += 1
        world.current_time = checkpoint.current_time + timedelta(seconds=delta)
        world.pending_events.extend(initial_events)

        try:
            for system in self.systems:
                world.pending_events.extend(system.update(delta, world))
        except FatalWorldStateError:
            # Abandon the tick: the world is exactly as it was before run()
            world.restore(checkpoint)
            raise

        return self.flush.update(delta, world)
