"""Need catalog and decision policy.

Pure functions that turn need pressure into decisions. Nothing here keeps
state between calls: the catalog is an immutable configuration table and every
function receives the being (and, where relevant, the world) explicitly.

Two rules drive behaviour:

- Decay: ``intensity = clamp(intensity + rate * delta, 0, 1)`` where ``rate``
  is the catalog rate scaled by the being's traits.
- Selection: a need "should be acted on" once intensity reaches its
  threshold. When several qualify, the catalog's fixed priority order decides
  (Hunger > Rest > Social by default), never dict order or magnitude.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple

from .errors import FatalWorldStateError
from .schemas import ActionKind, Being, Need, NeedKind, World


# Float slack for threshold comparisons so 0.5 + 0.1 * 2 still counts as 0.7
THRESHOLD_EPSILON = 1e-9

DEFAULT_PRIORITY: Tuple[NeedKind, ...] = (NeedKind.HUNGER, NeedKind.REST, NeedKind.SOCIAL)


@dataclass(frozen=True)
class NeedSpec:
    """Per-kind configuration row: how a need decays and what satisfies it."""

    kind: NeedKind
    decay_rate: float
    threshold: float = 0.7
    action: ActionKind = ActionKind.EAT
    action_duration: float = 5.0


def _default_specs() -> Dict[NeedKind, NeedSpec]:
    return {
        NeedKind.HUNGER: NeedSpec(NeedKind.HUNGER, decay_rate=0.01, action=ActionKind.EAT, action_duration=5.0),
        NeedKind.REST: NeedSpec(NeedKind.REST, decay_rate=0.005, action=ActionKind.SLEEP, action_duration=20.0),
        NeedKind.SOCIAL: NeedSpec(NeedKind.SOCIAL, decay_rate=0.008, action=ActionKind.SOCIALIZE, action_duration=8.0),
    }


@dataclass(frozen=True)
class NeedCatalog:
    """Configuration table for every NeedKind plus the tie-break priority."""

    specs: Dict[NeedKind, NeedSpec] = field(default_factory=_default_specs)
    priority: Tuple[NeedKind, ...] = DEFAULT_PRIORITY

    def __post_init__(self) -> None:
        missing = [kind.value for kind in NeedKind if kind not in self.specs]
        if missing:
            raise ValueError(f"NeedCatalog is missing specs for: {missing}")
        if sorted(self.priority, key=lambda k: k.value) != sorted(NeedKind, key=lambda k: k.value):
            raise ValueError(
                f"Need priority must list every need exactly once, got {[k.value for k in self.priority]}"
            )
        for kind, spec in self.specs.items():
            if spec.kind != kind:
                raise ValueError(f"Spec for {kind.value} is tagged {spec.kind.value}")
            if spec.decay_rate < 0:
                raise ValueError(f"{kind.value} decay rate must be >= 0")
            if not 0.0 <= spec.threshold <= 1.0:
                raise ValueError(f"{kind.value} threshold must be within [0, 1]")

    def spec(self, kind: NeedKind) -> NeedSpec:
        return self.specs[kind]

    def with_overrides(self, kind: NeedKind, **changes) -> "NeedCatalog":
        """Return a copy with one spec's fields replaced."""
        specs = dict(self.specs)
        current = specs[kind]
        specs[kind] = NeedSpec(
            kind=kind,
            decay_rate=changes.get("decay_rate", current.decay_rate),
            threshold=changes.get("threshold", current.threshold),
            action=changes.get("action", current.action),
            action_duration=changes.get("action_duration", current.action_duration),
        )
        return NeedCatalog(specs=specs, priority=self.priority)


DEFAULT_CATALOG = NeedCatalog()


# ============================================================================
# Decay
# ============================================================================


def effective_decay_rate(being: Being, kind: NeedKind, catalog: NeedCatalog = DEFAULT_CATALOG) -> float:
    """Catalog rate for ``kind`` scaled multiplicatively by the being's traits."""
    rate = catalog.spec(kind).decay_rate
    for trait in being.traits:
        if trait.applies_to(kind):
            rate *= trait.decay_multiplier
    return rate


def decay_amount(being: Being, kind: NeedKind, delta: float, catalog: NeedCatalog = DEFAULT_CATALOG) -> float:
    """How much one need grows over ``delta`` seconds.

    Args:
        being: Being whose traits scale the catalog rate
        kind: Need to compute the growth for
        delta: Elapsed simulated seconds (>= 0)
        catalog: Need configuration table

    Returns:
        Unclamped intensity increase; Need.raise_by clamps the result to 1.0
    """
    return effective_decay_rate(being, kind, catalog) * delta


def apply_decay(being: Being, delta: float, catalog: NeedCatalog = DEFAULT_CATALOG) -> Dict[NeedKind, float]:
    """Decay every need of ``being`` by ``delta`` seconds.

    Args:
        being: Being to update in place
        delta: Elapsed simulated seconds
        catalog: Need configuration table

    Returns:
        New intensity per need kind

    Raises:
        ValueError: If delta is negative
    """
    if delta < 0:
        raise ValueError(f"delta must be >= 0, got {delta}")
    result: Dict[NeedKind, float] = {}
    for kind in NeedKind:
        result[kind] = being.needs[kind].raise_by(decay_amount(being, kind, delta, catalog))
    return result


# ============================================================================
# Selection
# ============================================================================


def should_act_on(need: Need, catalog: NeedCatalog = DEFAULT_CATALOG) -> bool:
    """True once the need's intensity has reached its configured threshold."""
    return need.intensity + THRESHOLD_EPSILON >= catalog.spec(need.kind).threshold


def select_need(being: Being, catalog: NeedCatalog = DEFAULT_CATALOG) -> Optional[NeedKind]:
    """Pick the need a being should act on now.

    Needs are checked in ``catalog.priority`` order; the first one at or over
    its threshold wins regardless of how far other needs are over theirs.

    Args:
        being: Being to evaluate
        catalog: Need configuration table (thresholds and priority)

    Returns:
        The selected NeedKind, or None when the being is idle
    """
    for kind in catalog.priority:
        if should_act_on(being.needs[kind], catalog):
            return kind
    return None


def select_action(being: Being, catalog: NeedCatalog = DEFAULT_CATALOG) -> Optional[ActionKind]:
    """Action the decision policy picks for ``being``.

    Returns:
        ActionKind serving the selected need, or None when idle
    """
    kind = select_need(being, catalog)
    if kind is None:
        return None
    return catalog.spec(kind).action


def satisfy(being: Being, kind: NeedKind, at: datetime) -> None:
    """Reset one need to 0.0 at ``at``. Sibling needs are untouched."""
    being.needs[kind].satisfy(at)


def outcome_multiplier(being: Being, kind: NeedKind) -> float:
    """Product of the outcome multipliers of traits targeting ``kind``.

    Args:
        being: Being whose traits are read
        kind: Need the outcome belongs to (e.g. SOCIAL for relationship drift)

    Returns:
        1.0 for a being with no matching traits
    """
    multiplier = 1.0
    for trait in being.traits:
        if trait.applies_to(kind):
            multiplier *= trait.outcome_multiplier
    return multiplier


# ============================================================================
# World-aware checks
# ============================================================================


def check_evaluable(being: Being, world: World) -> None:
    """Fail the tick if the being cannot be evaluated at all.

    A being without a (known) location or with an edge to a missing being
    means the caller built a broken world; that is fatal, never skipped.
    """
    if being.location_id is None:
        raise FatalWorldStateError("being has no location", tick=world.tick, being_id=being.id)
    if being.location_id not in world.locations:
        raise FatalWorldStateError(
            f"being references unknown location '{being.location_id}'",
            tick=world.tick,
            being_id=being.id,
        )
    for target_id in being.relationships:
        if target_id == being.id or target_id not in world.beings:
            raise FatalWorldStateError(
                f"invalid relationship edge to '{target_id}'", tick=world.tick, being_id=being.id
            )


def choose_partner(being: Being, world: World) -> Optional[str]:
    """Pick a social partner among co-located beings.

    Prefers the strongest outgoing relationship, then ascending id, so the
    choice is reproducible for identical worlds.

    Args:
        being: Being looking for company
        world: World providing the being's co-located beings

    Returns:
        Partner id, or None when the being is alone
    """
    candidates = [
        other.id
        for other in world.beings_at(being.location_id)
        if other.id != being.id
    ]
    if not candidates:
        return None

    def rank(other_id: str) -> Tuple[float, str]:
        edge = being.relationships.get(other_id)
        strength = edge.strength if edge is not None else 0.0
        return (-strength, other_id)

    return min(candidates, key=rank)
