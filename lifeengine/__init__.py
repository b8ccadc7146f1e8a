"""
LifeEngine - need-driven simulation of autonomous beings.

Beings carry decaying needs, act on the most pressing one, and build
relationships and memories from what they live through. Each tick runs a
fixed pipeline of deterministic passes and publishes LifeEvents to observers.

No display, clock or storage backend is required. All collaborators are
injected by the caller.
"""

__version__ = "0.1.0"

# Main simulation components
from .engine import LifeEngine, SchedulerState
from .systems import (
    LifeSystem,
    LifePipeline,
    NeedDecaySystem,
    ActionSystem,
    RelationshipMemorySystem,
    EventFlushSystem,
    derive_relationship_kind,
)
from .event_bus import EventBus, LifeEventObserver

# Decision policy
from .needs import (
    NeedSpec,
    NeedCatalog,
    DEFAULT_CATALOG,
    DEFAULT_PRIORITY,
    apply_decay,
    select_need,
    select_action,
    should_act_on,
    satisfy,
    choose_partner,
)
from .memory import relevance, remember, recall

# Core schemas
from .schemas import (
    World,
    Being,
    Need,
    NeedKind,
    Trait,
    Relationship,
    RelationshipKind,
    Memory,
    Action,
    ActionKind,
    Location,
    LifeEvent,
    LifeEventType,
    SIM_EPOCH,
)

# Collaborator contracts
from .intents import Intent, SelectBeing, FocusLocation, SetViewMode, MoveBeing, SpawnBeing
from .persistence import (
    PersistenceStrategy,
    InMemoryPersistence,
    JsonPersistence,
    WorldSaveData,
    encode_world,
    decode_world,
)
from .presentation import Renderer, TerminalRenderer, EventLogObserver, ViewMode
from .scenario import ScenarioLoader, load_scenario

# Errors
from .errors import (
    LifeEngineError,
    RecoverablePerBeingError,
    FatalWorldStateError,
    ObserverNotificationError,
    PersistenceIOError,
)

from .config import Config

__all__ = [
    # Main
    "LifeEngine",
    "SchedulerState",
    "LifeSystem",
    "LifePipeline",
    "NeedDecaySystem",
    "ActionSystem",
    "RelationshipMemorySystem",
    "EventFlushSystem",
    "derive_relationship_kind",
    "EventBus",
    "LifeEventObserver",
    # Decision policy
    "NeedSpec",
    "NeedCatalog",
    "DEFAULT_CATALOG",
    "DEFAULT_PRIORITY",
    "apply_decay",
    "select_need",
    "select_action",
    "should_act_on",
    "satisfy",
    "choose_partner",
    "relevance",
    "remember",
    "recall",
    # Schemas
    "World",
    "Being",
    "Need",
    "NeedKind",
    "Trait",
    "Relationship",
    "RelationshipKind",
    "Memory",
    "Action",
    "ActionKind",
    "Location",
    "LifeEvent",
    "LifeEventType",
    "SIM_EPOCH",
    # Collaborators
    "Intent",
    "SelectBeing",
    "FocusLocation",
    "SetViewMode",
    "MoveBeing",
    "SpawnBeing",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    "WorldSaveData",
    "encode_world",
    "decode_world",
    "Renderer",
    "TerminalRenderer",
    "EventLogObserver",
    "ViewMode",
    "ScenarioLoader",
    "load_scenario",
    # Errors
    "LifeEngineError",
    "RecoverablePerBeingError",
    "FatalWorldStateError",
    "ObserverNotificationError",
    "PersistenceIOError",
    # Config
    "Config",
]
