"""Tests for the snapshot codec and persistence strategies."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from lifeengine.errors import FatalWorldStateError, PersistenceIOError
from lifeengine.needs import DEFAULT_CATALOG
from lifeengine.persistence import (
    InMemoryPersistence,
    JsonPersistence,
    decode_save,
    decode_world,
    encode_world,
)
from lifeengine.schemas import (
    SIM_EPOCH,
    Being,
    LifeEvent,
    LifeEventType,
    Location,
    NeedKind,
    Relationship,
    Trait,
    World,
)
from lifeengine.systems import LifePipeline


def make_world_with_history(ticks: int = 30) -> World:
    world = World()
    world.add_location(Location(id="square", name="Village Square"))
    world.add_location(Location(id="tavern", name="Tavern"))
    world.add_being(
        Being.create(
            "ada",
            "Ada",
            intensities={NeedKind.HUNGER: 0.69, NeedKind.SOCIAL: 0.6},
            traits=[Trait(name="glutton", need=NeedKind.HUNGER, decay_multiplier=1.5)],
        ),
        "square",
    )
    world.add_being(Being.create("bo", "Bo", intensities={NeedKind.SOCIAL: 0.69}), "square")
    world.add_being(Being.create("cy", "Cy", intensities={NeedKind.REST: 0.69}), "tavern")
    world.beings["bo"].relationships["cy"] = Relationship(target_id="cy", strength=0.2)

    catalog = DEFAULT_CATALOG
    for kind in NeedKind:
        catalog = catalog.with_overrides(kind, decay_rate=0.02, action_duration=2.0)
    pipeline = LifePipeline(catalog=catalog)
    for _ in range(ticks):
        pipeline.run(1.0, world)
    return world


def test_round_trip_preserves_beings_locations_and_history():
    world = make_world_with_history()
    assert world.event_history

    restored = decode_world(encode_world(world))

    assert len(restored.beings) == len(world.beings) == 3
    assert len(restored.locations) == len(world.locations) == 2
    assert len(restored.event_history) == len(world.event_history)
    assert restored.tick == world.tick
    assert restored.current_time == world.current_time
    assert restored.model_dump() == world.model_dump()
    restored.check_invariants()


def test_snapshot_carries_save_timestamp():
    saved_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    envelope = decode_save(encode_world(make_world_with_history(1), saved_at=saved_at))

    assert envelope.saved_at == saved_at
    assert envelope.world.tick == 1


def test_decode_rejects_garbage():
    with pytest.raises(PersistenceIOError) as excinfo:
        decode_world(b"definitely not json")

    assert excinfo.value.operation == "decode"


def test_decode_rejects_worlds_that_break_invariants():
    world = make_world_with_history(1)
    world.pending_events.append(
        LifeEvent(
            tick=1,
            timestamp=SIM_EPOCH,
            type=LifeEventType.SYSTEM_WARNING,
            primary_being="ada",
            description="mid-tick save",
        )
    )

    with pytest.raises(PersistenceIOError) as excinfo:
        decode_world(encode_world(world))

    assert isinstance(excinfo.value.underlying, FatalWorldStateError)


@pytest.mark.asyncio
async def test_in_memory_persistence_isolates_saved_snapshots():
    persistence = InMemoryPersistence()
    await persistence.initialize()
    world = make_world_with_history(3)

    await persistence.save("slot", world)
    world.tick = 99

    loaded = await persistence.load("slot")
    assert loaded is not None
    assert loaded.tick == 3
    assert await persistence.load("missing") is None
    assert await persistence.list_slots() == ["slot"]

    await persistence.delete("slot")
    assert await persistence.list_slots() == []
    await persistence.close()


@pytest.mark.asyncio
async def test_json_persistence_round_trip(tmp_path):
    persistence = JsonPersistence(tmp_path / "saves")
    await persistence.initialize()
    world = make_world_with_history()

    await persistence.save("village", world)
    await persistence.save("backup", world)

    assert (tmp_path / "saves" / "village.json").exists()
    assert await persistence.list_slots() == ["backup", "village"]

    loaded = await persistence.load("village")
    assert loaded.model_dump() == world.model_dump()
    assert await persistence.load("missing") is None

    await persistence.delete("backup")
    assert await persistence.list_slots() == ["village"]
    await persistence.close()


@pytest.mark.asyncio
async def test_json_persistence_surfaces_corrupt_files(tmp_path):
    persistence = JsonPersistence(tmp_path)
    await persistence.initialize()
    (tmp_path / "broken.json").write_text("{\"world\": 42}", "utf-8")

    with pytest.raises(PersistenceIOError):
        await persistence.load("broken")


@pytest.mark.asyncio
async def test_json_persistence_rejects_path_like_slots(tmp_path):
    persistence = JsonPersistence(tmp_path)

    with pytest.raises(ValueError):
        await persistence.save("../escape", make_world_with_history(1))


@pytest.mark.asyncio
async def test_json_persistence_wraps_delete_failures(tmp_path, monkeypatch):
    persistence = JsonPersistence(tmp_path)
    await persistence.initialize()
    await persistence.save("village", make_world_with_history(1))

    def refuse(self, missing_ok=False):
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(Path, "unlink", refuse)

    with pytest.raises(PersistenceIOError) as excinfo:
        await persistence.delete("village")

    assert excinfo.value.operation == "delete"
    assert isinstance(excinfo.value.underlying, PermissionError)
    assert (tmp_path / "village.json").exists()
