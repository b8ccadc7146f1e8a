"""
World snapshot persistence.

Two layers:

1. Codec - ``encode_world`` / ``decode_world`` turn a World into JSON bytes and
   back. A snapshot carries every being, location and the full event history
   plus the wall-clock time it was saved. Decoded worlds are checked against
   the same structural invariants as a freshly built world.
2. Stores - ``PersistenceStrategy`` implementations keep snapshots in named
   slots. Persistence is OPTIONAL: the engine runs fine without a store, and
   InMemoryPersistence needs no filesystem at all.

Every failure (filesystem, malformed JSON, schema mismatch, broken invariants)
surfaces as PersistenceIOError. Nothing is retried; callers decide.

Usage pattern:
    persistence = JsonPersistence("saves")
    await persistence.initialize()
    await persistence.save("village", world)
    world = await persistence.load("village")
    await persistence.close()
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import FatalWorldStateError, PersistenceIOError
from .schemas import World

SNAPSHOT_FORMAT_VERSION = 1


class WorldSaveData(BaseModel):
    """Envelope written to disk around a World snapshot."""

    format_version: int = Field(SNAPSHOT_FORMAT_VERSION, description="Snapshot layout version")
    saved_at: datetime = Field(..., description="Wall-clock time of the save")
    world: World


def encode_world(world: World, *, saved_at: Optional[datetime] = None) -> bytes:
    """Serialize ``world`` into UTF-8 JSON bytes."""
    envelope = WorldSaveData(
        saved_at=saved_at or datetime.now(timezone.utc),
        world=world,
    )
    return envelope.model_dump_json(indent=2).encode("utf-8")


def decode_save(data: bytes) -> WorldSaveData:
    """Parse snapshot bytes and check the contained world.

    Raises:
        PersistenceIOError: if the bytes are not a valid, consistent snapshot
    """
    try:
        envelope = WorldSaveData.model_validate_json(data)
    except (ValidationError, ValueError) as exc:
        raise PersistenceIOError(operation="decode", underlying=exc) from exc

    if envelope.format_version != SNAPSHOT_FORMAT_VERSION:
        error = ValueError(f"unsupported snapshot format version {envelope.format_version}")
        raise PersistenceIOError(operation="decode", underlying=error)

    try:
        envelope.world.check_invariants()
    except FatalWorldStateError as exc:
        raise PersistenceIOError(operation="decode", underlying=exc) from exc
    return envelope


def decode_world(data: bytes) -> World:
    """Inverse of ``encode_world``."""
    return decode_save(data).world


class PersistenceStrategy(ABC):
    """Abstract base class for snapshot stores.

    All methods are async so file or network backends never block the
    scheduler's event loop. initialize() and close() bracket the store's use.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend (create directories, open handles)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources. Saved data stays readable."""
        pass

    @abstractmethod
    async def save(self, slot: str, world: World) -> None:
        """Store a snapshot of ``world`` under ``slot``, replacing any previous one.

        Raises:
            PersistenceIOError: if the snapshot cannot be written
        """
        pass

    @abstractmethod
    async def load(self, slot: str) -> Optional[World]:
        """Load the world stored under ``slot`` (None if the slot is empty).

        Raises:
            PersistenceIOError: if the snapshot cannot be read or decoded
        """
        pass

    @abstractmethod
    async def list_slots(self) -> List[str]:
        """Slot names with a stored snapshot, sorted."""
        pass

    @abstractmethod
    async def delete(self, slot: str) -> None:
        pass


class InMemoryPersistence(PersistenceStrategy):
    """Dict-based store. Snapshots are kept encoded so later mutation of the
    live world never leaks into a saved slot. Data is lost on exit."""

    def __init__(self) -> None:
        self.slots: Dict[str, bytes] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept after close so tests can inspect it
        pass

    async def save(self, slot: str, world: World) -> None:
        self.slots[slot] = encode_world(world)

    async def load(self, slot: str) -> Optional[World]:
        data = self.slots.get(slot)
        if data is None:
            return None
        return decode_world(data)

    async def list_slots(self) -> List[str]:
        return sorted(self.slots)

    async def delete(self, slot: str) -> None:
        self.slots.pop(slot, None)


class JsonPersistence(PersistenceStrategy):
    """File-based store: one pretty-printed JSON file per slot.

    Directory structure:
    ```
    {base_path}/
      village.json
      autosave.json
    ```

    All file I/O runs in a worker thread (asyncio.to_thread).
    """

    SUFFIX = ".json"

    def __init__(self, base_path: Path | str = "saves"):
        self.base_path = Path(base_path)

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceIOError(operation="initialize", underlying=exc, target=str(self.base_path)) from exc

    async def close(self) -> None:
        return None

    async def save(self, slot: str, world: World) -> None:
        path = self._slot_path(slot)
        data = encode_world(world)
        # Write then rename so a failed write never clobbers the previous save
        temporary = path.with_suffix(self.SUFFIX + ".tmp")

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            temporary.write_bytes(data)
            temporary.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise PersistenceIOError(operation="save", underlying=exc, target=str(path)) from exc

    async def load(self, slot: str) -> Optional[World]:
        path = self._slot_path(slot)
        if not path.exists():
            return None
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise PersistenceIOError(operation="load", underlying=exc, target=str(path)) from exc
        return decode_world(data)

    async def list_slots(self) -> List[str]:
        if not self.base_path.exists():
            return []

        def _scan() -> List[str]:
            return sorted(path.stem for path in self.base_path.glob(f"*{self.SUFFIX}"))

        return await asyncio.to_thread(_scan)

    async def delete(self, slot: str) -> None:
        path = self._slot_path(slot)
        if not path.exists():
            return
        try:
            await asyncio.to_thread(path.unlink)
        except OSError as exc:
            raise PersistenceIOError(operation="delete", underlying=exc, target=str(path)) from exc

    def _slot_path(self, slot: str) -> Path:
        if not slot or "/" in slot or "\\" in slot or slot.startswith("."):
            raise ValueError(f"Invalid save slot name: {slot!r}")
        return self.base_path / f"{slot}{self.SUFFIX}"
