"""
Memory retention for beings.

Memories are immutable records; what decays is their *relevance*, computed
on demand from importance and age:

    relevance = importance / 10 * 0.5 ** (age / half_life)

Each being keeps a bounded memory stream. When a new memory pushes the stream
over capacity, the least relevant memory is evicted (ties go to the oldest,
then to the earliest position) so eviction is reproducible.
"""

from datetime import datetime
from typing import List

from .schemas import Being, Memory


def relevance(memory: Memory, now: datetime, half_life: float) -> float:
    """Recency-weighted relevance of a memory at simulated time ``now``."""
    age = max((now - memory.created_at).total_seconds(), 0.0)
    recency = 0.5 ** (age / half_life) if half_life > 0 else 0.0
    return (memory.importance / 10.0) * recency


def remember(
    being: Being,
    memory: Memory,
    *,
    capacity: int,
    now: datetime,
    half_life: float,
) -> List[Memory]:
    """Append a memory and evict down to ``capacity``. Returns evicted memories."""
    being.memories.append(memory)
    evicted: List[Memory] = []

    while len(being.memories) > capacity:
        # Lowest relevance first; among equals the oldest, then the first stored.
        victim_index = min(
            range(len(being.memories)),
            key=lambda i: (
                relevance(being.memories[i], now, half_life),
                being.memories[i].created_at,
                i,
            ),
        )
        evicted.append(being.memories.pop(victim_index))

    return evicted


def recall(being: Being, *, now: datetime, half_life: float, limit: int = 5) -> List[Memory]:
    """Most relevant memories first, newest winning ties."""
    ranked = sorted(
        enumerate(being.memories),
        key=lambda item: (
            -relevance(item[1], now, half_life),
            -item[1].created_at.timestamp(),
            -item[0],
        ),
    )
    return [memory for _, memory in ranked[:limit]]
