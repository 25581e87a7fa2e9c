from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from index.types import SpatialIndex

log = logging.getLogger(__name__)


class NoSourceReason(str, Enum):
    never_loaded = "never_loaded"
    loading = "loading"
    load_failed = "load_failed"


@dataclass
class SourceEntry:
    """
    The fully built index of one source plus what has been served from it.

    `loaded_tiles` maps a tile request uid to the outcome served for it under
    this generation; it only grows until the entry is replaced.
    """

    source_id: str
    index: SpatialIndex
    generation: int
    loaded_tiles: dict[Any, Any] = field(default_factory=dict, repr=False)

    @property
    def loaded_tile_uids(self) -> set[Any]:
        return set(self.loaded_tiles.keys())


@dataclass
class SourceRegistry:
    """
    Per-worker mapping of source id to its current index.

    Loads are tracked by generation: `begin_load` hands out a token and only
    the latest token for a source may `commit`. A completed load whose token
    was superseded (by a newer load or a removal) is discarded.
    """

    _entries: dict[str, SourceEntry] = field(default_factory=dict)
    # Latest generation handed out per source.
    _latest: dict[str, int] = field(default_factory=dict)
    _failed: set[str] = field(default_factory=set)
    _counter: Any = field(default_factory=lambda: itertools.count(1), repr=False)

    def begin_load(self, source_id: str) -> int:
        generation = next(self._counter)
        self._latest[source_id] = generation
        return generation

    def is_current(self, source_id: str, generation: int) -> bool:
        return self._latest.get(source_id) == generation

    def commit(self, source_id: str, generation: int, index: SpatialIndex) -> bool:
        if not self.is_current(source_id, generation):
            log.info(
                "discarding stale index",
                extra={"extra": {"source": source_id, "generation": generation}},
            )
            return False
        self.add_or_replace(source_id, index, generation=generation)
        return True

    def fail(self, source_id: str, generation: int) -> None:
        if self.is_current(source_id, generation):
            self._failed.add(source_id)

    def add_or_replace(
        self, source_id: str, index: SpatialIndex, *, generation: int | None = None
    ) -> SourceEntry:
        if generation is None:
            generation = self.begin_load(source_id)
        entry = SourceEntry(source_id=source_id, index=index, generation=generation)
        self._entries[source_id] = entry
        self._failed.discard(source_id)
        return entry

    def remove(self, source_id: str) -> None:
        removed = self._entries.pop(source_id, None)
        # Also invalidates any in-flight load for this source.
        self._latest.pop(source_id, None)
        self._failed.discard(source_id)
        if removed is not None:
            log.info("source removed", extra={"extra": {"source": source_id}})

    def get(self, source_id: str) -> SpatialIndex | None:
        entry = self._entries.get(source_id)
        return entry.index if entry is not None else None

    def entry(self, source_id: str) -> SourceEntry | None:
        return self._entries.get(source_id)

    def missing_reason(self, source_id: str) -> NoSourceReason:
        """Why `source_id` has no entry; meaningful only when `entry()` is None."""
        if source_id in self._failed:
            return NoSourceReason.load_failed
        if source_id in self._latest:
            return NoSourceReason.loading
        return NoSourceReason.never_loaded

    def source_ids(self) -> list[str]:
        return sorted(self._entries.keys())

    def clear(self) -> None:
        self._entries.clear()
        self._latest.clear()
        self._failed.clear()
