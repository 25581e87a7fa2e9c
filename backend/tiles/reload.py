from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from sources.registry import SourceRegistry
from sources.types import TileRequest
from tiles.types import TileOutcome


class TileLoadState(str, Enum):
    not_loaded = "not_loaded"
    loaded = "loaded"


class ReloadPath(str, Enum):
    full = "full"
    incremental = "incremental"


TileCallback = Callable[[Exception | None, Any], None]
TilePath = Callable[[TileRequest, TileCallback], None]


@dataclass
class ReloadCoordinator:
    """
    Tracks, per `(source, uid)`, whether a tile has been served under the
    source's current generation, and routes reloads accordingly.

    Records live on the source entry, so replacing the entry (a new load)
    puts every uid back to `not_loaded`.
    """

    registry: SourceRegistry

    def state(self, source_id: str, uid: Any) -> TileLoadState:
        entry = self.registry.entry(source_id)
        if entry is not None and uid in entry.loaded_tiles:
            return TileLoadState.loaded
        return TileLoadState.not_loaded

    def mark_loaded(
        self, source_id: str, uid: Any, generation: int, outcome: TileOutcome
    ) -> bool:
        """Record a served outcome unless the entry was replaced meanwhile."""
        entry = self.registry.entry(source_id)
        if entry is None or entry.generation != generation:
            return False
        entry.loaded_tiles[uid] = outcome
        return True

    def loaded_outcome(self, source_id: str, uid: Any) -> TileOutcome | None:
        entry = self.registry.entry(source_id)
        if entry is None:
            return None
        return entry.loaded_tiles.get(uid)

    def route(self, source_id: str, uid: Any) -> ReloadPath:
        if self.state(source_id, uid) == TileLoadState.loaded:
            return ReloadPath.incremental
        return ReloadPath.full

    def reload_tile(
        self,
        request: TileRequest,
        callback: TileCallback,
        *,
        full_load: TilePath,
        incremental: TilePath,
    ) -> ReloadPath:
        path = self.route(request.sourceId, request.uid)
        if path == ReloadPath.incremental:
            incremental(request, callback)
        else:
            full_load(request, callback)
        return path
