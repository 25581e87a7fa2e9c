from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, field_validator


@dataclass(frozen=True)
class TileId:
    z: int
    x: int
    y: int

    def __post_init__(self) -> None:
        if int(self.z) < 0:
            raise ValueError(f"Tile zoom must be >= 0, got {self.z}")


class ApiTileId(BaseModel):
    z: int = Field(ge=0)
    x: int
    y: int

    def to_tile_id(self) -> TileId:
        return TileId(z=self.z, x=self.x, y=self.y)


class LoadDataRequest(BaseModel):
    """
    Parameters of a `loadData` call.

    Exactly one of `url` / `data` must be supplied. `data` is either GeoJSON
    text or an already-parsed value; the loader validates its shape.
    """

    sourceId: str
    url: str | None = None
    data: Any = None
    cluster: bool = False
    superclusterOptions: dict[str, Any] | None = None
    geojsonVtOptions: dict[str, Any] | None = None
    # Property keys whose values are collected into every cluster.
    clusterMapProperties: list[str] | None = None

    @field_validator("sourceId")
    @classmethod
    def _non_empty_source(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("sourceId must not be empty")
        return v


class TileRequest(BaseModel):
    sourceId: str
    tileId: ApiTileId
    maxZoom: int = Field(default=18, ge=0)
    # Identity of the tile request in the tile-loading layer.
    uid: int | str


class RemoveSourceRequest(BaseModel):
    sourceId: str


class ClusterQueryRequest(BaseModel):
    sourceId: str
    # [west, south, east, north] in degrees.
    bbox: list[float] = Field(min_length=4, max_length=4)
    zoom: int = Field(ge=0)


class ClusterLeavesRequest(BaseModel):
    sourceId: str
    clusterId: int
    limit: int = Field(default=10, ge=1)
    offset: int = Field(default=0, ge=0)
