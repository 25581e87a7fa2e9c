from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any

from fastapi import FastAPI, Path, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.settings import get_settings
from sources.errors import FetchError, IndexBuildError, InvalidInputError, NotClusteredError
from sources.types import (
    ApiTileId,
    ClusterLeavesRequest,
    ClusterQueryRequest,
    LoadDataRequest,
    RemoveSourceRequest,
    TileRequest,
)
from telemetry.logging_setup import setup_logging
from telemetry.singleton import get_store
from tiles.reload import ReloadPath
from tiles.types import EmptyTile, NoSource, TileOutcome, TransportTile
from worker.actor import WorkerActor

MVT_MEDIA_TYPE = "application/x-protobuf"


@lru_cache(maxsize=1)
def get_worker() -> WorkerActor:
    worker = WorkerActor(settings=get_settings())
    worker.start()
    return worker


def shutdown_worker() -> None:
    if get_worker.cache_info().currsize:
        get_worker().close()
        get_worker.cache_clear()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    setup_logging()
    yield
    shutdown_worker()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().corsOrigins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ApiLoadData(BaseModel):
    url: str | None = None
    data: Any = None
    cluster: bool = False
    superclusterOptions: dict[str, Any] | None = None
    geojsonVtOptions: dict[str, Any] | None = None
    clusterMapProperties: list[str] | None = None


class ApiReloadTile(BaseModel):
    tileId: ApiTileId
    maxZoom: int | None = Field(default=None, ge=0)
    uid: int | str


def _tile_request(
    source_id: str, z: int, x: int, y: int, max_zoom: int | None, uid: str | None
) -> TileRequest:
    return TileRequest(
        sourceId=source_id,
        tileId=ApiTileId(z=z, x=x, y=y),
        maxZoom=get_settings().defaultMaxZoom if max_zoom is None else max_zoom,
        uid=uid or f"{z}/{x}/{y}",
    )


async def _call(method: str, request: Any) -> Any:
    future = get_worker().send(method, request)
    return await asyncio.wrap_future(future)


def _error(status: int, err: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status, content={"error": type(err).__name__, "message": str(err)}
    )


def _no_source(outcome: NoSource, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"sourceId": outcome.source_id, "reason": outcome.reason.value},
        headers=headers,
    )


def _tile_response(outcome: TileOutcome, headers: dict[str, str] | None = None) -> Response:
    if isinstance(outcome, NoSource):
        return _no_source(outcome, headers)
    if isinstance(outcome, EmptyTile):
        return Response(status_code=204, headers=headers)
    return Response(content=outcome.raw_data, media_type=MVT_MEDIA_TYPE, headers=headers)


@app.post("/sources/{source_id}/data")
async def load_data(source_id: str, body: ApiLoadData):
    request = LoadDataRequest(sourceId=source_id, **body.model_dump())
    try:
        await _call("load_data", request)
    except InvalidInputError as e:
        return _error(400, e)
    except FetchError as e:
        return _error(502, e)
    except IndexBuildError as e:
        return _error(422, e)
    return Response(status_code=204)


@app.get("/sources/{source_id}/tiles/{z}/{x}/{y}.pbf")
async def get_tile(
    source_id: str,
    z: int = Path(ge=0),
    x: int = Path(),
    y: int = Path(),
    maxZoom: int | None = Query(None, ge=0),
    uid: str | None = None,
):
    outcome = await _call("load_tile", _tile_request(source_id, z, x, y, maxZoom, uid))
    return _tile_response(outcome)


@app.get("/sources/{source_id}/tiles/{z}/{x}/{y}.json")
async def get_tile_json(
    source_id: str,
    z: int = Path(ge=0),
    x: int = Path(),
    y: int = Path(),
    maxZoom: int | None = Query(None, ge=0),
    uid: str | None = None,
):
    """The served tile as feature slices with nested coordinate lists, for debugging."""
    outcome = await _call("load_tile", _tile_request(source_id, z, x, y, maxZoom, uid))
    if isinstance(outcome, TransportTile):
        return outcome.as_dict()
    return _tile_response(outcome)


@app.post("/sources/{source_id}/tiles/reload")
async def reload_tile(source_id: str, body: ApiReloadTile):
    request = TileRequest(
        sourceId=source_id,
        tileId=body.tileId,
        maxZoom=get_settings().defaultMaxZoom if body.maxZoom is None else body.maxZoom,
        uid=body.uid,
    )
    path, outcome = await _call("reload_tile", request)
    return _tile_response(outcome, headers={"X-Tile-Path": ReloadPath(path).value})


@app.delete("/sources/{source_id}")
async def remove_source(source_id: str):
    await _call("remove_source", RemoveSourceRequest(sourceId=source_id))
    return Response(status_code=204)


@app.get("/sources/{source_id}/clusters")
async def get_clusters(source_id: str, bbox: str, zoom: int):
    try:
        values = [float(v) for v in bbox.split(",")]
        request = ClusterQueryRequest(sourceId=source_id, bbox=values, zoom=zoom)
    except ValueError as e:
        return _error(400, e)
    try:
        result = await _call("get_clusters", request)
    except NotClusteredError as e:
        return _error(400, e)
    if isinstance(result, NoSource):
        return _no_source(result)
    return result


@app.get("/sources/{source_id}/clusters/{cluster_id}/leaves")
async def get_cluster_leaves(
    source_id: str, cluster_id: int, limit: int = Query(10, ge=1), offset: int = Query(0, ge=0)
):
    request = ClusterLeavesRequest(
        sourceId=source_id, clusterId=cluster_id, limit=limit, offset=offset
    )
    try:
        result = await _call("get_cluster_leaves", request)
    except NotClusteredError as e:
        return _error(400, e)
    except KeyError as e:
        return JSONResponse(
            status_code=404, content={"error": "ClusterNotFound", "message": str(e.args[0])}
        )
    if isinstance(result, NoSource):
        return _no_source(result)
    return result


@app.get("/telemetry/summary")
def telemetry_summary(op: str | None = None, sourceId: str | None = None):
    store = get_store()
    if store is None:
        return {"enabled": False, "rows": []}
    return {"enabled": True, "rows": store.summary(op=op, source_id=sourceId)}
