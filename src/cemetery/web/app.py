"""FastAPI application exposing the cemetery over HTTP."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from cemetery.config import AppConfig, load_config
from cemetery.errors import CemeteryError, CorruptStoreError, InvalidArgumentError
from cemetery.index.search import AssetFilter
from cemetery.models import ArtifactKind, ArtifactSource, TombstoneOptions
from cemetery.service import Cemetery
from cemetery.zombie.matcher import summarize_matches

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Code Cemetery", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.config = None


class IndexPayload(BaseModel):
    paths: List[str]


class TombstonePayload(BaseModel):
    location: str
    cause: str
    epitaph: str | None = None
    tags: List[str] | None = None
    summary: str | None = None
    author: str | None = None
    repo: str | None = None


class ResurrectPayload(BaseModel):
    new_location: str


class ZombiePayload(BaseModel):
    code: str
    location: str | None = None
    threshold: float | None = None
    limit: int = 10


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Point the module-level app at ``config`` (defaults to ``cemetery.config.json`` in cwd)."""
    app.state.config = config
    return app


def _config() -> AppConfig:
    if app.state.config is None:
        app.state.config = load_config()
    return app.state.config


@contextmanager
def _cemetery() -> Iterator[Cemetery]:
    try:
        with Cemetery.open(_config()) as cemetery:
            yield cemetery
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CorruptStoreError as exc:
        LOGGER.error("Corrupt store: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except CemeteryError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/summary")
async def summary() -> dict[str, Any]:
    with _cemetery() as cemetery:
        return cemetery.summary()


@app.get("/assets")
async def list_assets(
    query: str | None = None,
    kind: ArtifactKind | None = None,
    source: ArtifactSource | None = None,
    language: str | None = None,
    tag: List[str] = Query(default=[]),
    alive: bool | None = None,
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
) -> dict[str, Any]:
    criteria = AssetFilter(
        query=query,
        kind=kind,
        source=source,
        language=language,
        tags=tag,
        alive=alive,
        limit=limit,
        offset=offset,
    )
    with _cemetery() as cemetery:
        artifacts = cemetery.index.search(criteria)
    return {"assets": [a.to_dict() for a in artifacts], "count": len(artifacts)}


@app.get("/assets/{key:path}")
async def get_asset(key: str) -> dict[str, Any]:
    with _cemetery() as cemetery:
        artifact = cemetery.index.get(key)
    if artifact is None:
        raise HTTPException(status_code=404, detail=f"Asset not found: {key}")
    return artifact.to_dict()


@app.get("/tombstones")
async def list_tombstones(query: str | None = None, fuzzy: bool = False) -> dict[str, Any]:
    with _cemetery() as cemetery:
        if query and fuzzy:
            tombstones = cemetery.registry.fuzzy_search(query)
        elif query:
            tombstones = cemetery.registry.search(query)
        else:
            tombstones = cemetery.registry.list()
    return {"tombstones": [t.to_dict() for t in tombstones], "count": len(tombstones)}


@app.get("/tombstones/random")
async def random_tombstone() -> dict[str, Any]:
    with _cemetery() as cemetery:
        tombstone = cemetery.registry.random_tombstone()
    if tombstone is None:
        raise HTTPException(status_code=404, detail="The cemetery is empty")
    return tombstone.to_dict()


@app.get("/tombstones/{tombstone_id}")
async def get_tombstone(tombstone_id: str) -> dict[str, Any]:
    with _cemetery() as cemetery:
        tombstone = cemetery.registry.get(tombstone_id)
    if tombstone is None:
        raise HTTPException(status_code=404, detail=f"Tombstone not found: {tombstone_id}")
    return tombstone.to_dict()


@app.get("/search")
async def search(q: str, limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    query = q.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    with _cemetery() as cemetery:
        return cemetery.search(query, limit=limit).to_dict()


def _run_index_job(paths: List[Path]) -> List[dict[str, Any]]:
    results = []
    with _cemetery() as cemetery:
        for path in paths:
            stats = cemetery.scan(path)
            results.append({"path": str(path), **stats.to_dict()})
    return results


def _allowed_roots(config: AppConfig) -> List[str]:
    """Canonical directories HTTP clients may index: the home and the project base."""
    roots = [os.path.realpath(str(Path.home())), os.path.realpath(str(config.base_dir))]
    return list(dict.fromkeys(roots))


def _is_within(real_path: str, root: str) -> bool:
    # separator suffix so /home/user does not admit /home/user2
    return (real_path + os.sep).startswith(root.rstrip(os.sep) + os.sep)


@app.post("/index")
async def index_paths(payload: IndexPayload) -> dict[str, Any]:
    if not payload.paths:
        raise HTTPException(status_code=400, detail="No path provided")

    allowed_roots = _allowed_roots(_config())
    resolved_paths = []
    for raw in payload.paths:
        clean_path = raw.strip().replace("\r", "").replace("\n", "")
        if not clean_path:
            continue
        if "\0" in clean_path:
            raise HTTPException(status_code=400, detail="Invalid path: contains null byte")
        try:
            real_path = os.path.realpath(os.path.expanduser(clean_path))
        except (ValueError, OSError) as exc:
            LOGGER.error("Invalid path '%s': %s", clean_path, exc)
            raise HTTPException(status_code=400, detail=f"Invalid path: {clean_path}") from exc
        if not any(_is_within(real_path, root) for root in allowed_roots):
            raise HTTPException(
                status_code=403, detail="Access denied: path is outside allowed directory"
            )
        path = Path(real_path)
        if not path.exists():
            raise HTTPException(status_code=404, detail=f"Path not found: {clean_path}")
        resolved_paths.append(path)

    if not resolved_paths:
        raise HTTPException(status_code=400, detail="No path provided")

    results = await asyncio.to_thread(_run_index_job, resolved_paths)
    return {"status": "ok", "results": results}


@app.post("/tombstone")
async def create_tombstone(payload: TombstonePayload) -> dict[str, Any]:
    options = TombstoneOptions(
        epitaph=payload.epitaph,
        tags=payload.tags,
        summary=payload.summary,
        author=payload.author,
        repo=payload.repo,
    )
    with _cemetery() as cemetery:
        tombstone = cemetery.bury(payload.location, payload.cause, options)
    return tombstone.to_dict()


@app.post("/tombstones/{tombstone_id}/resurrect")
async def resurrect_tombstone(tombstone_id: str, payload: ResurrectPayload) -> dict[str, Any]:
    with _cemetery() as cemetery:
        tombstone = cemetery.resurrect(tombstone_id, payload.new_location)
    if tombstone is None:
        raise HTTPException(status_code=404, detail=f"Tombstone not found: {tombstone_id}")
    return tombstone.to_dict()


def _detect(payload: ZombiePayload) -> dict[str, Any]:
    with _cemetery() as cemetery:
        match = cemetery.detect_zombie(
            payload.code, new_location=payload.location, threshold=payload.threshold
        )
    return match.to_dict()


def _all_matches(payload: ZombiePayload) -> dict[str, Any]:
    with _cemetery() as cemetery:
        matches = cemetery.zombie_matches(
            payload.code, new_location=payload.location, limit=max(1, min(payload.limit, 50))
        )
    return {
        "matches": [m.to_dict() for m in matches],
        "summary": summarize_matches(matches).to_dict(),
    }


@app.post("/detect-zombie")
async def detect_zombie(payload: ZombiePayload) -> dict[str, Any]:
    if not payload.code.strip():
        raise HTTPException(status_code=400, detail="Empty code")
    return await asyncio.to_thread(_detect, payload)


@app.post("/zombie-matches")
async def zombie_matches(payload: ZombiePayload) -> dict[str, Any]:
    if not payload.code.strip():
        raise HTTPException(status_code=400, detail="Empty code")
    return await asyncio.to_thread(_all_matches, payload)
