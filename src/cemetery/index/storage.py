"""JSON document store for the asset index and the tombstone registry."""

from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar

from cemetery.errors import CemeteryError, CorruptStoreError
from cemetery.models import Artifact, Tombstone

LOGGER = logging.getLogger(__name__)

ASSET_INDEX_FILE = "asset-index.json"
TOMBSTONE_REGISTRY_FILE = "tombstone-registry.json"

T = TypeVar("T")

_STORE_LOCKS: Dict[Path, threading.RLock] = {}
_STORE_LOCKS_GUARD = threading.Lock()


def store_lock(store_dir: Path) -> threading.RLock:
    """Process-wide lock shared by every store opened on the same directory."""
    key = Path(os.path.abspath(store_dir))
    with _STORE_LOCKS_GUARD:
        lock = _STORE_LOCKS.get(key)
        if lock is None:
            lock = _STORE_LOCKS[key] = threading.RLock()
        return lock


@dataclass(slots=True)
class StoreSnapshot:
    """In-memory copy of both collections for the duration of a transaction."""

    artifacts: List[Artifact] = field(default_factory=list)
    tombstones: List[Tombstone] = field(default_factory=list)
    artifacts_dirty: bool = False
    tombstones_dirty: bool = False

    def touch_artifacts(self) -> None:
        self.artifacts_dirty = True

    def touch_tombstones(self) -> None:
        self.tombstones_dirty = True


class CemeteryStore:
    """Persistence layer for artifacts and tombstones.

    Each collection is one JSON document that is read in full, mutated in
    memory and rewritten in full. ``transaction()`` is the only critical
    section; nested transactions on the same thread join the outer one and
    the data is written once when the outermost block exits cleanly. Stores
    opened on the same directory share one process-wide lock.
    """

    def __init__(self, store_dir: Path) -> None:
        self.store_dir = Path(store_dir)
        self._lock = store_lock(self.store_dir)
        self._active: Optional[StoreSnapshot] = None
        self._closed = False

    @property
    def asset_index_path(self) -> Path:
        return self.store_dir / ASSET_INDEX_FILE

    @property
    def tombstone_registry_path(self) -> Path:
        return self.store_dir / TOMBSTONE_REGISTRY_FILE

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def __enter__(self) -> "CemeteryStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[StoreSnapshot]:
        with self._lock:
            self._ensure_open()
            if self._active is not None:
                yield self._active
                return

            snapshot = StoreSnapshot(
                artifacts=self.load_artifacts(),
                tombstones=self.load_tombstones(),
            )
            self._active = snapshot
            try:
                yield snapshot
            finally:
                self._active = None

            if snapshot.artifacts_dirty:
                self.save_artifacts(snapshot.artifacts)
            if snapshot.tombstones_dirty:
                self.save_tombstones(snapshot.tombstones)

    def load_artifacts(self) -> List[Artifact]:
        with self._lock:
            if self._active is not None:
                return list(self._active.artifacts)
            return self._read(self.asset_index_path, Artifact.from_dict)

    def load_tombstones(self) -> List[Tombstone]:
        with self._lock:
            if self._active is not None:
                return list(self._active.tombstones)
            return self._read(self.tombstone_registry_path, Tombstone.from_dict)

    def save_artifacts(self, artifacts: Sequence[Artifact]) -> None:
        self._write(self.asset_index_path, [a.to_dict() for a in artifacts])

    def save_tombstones(self, tombstones: Sequence[Tombstone]) -> None:
        self._write(self.tombstone_registry_path, [t.to_dict() for t in tombstones])

    def _ensure_open(self) -> None:
        if self._closed:
            raise CemeteryError(f"Store at {self.store_dir} is closed")

    def _read(self, path: Path, factory: Callable[[dict], T]) -> List[T]:
        self._ensure_open()
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            LOGGER.error("Failed to parse %s: %s", path, exc)
            raise CorruptStoreError(path, str(exc)) from exc
        if not isinstance(raw, list):
            raise CorruptStoreError(path, "expected a list of records")

        records: List[T] = []
        for position, item in enumerate(raw):
            if not isinstance(item, dict):
                raise CorruptStoreError(path, f"record {position} is not an object")
            try:
                records.append(factory(item))
            except (KeyError, TypeError, ValueError) as exc:
                raise CorruptStoreError(path, f"record {position}: {exc!r}") from exc
        return records

    def _write(self, path: Path, payload: List[dict]) -> None:
        self._ensure_open()
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, path)
        LOGGER.debug("Wrote %d records to %s", len(payload), path)
