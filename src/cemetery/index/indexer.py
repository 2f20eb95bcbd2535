"""Asset index: discovery, dedup merge and alive/dead flagging."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from cemetery.config import AppConfig
from cemetery.errors import InvalidArgumentError
from cemetery.index.search import AssetFilter, filter_artifacts
from cemetery.index.storage import CemeteryStore
from cemetery.ingestion.loader import load_artifact, utc_now
from cemetery.ingestion.remote import RemoteRepo, TreeLister, artifacts_from_tree
from cemetery.models import Artifact, ArtifactKind
from cemetery.utils.files import iter_candidate_paths

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class MergeStats:
    added: int = 0
    skipped: int = 0
    total: int = 0
    changed: int = 0
    excluded_paths: List[Path] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "added": self.added,
            "skipped": self.skipped,
            "total": self.total,
            "changed": self.changed,
            "excluded_paths": [str(path) for path in self.excluded_paths],
        }


@dataclass(slots=True)
class IndexStats:
    total: int = 0
    alive: int = 0
    dead: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_source: Dict[str, int] = field(default_factory=dict)
    by_language: Dict[str, int] = field(default_factory=dict)
    total_size: int = 0
    total_lines: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "alive": self.alive,
            "dead": self.dead,
            "by_kind": dict(self.by_kind),
            "by_source": dict(self.by_source),
            "by_language": dict(self.by_language),
            "total_size": self.total_size,
            "total_lines": self.total_lines,
        }


def find_artifact(artifacts: Sequence[Artifact], key: str) -> Optional[Artifact]:
    """Resolve ``key`` as an id, a fingerprint, or an exact/suffix location.

    Exact matches win over suffix matches. A rescanned file keeps its older
    records, so among exact location matches the most recently indexed one
    wins; among suffix matches a live artifact is preferred, then the newest.
    """
    if not key:
        return None
    for artifact in artifacts:
        if key in (artifact.id, artifact.fingerprint):
            return artifact
    exact = [a for a in artifacts if a.location == key]
    if exact:
        return max(reversed(exact), key=lambda a: a.indexed_at)
    suffix_matches = [a for a in artifacts if a.location.endswith(key)]
    if not suffix_matches:
        return None
    return max(suffix_matches, key=lambda a: (a.alive, a.indexed_at))


class AssetIndex:
    """Coordinates discovery and the persisted artifact collection."""

    def __init__(self, store: CemeteryStore, config: AppConfig | None = None) -> None:
        self.store = store
        self.config = config or AppConfig()

    def scan_and_merge(
        self, root: Path | RemoteRepo, *, lister: TreeLister | None = None
    ) -> MergeStats:
        """Discover artifacts under ``root`` and merge the unseen ones."""
        if isinstance(root, RemoteRepo):
            if lister is None:
                raise InvalidArgumentError("A tree lister is required to scan a remote repository")
            LOGGER.info("Listing remote repository %s", root.full_name)
            return self.merge(artifacts_from_tree(root, lister(root)))

        root = Path(root)
        if not root.exists():
            raise InvalidArgumentError(f"Path does not exist: {root}")

        LOGGER.info("Scanning %s", root)
        base = root if root.is_dir() else root.parent
        now = utc_now()
        discovered: List[Artifact] = []
        unreadable: List[Path] = []
        for path in iter_candidate_paths([root], max_bytes=self.config.max_file_bytes):
            artifact = load_artifact(
                path, relative_to=base, max_bytes=self.config.max_file_bytes, now=now
            )
            if artifact is None:
                unreadable.append(path)
                continue
            discovered.append(artifact)

        stats = self.merge(discovered)
        stats.excluded_paths = unreadable
        return stats

    def merge(self, artifacts: Iterable[Artifact]) -> MergeStats:
        """Append artifacts whose fingerprint is not yet indexed."""
        stats = MergeStats()
        with self.store.transaction() as snapshot:
            seen = {a.fingerprint for a in snapshot.artifacts}
            digests = {a.location: a.digest for a in snapshot.artifacts}
            for artifact in artifacts:
                if artifact.fingerprint in seen:
                    stats.skipped += 1
                    continue
                previous = digests.get(artifact.location)
                if previous is not None and previous != artifact.digest:
                    stats.changed += 1
                    LOGGER.debug("Content changed at %s", artifact.location)
                seen.add(artifact.fingerprint)
                snapshot.artifacts.append(artifact)
                stats.added += 1
            if stats.added:
                snapshot.touch_artifacts()
            stats.total = len(snapshot.artifacts)

        LOGGER.info(
            "Merged index: added=%d skipped=%d total=%d", stats.added, stats.skipped, stats.total
        )
        return stats

    def all(self) -> List[Artifact]:
        return self.store.load_artifacts()

    def get(self, key: str) -> Optional[Artifact]:
        return find_artifact(self.store.load_artifacts(), key)

    def search(self, criteria: AssetFilter | None = None) -> List[Artifact]:
        return filter_artifacts(self.store.load_artifacts(), criteria or AssetFilter())

    def list_by_kind(self, kind: ArtifactKind | str) -> List[Artifact]:
        return self.search(AssetFilter(kind=ArtifactKind(kind)))

    def mark_dead(self, key: str, tombstone_ref: str) -> Optional[Artifact]:
        """Flag an artifact as retired by ``tombstone_ref``; no-op if already dead."""
        if not tombstone_ref:
            raise InvalidArgumentError("A tombstone reference is required to mark an artifact dead")
        with self.store.transaction() as snapshot:
            artifact = find_artifact(snapshot.artifacts, key)
            if artifact is None:
                return None
            if artifact.alive:
                artifact.alive = False
                artifact.tombstone_ref = tombstone_ref
                snapshot.touch_artifacts()
            return artifact

    def mark_alive(self, key: str) -> Optional[Artifact]:
        """Flag an artifact as live again and drop its tombstone back-reference."""
        with self.store.transaction() as snapshot:
            artifact = find_artifact(snapshot.artifacts, key)
            if artifact is None:
                return None
            if not artifact.alive or artifact.tombstone_ref is not None:
                artifact.alive = True
                artifact.tombstone_ref = None
                snapshot.touch_artifacts()
            return artifact

    def stats(self) -> IndexStats:
        return compute_stats(self.store.load_artifacts())

    def find_stale(
        self, older_than_days: int, *, now: Optional[datetime] = None
    ) -> List[Artifact]:
        """Live artifacts whose recorded modification time is past the threshold."""
        threshold = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)
        stale = []
        for artifact in self.store.load_artifacts():
            if not artifact.alive or not artifact.updated_at:
                continue
            try:
                updated = datetime.fromisoformat(artifact.updated_at)
            except ValueError:
                LOGGER.warning("Unparseable updated_at on %s", artifact.location)
                continue
            if updated.tzinfo is None:
                updated = updated.replace(tzinfo=timezone.utc)
            if updated < threshold:
                stale.append(artifact)
        return stale


def compute_stats(artifacts: Sequence[Artifact]) -> IndexStats:
    stats = IndexStats(total=len(artifacts))
    for artifact in artifacts:
        if artifact.alive:
            stats.alive += 1
        else:
            stats.dead += 1
        stats.by_kind[artifact.kind.value] = stats.by_kind.get(artifact.kind.value, 0) + 1
        stats.by_source[artifact.source.value] = stats.by_source.get(artifact.source.value, 0) + 1
        if artifact.language:
            stats.by_language[artifact.language] = stats.by_language.get(artifact.language, 0) + 1
        stats.total_size += artifact.size_bytes
        stats.total_lines += artifact.line_count
    return stats
