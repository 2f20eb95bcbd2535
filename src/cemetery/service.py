"""One object wiring the store, asset index, registry and matcher together.

The CLI and the HTTP app only talk to :class:`Cemetery`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from cemetery.config import AppConfig
from cemetery.index.indexer import AssetIndex, MergeStats
from cemetery.index.search import AssetFilter
from cemetery.index.storage import CemeteryStore
from cemetery.ingestion.remote import RemoteRepo, TreeLister
from cemetery.models import Artifact, Tombstone, TombstoneOptions, ZombieMatch
from cemetery.scheduler import AutoScanner
from cemetery.similarity.engine import SimilarityEngine
from cemetery.tombstones.epitaphs import EpitaphPicker
from cemetery.tombstones.registry import Clock, TombstoneRegistry
from cemetery.zombie.matcher import ContentReader, ZombieMatcher

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchResults:
    artifacts: List[Artifact] = field(default_factory=list)
    tombstones: List[Tombstone] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifacts": [a.to_dict() for a in self.artifacts],
            "tombstones": [t.to_dict() for t in self.tombstones],
        }


class Cemetery:
    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        store: CemeteryStore | None = None,
        picker: EpitaphPicker | None = None,
        clock: Clock | None = None,
        reader: ContentReader | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.store = store or CemeteryStore(self.config.resolve_store_dir())
        self.index = AssetIndex(self.store, self.config)
        self.registry = TombstoneRegistry(
            self.store,
            self.index,
            picker=picker,
            clock=clock,
            policy=self.config.resurrection_policy,
        )
        self.engine = SimilarityEngine()
        self.matcher = ZombieMatcher(
            self.registry,
            self.engine,
            reader=reader,
            candidate_limit=self.config.zombie_candidate_limit,
        )

    @classmethod
    def open(cls, config: AppConfig | None = None, **kwargs: Any) -> "Cemetery":
        cemetery = cls(config, **kwargs)
        LOGGER.debug("Opened cemetery at %s", cemetery.store.store_dir)
        return cemetery

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "Cemetery":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def scan(self, root: Path | RemoteRepo, *, lister: TreeLister | None = None) -> MergeStats:
        return self.index.scan_and_merge(root, lister=lister)

    def bury(
        self, location: str, cause: str, options: TombstoneOptions | None = None
    ) -> Tombstone:
        return self.registry.create(location, cause, options)

    def resurrect(self, tombstone_id: str, new_location: str) -> Optional[Tombstone]:
        return self.registry.resurrect(tombstone_id, new_location)

    def detect_zombie(
        self,
        new_code: str,
        *,
        new_location: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> ZombieMatch:
        if threshold is None:
            threshold = self.config.zombie_threshold
        return self.matcher.find_best_match(new_code, threshold, new_location)

    def zombie_matches(
        self,
        new_code: str,
        *,
        new_location: Optional[str] = None,
        limit: int = 10,
    ) -> List[ZombieMatch]:
        return self.matcher.find_all_matches(
            new_code,
            limit=limit,
            new_location=new_location,
            inclusion_threshold=self.config.match_inclusion_threshold,
        )

    def summary(self) -> Dict[str, Any]:
        """Asset and tombstone aggregates side by side."""
        return {
            "assets": self.index.stats().to_dict(),
            "tombstones": self.registry.stats().to_dict(),
        }

    def search(self, query: str, *, limit: int = 10) -> SearchResults:
        """Free-text search over both collections."""
        return SearchResults(
            artifacts=self.index.search(AssetFilter(query=query, limit=limit)),
            tombstones=self.registry.search(query)[:limit],
        )

    def scanner(self, **kwargs: Any) -> AutoScanner:
        return AutoScanner(self.index, self.registry, self.config, **kwargs)
