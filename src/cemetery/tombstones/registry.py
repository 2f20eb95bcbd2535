"""Tombstone registry: retirement and resurrection records."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional

from cemetery.errors import AlreadyResurrectedError, AlreadyRetiredError, InvalidArgumentError
from cemetery.index.indexer import AssetIndex, find_artifact
from cemetery.index.search import joined, matches_all
from cemetery.index.storage import CemeteryStore
from cemetery.ingestion.loader import isoformat, utc_now
from cemetery.models import Artifact, Tombstone, TombstoneOptions
from cemetery.similarity.engine import edit_ratio
from cemetery.tombstones.epitaphs import EpitaphPicker
from cemetery.utils.files import detect_language, read_text
from cemetery.utils.hashing import short_id
from cemetery.utils.text import (
    count_lines,
    describe_structure,
    extract_tags,
    leading_comment,
    normalize_tags,
    query_tokens,
)

LOGGER = logging.getLogger(__name__)

CAUSE_KEY_CHARS = 30
RECENT_DEATHS = 5

Clock = Callable[[], datetime]


class ResurrectionPolicy(str, Enum):
    """What to do when a tombstone that was already resurrected is resurrected again."""

    OVERWRITE = "overwrite"
    REJECT = "reject"


@dataclass(slots=True)
class RegistryStats:
    total: int = 0
    resurrected: int = 0
    still_dead: int = 0
    by_language: Dict[str, int] = field(default_factory=dict)
    by_cause: Dict[str, int] = field(default_factory=dict)
    recent_deaths: List[Tombstone] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "resurrected": self.resurrected,
            "still_dead": self.still_dead,
            "by_language": dict(self.by_language),
            "by_cause": dict(self.by_cause),
            "recent_deaths": [t.to_dict() for t in self.recent_deaths],
        }


def searchable_text(tombstone: Tombstone) -> str:
    return joined(
        [
            tombstone.name,
            tombstone.cause_of_death,
            tombstone.epitaph,
            tombstone.summary,
            tombstone.original_location,
            tombstone.language,
            *tombstone.tags,
            tombstone.author,
        ]
    )


class TombstoneRegistry:
    """Creates, resurrects and queries tombstones.

    Creating a tombstone flags the linked artifact dead, resurrecting flags it
    alive again; both collections change inside one store transaction.
    """

    def __init__(
        self,
        store: CemeteryStore,
        index: AssetIndex,
        picker: EpitaphPicker | None = None,
        clock: Clock | None = None,
        policy: ResurrectionPolicy | str = ResurrectionPolicy.OVERWRITE,
    ) -> None:
        self.store = store
        self.index = index
        self.picker = picker or EpitaphPicker()
        self.clock = clock or utc_now
        self.policy = ResurrectionPolicy(policy)

    @property
    def rng(self) -> random.Random:
        return self.picker.rng

    def create(
        self, location: str, cause: str, options: TombstoneOptions | None = None
    ) -> Tombstone:
        """Retire the code at ``location`` and return its new tombstone."""
        if not location or not location.strip():
            raise InvalidArgumentError("A location is required to create a tombstone")
        if not cause or not cause.strip():
            raise InvalidArgumentError("A cause of death is required to create a tombstone")
        options = options or TombstoneOptions()
        location = location.strip()
        cause = cause.strip()

        path = Path(location)
        content = read_text(path) if path.is_file() else None
        name = PurePosixPath(location.replace("\\", "/")).name or location

        with self.store.transaction() as snapshot:
            artifact = find_artifact(snapshot.artifacts, location)
            self._ensure_not_retired(snapshot.tombstones, location, artifact)

            language = detect_language(location) or (artifact.language if artifact else None)
            timestamp = isoformat(self.clock())
            tombstone = Tombstone(
                id=self._new_id(snapshot.tombstones, location, timestamp),
                name=name,
                cause_of_death=cause,
                epitaph=options.epitaph or self.picker.pick(cause),
                original_location=location,
                died_at=timestamp,
                tags=self._derive_tags(options, location, content, language, artifact, name),
                summary=self._derive_summary(options, content, artifact, name),
                language=language,
                line_count=count_lines(content) if content is not None else (
                    artifact.line_count if artifact else 0
                ),
                artifact_ref=artifact.id if artifact else None,
                author=options.author or (artifact.author if artifact else None),
                repo=options.repo or (artifact.repo if artifact else None),
                created_at=timestamp,
            )
            snapshot.tombstones.append(tombstone)
            snapshot.touch_tombstones()
            if artifact is not None:
                self.index.mark_dead(artifact.id, tombstone.id)

        LOGGER.info("Created tombstone %s for %s", tombstone.id, location)
        return tombstone

    def resurrect(self, tombstone_id: str, new_location: str) -> Optional[Tombstone]:
        """Record that the code came back at ``new_location``; None for an unknown id."""
        if not new_location or not new_location.strip():
            raise InvalidArgumentError("A new location is required to resurrect a tombstone")

        with self.store.transaction() as snapshot:
            tombstone = next((t for t in snapshot.tombstones if t.id == tombstone_id), None)
            if tombstone is None:
                return None
            if not tombstone.is_dead and self.policy is ResurrectionPolicy.REJECT:
                raise AlreadyResurrectedError(tombstone.id, tombstone.resurrected_to)

            tombstone.resurrected_at = isoformat(self.clock())
            tombstone.resurrected_to = new_location.strip()
            snapshot.touch_tombstones()
            if tombstone.artifact_ref:
                holder = self._other_dead_tombstone(snapshot.tombstones, tombstone)
                if holder is None:
                    self.index.mark_alive(tombstone.artifact_ref)
                else:
                    LOGGER.info(
                        "Artifact %s stays dead: still retired by %s",
                        tombstone.artifact_ref,
                        holder.id,
                    )

        LOGGER.info("Resurrected %s to %s", tombstone.id, tombstone.resurrected_to)
        return tombstone

    def get(self, tombstone_id: str) -> Optional[Tombstone]:
        for tombstone in self.store.load_tombstones():
            if tombstone.id == tombstone_id:
                return tombstone
        return None

    def list(self) -> List[Tombstone]:
        return self.store.load_tombstones()

    def search(self, query: str) -> List[Tombstone]:
        tokens = query_tokens(query or "")
        return [t for t in self.store.load_tombstones() if matches_all(tokens, searchable_text(t))]

    def fuzzy_search(self, keyword: str, threshold: float = 0.5) -> List[Tombstone]:
        """Tombstones whose id, location or cause is within edit distance of ``keyword``.

        Ranked by the best ratio over those fields, highest first.
        """
        keyword = (keyword or "").strip().lower()
        if not keyword:
            return []
        scored = []
        for tombstone in self.store.load_tombstones():
            fields = (tombstone.id, tombstone.original_location, tombstone.cause_of_death)
            score = max((edit_ratio(value.lower(), keyword) for value in fields if value), default=0.0)
            if score >= threshold:
                scored.append((score, tombstone))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [tombstone for _, tombstone in scored]

    def random_tombstone(self) -> Optional[Tombstone]:
        tombstones = self.store.load_tombstones()
        if not tombstones:
            return None
        return self.rng.choice(tombstones)

    def stats(self) -> RegistryStats:
        tombstones = self.store.load_tombstones()
        stats = RegistryStats(total=len(tombstones))
        for tombstone in tombstones:
            if tombstone.is_dead:
                stats.still_dead += 1
            else:
                stats.resurrected += 1
            if tombstone.language:
                stats.by_language[tombstone.language] = (
                    stats.by_language.get(tombstone.language, 0) + 1
                )
            cause = tombstone.cause_of_death[:CAUSE_KEY_CHARS]
            stats.by_cause[cause] = stats.by_cause.get(cause, 0) + 1
        stats.recent_deaths = sorted(tombstones, key=lambda t: t.died_at, reverse=True)[
            :RECENT_DEATHS
        ]
        return stats

    def _ensure_not_retired(
        self, tombstones: List[Tombstone], location: str, artifact: Optional[Artifact]
    ) -> None:
        for existing in tombstones:
            if not existing.is_dead:
                continue
            if existing.original_location == location or (
                artifact is not None and existing.artifact_ref == artifact.id
            ):
                raise AlreadyRetiredError(location, existing.id)

    @staticmethod
    def _other_dead_tombstone(
        tombstones: List[Tombstone], tombstone: Tombstone
    ) -> Optional[Tombstone]:
        for other in tombstones:
            if other.id == tombstone.id or not other.is_dead:
                continue
            if other.artifact_ref == tombstone.artifact_ref or (
                other.original_location == tombstone.original_location
            ):
                return other
        return None

    def _new_id(self, tombstones: List[Tombstone], location: str, timestamp: str) -> str:
        taken = {t.id for t in tombstones}
        seed = f"{location}:{timestamp}"
        candidate = f"tomb-{short_id(seed)}"
        attempt = 0
        while candidate in taken:
            attempt += 1
            candidate = f"tomb-{short_id(f'{seed}:{attempt}')}"
        return candidate

    @staticmethod
    def _derive_tags(
        options: TombstoneOptions,
        location: str,
        content: Optional[str],
        language: Optional[str],
        artifact: Optional[Artifact],
        name: str,
    ) -> List[str]:
        if options.tags:
            return normalize_tags(options.tags)
        if content is not None:
            tags = extract_tags(location, content, language=language)
            if tags:
                return tags
        if artifact is not None and artifact.tags:
            return list(artifact.tags)
        return [PurePosixPath(name).stem.lower() or name]

    @staticmethod
    def _derive_summary(
        options: TombstoneOptions,
        content: Optional[str],
        artifact: Optional[Artifact],
        name: str,
    ) -> str:
        if options.summary:
            return options.summary
        if content is not None:
            return leading_comment(content) or describe_structure(name, content)
        if artifact is not None and artifact.summary:
            return artifact.summary
        return name
