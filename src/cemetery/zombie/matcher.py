"""Detect new code that resembles retired code ("zombies")."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from cemetery.models import ResurrectionKind, SimilarityScore, Tombstone, ZombieMatch
from cemetery.similarity.engine import (
    SimilarityEngine,
    classify,
    confidence,
    derive_keywords,
    keyword_match,
)
from cemetery.tombstones.registry import TombstoneRegistry
from cemetery.utils.files import read_text

LOGGER = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.7
MEDIUM_CONFIDENCE = 0.5

ContentReader = Callable[[Tombstone], Optional[str]]


def read_original(tombstone: Tombstone) -> Optional[str]:
    """Default reader: the retired file at its original location, if still on disk."""
    return read_text(Path(tombstone.original_location))


@dataclass(slots=True)
class MatchSummary:
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"high": self.high, "medium": self.medium, "low": self.low, "total": self.total}


def summarize_matches(matches: Sequence[ZombieMatch]) -> MatchSummary:
    """Bucket matches by confidence: high >= 0.7, medium >= 0.5, low otherwise."""
    summary = MatchSummary(total=len(matches))
    for match in matches:
        if match.confidence >= HIGH_CONFIDENCE:
            summary.high += 1
        elif match.confidence >= MEDIUM_CONFIDENCE:
            summary.medium += 1
        else:
            summary.low += 1
    return summary


def no_match() -> ZombieMatch:
    return ZombieMatch(
        tombstone_id=None,
        similarity=0.0,
        confidence=0.0,
        classification=ResurrectionKind.INSPIRED,
    )


class ZombieMatcher:
    """Scores new code against the most recent tombstones."""

    def __init__(
        self,
        registry: TombstoneRegistry,
        engine: SimilarityEngine | None = None,
        reader: ContentReader | None = None,
        candidate_limit: int = 20,
        include_resurrected: bool = False,
    ) -> None:
        self.registry = registry
        self.engine = engine or SimilarityEngine()
        self.reader = reader or read_original
        self.candidate_limit = candidate_limit
        self.include_resurrected = include_resurrected

    def candidates(self) -> List[Tombstone]:
        tombstones = self.registry.list()
        if not self.include_resurrected:
            tombstones = [t for t in tombstones if t.is_dead]
        tombstones.sort(key=lambda t: t.died_at, reverse=True)
        return tombstones[: self.candidate_limit]

    def find_best_match(
        self,
        new_code: str,
        threshold: float = 0.7,
        new_location: Optional[str] = None,
    ) -> ZombieMatch:
        matches = self._score_candidates(new_code, new_location)
        if not matches:
            return no_match()

        similarities = np.fromiter((m.similarity for m in matches), dtype=float, count=len(matches))
        best = matches[int(np.argmax(similarities))]
        best.is_zombie = best.similarity > threshold
        if best.is_zombie:
            LOGGER.info(
                "Zombie detected: %.2f similar to %s (%s)",
                best.similarity,
                best.tombstone_id,
                best.classification.value,
            )
        return best

    def find_all_matches(
        self,
        new_code: str,
        limit: int = 10,
        new_location: Optional[str] = None,
        inclusion_threshold: float = 0.5,
    ) -> List[ZombieMatch]:
        """Every candidate above ``inclusion_threshold``, most similar first."""
        matches = [
            m for m in self._score_candidates(new_code, new_location)
            if m.similarity > inclusion_threshold
        ]
        if not matches:
            return []

        similarities = np.fromiter((m.similarity for m in matches), dtype=float, count=len(matches))
        # stable sort keeps the most recent tombstone first among ties
        order = np.argsort(-similarities, kind="stable")
        ranked = [matches[i] for i in order[: max(limit, 0)]]
        for match in ranked:
            match.is_zombie = True
        return ranked

    def _score_candidates(
        self, new_code: str, new_location: Optional[str]
    ) -> List[ZombieMatch]:
        new_name = PurePosixPath(new_location.replace("\\", "/")).name if new_location else None
        matches = []
        for tombstone in self.candidates():
            content = self.reader(tombstone)
            if content is None:
                LOGGER.debug("Skipping unreadable candidate %s", tombstone.original_location)
                continue
            score, keyword_score, keywords = self._score(
                new_code, content, new_location, new_name, tombstone
            )
            matches.append(
                ZombieMatch(
                    tombstone_id=tombstone.id,
                    similarity=score.value,
                    confidence=confidence(score.value, keyword_score),
                    classification=classify(score.value, keyword_score),
                    matched_signals=score,
                    matched_keywords=keywords,
                )
            )
        return matches

    def _score(
        self,
        new_code: str,
        old_code: str,
        new_location: Optional[str],
        new_name: Optional[str],
        tombstone: Tombstone,
    ) -> Tuple[SimilarityScore, float, List[str]]:
        if new_location is None:
            return self.engine.similarity(new_code, old_code), 0.0, []

        score = self.engine.similarity(
            new_code, old_code, a_name=new_name, b_name=tombstone.name
        )
        keyword_score, keywords = keyword_match(
            derive_keywords(tombstone.original_location), new_name or "", new_location
        )
        return score, keyword_score, keywords
