"""Tests for zombie detection."""

from __future__ import annotations

import random
from typing import Dict

import pytest

from cemetery.index.indexer import AssetIndex
from cemetery.index.storage import CemeteryStore
from cemetery.models import ResurrectionKind, ZombieMatch
from cemetery.tombstones.epitaphs import EpitaphPicker
from cemetery.tombstones.registry import TombstoneRegistry
from cemetery.zombie.matcher import ZombieMatcher, read_original, summarize_matches

AUTH_MANAGER = """class AuthManager {
  login(user, password) { return this.verify(user, password) }
  logout(session) { session.destroy() }
}
"""

AUTH_MANAGER_REFORMATTED = """class AuthManager{
    login(user,password){return this.verify(user,password)}
    logout(session){session.destroy()}
}"""

LOGGER = """function createLogger(level) {
  return { info: function(msg) { console.log(level, msg) } }
}
"""


@pytest.fixture
def registry(store: CemeteryStore, index: AssetIndex, clock) -> TombstoneRegistry:
    return TombstoneRegistry(store, index, picker=EpitaphPicker(random.Random(1)), clock=clock)


@pytest.fixture
def sources() -> Dict[str, str]:
    return {}


@pytest.fixture
def matcher(registry: TombstoneRegistry, sources: Dict[str, str]) -> ZombieMatcher:
    return ZombieMatcher(registry, reader=lambda t: sources.get(t.original_location))


def _bury(registry: TombstoneRegistry, sources: Dict[str, str], location: str, code: str):
    sources[location] = code
    return registry.create(location, "refactor")


class TestFindBestMatch:
    """Single best match."""

    def test_empty_registry(self, matcher: ZombieMatcher) -> None:
        match = matcher.find_best_match(AUTH_MANAGER)
        assert match.tombstone_id is None
        assert match.is_zombie is False
        assert match.similarity == 0.0

    def test_reformatted_code_is_clone(self, registry, sources, matcher: ZombieMatcher) -> None:
        tombstone = _bury(registry, sources, "src/auth-manager.ts", AUTH_MANAGER)
        _bury(registry, sources, "src/logger.js", LOGGER)

        match = matcher.find_best_match(AUTH_MANAGER_REFORMATTED)

        assert match.tombstone_id == tombstone.id
        assert match.is_zombie is True
        assert match.classification is ResurrectionKind.CLONE
        assert match.similarity == pytest.approx(1.0)
        assert set(match.matched_signals.signals) == {"tokens"}

    def test_below_threshold_not_zombie(self, registry, sources, matcher: ZombieMatcher) -> None:
        _bury(registry, sources, "src/logger.js", LOGGER)

        match = matcher.find_best_match(AUTH_MANAGER)

        assert match.tombstone_id is not None
        assert match.is_zombie is False

    def test_threshold_is_strict(self, registry, sources, matcher: ZombieMatcher) -> None:
        _bury(registry, sources, "src/auth-manager.ts", AUTH_MANAGER)
        match = matcher.find_best_match(AUTH_MANAGER, threshold=1.0)
        assert match.is_zombie is False

    def test_with_location_uses_keywords(self, registry, sources, matcher: ZombieMatcher) -> None:
        _bury(registry, sources, "src/auth-manager.ts", AUTH_MANAGER)

        match = matcher.find_best_match(
            AUTH_MANAGER_REFORMATTED, new_location="lib/auth-manager-v2.ts"
        )

        assert match.matched_keywords == ["auth", "manager"]
        assert set(match.matched_signals.signals) == {"filename", "tokens", "structure"}
        assert match.confidence == pytest.approx(0.7 * match.similarity + 0.3 * 0.6)

    def test_unreadable_candidates_skipped(self, registry, matcher: ZombieMatcher) -> None:
        registry.create("src/vanished.ts", "unused")
        match = matcher.find_best_match(AUTH_MANAGER)
        assert match.tombstone_id is None

    def test_resurrected_excluded_by_default(
        self, registry, sources, matcher: ZombieMatcher
    ) -> None:
        tombstone = _bury(registry, sources, "src/auth-manager.ts", AUTH_MANAGER)
        registry.resurrect(tombstone.id, "src/auth/manager.ts")

        assert matcher.find_best_match(AUTH_MANAGER).tombstone_id is None

        inclusive = ZombieMatcher(
            registry, reader=lambda t: sources.get(t.original_location), include_resurrected=True
        )
        assert inclusive.find_best_match(AUTH_MANAGER).tombstone_id == tombstone.id

    def test_candidate_limit_keeps_most_recent(self, registry, sources) -> None:
        oldest = _bury(registry, sources, "src/auth-manager.ts", AUTH_MANAGER)
        _bury(registry, sources, "src/logger.js", LOGGER)
        _bury(registry, sources, "src/other.js", "const unrelated = 1")

        limited = ZombieMatcher(
            registry, reader=lambda t: sources.get(t.original_location), candidate_limit=2
        )

        assert oldest.id not in {t.id for t in limited.candidates()}
        assert limited.find_best_match(AUTH_MANAGER).tombstone_id != oldest.id

    def test_default_reader_reads_disk(self, registry, tmp_path) -> None:
        path = tmp_path / "auth.ts"
        path.write_text(AUTH_MANAGER)
        tombstone = registry.create(str(path), "unused")
        assert read_original(tombstone) == AUTH_MANAGER

        match = ZombieMatcher(registry).find_best_match(AUTH_MANAGER_REFORMATTED)
        assert match.tombstone_id == tombstone.id


class TestFindAllMatches:
    """Ranked match lists."""

    def test_sorted_and_filtered(self, registry, sources, matcher: ZombieMatcher) -> None:
        exact = _bury(registry, sources, "src/auth-manager.ts", AUTH_MANAGER)
        partial = _bury(
            registry,
            sources,
            "src/auth-lite.ts",
            "class AuthManager { login(user, password) { return this.verify(user, password) } }",
        )
        _bury(registry, sources, "src/logger.js", LOGGER)

        matches = matcher.find_all_matches(AUTH_MANAGER)

        assert [m.tombstone_id for m in matches] == [exact.id, partial.id]
        assert matches[0].similarity >= matches[1].similarity
        assert all(m.similarity > 0.5 for m in matches)

    def test_limit(self, registry, sources, matcher: ZombieMatcher) -> None:
        for i in range(3):
            _bury(registry, sources, f"src/copy{i}.ts", AUTH_MANAGER)

        assert len(matcher.find_all_matches(AUTH_MANAGER, limit=2)) == 2

    def test_ties_keep_most_recent_first(self, registry, sources, matcher: ZombieMatcher) -> None:
        older = _bury(registry, sources, "src/copy-a.ts", AUTH_MANAGER)
        newer = _bury(registry, sources, "src/copy-b.ts", AUTH_MANAGER)

        matches = matcher.find_all_matches(AUTH_MANAGER)

        assert [m.tombstone_id for m in matches] == [newer.id, older.id]

    def test_empty_registry(self, matcher: ZombieMatcher) -> None:
        assert matcher.find_all_matches(AUTH_MANAGER) == []


class TestSummarizeMatches:
    """Confidence buckets."""

    def test_buckets(self) -> None:
        def match(value: float) -> ZombieMatch:
            return ZombieMatch("t", value, value, ResurrectionKind.INSPIRED)

        summary = summarize_matches([match(0.9), match(0.7), match(0.55), match(0.2)])

        assert summary.to_dict() == {"high": 2, "medium": 1, "low": 1, "total": 4}
