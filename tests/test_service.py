"""End-to-end tests through the Cemetery facade."""

from __future__ import annotations

import random
from pathlib import Path

import pytest

from cemetery.config import AppConfig
from cemetery.models import ResurrectionKind
from cemetery.service import Cemetery
from cemetery.tombstones.epitaphs import EpitaphPicker


@pytest.fixture
def cemetery(tmp_path: Path):
    with Cemetery.open(
        AppConfig(base_dir=tmp_path), picker=EpitaphPicker(random.Random(5))
    ) as opened:
        yield opened


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    (root / "auth-manager.ts").write_text(
        "/** Handles logins for the portal */\n"
        "class AuthManager {\n"
        "  login(user, password) { return this.verify(user, password) }\n"
        "}\n"
    )
    (root / "logger.ts").write_text("export function log(msg) { console.log(msg) }\n")
    return root


class TestCemetery:
    """Facade wiring."""

    def test_store_lives_under_base_dir(self, cemetery: Cemetery, tmp_path: Path) -> None:
        assert cemetery.store.store_dir == tmp_path / ".cemetery"

    def test_full_lifecycle(self, cemetery: Cemetery, project: Path) -> None:
        stats = cemetery.scan(project)
        assert stats.added == 2

        location = str(project / "auth-manager.ts")
        tombstone = cemetery.bury(location, "deprecated")
        assert cemetery.index.get(location).alive is False

        reformatted = Path(location).read_text().replace(" ", "  ")
        zombie = cemetery.detect_zombie(reformatted)
        assert zombie.tombstone_id == tombstone.id
        assert zombie.is_zombie
        assert zombie.classification is ResurrectionKind.CLONE

        revived = cemetery.resurrect(tombstone.id, "src/auth/manager.ts")
        assert revived is not None
        assert cemetery.index.get(location).alive is True

    def test_summary(self, cemetery: Cemetery, project: Path) -> None:
        cemetery.scan(project)
        cemetery.bury(str(project / "logger.ts"), "unused")

        summary = cemetery.summary()

        assert summary["assets"]["total"] == 2
        assert summary["assets"]["dead"] == 1
        assert summary["tombstones"]["total"] == 1
        assert summary["tombstones"]["still_dead"] == 1

    def test_search_covers_both_collections(self, cemetery: Cemetery, project: Path) -> None:
        cemetery.scan(project)
        cemetery.bury("legacy/portal-login.ts", "replaced by the portal rewrite")

        results = cemetery.search("portal")

        assert [a.name for a in results.artifacts] == ["auth-manager.ts"]
        assert [t.name for t in results.tombstones] == ["portal-login.ts"]
        assert set(results.to_dict()) == {"artifacts", "tombstones"}

    def test_zombie_matches_use_inclusion_threshold(
        self, cemetery: Cemetery, project: Path
    ) -> None:
        cemetery.scan(project)
        cemetery.bury(str(project / "auth-manager.ts"), "refactor")
        cemetery.bury(str(project / "logger.ts"), "unused")

        matches = cemetery.zombie_matches(
            (project / "auth-manager.ts").read_text(), new_location="lib/auth-manager.ts"
        )

        assert len(matches) == 1
        assert matches[0].matched_keywords == ["auth", "manager"]

    def test_scanner_uses_config(self, cemetery: Cemetery) -> None:
        scanner = cemetery.scanner()
        assert scanner.config is cemetery.config
        assert scanner.status()["running"] is False
