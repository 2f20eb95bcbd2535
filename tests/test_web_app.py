"""Tests for the FastAPI web application."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cemetery.config import AppConfig
from cemetery.index.storage import ASSET_INDEX_FILE, CemeteryStore
from cemetery.web.app import app, create_app


@pytest.fixture
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    base = tmp_path / "base"
    base.mkdir()
    return base


@pytest.fixture
def client(base_dir: Path):
    yield TestClient(create_app(AppConfig(base_dir=base_dir)))
    app.state.config = None


@pytest.fixture
def project(base_dir: Path) -> Path:
    root = base_dir / "project"
    root.mkdir()
    (root / "auth-manager.ts").write_text(
        "/** Handles logins for the portal */\n"
        "class AuthManager {\n"
        "  login(user, password) { return this.verify(user, password) }\n"
        "}\n"
    )
    (root / "logger.ts").write_text("export function log(msg) { console.log(msg) }\n")
    return root


def _index(client: TestClient, project: Path) -> None:
    response = client.post("/index", json={"paths": [str(project)]})
    assert response.status_code == 200


class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestIndexEndpoint:
    """Tests for POST /index endpoint."""

    def test_index_no_paths(self, client: TestClient) -> None:
        """Returns 400 when no paths are provided."""
        response = client.post("/index", json={"paths": []})
        assert response.status_code == 400
        assert "No path provided" in response.json()["detail"]

    def test_index_blank_paths(self, client: TestClient) -> None:
        response = client.post("/index", json={"paths": ["  ", "\n"]})
        assert response.status_code == 400

    def test_index_null_byte(self, client: TestClient) -> None:
        response = client.post("/index", json={"paths": ["/tmp/a\u0000b"]})
        assert response.status_code == 400
        assert "null byte" in response.json()["detail"]

    def test_index_missing_path(self, client: TestClient, base_dir: Path) -> None:
        """Returns 404 for a path that does not exist."""
        response = client.post("/index", json={"paths": [str(base_dir / "nope")]})
        assert response.status_code == 404
        assert "Path not found" in response.json()["detail"]

    def test_index_outside_allowed_directories(self, client: TestClient, tmp_path: Path) -> None:
        """Returns 403 for paths outside the home and project directories."""
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.ts").write_text("export const key = 1\n")

        response = client.post("/index", json={"paths": [str(outside)]})

        assert response.status_code == 403
        assert client.get("/assets").json()["count"] == 0

    def test_index_symlink_escape(self, client: TestClient, base_dir: Path, tmp_path: Path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        link = base_dir / "link"
        link.symlink_to(outside, target_is_directory=True)

        response = client.post("/index", json={"paths": [str(link)]})

        assert response.status_code == 403

    def test_index_under_home(self, client: TestClient, tmp_path: Path) -> None:
        notes = tmp_path / "home" / "notes"
        notes.mkdir()
        (notes / "todo.md").write_text("# Things to retire\n")

        response = client.post("/index", json={"paths": [str(notes)]})

        assert response.status_code == 200
        assert response.json()["results"][0]["added"] == 1

    def test_index_success(self, client: TestClient, project: Path) -> None:
        response = client.post("/index", json={"paths": [str(project)]})

        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "ok"
        assert payload["results"][0]["added"] == 2
        assert payload["results"][0]["path"] == str(project.resolve())


class TestAssetEndpoints:
    """Tests for the /assets endpoints."""

    def test_list_assets(self, client: TestClient, project: Path) -> None:
        _index(client, project)

        response = client.get("/assets")

        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_list_assets_with_query(self, client: TestClient, project: Path) -> None:
        _index(client, project)

        response = client.get("/assets", params={"query": "portal"})

        names = [asset["name"] for asset in response.json()["assets"]]
        assert names == ["auth-manager.ts"]

    def test_get_asset_by_suffix(self, client: TestClient, project: Path) -> None:
        _index(client, project)

        response = client.get("/assets/logger.ts")

        assert response.status_code == 200
        assert response.json()["name"] == "logger.ts"

    def test_get_unknown_asset(self, client: TestClient) -> None:
        response = client.get("/assets/missing.ts")
        assert response.status_code == 404

    def test_corrupt_store_is_server_error(self, client: TestClient) -> None:
        store = CemeteryStore(app.state.config.resolve_store_dir())
        store.store_dir.mkdir(parents=True)
        store.asset_index_path.write_text("{broken", encoding="utf-8")

        response = client.get("/assets")

        assert response.status_code == 500


class TestTombstoneEndpoints:
    """Tests for the tombstone endpoints."""

    def test_create_and_fetch(self, client: TestClient, project: Path) -> None:
        _index(client, project)
        location = str(project / "logger.ts")

        created = client.post(
            "/tombstone", json={"location": location, "cause": "unused", "tags": ["logging"]}
        )

        assert created.status_code == 200
        tombstone = created.json()
        assert tombstone["original_location"] == location
        assert tombstone["tags"] == ["logging"]

        fetched = client.get(f"/tombstones/{tombstone['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["cause_of_death"] == "unused"

        asset = client.get("/assets/logger.ts").json()
        assert asset["alive"] is False

    def test_create_requires_cause(self, client: TestClient) -> None:
        response = client.post("/tombstone", json={"location": "src/old.ts", "cause": "  "})
        assert response.status_code == 400

    def test_create_twice_is_rejected(self, client: TestClient) -> None:
        client.post("/tombstone", json={"location": "src/old.ts", "cause": "deprecated"})

        response = client.post("/tombstone", json={"location": "src/old.ts", "cause": "deprecated"})

        assert response.status_code == 400

    def test_unknown_tombstone(self, client: TestClient) -> None:
        response = client.get("/tombstones/tomb-missing")
        assert response.status_code == 404

    def test_random_on_empty_cemetery(self, client: TestClient) -> None:
        response = client.get("/tombstones/random")
        assert response.status_code == 404
        assert "empty" in response.json()["detail"]

    def test_list_and_search(self, client: TestClient) -> None:
        client.post("/tombstone", json={"location": "src/payments.ts", "cause": "replaced by stripe"})
        client.post("/tombstone", json={"location": "src/old-logger.ts", "cause": "unused"})

        listed = client.get("/tombstones").json()
        searched = client.get("/tombstones", params={"query": "stripe"}).json()

        assert listed["count"] == 2
        assert [t["name"] for t in searched["tombstones"]] == ["payments.ts"]

    def test_resurrect(self, client: TestClient) -> None:
        created = client.post("/tombstone", json={"location": "src/old.ts", "cause": "deprecated"})
        tombstone_id = created.json()["id"]

        response = client.post(
            f"/tombstones/{tombstone_id}/resurrect", json={"new_location": "src/new.ts"}
        )

        assert response.status_code == 200
        assert response.json()["resurrected_to"] == "src/new.ts"

    def test_resurrect_unknown(self, client: TestClient) -> None:
        response = client.post(
            "/tombstones/tomb-missing/resurrect", json={"new_location": "src/new.ts"}
        )
        assert response.status_code == 404


class TestSearchEndpoint:
    """Tests for GET /search endpoint."""

    def test_search_whitespace_query(self, client: TestClient) -> None:
        """Returns 400 for whitespace-only query."""
        response = client.get("/search", params={"q": "   "})
        assert response.status_code == 400
        assert "Empty query" in response.json()["detail"]

    def test_search_both_collections(self, client: TestClient, project: Path) -> None:
        _index(client, project)
        client.post("/tombstone", json={"location": "legacy/portal-login.ts", "cause": "rewritten"})

        payload = client.get("/search", params={"q": "portal"}).json()

        assert [a["name"] for a in payload["artifacts"]] == ["auth-manager.ts"]
        assert [t["name"] for t in payload["tombstones"]] == ["portal-login.ts"]


class TestZombieEndpoints:
    """Tests for the zombie detection endpoints."""

    def test_empty_code(self, client: TestClient) -> None:
        response = client.post("/detect-zombie", json={"code": "  "})
        assert response.status_code == 400
        assert "Empty code" in response.json()["detail"]

    def test_no_tombstones(self, client: TestClient) -> None:
        response = client.post("/detect-zombie", json={"code": "const x = 1"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["is_zombie"] is False
        assert payload["tombstone_id"] is None

    def test_detects_buried_code(self, client: TestClient, project: Path) -> None:
        _index(client, project)
        original = project / "auth-manager.ts"
        tombstone = client.post(
            "/tombstone", json={"location": str(original), "cause": "deprecated"}
        ).json()

        detected = client.post("/detect-zombie", json={"code": original.read_text()}).json()
        matches = client.post("/zombie-matches", json={"code": original.read_text()}).json()

        assert detected["is_zombie"] is True
        assert detected["tombstone_id"] == tombstone["id"]
        assert [m["tombstone_id"] for m in matches["matches"]] == [tombstone["id"]]
        assert matches["summary"]["total"] == 1


class TestConcurrentRequests:
    """Overlapping requests on one store must not lose each other's writes."""

    def test_tombstone_during_index_job(
        self,
        client: TestClient,
        base_dir: Path,
        project: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        legacy = base_dir / "legacy"
        legacy.mkdir()
        (legacy / "old.ts").write_text("export const legacy = 1\n")
        _index(client, legacy)

        original_write = CemeteryStore._write
        writing = threading.Event()

        def slow_write(self, path, payload):
            if path.name == ASSET_INDEX_FILE and not writing.is_set():
                writing.set()
                time.sleep(0.3)
            original_write(self, path, payload)

        monkeypatch.setattr(CemeteryStore, "_write", slow_write)
        responses = []
        indexer = threading.Thread(
            target=lambda: responses.append(client.post("/index", json={"paths": [str(project)]}))
        )
        indexer.start()
        assert writing.wait(5)

        created = client.post(
            "/tombstone", json={"location": str(legacy / "old.ts"), "cause": "deprecated"}
        )
        indexer.join(5)

        assert created.status_code == 200
        assert responses[0].status_code == 200
        asset = client.get("/assets/old.ts").json()
        assert asset["alive"] is False
        assert asset["tombstone_ref"] == created.json()["id"]
        assert client.get("/assets").json()["count"] == 3
