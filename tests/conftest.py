"""Shared fixtures for the cemetery test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

from cemetery.index.indexer import AssetIndex
from cemetery.index.storage import CemeteryStore
from cemetery.models import Artifact, ArtifactKind, ArtifactSource


class StepClock:
    """Clock that advances one minute per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture
def store(tmp_path: Path):
    cemetery_store = CemeteryStore(tmp_path / ".cemetery")
    yield cemetery_store
    cemetery_store.close()


@pytest.fixture
def index(store: CemeteryStore) -> AssetIndex:
    return AssetIndex(store)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def make_artifact() -> Callable[..., Artifact]:
    def factory(name: str = "auth.ts", **overrides) -> Artifact:
        values = dict(
            id=f"{name}-id",
            fingerprint=f"{name}-fp",
            name=name,
            location=f"/project/src/{name}",
            kind=ArtifactKind.CODE,
            source=ArtifactSource.LOCAL,
            language="TypeScript",
            tags=["typescript", "code"],
            summary=f"{name} summary",
            size_bytes=100,
            line_count=10,
            digest=f"{name}-digest",
            updated_at="2024-01-01T00:00:00+00:00",
        )
        values.update(overrides)
        return Artifact(**values)

    return factory
