"""Asset records for remote repository tree listings.

Fetching the listing is left to a caller-supplied ``TreeLister``; this module
only converts entries into artifacts. Remote artifacts carry no content, so
their line count is always zero.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Callable, Iterable, List, Optional

from cemetery.errors import InvalidArgumentError
from cemetery.ingestion.loader import artifact_id, isoformat, utc_now
from cemetery.models import Artifact, ArtifactKind, ArtifactSource
from cemetery.utils.files import IGNORE_DIRS, IGNORE_FILES, detect_kind, detect_language
from cemetery.utils.hashing import fingerprint
from cemetery.utils.text import extract_tags

_GITHUB_URL = re.compile(r"github\.com/([^/]+)/([^/]+)")


@dataclass(slots=True, frozen=True)
class RemoteRepo:
    owner: str
    name: str
    branch: str = "main"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def blob_url(self, path: str) -> str:
        return f"https://github.com/{self.full_name}/blob/{self.branch}/{path}"

    @classmethod
    def parse(cls, descriptor: str, *, branch: str = "main") -> "RemoteRepo":
        """Accept ``owner/repo`` or a github.com URL."""
        descriptor = descriptor.strip()
        match = _GITHUB_URL.search(descriptor)
        if match:
            owner, name = match.group(1), match.group(2)
        else:
            parts = [part for part in descriptor.split("/") if part]
            if len(parts) != 2:
                raise InvalidArgumentError(f"Cannot parse repository descriptor: {descriptor!r}")
            owner, name = parts
        name = re.sub(r"\.git$", "", name)
        return cls(owner=owner, name=name, branch=branch)


@dataclass(slots=True, frozen=True)
class TreeEntry:
    path: str
    sha: str
    size: int = 0
    type: str = "blob"


TreeLister = Callable[[RemoteRepo], Iterable[TreeEntry]]


def _is_indexable(entry: TreeEntry) -> bool:
    if entry.type != "blob" or not entry.path:
        return False
    parts = PurePosixPath(entry.path).parts
    if parts[-1] in IGNORE_FILES or any(part in IGNORE_DIRS for part in parts):
        return False
    return detect_kind(entry.path) is not ArtifactKind.UNKNOWN or detect_language(entry.path) is not None


def artifacts_from_tree(
    repo: RemoteRepo, entries: Iterable[TreeEntry], *, now: Optional[datetime] = None
) -> List[Artifact]:
    stamp = isoformat(now or utc_now())
    artifacts: List[Artifact] = []
    for entry in entries:
        if not _is_indexable(entry):
            continue
        language = detect_language(entry.path)
        kind = detect_kind(entry.path)
        sha = entry.sha.encode("utf-8")
        artifacts.append(
            Artifact(
                id=artifact_id(f"{repo.full_name}/{entry.path}", sha),
                fingerprint=fingerprint(sha),
                name=PurePosixPath(entry.path).name,
                location=repo.blob_url(entry.path),
                kind=kind,
                source=ArtifactSource.GITHUB,
                language=language,
                tags=extract_tags(entry.path, language=language, kind=kind),
                summary=f"{repo.full_name}: {entry.path}",
                size_bytes=entry.size,
                line_count=0,
                digest=entry.sha,
                created_at=stamp,
                updated_at=stamp,
                indexed_at=stamp,
                repo=repo.full_name,
            )
        )
    return artifacts
