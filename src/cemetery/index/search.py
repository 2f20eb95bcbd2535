"""Filtering and keyword search over asset index records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from cemetery.models import Artifact, ArtifactKind, ArtifactSource
from cemetery.utils.text import query_tokens


@dataclass(slots=True)
class AssetFilter:
    """Criteria for ``AssetIndex.search``; every field left unset matches all.

    ``tags`` matches artifacts carrying any of the given tags (exact,
    case-insensitive). ``query`` requires every whitespace-separated token to
    appear somewhere in the artifact's searchable text.
    """

    query: Optional[str] = None
    kind: Optional[ArtifactKind] = None
    source: Optional[ArtifactSource] = None
    language: Optional[str] = None
    tags: Sequence[str] = ()
    alive: Optional[bool] = None
    limit: Optional[int] = None
    offset: int = 0


def joined(fields: Iterable[Optional[str]]) -> str:
    return " ".join(field for field in fields if field).lower()


def matches_all(tokens: Sequence[str], text: str) -> bool:
    return all(token in text for token in tokens)


def hit_count(tokens: Sequence[str], text: str) -> int:
    return sum(1 for token in tokens if token in text)


def searchable_text(artifact: Artifact) -> str:
    return joined(
        [
            artifact.name,
            artifact.summary,
            artifact.location,
            artifact.language,
            *artifact.tags,
            artifact.repo,
            artifact.author,
        ]
    )


def ranking_text(artifact: Artifact) -> str:
    return joined([artifact.name, artifact.summary, *artifact.tags])


def filter_artifacts(artifacts: Sequence[Artifact], criteria: AssetFilter) -> List[Artifact]:
    results = list(artifacts)

    if criteria.alive is not None:
        results = [a for a in results if a.alive == criteria.alive]
    if criteria.kind is not None:
        kind = ArtifactKind(criteria.kind)
        results = [a for a in results if a.kind is kind]
    if criteria.source is not None:
        source = ArtifactSource(criteria.source)
        results = [a for a in results if a.source is source]
    if criteria.language:
        language = criteria.language.lower()
        results = [a for a in results if (a.language or "").lower() == language]
    if criteria.tags:
        wanted = {tag.lower() for tag in criteria.tags}
        results = [a for a in results if wanted.intersection(a.tags)]

    if criteria.query:
        tokens = query_tokens(criteria.query)
        results = [a for a in results if matches_all(tokens, searchable_text(a))]
        # sorted() is stable, so equal scores keep index order
        results = sorted(results, key=lambda a: hit_count(tokens, ranking_text(a)), reverse=True)

    start = max(criteria.offset, 0)
    if criteria.limit is not None:
        return results[start : start + criteria.limit]
    return results[start:]
