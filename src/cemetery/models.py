"""Core cemetery data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ArtifactKind(str, Enum):
    CODE = "code"
    TEXT = "text"
    CONFIG = "config"
    TEMPLATE = "template"
    IDEA = "idea"
    SNIPPET = "snippet"
    DOCUMENT = "document"
    UNKNOWN = "unknown"


class ArtifactSource(str, Enum):
    LOCAL = "local"
    GITHUB = "github"
    CLOUD = "cloud"
    MANUAL = "manual"


class ResurrectionKind(str, Enum):
    """How a zombie relates to the retired code it resembles."""

    CLONE = "clone"
    REFACTOR = "refactor"
    MODULARIZED = "modularized"
    DERIVED = "derived"
    INSPIRED = "inspired"


@dataclass(slots=True)
class Artifact:
    """A discovered piece of content as stored in the asset index."""

    id: str
    fingerprint: str
    name: str
    location: str
    kind: ArtifactKind = ArtifactKind.UNKNOWN
    source: ArtifactSource = ArtifactSource.LOCAL
    language: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    summary: str = ""
    size_bytes: int = 0
    line_count: int = 0
    digest: str = ""
    created_at: str = ""
    updated_at: str = ""
    indexed_at: str = ""
    author: Optional[str] = None
    repo: Optional[str] = None
    alive: bool = True
    tombstone_ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["source"] = self.source.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        return cls(
            id=data["id"],
            fingerprint=data["fingerprint"],
            name=data["name"],
            location=data["location"],
            kind=ArtifactKind(data.get("kind", ArtifactKind.UNKNOWN.value)),
            source=ArtifactSource(data.get("source", ArtifactSource.LOCAL.value)),
            language=data.get("language"),
            tags=list(data.get("tags", [])),
            summary=data.get("summary", ""),
            size_bytes=int(data.get("size_bytes", 0)),
            line_count=int(data.get("line_count", 0)),
            digest=data.get("digest", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            indexed_at=data.get("indexed_at", ""),
            author=data.get("author"),
            repo=data.get("repo"),
            alive=bool(data.get("alive", True)),
            tombstone_ref=data.get("tombstone_ref"),
        )


@dataclass(slots=True)
class Tombstone:
    """Retirement record for an artifact."""

    id: str
    name: str
    cause_of_death: str
    epitaph: str
    original_location: str
    died_at: str
    tags: List[str] = field(default_factory=list)
    summary: str = ""
    language: Optional[str] = None
    line_count: int = 0
    artifact_ref: Optional[str] = None
    author: Optional[str] = None
    repo: Optional[str] = None
    created_at: str = ""
    resurrected_at: Optional[str] = None
    resurrected_to: Optional[str] = None

    @property
    def is_dead(self) -> bool:
        return self.resurrected_at is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tombstone":
        return cls(
            id=data["id"],
            name=data["name"],
            cause_of_death=data["cause_of_death"],
            epitaph=data.get("epitaph", ""),
            original_location=data["original_location"],
            died_at=data["died_at"],
            tags=list(data.get("tags", [])),
            summary=data.get("summary", ""),
            language=data.get("language"),
            line_count=int(data.get("line_count", 0)),
            artifact_ref=data.get("artifact_ref"),
            author=data.get("author"),
            repo=data.get("repo"),
            created_at=data.get("created_at", ""),
            resurrected_at=data.get("resurrected_at"),
            resurrected_to=data.get("resurrected_to"),
        )


@dataclass(slots=True)
class TombstoneOptions:
    """Optional inputs for tombstone creation; anything left as None is derived."""

    epitaph: Optional[str] = None
    tags: Optional[Sequence[str]] = None
    summary: Optional[str] = None
    author: Optional[str] = None
    repo: Optional[str] = None


@dataclass(slots=True)
class SignalScore:
    value: float
    weight: float


@dataclass(slots=True)
class SimilarityScore:
    """Composite similarity with the component signals kept for explanation."""

    value: float
    signals: Dict[str, SignalScore] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "signals": {name: asdict(signal) for name, signal in self.signals.items()},
        }


@dataclass(slots=True)
class ZombieMatch:
    """Best (or one of the best) tombstones resembling a piece of new code."""

    tombstone_id: Optional[str]
    similarity: float
    confidence: float
    classification: ResurrectionKind
    is_zombie: bool = False
    matched_signals: Optional[SimilarityScore] = None
    matched_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tombstone_id": self.tombstone_id,
            "similarity": self.similarity,
            "confidence": self.confidence,
            "classification": self.classification.value,
            "is_zombie": self.is_zombie,
            "matched_signals": self.matched_signals.to_dict() if self.matched_signals else None,
            "matched_keywords": list(self.matched_keywords),
        }
