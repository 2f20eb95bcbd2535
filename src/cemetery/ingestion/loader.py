"""Turn files on disk into asset index records."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cemetery.models import Artifact, ArtifactSource
from cemetery.utils.files import (
    MAX_FILE_BYTES,
    decode_text,
    detect_kind,
    detect_language,
    is_ignored_file,
)
from cemetery.utils.hashing import content_digest, fingerprint
from cemetery.utils.text import count_lines, extract_summary, extract_tags

LOGGER = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(timestamp: float | datetime) -> str:
    if isinstance(timestamp, datetime):
        return timestamp.astimezone(timezone.utc).isoformat()
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def artifact_id(location: str, content: bytes) -> str:
    """Location-scoped id: a readable basename plus a short fingerprint."""
    name = re.sub(r"[^a-zA-Z0-9]", "-", Path(location).name)[:20]
    return f"{name}-{fingerprint(content, location)[:12]}"


def load_artifact(
    path: Path,
    *,
    relative_to: Optional[Path] = None,
    source: ArtifactSource = ArtifactSource.LOCAL,
    repo: Optional[str] = None,
    max_bytes: int = MAX_FILE_BYTES,
    now: Optional[datetime] = None,
) -> Optional[Artifact]:
    """Build an Artifact for ``path``, or None if the file cannot be indexed.

    Tags are derived from the path relative to ``relative_to`` when given, so
    the directories above a scan root do not leak into every artifact.
    """
    path = Path(path)
    if is_ignored_file(path):
        return None
    try:
        stat = path.stat()
        if not path.is_file() or stat.st_size > max_bytes:
            return None
        raw = path.read_bytes()
    except OSError as exc:
        LOGGER.debug("Skipping unreadable %s: %s", path, exc)
        return None

    content = decode_text(raw, path)
    if content is None:
        return None

    location = str(path)
    tag_source = location
    if relative_to is not None:
        try:
            tag_source = str(path.relative_to(relative_to))
        except ValueError:
            pass

    language = detect_language(location)
    kind = detect_kind(location)
    created = getattr(stat, "st_birthtime", stat.st_ctime)
    return Artifact(
        id=artifact_id(location, raw),
        fingerprint=fingerprint(raw),
        name=path.name,
        location=location,
        kind=kind,
        source=source,
        language=language,
        tags=extract_tags(tag_source, content, language=language, kind=kind),
        summary=extract_summary(path.name, content),
        size_bytes=stat.st_size,
        line_count=count_lines(content),
        digest=content_digest(raw),
        created_at=isoformat(created),
        updated_at=isoformat(stat.st_mtime),
        indexed_at=isoformat(now or utc_now()),
        repo=repo,
    )
