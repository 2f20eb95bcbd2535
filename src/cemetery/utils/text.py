"""Text helpers: summaries, tags and query tokens."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Iterable, List, Optional

from cemetery.models import ArtifactKind
from cemetery.utils.files import IGNORE_DIRS

MAX_TAGS = 10
MIN_SUMMARY_CHARS = 10
FALLBACK_SUMMARY_CHARS = 100

COMMENT_PREFIXES = ("/*", "//", "#", "*", '"""', "'''", "--")
GENERIC_SEGMENTS = frozenset({"src", "lib", "dist", "build", "index"})

_LEADING_COMMENT = re.compile(r"^[/*#\"'\-!\s]+")
_TRAILING_COMMENT = re.compile(r"(\*/|\"\"\"|''')\s*$")
_TAG_MARKER = re.compile(r"@tags?\s+([^\n]+)", re.IGNORECASE)
_TAG_TOKEN_EDGES = re.compile(r"^\W+|\W+$")
_EXPORTS = re.compile(r"export\s+(?:default\s+)?(?:function|class|const|interface|type|enum)")
_FUNCTIONS = re.compile(r"(?:function|def)\s+\w+")
_CLASSES = re.compile(r"class\s+\w+")
_SKIPPED_FIRST_LINES = ("import", "require", "from ", "#!", "package ")


def leading_comment(content: str, *, max_lines: int = 20) -> Optional[str]:
    """Return the first meaningful comment line within ``max_lines``."""
    for line in content.splitlines()[:max_lines]:
        trimmed = line.strip()
        if not trimmed.startswith(COMMENT_PREFIXES) or trimmed.startswith("#!"):
            continue
        cleaned = _TRAILING_COMMENT.sub("", _LEADING_COMMENT.sub("", trimmed)).strip()
        if len(cleaned) > MIN_SUMMARY_CHARS:
            return cleaned
    return None


def extract_summary(name: str, content: str, *, max_lines: int = 20) -> str:
    """Short description: leading comment, else first non-trivial line, else ``name``."""
    comment = leading_comment(content, max_lines=max_lines)
    if comment:
        return comment
    for line in content.splitlines():
        trimmed = line.strip()
        if trimmed and not trimmed.startswith(_SKIPPED_FIRST_LINES):
            return trimmed[:FALLBACK_SUMMARY_CHARS]
    return name


def describe_structure(name: str, content: str) -> str:
    """Describe a file by what it declares, e.g. ``auth.ts: 2 functions (40 lines)``."""
    line_count = count_lines(content)
    parts = []
    for label, pattern in (
        ("exports", _EXPORTS),
        ("functions", _FUNCTIONS),
        ("classes", _CLASSES),
    ):
        found = len(pattern.findall(content))
        if found:
            parts.append(f"{found} {label}")
    if parts:
        return f"{name}: {', '.join(parts)} ({line_count} lines)"
    return f"{name} - {line_count} lines"


def count_lines(content: str) -> int:
    return len(content.splitlines())


def _path_segments(location: str) -> Iterable[str]:
    for segment in PurePosixPath(location.replace("\\", "/")).parts:
        if segment in IGNORE_DIRS or not 2 < len(segment) < 20:
            continue
        cleaned = re.sub(r"\.[^.]+$", "", segment).lower()
        if len(cleaned) > 2 and cleaned not in GENERIC_SEGMENTS:
            yield cleaned


def tag_markers(content: str) -> List[str]:
    """Collect tags declared inline with ``@tag`` / ``@tags`` markers."""
    found: List[str] = []
    for match in _TAG_MARKER.finditer(content):
        for token in re.split(r"[,\s]+", match.group(1)):
            cleaned = _TAG_TOKEN_EDGES.sub("", token).lower()
            if len(cleaned) > 1:
                found.append(cleaned)
    return found


def extract_tags(
    location: str,
    content: str = "",
    *,
    language: Optional[str] = None,
    kind: Optional[ArtifactKind] = None,
    limit: int = MAX_TAGS,
) -> List[str]:
    """Tags from language, kind, path segments and inline markers, in that order."""
    tags: List[str] = []
    if language:
        tags.append(language.lower())
    if kind is not None and kind is not ArtifactKind.UNKNOWN:
        tags.append(kind.value)
    tags.extend(_path_segments(location))
    if content:
        tags.extend(tag_markers(content))
    return normalize_tags(tags)[:limit]


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Lower-case, strip and de-duplicate while keeping first-seen order."""
    cleaned = (tag.strip().lower() for tag in tags)
    return list(dict.fromkeys(tag for tag in cleaned if tag))


def query_tokens(query: str) -> List[str]:
    return query.lower().split()
