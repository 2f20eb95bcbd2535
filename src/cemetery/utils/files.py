"""Utility helpers for working with files."""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Optional

from cemetery.models import ArtifactKind

LOGGER = logging.getLogger(__name__)

MAX_FILE_BYTES = 5 * 1024 * 1024

IGNORE_DIRS = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        "out",
        ".next",
        ".nuxt",
        "__pycache__",
        ".cache",
        "vendor",
        "target",
        "coverage",
        ".cemetery",
    }
)

IGNORE_FILES = frozenset(
    {
        ".DS_Store",
        "Thumbs.db",
        ".gitkeep",
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
    }
)

LANGUAGES = {
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".py": "Python",
    ".go": "Go",
    ".rs": "Rust",
    ".java": "Java",
    ".cpp": "C++",
    ".cc": "C++",
    ".cxx": "C++",
    ".c": "C",
    ".h": "C",
    ".swift": "Swift",
    ".kt": "Kotlin",
    ".rb": "Ruby",
    ".php": "PHP",
    ".sh": "Shell",
    ".bash": "Shell",
    ".css": "CSS",
    ".scss": "SCSS",
    ".less": "LESS",
    ".html": "HTML",
    ".json": "JSON",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".md": "Markdown",
    ".sql": "SQL",
    ".xml": "XML",
    ".toml": "TOML",
}

KINDS = {
    ".md": ArtifactKind.DOCUMENT,
    ".rst": ArtifactKind.DOCUMENT,
    ".txt": ArtifactKind.TEXT,
    ".json": ArtifactKind.CONFIG,
    ".yaml": ArtifactKind.CONFIG,
    ".yml": ArtifactKind.CONFIG,
    ".toml": ArtifactKind.CONFIG,
    ".xml": ArtifactKind.CONFIG,
    ".ini": ArtifactKind.CONFIG,
    ".env": ArtifactKind.CONFIG,
    ".gitignore": ArtifactKind.CONFIG,
    ".editorconfig": ArtifactKind.CONFIG,
    ".j2": ArtifactKind.TEMPLATE,
    ".jinja": ArtifactKind.TEMPLATE,
    ".hbs": ArtifactKind.TEMPLATE,
    ".mustache": ArtifactKind.TEMPLATE,
    ".tpl": ArtifactKind.TEMPLATE,
    ".snippet": ArtifactKind.SNIPPET,
    ".idea": ArtifactKind.IDEA,
}


def _suffix(location: str) -> str:
    return PurePosixPath(location.replace("\\", "/")).suffix.lower()


def _basename(location: str) -> str:
    return PurePosixPath(location.replace("\\", "/")).name


def detect_language(location: str) -> Optional[str]:
    return LANGUAGES.get(_suffix(location))


def detect_kind(location: str) -> ArtifactKind:
    """Coarse classification from the extension, then the bare file name."""
    suffix = _suffix(location)
    basename = _basename(location).lower()
    if suffix in KINDS:
        return KINDS[suffix]
    if basename in KINDS:
        return KINDS[basename]
    if suffix in LANGUAGES:
        return ArtifactKind.CODE
    return ArtifactKind.UNKNOWN


def is_ignored_file(path: Path) -> bool:
    return path.name in IGNORE_FILES


def iter_candidate_paths(
    inputs: Iterable[Path], *, max_bytes: int = MAX_FILE_BYTES
) -> Iterator[Path]:
    """Yield indexable files under the inputs, pruning deny-listed directories."""
    for item in inputs:
        item = Path(item)
        if item.is_dir():
            for dirpath, dirnames, filenames in os.walk(item):
                dirnames[:] = sorted(d for d in dirnames if d not in IGNORE_DIRS)
                for filename in sorted(filenames):
                    candidate = Path(dirpath) / filename
                    if _accept(candidate, max_bytes):
                        yield candidate
        elif item.is_file() and _accept(item, max_bytes):
            yield item


def _accept(path: Path, max_bytes: int) -> bool:
    if is_ignored_file(path):
        return False
    try:
        stat = path.stat()
    except OSError as exc:
        LOGGER.debug("Cannot stat %s: %s", path, exc)
        return False
    if stat.st_size > max_bytes:
        LOGGER.debug("Skipping %s: %d bytes exceeds %d", path, stat.st_size, max_bytes)
        return False
    return True


def read_bytes(path: Path) -> Optional[bytes]:
    """Read a file, returning None when it cannot be read."""
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        LOGGER.debug("Unreadable file %s: %s", path, exc)
        return None


def read_text(path: Path) -> Optional[str]:
    """Read a UTF-8 file, returning None for binary or unreadable files."""
    raw = read_bytes(path)
    if raw is None:
        return None
    return decode_text(raw, path)


def decode_text(raw: bytes, path: Path | str = "") -> Optional[str]:
    if b"\x00" in raw:
        LOGGER.debug("Binary content in %s", path)
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        LOGGER.debug("Non UTF-8 content in %s", path)
        return None
