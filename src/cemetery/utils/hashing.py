"""Content hashing helpers.

Two separate digests are kept on purpose: ``fingerprint`` is the asset index
dedup key, ``content_digest`` only tracks whether a file changed between
scans. Neither is meant for integrity verification.
"""

from __future__ import annotations

import hashlib
from pathlib import Path


def fingerprint(content: bytes, context_key: str = "") -> str:
    """Deterministic identifier for ``content`` within ``context_key``."""
    sha = hashlib.sha256()
    sha.update(context_key.encode("utf-8"))
    sha.update(b":")
    sha.update(content)
    return sha.hexdigest()


def fingerprint_file(path: Path, context_key: str = "") -> str:
    """Fingerprint a file on disk; I/O errors propagate to the caller."""
    with Path(path).open("rb") as handle:
        return fingerprint(handle.read(), context_key)


def content_digest(content: bytes) -> str:
    """Digest used for change detection only."""
    return hashlib.md5(content, usedforsecurity=False).hexdigest()


def short_id(seed: str, length: int = 8) -> str:
    return hashlib.md5(seed.encode("utf-8"), usedforsecurity=False).hexdigest()[:length]
