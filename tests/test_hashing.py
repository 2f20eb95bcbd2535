"""Tests for content hashing."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from cemetery.utils.hashing import content_digest, fingerprint, fingerprint_file, short_id


class TestFingerprint:
    """Dedup fingerprints."""

    def test_deterministic(self) -> None:
        assert fingerprint(b"hello") == fingerprint(b"hello")
        assert len(fingerprint(b"hello")) == 64

    def test_context_changes_value(self) -> None:
        assert fingerprint(b"hello", "a.ts") != fingerprint(b"hello", "b.ts")
        assert fingerprint(b"hello") != fingerprint(b"hello", "a.ts")

    def test_matches_sha256_layout(self) -> None:
        assert fingerprint(b"body", "ctx") == hashlib.sha256(b"ctx:body").hexdigest()

    def test_file_matches_bytes(self, tmp_path: Path) -> None:
        path = tmp_path / "a.txt"
        path.write_bytes(b"content")
        assert fingerprint_file(path, "k") == fingerprint(b"content", "k")

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            fingerprint_file(tmp_path / "missing.txt")


class TestDigests:
    """Change digests and short ids."""

    def test_content_digest_is_md5(self) -> None:
        assert content_digest(b"abc") == hashlib.md5(b"abc").hexdigest()

    def test_short_id_length(self) -> None:
        assert len(short_id("seed")) == 8
        assert len(short_id("seed", length=12)) == 12
        assert short_id("seed") == short_id("seed", length=12)[:8]
