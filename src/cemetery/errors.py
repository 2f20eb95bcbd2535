"""Error types shared across the cemetery components."""

from __future__ import annotations

from pathlib import Path


class CemeteryError(Exception):
    """Base class for all cemetery errors."""


class CorruptStoreError(CemeteryError):
    """A persisted collection exists but cannot be parsed.

    Raised instead of silently starting from an empty collection, which would
    overwrite the damaged file on the next save.
    """

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Corrupt store file {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class InvalidArgumentError(CemeteryError, ValueError):
    """A required argument is missing or malformed."""


class AlreadyRetiredError(InvalidArgumentError):
    """The artifact already has a tombstone that has not been resurrected."""

    def __init__(self, location: str, tombstone_id: str) -> None:
        super().__init__(f"{location} is already retired by {tombstone_id}")
        self.location = location
        self.tombstone_id = tombstone_id


class AlreadyResurrectedError(InvalidArgumentError):
    """The tombstone was resurrected before and the policy forbids doing it again."""

    def __init__(self, tombstone_id: str, resurrected_to: str | None) -> None:
        super().__init__(f"Tombstone {tombstone_id} was already resurrected to {resurrected_to}")
        self.tombstone_id = tombstone_id
        self.resurrected_to = resurrected_to
