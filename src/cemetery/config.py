"""Application configuration defaults."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, List

from cemetery.errors import InvalidArgumentError
from cemetery.utils.files import MAX_FILE_BYTES

CONFIG_FILENAME = "cemetery.config.json"
STORE_DIRNAME = ".cemetery"
RESURRECTION_POLICIES = ("overwrite", "reject")


@dataclass(slots=True)
class AppConfig:
    base_dir: Path | None = None
    store_dirname: str = STORE_DIRNAME
    max_file_bytes: int = MAX_FILE_BYTES
    zombie_threshold: float = 0.7
    zombie_candidate_limit: int = 20
    match_inclusion_threshold: float = 0.5
    resurrection_policy: str = "overwrite"
    scan_interval: int = 86400
    dead_threshold_days: int = 90
    auto_tombstone: bool = False
    watch_paths: List[Path] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.base_dir is None:
            self.base_dir = Path.cwd()
        self.base_dir = Path(self.base_dir)
        self.watch_paths = [Path(p) for p in self.watch_paths]
        if self.resurrection_policy not in RESURRECTION_POLICIES:
            raise InvalidArgumentError(
                f"resurrection_policy must be one of {RESURRECTION_POLICIES}, "
                f"got {self.resurrection_policy!r}"
            )

    def resolve_store_dir(self, base_dir: Path | None = None) -> Path:
        store_dir = Path(self.store_dirname)
        if store_dir.is_absolute():
            return store_dir
        return Path(base_dir or self.base_dir) / store_dir


def load_config(path: Path | None = None, **overrides: Any) -> AppConfig:
    """Read ``cemetery.config.json``; a missing file yields the defaults."""
    base_dir = overrides.get("base_dir")
    if path is None:
        path = Path(base_dir or Path.cwd()) / CONFIG_FILENAME
    path = Path(path)

    values: dict[str, Any] = {}
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise InvalidArgumentError(f"Invalid configuration file {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidArgumentError(f"Configuration file {path} must contain an object")
        known = {f.name for f in fields(AppConfig)}
        values = {key: value for key, value in raw.items() if key in known}

    values.update({key: value for key, value in overrides.items() if value is not None})
    return AppConfig(**values)
