"""Background rescans of the configured watch paths."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from cemetery.config import AppConfig
from cemetery.errors import AlreadyRetiredError, InvalidArgumentError
from cemetery.index.indexer import AssetIndex
from cemetery.ingestion.loader import isoformat, utc_now
from cemetery.ingestion.remote import RemoteRepo, TreeLister
from cemetery.models import TombstoneOptions
from cemetery.tombstones.registry import TombstoneRegistry

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ScanReport:
    started_at: str = ""
    finished_at: str = ""
    new_assets: int = 0
    dead_assets: int = 0
    new_tombstones: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "new_assets": self.new_assets,
            "dead_assets": self.dead_assets,
            "new_tombstones": self.new_tombstones,
            "errors": list(self.errors),
        }


class AutoScanner:
    """Periodically rescans watch paths, flags stale artifacts and optionally buries them.

    ``run_cycle()`` is guarded by a non-blocking lock: a trigger that arrives
    while a cycle is still running is logged and skipped.
    """

    def __init__(
        self,
        index: AssetIndex,
        registry: TombstoneRegistry,
        config: AppConfig | None = None,
        *,
        remotes: Sequence[RemoteRepo] = (),
        lister: TreeLister | None = None,
    ) -> None:
        self.index = index
        self.registry = registry
        self.config = config or AppConfig()
        self.remotes = list(remotes)
        self.lister = lister
        self.last_report: Optional[ScanReport] = None
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the background loop; False if it is already running."""
        if self.running:
            LOGGER.warning("Auto scanner already running")
            return False
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="cemetery-autoscan", daemon=True)
        self._thread.start()
        LOGGER.info(
            "Auto scanner started: interval=%ss paths=%d remotes=%d",
            self.config.scan_interval,
            len(self.config.watch_paths),
            len(self.remotes),
        )
        return True

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        LOGGER.info("Auto scanner stopped")

    def status(self) -> Dict[str, object]:
        return {
            "running": self.running,
            "interval": self.config.scan_interval,
            "watching_paths": len(self.config.watch_paths),
            "watching_remotes": len(self.remotes),
            "dead_threshold_days": self.config.dead_threshold_days,
            "auto_tombstone": self.config.auto_tombstone,
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }

    def run_cycle(self, *, now: Optional[datetime] = None) -> Optional[ScanReport]:
        """Scan every source once; None when another cycle is in progress."""
        if not self._cycle_lock.acquire(blocking=False):
            LOGGER.warning("Scan cycle already in progress; skipping trigger")
            return None
        try:
            return self._cycle(now or utc_now())
        finally:
            self._cycle_lock.release()

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_cycle()
            if self._stop.wait(self.config.scan_interval):
                break

    def _cycle(self, now: datetime) -> ScanReport:
        report = ScanReport(started_at=isoformat(now))

        for path in self.config.watch_paths:
            self._scan_source(Path(path), report)
        for repo in self.remotes:
            self._scan_source(repo, report)

        stale = self.index.find_stale(self.config.dead_threshold_days, now=now)
        report.dead_assets = len(stale)
        if self.config.auto_tombstone:
            cause = f"No activity for {self.config.dead_threshold_days} days"
            buried = {t.original_location for t in self.registry.list()}
            for artifact in stale:
                if artifact.location in buried:
                    continue
                try:
                    self.registry.create(
                        artifact.location,
                        cause,
                        TombstoneOptions(summary=artifact.summary, tags=artifact.tags),
                    )
                except AlreadyRetiredError as exc:
                    LOGGER.debug("Skipping %s: %s", artifact.location, exc)
                    continue
                report.new_tombstones += 1

        report.finished_at = isoformat(utc_now())
        self.last_report = report
        LOGGER.info(
            "Scan cycle finished: new=%d stale=%d buried=%d errors=%d",
            report.new_assets,
            report.dead_assets,
            report.new_tombstones,
            len(report.errors),
        )
        return report

    def _scan_source(self, source: Path | RemoteRepo, report: ScanReport) -> None:
        label = source.full_name if isinstance(source, RemoteRepo) else str(source)
        try:
            stats = self.index.scan_and_merge(source, lister=self.lister)
        except (InvalidArgumentError, OSError) as exc:
            LOGGER.warning("Scan of %s failed: %s", label, exc)
            report.errors.append(f"{label}: {exc}")
            return
        report.new_assets += stats.added
