"""Rotation of archives through the slot table.

Each tick walks the slots oldest to newest. An aged-out archive moves one
slot towards the old end, or is deleted when it is already in slot 0. When
the newest slot is vacated a fresh archive is built straight away. Every
slot moves at most once per tick, so long cascades play out over several
ticks.

Only one engine may run against a snapshot directory at a time; nothing
on disk enforces this.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from src.archive.archivers import TarCommandArchiver, TarfileArchiver
from src.archive.builder import ArchiveBuilder
from src.archive.selector import FileSelector
from src.rotation.aging import AgingPolicy, parse_slot_path, slot_threshold_seconds
from src.rotation.config import ARCHIVE_NAME, MIN_FREE_BYTES, SnapshotConfig
from src.rotation.slots import SlotTable

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """What one tick did to the snapshot tree."""
    first_run: bool = False
    deleted: list[Path] = field(default_factory=list)
    promoted: list[tuple[Path, Path]] = field(default_factory=list)
    waited: list[Path] = field(default_factory=list)
    anomalies: list[Path] = field(default_factory=list)
    regenerated: Path | None = None


@dataclass
class SlotStatus:
    path: str
    occupied: bool
    must_wait: bool
    age_seconds: float | None
    threshold_seconds: int | None
    aged_out: bool


class RotationEngine:
    """Keeps a cascade of time-bucketed archives of one source tree.

    Usage::

        engine = RotationEngine("/src/project", "/src/.snapshot")
        engine.tick()   # first call always builds minutes_ago/5
        engine.tick()   # later calls age, promote and rebuild
    """

    def __init__(
        self,
        source_root: str,
        snapshot_dir: str,
        intervals: dict | None = None,
        selector: FileSelector | None = None,
        archiver=None,
        archive_name: str = ARCHIVE_NAME,
        min_free_bytes: int = MIN_FREE_BYTES,
        clock=time.time,
    ):
        self.source_root = source_root
        self.slots = SlotTable(snapshot_dir, intervals, archive_name=archive_name)
        self.selector = selector or FileSelector()
        self.builder = ArchiveBuilder(
            self.slots, archiver=archiver, min_free_bytes=min_free_bytes
        )
        self.policy = AgingPolicy(clock=clock)
        self._clock = clock
        self.horizon = self.builder.next_horizon()
        self.first_run = True

    @classmethod
    def from_config(cls, config: SnapshotConfig) -> "RotationEngine":
        if config.archiver == "tarfile":
            archiver = TarfileArchiver()
        else:
            archiver = TarCommandArchiver()
        return cls(
            source_root=config.from_dir,
            snapshot_dir=config.snapshot_dir,
            intervals=config.intervals,
            selector=FileSelector(max_size_bytes=config.max_size_bytes),
            archiver=archiver,
            archive_name=config.archive_name,
            min_free_bytes=config.min_free_bytes,
        )

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def tick(self, now: float | None = None) -> TickResult:
        """Run one rotation pass.

        Any SnapshotError or OSError aborts the rest of the pass. The first
        pass only counts as done once its archive was built. An empty newest
        slot is rebuilt at the end of the pass, so a build that failed on an
        earlier tick is retried.
        """
        if self.first_run:
            result = TickResult(first_run=True)
            result.regenerated = self.regenerate()
            self.first_run = False
            return result

        if now is None:
            now = self._clock()
        result = TickResult()
        newest = self.slots.newest_slot_path()

        for i, slot in enumerate(self.slots.oldest_to_newest()):
            path = slot.path
            if not path.is_file():
                continue
            if self.policy.is_anomalous(str(path)):
                result.anomalies.append(path)
            if not self.policy.aged_out(str(path), now):
                continue

            if i == 0:
                path.unlink()
                result.deleted.append(path)
                logger.info("Retention window exhausted, deleted %s", path)
                continue

            older = self.slots[i - 1].path
            if slot.must_wait:
                if older.exists() or not self._move_if_absent(path, older):
                    logger.debug("%s waits for %s to be vacated", path, older)
                    result.waited.append(path)
                    continue
            else:
                os.replace(path, older)
            result.promoted.append((path, older))
            logger.info("Promoted %s -> %s", path, older)

            if path == newest:
                result.regenerated = self.regenerate()

        if result.regenerated is None and not newest.is_file():
            logger.info("Newest slot %s is empty, rebuilding", newest)
            result.regenerated = self.regenerate()

        return result

    def regenerate(self) -> Path:
        dest = self.builder.regenerate(self.source_root, self.selector, self.horizon)
        self.horizon = self.builder.next_horizon()
        return dest

    @staticmethod
    def _move_if_absent(src: Path, dest: Path) -> bool:
        """Rename ``src`` to ``dest`` only if ``dest`` does not exist.

        Returns False, leaving ``src`` in place, when ``dest`` appeared
        in the meantime.
        """
        try:
            os.link(src, dest)
        except FileExistsError:
            return False
        except OSError as exc:
            # Filesystem without hard links
            logger.debug("Hard link %s -> %s failed (%s), renaming", src, dest, exc)
            if dest.exists():
                return False
            os.rename(src, dest)
            return True
        os.unlink(src)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def archives(self) -> list[Path]:
        """Slot paths that currently hold an archive, oldest first."""
        return [s.path for s in self.slots.oldest_to_newest() if s.occupied()]

    def status(self, now: float | None = None) -> list[SlotStatus]:
        if now is None:
            now = self._clock()
        report = []
        for slot in self.slots.oldest_to_newest():
            parsed = parse_slot_path(str(slot.path))
            threshold = slot_threshold_seconds(*parsed) if parsed else None
            age = None
            if slot.occupied():
                age = now - slot.path.stat().st_mtime
            report.append(SlotStatus(
                path=str(slot.path),
                occupied=age is not None,
                must_wait=slot.must_wait,
                age_seconds=age,
                threshold_seconds=threshold,
                aged_out=(age is not None and threshold is not None and age > threshold),
            ))
        return report


def initialize(source_root: str, snapshot_dir: str, **kwargs) -> RotationEngine:
    """Create the slot tree under ``snapshot_dir`` and return a fresh engine.

    Raises DirectoryCreationError if a slot directory cannot be made.
    """
    engine = RotationEngine(source_root, snapshot_dir, **kwargs)
    logger.info("Snapshotting %s into %s (%d slots)",
                source_root, snapshot_dir, len(engine.slots))
    return engine


def tick(engine: RotationEngine, now: float | None = None) -> TickResult:
    return engine.tick(now)
