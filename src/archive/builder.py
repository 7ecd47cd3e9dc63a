"""Builds the newest-generation archive from the live source tree."""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import psutil

from src.archive.archivers import TarCommandArchiver
from src.archive.selector import FileSelector
from src.rotation.aging import DAY
from src.rotation.config import ARCHIVE_FILE_MODE, MIN_FREE_BYTES
from src.rotation.errors import ArchiveCreationError, NoEligibleFilesError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Horizon:
    """Files last modified before this point are left out of new archives."""
    days: int

    @property
    def expression(self) -> str:
        return f"{self.days} days ago"

    def cutoff(self, now: float) -> float:
        return now - self.days * DAY


def check_free_space(path: str, min_free_bytes: int) -> int | None:
    """Warn when the volume holding ``path`` is short on space.

    Returns the free byte count, or None if it could not be determined.
    """
    try:
        free = psutil.disk_usage(str(path)).free
    except OSError as exc:
        logger.debug("Could not read disk usage for %s: %s", path, exc)
        return None
    if free < min_free_bytes:
        logger.warning(
            "Low disk space on snapshot volume %s: %d bytes free (minimum %d)",
            path, free, min_free_bytes,
        )
    return free


def collect_files(source_root: str, selector: FileSelector, out) -> int:
    """Write the absolute path of every selected file to ``out``, one per line."""
    count = 0
    for path in selector.walk(source_root):
        out.write(f"{os.path.abspath(path)}\n")
        count += 1
    return count


class ArchiveBuilder:
    """Regenerates the archive in the newest slot.

    Usage::

        builder = ArchiveBuilder(slot_table)
        builder.regenerate("/src/project", FileSelector(), builder.next_horizon())
    """

    def __init__(self, slot_table, archiver=None, min_free_bytes: int = MIN_FREE_BYTES):
        self.slots = slot_table
        self.archiver = archiver or TarCommandArchiver()
        self.min_free_bytes = min_free_bytes

    def next_horizon(self) -> Horizon:
        return Horizon(days=self.slots.oldest_day_count())

    def regenerate(self, source_root: str, selector: FileSelector, horizon: Horizon) -> Path:
        dest = self.slots.newest_slot_path()
        check_free_space(dest.parent, self.min_free_bytes)

        manifest = tempfile.NamedTemporaryFile(
            "w", prefix="files_from_", suffix=".txt", delete=False
        )
        try:
            with manifest:
                count = collect_files(source_root, selector, manifest)
            if count == 0:
                raise NoEligibleFilesError(source_root)
            logger.info("Archiving %d file(s) from %s newer than %s",
                        count, source_root, horizon.expression)
            self._build(manifest.name, horizon, dest, source_root)
        finally:
            os.unlink(manifest.name)
        return dest

    def _build(self, manifest: str, horizon: Horizon, dest: Path, source_root: str):
        # Written beside the slot and renamed in, so a failed build leaves
        # the previous archive untouched.
        partial = dest.with_name(dest.name + ".partial")
        if partial.exists():
            partial.unlink()

        try:
            result = self.archiver.build_archive(
                manifest, horizon, str(partial), source_root
            )
        except OSError as exc:
            self._discard(partial)
            raise ArchiveCreationError(str(dest), str(exc)) from exc

        size = partial.stat().st_size if partial.is_file() else 0
        if result.returncode != 0 or size == 0:
            self._discard(partial)
            raise ArchiveCreationError(
                str(dest),
                f"archiver status {result.returncode}, {size} bytes written",
            )

        os.chmod(partial, ARCHIVE_FILE_MODE)
        os.replace(partial, dest)
        logger.info("Regenerated %s (%d bytes)", dest, size)

    @staticmethod
    def _discard(partial: Path):
        try:
            partial.unlink()
        except FileNotFoundError:
            pass
