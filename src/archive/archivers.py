"""Archive writers.

Both writers take the same arguments: a manifest file listing absolute paths
(one per line), a horizon, the destination file and the source root that
member names are made relative to. Only manifest entries modified at or
after the horizon end up in the archive.
"""

import logging
import os
import subprocess
import tarfile
import tempfile
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class ArchiveResult:
    """Outcome of one archiver invocation."""
    dest: str
    returncode: int
    command: list[str] = field(default_factory=list)
    stderr: str = ""
    members: int | None = None  # None when the archiver does not report it


def read_manifest(manifest: str) -> list[str]:
    with open(manifest) as f:
        return [line.rstrip("\n") for line in f if line.strip()]


class TarCommandArchiver:
    """Builds a gzipped tarball by running GNU tar.

    The horizon is handed to tar as a relative date such as ``30 days ago``
    so tar does the cutoff arithmetic itself.
    """

    def __init__(self, tar_binary: str = "tar"):
        self.tar_binary = tar_binary

    def command(self, relative_manifest: str, horizon, dest: str, source_root: str) -> list[str]:
        return [
            self.tar_binary,
            f"--directory={source_root}",
            "--verbatim-files-from",
            f"--files-from={relative_manifest}",
            f"--newer-mtime={horizon.expression}",
            "--create",
            "--gzip",
            f"--file={dest}",
        ]

    def build_archive(self, manifest: str, horizon, dest: str, source_root: str) -> ArchiveResult:
        root = os.path.abspath(source_root)
        fd, relative_manifest = tempfile.mkstemp(prefix="files_from_rel_")
        try:
            with os.fdopen(fd, "w") as f:
                for path in read_manifest(manifest):
                    f.write(os.path.relpath(path, root) + "\n")

            cmd = self.command(relative_manifest, horizon, dest, root)
            logger.info("Executing '%s'", " ".join(cmd))
            proc = subprocess.run(cmd, capture_output=True, text=True)
        finally:
            os.unlink(relative_manifest)

        if proc.returncode != 0:
            logger.warning("tar exited with status %d: %s",
                           proc.returncode, proc.stderr.strip())
        return ArchiveResult(
            dest=dest,
            returncode=proc.returncode,
            command=cmd,
            stderr=proc.stderr,
        )


class TarfileArchiver:
    """Same contract as TarCommandArchiver, using the tarfile module.

    Needs no external tool, so it also works where GNU tar is missing.
    """

    def __init__(self, clock=time.time):
        self._clock = clock

    def build_archive(self, manifest: str, horizon, dest: str, source_root: str) -> ArchiveResult:
        root = os.path.abspath(source_root)
        cutoff = horizon.cutoff(self._clock())
        members = 0
        with tarfile.open(dest, "w:gz") as tar:
            for path in read_manifest(manifest):
                try:
                    if os.path.getmtime(path) < cutoff:
                        continue
                    tar.add(path, arcname=os.path.relpath(path, root), recursive=False)
                except FileNotFoundError:
                    logger.debug("Vanished before archiving: %s", path)
                    continue
                members += 1
        logger.info("Wrote %d member(s) to %s", members, dest)
        return ArchiveResult(dest=dest, returncode=0, members=members)
