"""Errors raised while building and rotating snapshots."""


class SnapshotError(Exception):
    """Base class for failures that abort a tick or engine start-up."""


class DirectoryCreationError(SnapshotError):
    """A slot directory could not be created."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Cannot create slot directory {path}: {reason}")


class NoEligibleFilesError(SnapshotError):
    """A regeneration pass found nothing to archive."""

    def __init__(self, source_root: str):
        self.source_root = source_root
        super().__init__(f"No files eligible for archiving under {source_root}")


class ArchiveCreationError(SnapshotError):
    """The archiver did not produce a non-empty archive."""

    def __init__(self, dest: str, detail: str):
        self.dest = dest
        self.detail = detail
        super().__init__(f"Did not create archive {dest}: {detail}")
