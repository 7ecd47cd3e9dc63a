"""Snapshot rotation configuration and retention schedule."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

# Generations kept per time unit, as "N units ago"
DEFAULT_INTERVALS = {
    "minute": list(range(5, 60, 5)),
    "hour": list(range(1, 24)),
    "day": list(range(1, 31)),
}

# Units in slot-table order: oldest generations first
UNIT_ORDER = ("day", "hour", "minute")

# How often the engine wakes up and checks for aged-out archives
TICK_INTERVAL_SECONDS = 300

# Files larger than this are never archived
MAX_SIZE_BYTES = 500_000

# Name of the archive stored in every slot directory
ARCHIVE_NAME = "snapshot.tar.gz"

DEFAULT_FROM_DIR = "."
DEFAULT_SNAPSHOT_DIR = os.path.join("..", ".snapshot")

# Warn when the snapshot volume has less free space than this
MIN_FREE_BYTES = 100 * 1024 * 1024

# Archives are made read-only once written
ARCHIVE_FILE_MODE = 0o444

# Matched against the file's basename
INCLUDE_PATTERNS = [
    r"\.(c|cc|rb|jl|sh|proto|py|go|f|h|md|ipynb)$",
    r"^BUILD",
    r"^WORKSPACE",
    r"^Makefile",
    r"^Dockerfile",
    r"^\.gitignore",
    r"^\.bazelrc",
    r"^\.dockerignore",
    r"^CMakeLists\.txt",
]

# Matched against the full path, so a directory rule prunes the whole subtree
SKIP_PATTERNS = [
    r"/core",
    r"/__pycache__",
    r"\.o$",
    r"\.a$",
    r"/bazel-",
    r"gmon\.out",
]

ARCHIVERS = ("tar", "tarfile")


@dataclass
class SnapshotConfig:
    from_dir: str = DEFAULT_FROM_DIR
    snapshot_dir: str = DEFAULT_SNAPSHOT_DIR
    interval: int = TICK_INTERVAL_SECONDS
    verbose: bool = False
    max_size_bytes: int = MAX_SIZE_BYTES
    archive_name: str = ARCHIVE_NAME
    intervals: dict = field(default_factory=lambda: {
        unit: list(indices) for unit, indices in DEFAULT_INTERVALS.items()
    })
    archiver: str = "tar"
    min_free_bytes: int = MIN_FREE_BYTES

    def __post_init__(self):
        self.intervals = validate_intervals(self.intervals)
        if self.interval <= 0:
            raise ValueError(f"Tick interval must be positive, got {self.interval}")
        if self.max_size_bytes <= 0:
            raise ValueError(f"max_size_bytes must be positive, got {self.max_size_bytes}")
        if self.archiver not in ARCHIVERS:
            raise ValueError(
                f"Unknown archiver {self.archiver!r}, expected one of {ARCHIVERS}"
            )


def validate_intervals(intervals: dict) -> dict[str, list[int]]:
    """Check an interval schedule and return it with sorted, de-duplicated indices.

    A unit that is left out gets no slots. The ``day`` list defines the
    archiving horizon so it may not be empty.
    """
    unknown = set(intervals) - set(UNIT_ORDER)
    if unknown:
        raise ValueError(f"Unknown time unit(s): {', '.join(sorted(unknown))}")

    result = {}
    for unit in UNIT_ORDER:
        indices = intervals.get(unit, [])
        for i in indices:
            if isinstance(i, bool) or not isinstance(i, int) or i <= 0:
                raise ValueError(f"Interval for {unit} must be a positive integer, got {i!r}")
        result[unit] = sorted(set(indices))

    if not result["day"]:
        raise ValueError("At least one day interval is required")
    return result


def load_config(config_path: str) -> SnapshotConfig:
    """Read a JSON config file into a SnapshotConfig.

    Keys mirror the SnapshotConfig fields; anything omitted keeps its default.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(path) as f:
        raw = json.load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain a JSON object: {config_path}")

    allowed = set(SnapshotConfig.__dataclass_fields__)
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unknown config key(s): {', '.join(sorted(unknown))}")
    return SnapshotConfig(**raw)
