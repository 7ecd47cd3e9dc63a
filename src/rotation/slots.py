"""The ordered table of snapshot slots.

Snapshot tree layout::

    <snapshot_dir>/
    +-- days_ago/30/snapshot.tar.gz      <- slot 0, oldest generation
    +-- ...
    +-- hours_ago/1/snapshot.tar.gz      <- must wait for hours_ago/2
    +-- ...
    +-- minutes_ago/5/snapshot.tar.gz    <- last slot, rebuilt from the source tree

Archives flow from the end of the table towards slot 0 as they age.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from src.rotation.aging import parse_slot_path
from src.rotation.config import ARCHIVE_NAME, DEFAULT_INTERVALS, UNIT_ORDER, validate_intervals
from src.rotation.errors import DirectoryCreationError

logger = logging.getLogger(__name__)

# Units whose first slot may only be filled once its older neighbour is empty
MUST_WAIT_UNITS = ("hour", "day")


@dataclass
class Slot:
    """One fixed location in the snapshot tree.

    ``unit`` records what the slot was built with and is only used to mark
    must-wait slots. While running, an archive's unit and index come from
    the path it currently sits in.
    """
    path: Path
    unit: str
    must_wait: bool = False

    def occupied(self) -> bool:
        return self.path.is_file()


def slot_dir(snapshot_dir: Path, unit: str, index: int) -> Path:
    return Path(snapshot_dir) / f"{unit}s_ago" / str(index)


class SlotTable:
    """Slots ordered oldest to newest, created on disk at construction.

    Usage::

        table = SlotTable("/home/me/.snapshot")
        table.newest_slot_path()   # .../minutes_ago/5/snapshot.tar.gz
    """

    def __init__(
        self,
        snapshot_dir: str,
        intervals: dict | None = None,
        archive_name: str = ARCHIVE_NAME,
    ):
        self.snapshot_dir = Path(snapshot_dir)
        self.intervals = validate_intervals(intervals or DEFAULT_INTERVALS)
        self.archive_name = archive_name
        self.slots: list[Slot] = self._build()
        if not self.slots:
            raise ValueError("Interval schedule produced no slots")
        self._mark_must_wait()

    def _build(self) -> list[Slot]:
        result = []
        for unit in UNIT_ORDER:
            for index in reversed(self.intervals[unit]):
                d = slot_dir(self.snapshot_dir, unit, index)
                try:
                    d.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise DirectoryCreationError(str(d), exc.strerror or str(exc)) from exc
                result.append(Slot(path=d / self.archive_name, unit=unit))
        logger.debug("Created %d slot directories under %s", len(result), self.snapshot_dir)
        return result

    def _mark_must_wait(self):
        firsts = {
            unit: self.intervals[unit][0]
            for unit in MUST_WAIT_UNITS if self.intervals[unit]
        }
        for slot in self.slots:
            parsed = parse_slot_path(str(slot.path))
            if parsed and parsed[0] in firsts and parsed[1] == firsts[parsed[0]]:
                slot.must_wait = True

    def __len__(self) -> int:
        return len(self.slots)

    def __getitem__(self, i: int) -> Slot:
        return self.slots[i]

    def oldest_to_newest(self):
        return iter(self.slots)

    def newest_slot_path(self) -> Path:
        """Where freshly built archives go."""
        return self.slots[-1].path

    def oldest_day_count(self) -> int:
        return self.intervals["day"][-1]
