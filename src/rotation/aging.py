"""Age checks for archives sitting in snapshot slots.

A slot's unit and index are never cached: they are parsed from the path the
archive currently occupies, because an archive keeps its mtime while it is
promoted from ``minutes_ago/55`` to ``hours_ago/1`` and on to ``days_ago/1``.
"""

import logging
import os
import re
import time

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

UNIT_SECONDS = {"minute": MINUTE, "hour": HOUR, "day": DAY}

_SLOT_RX = re.compile(r"(?:^|.*/)(minute|hour|day)s_ago/(\d+)(?:/|$)")


def parse_slot_path(path: str) -> tuple[str, int] | None:
    """Return ``(unit, index)`` for a path inside a slot directory.

    ``/snap/hours_ago/3/snapshot.tar.gz`` -> ``("hour", 3)``.
    Returns None when the path is not inside a recognised slot.
    """
    m = _SLOT_RX.match(str(path).replace(os.sep, "/"))
    if not m:
        return None
    return m.group(1), int(m.group(2))


def slot_threshold_seconds(unit: str, index: int) -> int:
    """How long an archive may stay in ``<unit>s_ago/<index>``."""
    return UNIT_SECONDS[unit] * index


class AgingPolicy:
    """Decides whether the archive at a slot path has outlived its slot."""

    def __init__(self, clock=time.time):
        self._clock = clock

    def aged_out(self, path: str, now: float | None = None) -> bool:
        """True iff the archive is strictly older than its slot's threshold.

        Paths that do not look like a slot are reported and treated as not
        aged, so nothing unexpected is ever moved or deleted.
        """
        parsed = parse_slot_path(path)
        if parsed is None:
            logger.warning("Not a snapshot slot path, leaving in place: %s", path)
            return False

        unit, index = parsed
        if now is None:
            now = self._clock()
        age = now - os.path.getmtime(path)
        threshold = slot_threshold_seconds(unit, index)
        result = age > threshold
        logger.debug(
            "%s unit=%s index=%d age=%.0fs threshold=%ds aged_out=%s",
            path, unit, index, age, threshold, result,
        )
        return result

    def is_anomalous(self, path: str) -> bool:
        return parse_slot_path(path) is None
