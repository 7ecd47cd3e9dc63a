"""Which files under the source tree go into an archive."""

import logging
import os
import re

from src.rotation.config import INCLUDE_PATTERNS, MAX_SIZE_BYTES, SKIP_PATTERNS

logger = logging.getLogger(__name__)


class FileSelector:
    """Include/exclude rules for archive members.

    ``include`` matches the basename, ``exclude`` matches the full path as
    seen from the source root (``./pkg/x.py``). A single path rule such as
    ``/bazel-`` therefore drops a whole generated tree whatever its files
    are called, while directories above the root never match.
    """

    def __init__(
        self,
        include_patterns: list[str] | None = None,
        skip_patterns: list[str] | None = None,
        max_size_bytes: int = MAX_SIZE_BYTES,
    ):
        if include_patterns is None:
            include_patterns = INCLUDE_PATTERNS
        if skip_patterns is None:
            skip_patterns = SKIP_PATTERNS
        self._rx_include = [re.compile(p) for p in include_patterns]
        self._rx_skip = [re.compile(p) for p in skip_patterns]
        self.max_size_bytes = max_size_bytes

    def exclude(self, path: str) -> bool:
        norm = str(path).replace(os.sep, "/")
        return any(rx.search(norm) for rx in self._rx_skip)

    def include(self, path: str) -> bool:
        try:
            size = os.path.getsize(path)
        except OSError:
            logger.debug("Cannot stat %s, skipping", path)
            return False
        if size == 0 or size > self.max_size_bytes:
            return False
        bname = os.path.basename(path)
        return any(rx.search(bname) for rx in self._rx_include)

    def walk(self, root: str):
        """Yield every includable file under ``root``, pruning excluded dirs.

        Skip rules see each path relative to ``root`` with a ``./`` prefix;
        yielded paths keep the ``root`` prefix as given.
        """
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                d for d in dirnames
                if not self.exclude(_from_root(root, os.path.join(dirpath, d)))
            )
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if self.exclude(_from_root(root, path)):
                    continue
                if self.include(path):
                    yield path


def _from_root(root: str, path: str) -> str:
    return os.path.join(".", os.path.relpath(path, root))
