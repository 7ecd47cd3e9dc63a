"""Shared fixtures and fakes for the snapshot tests."""

import os

import pytest

from src.archive.archivers import ArchiveResult, read_manifest


class FakeArchiver:
    """Stands in for tar: writes the manifest it was given to ``dest``."""

    def __init__(self, returncode=0, write=True):
        self.returncode = returncode
        self.write = write
        self.calls = []

    def build_archive(self, manifest, horizon, dest, source_root):
        paths = read_manifest(manifest)
        self.calls.append({
            "paths": paths,
            "horizon": horizon,
            "dest": dest,
            "source_root": source_root,
        })
        if self.write:
            with open(dest, "w") as f:
                f.write("\n".join(paths) + "\n")
        return ArchiveResult(dest=dest, returncode=self.returncode, members=len(paths))


class BrokenArchiver:
    def build_archive(self, manifest, horizon, dest, source_root):
        raise FileNotFoundError(2, "No such file or directory", "tar")


def set_age(path, age_seconds, now):
    mtime = now - age_seconds
    os.utime(path, (mtime, mtime))


@pytest.fixture
def source_dir(tmp_path):
    d = tmp_path / "source"
    (d / "pkg").mkdir(parents=True)
    (d / "pkg" / "main.py").write_text("print('hello')\n")
    (d / "README.md").write_text("# project\n")
    return d


@pytest.fixture
def fake_archiver():
    return FakeArchiver()
