"""
Shared fixtures for the LocalBrowser test suite.

Run with: pytest -v
"""

import errno
import logging
from pathlib import Path

import pytest

from browse import index as index_module
from browse.index import DirectoryIndex

# Configure test logging
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

REPORT_SIZE = 500000


@pytest.fixture
def served_root(tmp_path):
    """
    share/
        docs/report.pdf   (500000 bytes)
        notes.txt         ("hello")
    plus secret.txt next to share/, outside the served root.
    """
    root = tmp_path / "share"
    (root / "docs").mkdir(parents=True)
    (root / "docs" / "report.pdf").write_bytes(b"%PDF" + b"\0" * (REPORT_SIZE - 4))
    (root / "notes.txt").write_text("hello", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("SENSITIVE DATA", encoding="utf-8")
    return root


@pytest.fixture
def index(served_root):
    return DirectoryIndex(served_root)


@pytest.fixture
def unreadable_private(served_root, monkeypatch):
    """
    Add private/ and make reading it fail with EACCES.

    Simulated instead of chmod so the test also holds when run as root.
    """
    private = served_root / "private"
    private.mkdir()
    (private / "salary-report.xlsx").write_bytes(b"xlsx")

    real_scandir = index_module._scandir

    def guarded_scandir(path):
        if Path(path).name == "private":
            raise PermissionError(errno.EACCES, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(index_module, "_scandir", guarded_scandir)
    return private
