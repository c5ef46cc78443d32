"""
Recursive name search.
"""

import errno
import os

import pytest

from browse import index as index_module
from browse.errors import UpstreamFailure


@pytest.fixture
def nested_root(served_root):
    (served_root / "docs" / "reports").mkdir()
    (served_root / "docs" / "reports" / "Report-2024.csv").write_text("q,v")
    (served_root / "music").mkdir()
    (served_root / "music" / "track.mp3").write_bytes(b"ID3")
    return served_root


DEEP_LEVELS = 1100


@pytest.fixture
def deep_root(tmp_path):
    """share/d/d/.../d/needle.txt, deeper than the interpreter's recursion limit."""
    root = tmp_path / "share"
    root.mkdir()
    levels = [root]
    for _ in range(DEEP_LEVELS):
        levels.append(levels[-1] / "d")
        levels[-1].mkdir()
    (levels[-1] / "needle.txt").write_text("found")

    yield root

    # Remove leaf first; recursive cleanup would hit the same limit
    (levels[-1] / "needle.txt").unlink()
    for level in reversed(levels):
        level.rmdir()


def walk_names(root, term):
    """Every non-symlink path below root whose name contains term."""
    needle = term.lower()
    found = set()
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            full = os.path.join(dirpath, name)
            if os.path.islink(full):
                continue
            if needle in name.lower():
                found.add(os.path.relpath(full, root).replace(os.sep, "/"))
    return found


class TestSearch:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("term", ["", "   ", "\t"])
    async def test_blank_term_returns_nothing(self, index, term):
        assert await index.search(term) == []

    @pytest.mark.asyncio
    async def test_finds_nested_file(self, index):
        results = await index.search("rep")

        assert len(results) == 1
        assert results[0].name == "report.pdf"
        assert results[0].path == "docs/report.pdf"
        assert results[0].is_directory is False
        assert results[0].size == 500000

    @pytest.mark.asyncio
    async def test_case_insensitive(self, nested_root, index):
        paths = {r.path for r in await index.search("REPORT")}
        assert paths == {"docs/report.pdf", "docs/reports", "docs/reports/Report-2024.csv"}

    @pytest.mark.asyncio
    async def test_matching_directory_included_and_recursed(self, nested_root, index):
        results = {r.path: r for r in await index.search("reports")}

        assert results["docs/reports"].is_directory is True
        assert results["docs/reports"].size is None
        assert "docs/reports/Report-2024.csv" not in results

        nested = {r.path for r in await index.search("2024")}
        assert nested == {"docs/reports/Report-2024.csv"}

    @pytest.mark.asyncio
    async def test_no_match(self, nested_root, index):
        assert await index.search("does-not-exist") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("term", ["rep", "o", ".", "track", "DOCS"])
    async def test_results_match_walk(self, nested_root, index, term):
        paths = [r.path for r in await index.search(term)]

        assert len(paths) == len(set(paths))
        assert set(paths) == walk_names(nested_root, term)

    @pytest.mark.asyncio
    async def test_symlinks_skipped(self, nested_root, index):
        os.symlink(nested_root / "docs", nested_root / "report-shortcut")
        os.symlink(nested_root / "docs" / "report.pdf", nested_root / "music" / "report-link.pdf")
        os.symlink(nested_root, nested_root / "music" / "loop")

        paths = {r.path for r in await index.search("report")}

        assert paths == {"docs/report.pdf", "docs/reports", "docs/reports/Report-2024.csv"}

    @pytest.mark.asyncio
    async def test_unreadable_subtree_skipped(self, index, unreadable_private):
        assert await index.search("salary") == []

        # The directory itself is still visible, only its contents are not
        paths = {r.path for r in await index.search("report")}
        assert paths == {"docs/report.pdf"}
        assert {r.path for r in await index.search("private")} == {"private"}

    @pytest.mark.asyncio
    async def test_busy_entry_skipped(self, nested_root, index, monkeypatch):
        real_stat = index_module._stat

        def busy_stat(path, follow_symlinks=True):
            if path.name == "report.pdf":
                raise OSError(errno.EBUSY, "Device or resource busy", str(path))
            return real_stat(path, follow_symlinks)

        monkeypatch.setattr(index_module, "_stat", busy_stat)

        paths = {r.path for r in await index.search("report")}
        assert paths == {"docs/reports", "docs/reports/Report-2024.csv"}

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_search(self, index, monkeypatch):
        def broken_scandir(path):
            raise OSError(errno.EIO, "Input/output error", str(path))

        monkeypatch.setattr(index_module, "_scandir", broken_scandir)

        with pytest.raises(UpstreamFailure):
            await index.search("rep")

    @pytest.mark.asyncio
    async def test_result_cap(self, nested_root, index):
        index.search_limit = 2
        assert len(await index.search("o")) == 2

    @pytest.mark.asyncio
    async def test_unbounded_by_default(self, nested_root, index):
        assert index.search_limit == 0
        assert len(await index.search("o")) == len(walk_names(nested_root, "o"))

    @pytest.mark.asyncio
    async def test_very_deep_tree(self, deep_root):
        index = index_module.DirectoryIndex(deep_root)

        results = await index.search("needle")

        assert len(results) == 1
        assert results[0].name == "needle.txt"
        assert results[0].path == "/".join(["d"] * DEEP_LEVELS + ["needle.txt"])
        # Every "d" directory plus needle.txt
        assert len(await index.search("d")) == DEEP_LEVELS + 1

    @pytest.mark.asyncio
    async def test_depth_first_order(self, nested_root, index):
        paths = [r.path for r in await index.search("o")]

        # Everything under docs/ is reported before leaving docs/
        docs = [i for i, p in enumerate(paths) if p == "docs" or p.startswith("docs/")]
        assert docs == list(range(docs[0], docs[0] + len(docs)))
