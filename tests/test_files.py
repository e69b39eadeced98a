"""
Tests for file operation helpers.

Covers atomic writes, JSON reads, guarded removal, archive member checks,
in-memory ZIP assembly and safe extraction.
"""

import io
import json
import os
import zipfile

import pytest

from bundlehub.exceptions import CorruptedArchiveError, ExtractionError
from bundlehub.files import (
    atomic_write,
    atomic_write_json,
    build_zip,
    extract_zip_buffer,
    is_safe_archive_member,
    list_json_files,
    open_zip_buffer,
    read_json,
    safe_extract_path,
    safe_rmtree,
    zip_directory,
)

pytestmark = [pytest.mark.unit]


class TestAtomicWrite:
    """Tests for atomic_write and atomic_write_json."""

    def test_writes_json_and_creates_parents(self, tmp_path):
        target = tmp_path / "nested" / "data.json"
        assert atomic_write_json(target, {"a": 1})
        assert json.loads(target.read_text()) == {"a": 1}
        assert os.listdir(target.parent) == ["data.json"]

    def test_failed_writer_keeps_original(self, tmp_path):
        target = tmp_path / "data.json"
        target.write_text("original")

        def writer(_f):
            raise ValueError("boom")

        assert atomic_write(target, writer) is False
        assert target.read_text() == "original"
        assert os.listdir(tmp_path) == ["data.json"]

    def test_unserializable_json_returns_false(self, tmp_path):
        assert atomic_write_json(tmp_path / "x.json", {"a": object()}) is False


class TestReadJson:
    """Tests for read_json."""

    def test_missing_file(self, tmp_path):
        assert read_json(tmp_path / "missing.json") is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{nope")
        assert read_json(path) is None

    def test_list_json_files(self, tmp_path):
        (tmp_path / "a.json").write_text("{}")
        (tmp_path / "b.txt").write_text("")
        assert list(list_json_files(tmp_path)) == ["a"]
        assert list_json_files(tmp_path / "missing") == {}


class TestSafeRmtree:
    """Tests for safe_rmtree."""

    def test_removes_inside_base(self, tmp_path):
        victim = tmp_path / "base" / "victim"
        victim.mkdir(parents=True)
        (victim / "f.txt").write_text("x")
        assert safe_rmtree(victim, tmp_path / "base")
        assert not victim.exists()

    def test_refuses_outside_base(self, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (tmp_path / "base").mkdir()
        assert safe_rmtree(outside, tmp_path / "base") is False
        assert outside.exists()

    def test_missing_path_counts_as_removed(self, tmp_path):
        assert safe_rmtree(tmp_path / "gone", tmp_path)


class TestArchiveMembers:
    """Tests for archive member validation."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("prompts/a.md", True),
            ("a/../b.md", True),
            ("../evil.md", False),
            ("a/../../evil.md", False),
            ("/etc/passwd", False),
            ("", False),
            ("bad\x00name", False),
        ],
    )
    def test_is_safe_archive_member(self, name, expected):
        assert is_safe_archive_member(name) is expected

    def test_safe_extract_path_rejects_escape(self, tmp_path):
        with pytest.raises(ValueError):
            safe_extract_path(str(tmp_path), "../outside.txt")


class TestZipHelpers:
    """Tests for build_zip, zip_directory, open_zip_buffer and extract_zip_buffer."""

    def test_build_and_extract(self, tmp_path):
        data = build_zip([("a.txt", "hello"), ("dir/b.bin", b"\x00\x01")])
        extracted = extract_zip_buffer(data, str(tmp_path))

        assert sorted(p.name for p in extracted) == ["a.txt", "b.bin"]
        assert (tmp_path / "a.txt").read_text() == "hello"
        assert (tmp_path / "dir" / "b.bin").read_bytes() == b"\x00\x01"

    def test_zip_directory_uses_relative_posix_names(self, tmp_path):
        (tmp_path / "src" / "sub").mkdir(parents=True)
        (tmp_path / "src" / "top.md").write_text("t")
        (tmp_path / "src" / "sub" / "inner.md").write_text("i")

        with zipfile.ZipFile(io.BytesIO(zip_directory(tmp_path / "src"))) as archive:
            assert sorted(archive.namelist()) == ["sub/inner.md", "top.md"]

    def test_empty_buffer_is_corrupt(self):
        with pytest.raises(CorruptedArchiveError, match="empty"):
            open_zip_buffer(b"")

    def test_non_zip_buffer_is_corrupt(self):
        with pytest.raises(CorruptedArchiveError, match="not a valid ZIP"):
            open_zip_buffer(b"<html>not a zip</html>")

    def test_traversal_member_aborts_extraction(self, tmp_path):
        data = build_zip([("ok.txt", "fine"), ("../evil.txt", "bad")])
        target = tmp_path / "out"
        target.mkdir()

        with pytest.raises(ExtractionError, match="traversal"):
            extract_zip_buffer(data, str(target))
        assert not (tmp_path / "evil.txt").exists()
