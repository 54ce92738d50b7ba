"""Tests for file operations module."""

import os
import stat

import pytest

from op_env_sync.errors import FileOpsError
from op_env_sync.file_ops import atomic_write_text, copy_file, delete_file, read_text


class TestFileOps:
    """File operation tests."""

    def test_read_missing_file(self, tmp_path):
        """Test that reading a missing file returns None."""
        assert read_text(str(tmp_path / "missing")) is None

    def test_read_keeps_line_endings(self, tmp_path):
        """Test that CRLF is not translated on read."""
        path = tmp_path / "crlf.env"
        path.write_bytes(b"A=1\r\n")

        assert read_text(str(path)) == "A=1\r\n"

    def test_read_invalid_utf8(self, tmp_path):
        """Test that undecodable content raises FileOpsError."""
        path = tmp_path / "binary.env"
        path.write_bytes(b"\xff\xfe\x00")

        with pytest.raises(FileOpsError):
            read_text(str(path))

    def test_atomic_write_creates_file(self, tmp_path):
        """Test writing a new file, including missing parent directories."""
        path = tmp_path / "nested" / "dir" / ".env"
        atomic_write_text(str(path), "A=1\n")

        assert path.read_text() == "A=1\n"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_atomic_write_replaces_file(self, tmp_path):
        """Test replacing existing content."""
        path = tmp_path / ".env"
        path.write_text("old\n")

        atomic_write_text(str(path), "new\n")

        assert path.read_text() == "new\n"
        assert [p.name for p in tmp_path.iterdir()] == [".env"]

    def test_atomic_write_failure_leaves_target(self, tmp_path, monkeypatch):
        """Test that a failed replace keeps the old content and no temp file."""
        path = tmp_path / ".env"
        path.write_text("old\n")

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("op_env_sync.file_ops.os.replace", fail_replace)

        with pytest.raises(FileOpsError, match="disk full"):
            atomic_write_text(str(path), "new\n")

        assert path.read_text() == "old\n"
        assert [p.name for p in tmp_path.iterdir()] == [".env"]

    def test_copy_file(self, tmp_path):
        """Test copying a file restricts the copy's permissions."""
        src_file = tmp_path / "source.env"
        src_file.write_text("content")
        dst_file = tmp_path / "backups" / "dest.bak"

        copy_file(str(src_file), str(dst_file))

        assert dst_file.read_text() == "content"
        assert stat.S_IMODE(os.stat(dst_file).st_mode) == 0o600

    def test_copy_missing_source(self, tmp_path):
        """Test that copying a missing file raises FileOpsError."""
        with pytest.raises(FileOpsError):
            copy_file(str(tmp_path / "missing"), str(tmp_path / "dest"))

    def test_delete_file(self, tmp_path):
        """Test deleting present and missing files."""
        path = tmp_path / "delete_me"
        path.write_text("x")

        assert delete_file(str(path))
        assert not path.exists()
        assert not delete_file(str(path))
