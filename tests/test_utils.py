"""
Tests for formatting and file system helpers.
"""

import os

import pytest

from cloud_image_download.core.files import create_temp_file, expand_path, find_temp_files, remove_file
from cloud_image_download.core.formatting import format_duration, format_size, sanitize_filename


class TestSanitizeFilename:
    """Tests for sanitize_filename() - one destination path component."""

    def test_colon_becomes_dash(self):
        """Colons (e.g. in timestamps) are not allowed on Windows."""
        assert sanitize_filename("build 12:30") == "build 12-30"

    def test_question_mark_and_asterisk_removed(self):
        assert sanitize_filename("disk?*.img") == "disk.img"

    def test_slashes_become_dash(self):
        assert sanitize_filename("a\\b") == "a-b"

    def test_control_characters_become_underscore(self):
        assert sanitize_filename("disk\tname.img") == "disk_name.img"
        assert sanitize_filename("disk\x00.img") == "disk_.img"

    def test_trailing_dots_and_spaces_stripped(self):
        assert sanitize_filename("image. ") == "image"

    def test_windows_reserved_names_prefixed(self):
        assert sanitize_filename("CON") == "_CON"
        assert sanitize_filename("nul.img") == "_nul.img"

    def test_normal_names_unchanged(self):
        assert sanitize_filename("ubuntu-22.04-server-cloudimg-amd64.img") == "ubuntu-22.04-server-cloudimg-amd64.img"

    def test_empty_string_unchanged(self):
        assert sanitize_filename("") == ""

    def test_only_illegal_characters(self):
        assert sanitize_filename("??") == "_"


class TestFormatSize:

    def test_bytes(self):
        assert format_size(0) == "0.0 B"
        assert format_size(1023) == "1023.0 B"

    def test_larger_units(self):
        assert format_size(1536) == "1.5 KB"
        assert format_size(1024 * 1024 * 50) == "50.0 MB"
        assert format_size(1024 * 1024 * 1024 * 2.5) == "2.5 GB"


class TestFormatDuration:

    def test_seconds_only(self):
        assert format_duration(0) == "0.0s"
        assert format_duration(59.9) == "59.9s"

    def test_minutes_and_seconds(self):
        assert format_duration(90) == "1m 30s"

    def test_hours_and_minutes(self):
        assert format_duration(5400) == "1h 30m"


class TestFiles:

    def test_expand_path(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/cid")
        monkeypatch.setenv("CID_IMAGES", "/srv/images")
        assert str(expand_path("~/a")) == "/home/cid/a"
        assert str(expand_path("$CID_IMAGES/b")) == "/srv/images/b"

    def test_temp_file_next_to_destination(self, temp_dir):
        destination = temp_dir / "9" / "disk.img"
        fd, path = create_temp_file(destination)
        os.close(fd)

        assert path.parent == destination.parent
        assert path.name.startswith("_download_disk.img.")
        assert find_temp_files(temp_dir) == [path]

    def test_remove_file(self, temp_dir):
        path = temp_dir / "x"
        path.write_text("x")
        assert remove_file(path)
        assert not remove_file(path)

    def test_find_temp_files_missing_folder(self, temp_dir):
        assert find_temp_files(temp_dir / "absent") == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
