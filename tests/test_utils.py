"""Tests for archive and key helpers."""

import pytest

from artifact_cache.utils import check_key, check_keys, format_size, get_archive_file_size_in_bytes


def test_format_size():
    assert format_size(250 * 1024 * 1024) == "~250 MB (262144000 B)"
    assert format_size(0) == "~0 MB (0 B)"


def test_archive_size(archive_factory):
    assert get_archive_file_size_in_bytes(archive_factory(1234)) == 1234


class TestCheckKeys:
    """Tests for key validation."""

    def test_valid(self):
        check_keys(["npm-linux-abc", "npm-linux-", "npm-"])

    def test_empty_list(self):
        with pytest.raises(ValueError, match="At least one key"):
            check_keys([])

    def test_too_many_keys(self):
        with pytest.raises(ValueError, match="maximum of 10"):
            check_keys([f"k{i}" for i in range(11)])

    def test_key_length_limit(self):
        check_key("x" * 512)
        with pytest.raises(ValueError, match="512"):
            check_key("x" * 513)

    def test_comma(self):
        with pytest.raises(ValueError, match="commas"):
            check_key("a,b")

    def test_empty_key(self):
        with pytest.raises(ValueError):
            check_key("")
