"""Tests for the storage naming policy."""

from __future__ import annotations

import re

import pytest

from errors.exceptions import InvalidInputError
from services.blob_store import MAX_NAME_BYTES
from services.naming import StorageNamer, generate_storage_name


class TestGenerateStorageName:
    def test_prefixes_timestamp_and_replaces_whitespace(self):
        assert generate_storage_name("My Notes.pdf", 1700000000000) == "1700000000000-My_Notes.pdf"

    def test_collapses_whitespace_runs(self):
        assert generate_storage_name("a  \t b.pdf", 5) == "5-a_b.pdf"

    def test_strips_client_directories(self):
        assert generate_storage_name("C:\\Users\\me\\hw 1.pdf", 7) == "7-hw_1.pdf"
        assert generate_storage_name("../../etc/passwd", 7) == "7-passwd"

    def test_does_not_validate_extension(self):
        assert generate_storage_name("script.exe", 1) == "1-script.exe"

    @pytest.mark.parametrize("name", ["", "   ", "dir/", ".."])
    def test_rejects_empty_names(self, name):
        with pytest.raises(InvalidInputError):
            generate_storage_name(name, 1)

    def test_long_name_truncated_keeping_extension(self):
        name = generate_storage_name("a" * 300 + ".pdf", 1700000000000)
        assert len(name.encode("utf-8")) == MAX_NAME_BYTES
        assert name.startswith("1700000000000-aaa")
        assert name.endswith(".pdf")

    def test_truncation_does_not_split_multibyte_characters(self):
        # 252-byte budget leaves 248 bytes for the stem: 82 whole characters.
        name = generate_storage_name("讲" * 120 + ".pdf", 17)
        assert name == "17-" + "讲" * 82 + ".pdf"

    def test_long_extension_is_cut_with_the_rest(self):
        name = generate_storage_name("x." + "y" * 400, 1)
        assert len(name.encode("utf-8")) == MAX_NAME_BYTES
        assert name.startswith("1-x.yyy")

    def test_different_instants_give_different_names(self):
        assert generate_storage_name("x.pdf", 1) != generate_storage_name("x.pdf", 2)


class TestStorageNamer:
    def test_shape(self):
        namer = StorageNamer()
        assert re.fullmatch(r"\d+-Notes_1\.pdf", namer("Notes 1.pdf"))

    def test_same_millisecond_still_distinct(self):
        namer = StorageNamer(clock=lambda: 1000)
        names = [namer("a.pdf") for _ in range(5)]
        assert names == [f"{1000 + i}-a.pdf" for i in range(5)]

    def test_clock_going_backwards_stays_monotonic(self):
        ticks = iter([2000, 1500, 2500])
        namer = StorageNamer(clock=lambda: next(ticks))
        assert [namer("a") for _ in range(3)] == ["2000-a", "2001-a", "2500-a"]

    def test_invalid_name_does_not_consume_a_tick(self):
        calls = []

        def clock():
            calls.append(1)
            return 10

        namer = StorageNamer(clock=clock)
        with pytest.raises(InvalidInputError):
            namer("  ")
        assert calls == []
