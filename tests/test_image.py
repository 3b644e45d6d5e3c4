"""Tests for firmware image loading."""

import logging

import pytest

from quadboot.core.image import load_first_section, load_image
from quadboot.protocol.crc import crc32
from quadboot.protocol.errors import ErrorKind, LoadError

APP_BASE = 0x08010000


def test_single_section_hex(make_hex) -> None:
    data = bytes(range(200))
    path = make_hex({APP_BASE: data})

    sections = load_image(path)
    assert len(sections) == 1
    section = sections[0]
    assert section.start_address == APP_BASE
    assert section.end_address == APP_BASE + 200
    assert section.data == data
    assert section.crc32 == crc32(data)
    assert section.region == "0x08010000-0x080100C8"


def test_sections_sorted_by_address(make_hex) -> None:
    path = make_hex({0x08020000: b"\x02" * 16, APP_BASE: b"\x01" * 32})
    sections = load_image(path)
    assert [s.start_address for s in sections] == [APP_BASE, 0x08020000]


def test_first_section_warns_about_extra_sections(make_hex, caplog) -> None:
    path = make_hex({APP_BASE: b"\x01" * 32, 0x08020000: b"\x02" * 16})
    with caplog.at_level(logging.WARNING, logger="quadboot"):
        section = load_first_section(path)
    assert section.start_address == APP_BASE
    assert "2 sections" in caplog.text


def test_binary_needs_base(tmp_path) -> None:
    path = tmp_path / "app.bin"
    path.write_bytes(b"\x01" * 64)
    with pytest.raises(LoadError):
        load_image(str(path))


def test_binary_at_base(tmp_path) -> None:
    path = tmp_path / "app.bin"
    path.write_bytes(bytes(range(64)))
    sections = load_image(str(path), base_address=APP_BASE)
    assert sections[0].start_address == APP_BASE
    assert sections[0].data == bytes(range(64))


def test_base_ignored_for_hex(make_hex) -> None:
    path = make_hex({0x08040000: b"\xAA" * 16})
    assert load_image(path, base_address=APP_BASE)[0].start_address == 0x08040000


def test_missing_file(tmp_path) -> None:
    with pytest.raises(LoadError) as excinfo:
        load_image(str(tmp_path / "nope.hex"))
    assert excinfo.value.kind == ErrorKind.LOAD


def test_malformed_hex(tmp_path) -> None:
    path = tmp_path / "bad.hex"
    path.write_text("this is not intel hex\n")
    with pytest.raises(LoadError, match="Can't parse bad.hex"):
        load_image(str(path))


def test_empty_image(tmp_path) -> None:
    path = tmp_path / "empty.hex"
    path.write_text(":00000001FF\n")
    with pytest.raises(LoadError, match="No data"):
        load_first_section(str(path))


def test_too_small_for_vector_table(make_hex) -> None:
    path = make_hex({APP_BASE: b"\x01" * 8})
    with pytest.raises(LoadError, match="too small"):
        load_first_section(path, min_size=8)
