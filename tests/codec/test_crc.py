from __future__ import annotations

import zlib

from aideer.codec.crc import CRC_TABLE, chunk_crc, crc32


def test_iend_reference_vector() -> None:
    assert chunk_crc(b"IEND", b"") == 0xAE426082


def test_crc_matches_zlib_reference() -> None:
    samples = [b"", b"a", b"123456789", bytes(range(256)) * 3, "тест".encode("utf-8")]

    for sample in samples:
        assert crc32(sample) == zlib.crc32(sample) & 0xFFFFFFFF


def test_standard_check_value() -> None:
    assert crc32(b"123456789") == 0xCBF43926


def test_incremental_crc_equals_concatenated() -> None:
    chunk_type = b"tEXt"
    data = b"chara\x00eyJuYW1lIjoiQWxpY2UifQ=="

    assert chunk_crc(chunk_type, data) == crc32(chunk_type + data)
    assert crc32(data, crc32(chunk_type)) == zlib.crc32(chunk_type + data) & 0xFFFFFFFF


def test_table_is_immutable_and_complete() -> None:
    assert isinstance(CRC_TABLE, tuple)
    assert len(CRC_TABLE) == 256
    assert CRC_TABLE[0] == 0
    assert CRC_TABLE[1] == 0x77073096
