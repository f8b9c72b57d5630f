"""Table-driven CRC-32 (IEEE 802.3, reflected) as used by PNG chunks."""

from __future__ import annotations

_POLYNOMIAL = 0xEDB88320
_MASK = 0xFFFFFFFF


def _build_table() -> tuple[int, ...]:
    table: list[int] = []
    for index in range(256):
        value = index
        for _ in range(8):
            if value & 1:
                value = _POLYNOMIAL ^ (value >> 1)
            else:
                value >>= 1
        table.append(value)
    return tuple(table)


CRC_TABLE: tuple[int, ...] = _build_table()


def crc32(data: bytes, crc: int = 0) -> int:
    """Return the CRC-32 of *data*, continuing from a previous *crc* value.

    Passing the result of an earlier call as *crc* lets callers checksum
    a chunk's type and data without concatenating them first.
    """

    value = crc ^ _MASK
    table = CRC_TABLE
    for byte in data:
        value = table[(value ^ byte) & 0xFF] ^ (value >> 8)
    return value ^ _MASK


def chunk_crc(chunk_type: bytes, data: bytes) -> int:
    """CRC over the 4-byte chunk type followed by the chunk data."""

    return crc32(data, crc32(chunk_type))
